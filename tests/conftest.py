"""Shared pytest fixtures and configuration for the Autotee test suite.

This file is loaded automatically by pytest before any test module.
It provides project-wide fixtures used across unit and integration tests.
"""

from __future__ import annotations

import logging
import os

import pytest
from pydantic_settings import SettingsConfigDict

from autotee.core import configure_logging
from autotee.core.settings import Settings


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _configure_test_logging() -> None:
    """Force DEBUG logging in text format for every test.

    ``force=True`` applies the configuration even when pytest's own
    ``log_cli`` handler is already installed.
    """
    configure_logging(level="DEBUG", fmt="text", force=True)


# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove every Autotee-related env var for the duration of a test.

    Also disables pydantic-settings `.env` file loading so that credentials
    present in a local `.env` file do not leak into Settings isolation tests.
    """
    sensitive_prefixes = (
        "PARTNER_",
        "WEB_",
        "BROWSER_",
        "HOME_COURSE",
        "PARTY_SIZE",
        "PLAYER_NAMES",
        "DATE_WINDOW_",
        "TIME_WINDOW_",
        "DAYS_OF_WEEK",
        "WALKING_OR_CART",
        "HOLES",
        "MAX_PRICE",
        "POLL_",
        "MAX_RETRIES",
        "RETRY_",
        "BACKOFF_",
        "SMTP_",
        "NOTIFY_",
        "PUSHOVER_",
        "TELEGRAM_",
        "DATABASE_",
        "STATS_PATH",
        "LOG_LEVEL",
        "LOG_FORMAT",
    )
    for key in list(os.environ):
        if any(key.startswith(prefix) for prefix in sensitive_prefixes):
            monkeypatch.delenv(key, raising=False)

    # pydantic-settings reads the .env file directly, not via os.environ.
    monkeypatch.setattr(
        Settings,
        "model_config",
        SettingsConfigDict(
            env_file=None,
            env_file_encoding="utf-8",
            extra="ignore",
        ),
    )


# ---------------------------------------------------------------------------
# Misc helpers
# ---------------------------------------------------------------------------


@pytest.fixture()
def logger() -> logging.Logger:
    """Return a ``logging.Logger`` scoped to the running test."""
    return logging.getLogger("tests")
