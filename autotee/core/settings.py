"""Autotee application settings loaded from environment and ``.env`` files.

Uses :mod:`pydantic_settings` to parse environment variables (and optionally
an ``.env`` file) into a validated settings object.

Every environment variable documented in ``.env.example`` maps 1-to-1 to a
field in :class:`Settings`.  The field name is the **lowercase** version of
the env-var name (e.g. ``PARTNER_API_TOKEN`` → ``partner_api_token``).

The scheduler never reads :class:`Settings` directly.  It consumes an
:class:`EngineConfig` snapshot produced by :meth:`Settings.to_engine_config`,
taken once when the engine is constructed and never reloaded mid-attempt.
A date window without a fixed start rolls forward: each job resolves it
against the day it was created (:meth:`EngineConfig.query_for`).

Typical usage::

    from autotee.core.settings import load_settings

    settings = load_settings()                 # loads from env + .env
    config = settings.to_engine_config()       # immutable engine snapshot
    print(settings.provider_kind)              # "partner_api" / "web" / None
"""

from __future__ import annotations

import datetime as dt
import logging
from pathlib import Path
from typing import Annotated, Literal

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from autotee.core.exceptions import ConfigError
from autotee.core.models import (
    AvailabilityQuery,
    BookingRequest,
    DayOfWeek,
    Locomotion,
    Preferences,
    Slot,
)

__all__ = ["Settings", "EngineConfig", "load_settings"]

logger = logging.getLogger(__name__)

ProviderKind = Literal["partner_api", "web"]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _csv_to_list(value: str) -> list[str]:
    """Split a comma-separated string into a list of non-empty, stripped items.

    Returns an empty list for blank / whitespace-only input.
    """
    if not value or not value.strip():
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _blank_to_none(value: object) -> object:
    if isinstance(value, str) and not value.strip():
        return None
    return value


# ---------------------------------------------------------------------------
# Engine snapshot
# ---------------------------------------------------------------------------


class EngineConfig(BaseModel):
    """Immutable configuration snapshot consumed by the scheduler.

    Attributes:
        query: The availability query every tick of a job runs.
        player_names: Names sent with the booking, in order.
        poll_interval_s: Base delay between recurring ticks, before jitter.
        max_attempts: Attempts per job before a transient failure is final.
        retry_base_delay_s: First backoff delay after a failed attempt.
        backoff_multiplier: Growth factor between consecutive backoff delays.
        retry_max_delay_s: Upper bound on any single backoff delay.
        min_delay_s: Floor applied to every computed delay.
        rolling_start: The date window starts on the day each job is
            created instead of on ``query.start_date``.
        rolling_days: Window length for a rolling start; ``None`` keeps
            ``query.end_date`` fixed.
    """

    model_config = {"frozen": True}

    query: AvailabilityQuery
    player_names: tuple[str, ...] = Field(..., min_length=1)
    poll_interval_s: float = Field(90.0, gt=0)
    max_attempts: int = Field(5, ge=1)
    retry_base_delay_s: float = Field(5.0, gt=0)
    backoff_multiplier: float = Field(2.0, ge=1.0)
    retry_max_delay_s: float = Field(300.0, gt=0)
    min_delay_s: float = Field(1.0, ge=0)
    rolling_start: bool = False
    rolling_days: int | None = Field(None, ge=0)

    @model_validator(mode="after")
    def _players_fit_party(self) -> EngineConfig:
        if len(self.player_names) > self.query.party_size:
            raise ValueError(
                f"{len(self.player_names)} player names exceed party size "
                f"{self.query.party_size}"
            )
        return self

    def query_for(self, day: dt.date) -> AvailabilityQuery:
        """The availability query for a job created on *day*.

        Raises:
            ConfigError: If a fixed end date is already behind *day*.
        """
        if not self.rolling_start:
            return self.query
        end = (
            day + dt.timedelta(days=self.rolling_days)
            if self.rolling_days is not None
            else self.query.end_date
        )
        try:
            return AvailabilityQuery.model_validate(
                {**self.query.model_dump(), "start_date": day, "end_date": end}
            )
        except ValidationError as exc:
            raise ConfigError(f"Booking window has ended: {exc}") from exc

    def booking_request(self, slot: Slot) -> BookingRequest:
        """Build the booking request for *slot* from this snapshot."""
        return BookingRequest(
            slot_id=slot.id,
            player_names=self.player_names,
            party_size=self.query.party_size,
            preferences=self.query.preferences,
        )


# ---------------------------------------------------------------------------
# Settings model
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    """Central application configuration.

    Values are loaded in priority order:

    1. Actual environment variables (highest priority).
    2. ``.env`` file in the working directory.
    3. Field defaults (lowest priority).

    Credentials may be left empty during development; the matching
    ``*_configured`` property returns ``False`` and the subsystem is disabled.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Partner API (structured backend)
    # ------------------------------------------------------------------
    partner_api_token: str = Field(default="", description="Bearer token for the partner API.")
    partner_org_id: str = Field(default="", description="Organisation id.")
    partner_facility_id: str = Field(default="", description="Facility id.")
    partner_course_id: str = Field(default="", description="Course id.")
    partner_base_url: str = Field(
        default="https://api.lightspeedgolf.com/v1",
        description="Partner API base URL.",
    )
    partner_timeout_s: float = Field(default=30.0, gt=0, description="Per-request timeout.")

    # ------------------------------------------------------------------
    # Web (browser-automated backend)
    # ------------------------------------------------------------------
    web_email: str = Field(default="", description="Login email for the booking website.")
    web_password: str = Field(default="", description="Login password for the booking website.")
    web_base_url: str = Field(
        default="https://www.chronogolf.com",
        description="Booking website root URL.",
    )
    web_headless: bool = Field(default=True, description="Run Chromium without a window.")
    web_storage_state_path: str = Field(
        default="",
        description="Path to a Playwright storage-state JSON file for session reuse.",
    )
    web_two_factor_timeout_s: float = Field(
        default=120.0,
        gt=0,
        description="Seconds to wait for an out-of-band second factor.",
    )
    browser_min_delay_s: float = Field(default=0.5, ge=0, description="Min human pause.")
    browser_max_delay_s: float = Field(default=3.0, ge=0, description="Max human pause.")

    # ------------------------------------------------------------------
    # Booking request
    # ------------------------------------------------------------------
    home_course: str = Field(default="", description="Course name to search for.")
    party_size: int = Field(default=4, ge=1, le=6)
    date_window_start: dt.date | None = Field(
        default=None,
        description="First playable date; defaults to today.",
    )
    date_window_end: dt.date | None = Field(
        default=None,
        description="Last playable date; defaults to start + date_window_days.",
    )
    date_window_days: int = Field(default=7, ge=0, le=60)
    time_window_earliest: dt.time = Field(default=dt.time(7, 0))
    time_window_latest: dt.time = Field(default=dt.time(18, 0))
    days_of_week: Annotated[list[DayOfWeek], NoDecode] = Field(
        default_factory=lambda: list(DayOfWeek),
        description="Allowed weekdays (comma-separated in env, e.g. 'Sat,Sun').",
    )
    walking_or_cart: Locomotion = Field(default=Locomotion.EITHER)
    holes: Literal[9, 18] | None = Field(default=None, description="9, 18, or 'either'.")
    max_price: float | None = Field(default=None, ge=0)
    player_names: Annotated[list[str], NoDecode] = Field(
        default_factory=list,
        description="Player names (comma-separated in env).",
    )

    # ------------------------------------------------------------------
    # Polling and retries
    # ------------------------------------------------------------------
    poll_interval_s: int = Field(default=90, ge=30, le=3600)
    max_retries: int = Field(default=5, ge=1, le=10)
    retry_base_delay_s: float = Field(default=5.0, gt=0)
    backoff_multiplier: float = Field(default=2.0, ge=1.0)
    retry_max_delay_s: float = Field(default=300.0, gt=0)

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------
    smtp_host: str = Field(default="smtp.gmail.com")
    smtp_port: int = Field(default=587, ge=1, le=65535)
    smtp_use_ssl: bool = Field(default=False, description="Implicit TLS instead of STARTTLS.")
    smtp_user: str = Field(default="")
    smtp_password: str = Field(default="")
    smtp_from: str = Field(default="", description="Sender address; defaults to smtp_user.")
    notify_email_to: str = Field(default="", description="Recipient address.")
    pushover_token: str = Field(default="", description="Pushover application token.")
    pushover_user: str = Field(default="", description="Pushover user key.")
    telegram_bot_token: str = Field(default="", description="Bot token from @BotFather.")
    telegram_chat_id: str = Field(default="", description="Chat id for notifications.")
    notify_dry_run: bool = Field(
        default=False,
        description="Log notification payloads instead of sending them.",
    )

    # ------------------------------------------------------------------
    # Storage and runtime
    # ------------------------------------------------------------------
    database_path: str = Field(default="data/autotee.db", description="SQLite queue file.")
    stats_path: str = Field(default="", description="JSON stats file; empty disables it.")
    log_level: str = Field(default="INFO", description="Logging level.")
    log_format: str = Field(default="text", description="Log format: 'text' or 'json'.")

    # ------------------------------------------------------------------
    # Field validators
    # ------------------------------------------------------------------

    @field_validator("days_of_week", mode="before")
    @classmethod
    def _parse_csv_days(cls, v: str | list[str]) -> list[DayOfWeek]:
        """Accept a comma-separated string **or** an already-parsed list."""
        items = _csv_to_list(v) if isinstance(v, str) else v
        return [DayOfWeek.parse(str(item)) for item in items]

    @field_validator("player_names", mode="before")
    @classmethod
    def _parse_csv_players(cls, v: str | list[str]) -> list[str]:
        if isinstance(v, str):
            return _csv_to_list(v)
        return v

    @field_validator("holes", mode="before")
    @classmethod
    def _parse_holes(cls, v: object) -> object:
        if isinstance(v, str):
            text = v.strip().lower()
            if text in ("", "either", "any"):
                return None
            return int(text)
        return v

    @field_validator("max_price", "date_window_start", "date_window_end", mode="before")
    @classmethod
    def _blank_optional(cls, v: object) -> object:
        return _blank_to_none(v)

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR"}
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"log_level must be one of {allowed}, got {v!r}")
        return v_upper

    @field_validator("log_format")
    @classmethod
    def _validate_log_format(cls, v: str) -> str:
        allowed = {"text", "json"}
        v_lower = v.lower()
        if v_lower not in allowed:
            raise ValueError(f"log_format must be one of {allowed}, got {v!r}")
        return v_lower

    # ------------------------------------------------------------------
    # Model validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def _validate_ranges(self) -> Settings:
        if self.browser_min_delay_s > self.browser_max_delay_s:
            raise ValueError(
                f"browser_min_delay_s ({self.browser_min_delay_s}) "
                f"> browser_max_delay_s ({self.browser_max_delay_s})"
            )
        if self.time_window_earliest > self.time_window_latest:
            raise ValueError(
                f"time_window_earliest ({self.time_window_earliest}) "
                f"> time_window_latest ({self.time_window_latest})"
            )
        if not self.days_of_week:
            raise ValueError("days_of_week must name at least one day")
        return self

    # ------------------------------------------------------------------
    # Derived helpers
    # ------------------------------------------------------------------

    def to_availability_query(self, today: dt.date | None = None) -> AvailabilityQuery:
        """Build the :class:`AvailabilityQuery` for a new job.

        An unset start date means *today*; an unset end date means
        ``start + date_window_days``.

        Raises:
            ConfigError: If the resolved date window is empty.
        """
        start = self.date_window_start or today or dt.date.today()
        end = self.date_window_end or start + dt.timedelta(days=self.date_window_days)
        try:
            return AvailabilityQuery(
                start_date=start,
                end_date=end,
                earliest_time=self.time_window_earliest,
                latest_time=self.time_window_latest,
                days_of_week=frozenset(self.days_of_week),
                party_size=self.party_size,
                preferences=Preferences(
                    locomotion=self.walking_or_cart,
                    holes=self.holes,
                    max_price=self.max_price,
                ),
                course_name=self.home_course or None,
                course_id=self.partner_course_id or None,
            )
        except ValidationError as exc:
            raise ConfigError(f"Invalid booking window: {exc}") from exc

    def to_engine_config(self, today: dt.date | None = None) -> EngineConfig:
        """Snapshot everything the scheduler needs for one engine lifetime.

        Raises:
            ConfigError: If no player names are configured or they exceed
                the party size.
        """
        if not self.player_names:
            raise ConfigError("PLAYER_NAMES must list at least one player")
        try:
            return EngineConfig(
                query=self.to_availability_query(today),
                player_names=tuple(self.player_names),
                poll_interval_s=float(self.poll_interval_s),
                max_attempts=self.max_retries,
                retry_base_delay_s=self.retry_base_delay_s,
                backoff_multiplier=self.backoff_multiplier,
                retry_max_delay_s=self.retry_max_delay_s,
                rolling_start=self.date_window_start is None,
                rolling_days=self.date_window_days if self.date_window_end is None else None,
            )
        except ValidationError as exc:
            raise ConfigError(f"Invalid engine configuration: {exc}") from exc

    @property
    def database_path_resolved(self) -> Path:
        """Return the database path as a resolved :class:`~pathlib.Path`."""
        return Path(self.database_path).resolve()

    @property
    def partner_configured(self) -> bool:
        """``True`` if the token and the full org/facility/course triple are set."""
        return bool(
            self.partner_api_token
            and self.partner_org_id
            and self.partner_facility_id
            and self.partner_course_id
        )

    @property
    def web_configured(self) -> bool:
        return bool(self.web_email and self.web_password)

    @property
    def provider_kind(self) -> ProviderKind | None:
        """Which provider the configured credentials select, if any.

        Partner API credentials win when both shapes are present.
        """
        if self.partner_configured:
            return "partner_api"
        if self.web_configured:
            return "web"
        return None

    @property
    def email_configured(self) -> bool:
        return bool(self.smtp_host and self.smtp_user and self.smtp_password and self.notify_email_to)

    @property
    def pushover_configured(self) -> bool:
        return bool(self.pushover_token and self.pushover_user)

    @property
    def telegram_configured(self) -> bool:
        """``True`` if both Telegram credentials are set."""
        return bool(self.telegram_bot_token and self.telegram_chat_id)


def load_settings(**overrides: object) -> Settings:
    """Load :class:`Settings`, converting validation failures to :class:`ConfigError`."""
    try:
        return Settings(**overrides)  # type: ignore[arg-type]
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc
