"""Map exceptions raised during a tick onto retry decisions.

Every exception that reaches the scheduler goes through
:func:`classify_error` before any retry or backoff decision is made:

    =========================================  ====================
    Exception                                  ErrorKind
    =========================================  ====================
    ProviderAuthError                          TERMINAL_AUTH
    ProviderNotFoundError                      TERMINAL_NOT_FOUND
    ConfigError                                TERMINAL_CONFIG
    BookingRejectedError                       BOOKING_REJECTED
    anything else                              TRANSIENT
    =========================================  ====================
"""

from __future__ import annotations

from enum import StrEnum

from autotee.core.exceptions import (
    BookingRejectedError,
    ConfigError,
    ProviderAuthError,
    ProviderNotFoundError,
)

__all__ = ["ErrorKind", "classify_error"]


class ErrorKind(StrEnum):
    TERMINAL_AUTH = "terminal_auth"
    TERMINAL_NOT_FOUND = "terminal_not_found"
    TERMINAL_CONFIG = "terminal_config"
    TRANSIENT = "transient"
    BOOKING_REJECTED = "booking_rejected"

    @property
    def is_terminal(self) -> bool:
        """``True`` when retrying cannot help."""
        return self in _TERMINAL


_TERMINAL = frozenset(
    {ErrorKind.TERMINAL_AUTH, ErrorKind.TERMINAL_NOT_FOUND, ErrorKind.TERMINAL_CONFIG}
)


def classify_error(exc: BaseException) -> ErrorKind:
    if isinstance(exc, ProviderAuthError):
        return ErrorKind.TERMINAL_AUTH
    if isinstance(exc, ProviderNotFoundError):
        return ErrorKind.TERMINAL_NOT_FOUND
    if isinstance(exc, ConfigError):
        return ErrorKind.TERMINAL_CONFIG
    if isinstance(exc, BookingRejectedError):
        return ErrorKind.BOOKING_REJECTED
    return ErrorKind.TRANSIENT
