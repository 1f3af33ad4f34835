"""Autotee exception taxonomy.

Every custom exception inherits from :class:`AutoteeError`.  Exceptions are
organised by architectural layer so callers can catch at the right granularity:

    Layer hierarchy
    ---------------
    AutoteeError
    ├── ConfigError
    ├── StorageError
    ├── ProviderError
    │   ├── ProviderAuthError
    │   ├── ProviderNotFoundError
    │   ├── ProviderRequestError
    │   ├── ProviderTransportError
    │   │   ├── ProviderRateLimitError
    │   │   └── ProviderUnavailableError
    │   ├── ProviderParseError
    │   └── BrowserProviderError
    ├── BookingRejectedError
    ├── NotificationError
    │   ├── EmailError
    │   ├── PushoverError
    │   └── TelegramError
    │       └── TelegramRateLimitError
    └── SchedulerError

Provider errors are the only errors a :class:`~autotee.providers.base.BookingProvider`
may raise.  The scheduler maps them onto retry decisions through
:func:`autotee.orchestrator.classify.classify_error`.

Usage:

    from autotee.core.exceptions import ProviderAuthError

    raise ProviderAuthError("partner_api", "HTTP 401 on /organizations/1") from exc
"""

from __future__ import annotations

__all__ = [
    "AutoteeError",
    # Config
    "ConfigError",
    # Storage
    "StorageError",
    # Provider
    "ProviderError",
    "ProviderAuthError",
    "ProviderNotFoundError",
    "ProviderRequestError",
    "ProviderTransportError",
    "ProviderRateLimitError",
    "ProviderUnavailableError",
    "ProviderParseError",
    "BrowserProviderError",
    # Booking
    "BookingRejectedError",
    # Notification
    "NotificationError",
    "EmailError",
    "PushoverError",
    "TelegramError",
    "TelegramRateLimitError",
    # Scheduler
    "SchedulerError",
]

# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------


class AutoteeError(Exception):
    """Root exception for all Autotee errors.

    Catch this to handle any application-level error uniformly.  Prefer
    catching layer-specific subclasses wherever possible.
    """


# ---------------------------------------------------------------------------
# Config layer
# ---------------------------------------------------------------------------


class ConfigError(AutoteeError):
    """Raised when the application configuration is invalid or incomplete.

    Examples:
        - Neither partner API nor web credentials are configured.
        - The date window ends before it starts.
    """


# ---------------------------------------------------------------------------
# Storage layer
# ---------------------------------------------------------------------------


class StorageError(AutoteeError):
    """Raised when a job-queue or history operation fails."""


# ---------------------------------------------------------------------------
# Provider layer
# ---------------------------------------------------------------------------


class ProviderError(AutoteeError):
    """Base class for all provider-level errors.

    Args:
        provider: Short name of the provider (e.g. ``"partner_api"``).
        message: Human-readable error description.
    """

    def __init__(self, provider: str, message: str) -> None:
        self.provider = provider
        super().__init__(f"[{provider}] {message}")


class ProviderAuthError(ProviderError):
    """Raised when the backend rejects the configured credentials.

    Retrying cannot help: the job fails immediately.

    Examples:
        - HTTP 401 or 403 from the partner API.
        - Login page still showing after submitting the web form.
    """


class ProviderNotFoundError(ProviderError):
    """Raised when the configured course, facility or organisation does not exist.

    Covers HTTP 404 from the partner API.  Never retried.
    """


class ProviderRequestError(ProviderError):
    """Raised for an unexpected 4xx response that is neither auth nor not-found.

    Args:
        provider: Short name of the provider.
        message: Human-readable error description.
        status_code: The HTTP status code returned by the backend.
    """

    def __init__(self, provider: str, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(provider, message)


class ProviderTransportError(ProviderError):
    """Raised when the backend cannot be reached or answers with a 5xx.

    Covers network errors, timeouts and server errors after the HTTP client
    has exhausted its own retry budget.
    """


class ProviderRateLimitError(ProviderTransportError):
    """Raised when a provider receives an HTTP 429 or equivalent signal.

    Args:
        provider: Short name of the provider.
        retry_after: Recommended back-off interval in seconds, if known.
    """

    def __init__(self, provider: str, retry_after: float | None = None) -> None:
        self.retry_after = retry_after
        detail = f"retry after {retry_after}s" if retry_after is not None else "no retry hint"
        super().__init__(provider, f"Rate limited ({detail})")


class ProviderUnavailableError(ProviderTransportError):
    """Raised when the provider's health probe still fails after a session renewal."""


class ProviderParseError(ProviderError):
    """Raised when a provider cannot parse or map the remote response.

    Covers schema mismatches, missing required fields, and unexpected
    response shapes.
    """


class BrowserProviderError(ProviderError):
    """Raised for failures specific to the Playwright-based web provider.

    Examples:
        - Browser launch failure.
        - Page navigation timeout.
        - Selector not found after waiting.
    """


# ---------------------------------------------------------------------------
# Booking
# ---------------------------------------------------------------------------


class BookingRejectedError(AutoteeError):
    """Raised when a booking transaction was attempted but declined.

    The slot was most likely taken by a competing requester.  The next
    attempt re-runs availability rather than retrying the same slot.

    Args:
        message: Backend-provided or synthesised reason.
        slot_id: Identifier of the slot that was rejected, if known.
    """

    def __init__(self, message: str, slot_id: str | None = None) -> None:
        self.slot_id = slot_id
        super().__init__(message)


# ---------------------------------------------------------------------------
# Notification layer
# ---------------------------------------------------------------------------


class NotificationError(AutoteeError):
    """Base class for notification delivery errors."""


class EmailError(NotificationError):
    """Raised when the SMTP server refuses the connection or the message."""


class PushoverError(NotificationError):
    """Raised when the Pushover API returns an error or is unreachable.

    Args:
        message: Human-readable error description.
        status_code: HTTP status code from the Pushover API, if available.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        detail = f" (HTTP {status_code})" if status_code is not None else ""
        super().__init__(f"Pushover error{detail}: {message}")


class TelegramError(NotificationError):
    """Raised when the Telegram Bot API returns an error or is unreachable.

    Args:
        message: Human-readable error description.
        status_code: HTTP status code from the Telegram API, if available.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        detail = f" (HTTP {status_code})" if status_code is not None else ""
        super().__init__(f"Telegram error{detail}: {message}")


class TelegramRateLimitError(TelegramError):
    """Raised when the Telegram Bot API returns HTTP 429 (Too Many Requests).

    Args:
        retry_after: Seconds to wait before retrying, as reported by Telegram.
    """

    def __init__(self, retry_after: float) -> None:
        self.retry_after = retry_after
        super().__init__(f"Rate limited, retry after {retry_after}s", status_code=429)


# ---------------------------------------------------------------------------
# Scheduler layer
# ---------------------------------------------------------------------------


class SchedulerError(AutoteeError):
    """Raised for misuse of the scheduler's control surface.

    Examples:
        - ``trigger_immediate_check()`` while the scheduler is stopped.
        - ``start()`` on a scheduler that is already running.
    """
