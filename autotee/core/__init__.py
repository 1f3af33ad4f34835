"""Core domain models, settings, logging configuration, and shared utilities."""

from autotee.core.attempt_context import AttemptContext, bind_correlation
from autotee.core.exceptions import (
    AutoteeError,
    BookingRejectedError,
    BrowserProviderError,
    ConfigError,
    EmailError,
    NotificationError,
    ProviderAuthError,
    ProviderError,
    ProviderNotFoundError,
    ProviderParseError,
    ProviderRateLimitError,
    ProviderRequestError,
    ProviderTransportError,
    ProviderUnavailableError,
    PushoverError,
    SchedulerError,
    StorageError,
    TelegramError,
    TelegramRateLimitError,
)
from autotee.core.logging_config import JsonFormatter, configure_logging
from autotee.core.models import (
    AvailabilityQuery,
    BookingOutcome,
    BookingRequest,
    DayOfWeek,
    JobPhase,
    JobStatus,
    Locomotion,
    Preferences,
    QueueMetrics,
    Slot,
)
from autotee.core.settings import EngineConfig, Settings, load_settings

__all__ = [
    # Logging
    "configure_logging",
    "JsonFormatter",
    # Domain models
    "AvailabilityQuery",
    "BookingOutcome",
    "BookingRequest",
    "DayOfWeek",
    "JobPhase",
    "JobStatus",
    "Locomotion",
    "Preferences",
    "QueueMetrics",
    "Slot",
    # Attempt context
    "AttemptContext",
    "bind_correlation",
    # Settings
    "EngineConfig",
    "Settings",
    "load_settings",
    # Exceptions
    "AutoteeError",
    "ConfigError",
    "StorageError",
    "ProviderError",
    "ProviderAuthError",
    "ProviderNotFoundError",
    "ProviderRequestError",
    "ProviderTransportError",
    "ProviderRateLimitError",
    "ProviderUnavailableError",
    "ProviderParseError",
    "BrowserProviderError",
    "BookingRejectedError",
    "NotificationError",
    "EmailError",
    "PushoverError",
    "TelegramError",
    "TelegramRateLimitError",
    "SchedulerError",
]
