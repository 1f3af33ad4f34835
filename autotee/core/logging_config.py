"""Autotee logging configuration.

Call ``configure_logging()`` once at process startup (``__main__`` does).
Every other module defines its own logger at module scope:

    import logging
    logger = logging.getLogger(__name__)

Two output formats, selected by ``LOG_FORMAT`` (or the ``fmt`` argument):

``text``
    ``2024-06-08 07:00:01 INFO     [c-1f2e3d4c] autotee.orchestrator.tick: ...``
``json``
    One object per line.  ``event`` (see :mod:`autotee.core.events`) and
    ``correlation_id`` are top-level keys, so a single attempt can be
    followed across the scheduler, the provider and the notifiers with one
    query.  Anything else passed via ``extra=`` lands under ``"extra"``.

Supported environment variables (read at call time):
    LOG_LEVEL   DEBUG | INFO | WARNING | ERROR | CRITICAL   (default: INFO)
    LOG_FORMAT  text | json                                 (default: text)
"""

from __future__ import annotations

import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any, Final

__all__ = [
    "configure_logging",
    "JsonFormatter",
    "CORRELATION_ID_CTX",
    "CorrelationContextFilter",
]

#: Correlation id of the job attempt running in the current task.  Bound and
#: reset around every tick by :func:`~autotee.core.attempt_context.bind_correlation`.
#: ``"-"`` outside of any attempt (startup, shutdown, status queries).
CORRELATION_ID_CTX: ContextVar[str] = ContextVar("correlation_id", default="-")

_LEVELS: Final = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
_FORMATS: Final = ("text", "json")

_TEXT_FORMAT: Final = "%(asctime)s %(levelname)-8s [%(correlation_id)s] %(name)s: %(message)s"
_DATE_FORMAT: Final = "%Y-%m-%d %H:%M:%S"

# Chatty below WARNING; left alone at DEBUG.
_THIRD_PARTY_LOGGERS: Final = ("httpx", "httpcore", "asyncio", "aiosqlite", "playwright")


class CorrelationContextFilter(logging.Filter):
    """Stamp ``record.correlation_id`` from :data:`CORRELATION_ID_CTX`.

    Installed on the handler, so every record gets the attribute whichever
    logger emitted it.  An explicit ``extra={"correlation_id": ...}`` wins.
    """

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        if not hasattr(record, "correlation_id"):
            record.correlation_id = CORRELATION_ID_CTX.get()
        return True


def _resolve(value: str | None, env_var: str, default: str, allowed: tuple[str, ...]) -> str:
    resolved = (value or os.environ.get(env_var, default)).strip()
    resolved = resolved.upper() if env_var == "LOG_LEVEL" else resolved.lower()
    if resolved not in allowed:
        raise ValueError(f"Unknown {env_var} {resolved!r}. Must be one of: {', '.join(allowed)}")
    return resolved


def configure_logging(
    level: str | None = None,
    fmt: str | None = None,
    *,
    force: bool = False,
) -> None:
    """Install one stderr handler on the root logger.

    Args:
        level: Level name; falls back to ``$LOG_LEVEL``, then ``INFO``.
        fmt: ``"text"`` or ``"json"``; falls back to ``$LOG_FORMAT``, then ``text``.
        force: Replace handlers installed by an earlier call (or by pytest).

    Raises:
        ValueError: If *level* or *fmt* is not recognised.
    """
    resolved_level = _resolve(level, "LOG_LEVEL", "INFO", _LEVELS)
    resolved_fmt = _resolve(fmt, "LOG_FORMAT", "text", _FORMATS)

    root = logging.getLogger()
    if root.handlers and not force:
        # Already configured (e.g. by pytest's log_cli); only adjust the level.
        root.setLevel(resolved_level)
        return
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.addFilter(CorrelationContextFilter())
    if resolved_fmt == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(fmt=_TEXT_FORMAT, datefmt=_DATE_FORMAT))

    root.setLevel(resolved_level)
    root.addHandler(handler)

    third_party_level = logging.DEBUG if resolved_level == "DEBUG" else logging.WARNING
    for name in _THIRD_PARTY_LOGGERS:
        logging.getLogger(name).setLevel(third_party_level)


class JsonFormatter(logging.Formatter):
    """Emit one JSON object per log record.

    Example line (wrapped)::

        {"ts": "2024-06-08T07:00:01.042Z", "level": "INFO",
         "logger": "autotee.orchestrator.scheduler", "event": "job_retry_scheduled",
         "correlation_id": "c-1f2e3d4c", "message": "Retrying job job-9a1c in 5.3 s (attempt 2/5)",
         "extra": {}}

    ``event`` is ``null`` for records logged without one.  ``exc_info`` and
    ``stack_info`` keys appear only when the record carries them.
    """

    # Attributes every LogRecord has; whatever else is on a record came from ``extra=``.
    _STANDARD_ATTRS: Final = frozenset(
        vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
    ) | {"message", "asctime", "taskName"}

    _PROMOTED: Final = ("event", "correlation_id")

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003
        created = datetime.fromtimestamp(record.created, tz=UTC)
        payload: dict[str, Any] = {
            "ts": created.strftime("%Y-%m-%dT%H:%M:%S.") + f"{int(record.msecs):03d}Z",
            "level": record.levelname,
            "logger": record.name,
            "event": getattr(record, "event", None),
            "correlation_id": getattr(record, "correlation_id", CORRELATION_ID_CTX.get()),
            "message": record.getMessage(),
            "extra": {
                key: value
                for key, value in vars(record).items()
                if key not in self._STANDARD_ATTRS and key not in self._PROMOTED
            },
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        elif record.exc_text:
            payload["exc_info"] = record.exc_text
        if record.stack_info:
            payload["stack_info"] = self.formatStack(record.stack_info)
        return json.dumps(payload, default=str)
