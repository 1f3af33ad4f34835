"""Structured log event name constants for the acquisition engine.

Every key transition in the scheduler emits a log record with an ``event``
field (passed via ``extra={"event": events.X}``).  In ``LOG_FORMAT=json``
mode the value is the top-level ``event`` key next to ``correlation_id``,
so one attempt's lifecycle can be queried as a single trace.

Usage example::

    import logging
    from autotee.core import events

    logger = logging.getLogger(__name__)

    logger.info("Tick started", extra={"event": events.TICK_START})
"""

from __future__ import annotations

__all__ = [
    # Engine lifecycle
    "ENGINE_START",
    "ENGINE_STOP",
    "ENGINE_PAUSE",
    "ENGINE_RESUME",
    "ENGINE_HALT",
    "ENGINE_RECOVERED_JOB",
    # Job lifecycle
    "JOB_ENQUEUED",
    "JOB_TRIGGERED",
    "JOB_COMPLETED",
    "JOB_RETRY_SCHEDULED",
    "JOB_FAILED",
    "JOB_DISCARDED",
    # Tick stages
    "TICK_START",
    "TICK_UNHEALTHY",
    "TICK_NO_MATCH",
    "SLOT_SELECTED",
    "BOOKING_SUCCEEDED",
    "BOOKING_REJECTED",
    # Provider
    "PROVIDER_AUTH_OK",
    "PROVIDER_DAY_SKIPPED",
    "PROVIDER_SESSION_LOST",
    # Notification
    "NOTIFY_SENT",
    "NOTIFY_ERROR",
]

# ---------------------------------------------------------------------------
# Engine lifecycle
# ---------------------------------------------------------------------------

#: Scheduler started and its worker is consuming the queue.
ENGINE_START: str = "ENGINE_START"

#: Scheduler stopped; provider session and store released.
ENGINE_STOP: str = "ENGINE_STOP"

#: Scheduler paused; the in-flight tick (if any) is allowed to finish.
ENGINE_PAUSE: str = "ENGINE_PAUSE"

#: Scheduler resumed after a pause.
ENGINE_RESUME: str = "ENGINE_RESUME"

#: Scheduler halted the recurring chain after a booking or a terminal error.
ENGINE_HALT: str = "ENGINE_HALT"

#: A job left ``active`` by a previous process was recovered as a failed tick.
ENGINE_RECOVERED_JOB: str = "ENGINE_RECOVERED_JOB"

# ---------------------------------------------------------------------------
# Job lifecycle
# ---------------------------------------------------------------------------

#: A recurring job was written to the queue.
JOB_ENQUEUED: str = "JOB_ENQUEUED"

#: An immediate, high-priority job was written to the queue.
JOB_TRIGGERED: str = "JOB_TRIGGERED"

#: A job reached a successful terminal state (booked or no match).
JOB_COMPLETED: str = "JOB_COMPLETED"

#: A job failed transiently and was put back with a backoff delay.
JOB_RETRY_SCHEDULED: str = "JOB_RETRY_SCHEDULED"

#: A job failed terminally or exhausted its attempts.
JOB_FAILED: str = "JOB_FAILED"

#: Pending jobs were discarded after a successful booking.
JOB_DISCARDED: str = "JOB_DISCARDED"

# ---------------------------------------------------------------------------
# Tick stages
# ---------------------------------------------------------------------------

#: A claimed job began its check-and-book cycle.
TICK_START: str = "TICK_START"

#: Health probe failed; a session renewal is attempted.
TICK_UNHEALTHY: str = "TICK_UNHEALTHY"

#: Availability returned no eligible slot.
TICK_NO_MATCH: str = "TICK_NO_MATCH"

#: The earliest eligible slot was chosen as the booking candidate.
SLOT_SELECTED: str = "SLOT_SELECTED"

#: The provider confirmed the booking.
BOOKING_SUCCEEDED: str = "BOOKING_SUCCEEDED"

#: The provider declined the booking transaction.
BOOKING_REJECTED: str = "BOOKING_REJECTED"

# ---------------------------------------------------------------------------
# Provider
# ---------------------------------------------------------------------------

#: Provider established or renewed its authenticated session.
PROVIDER_AUTH_OK: str = "PROVIDER_AUTH_OK"

#: Browser provider could not extract one day's slots; the day was skipped.
PROVIDER_DAY_SKIPPED: str = "PROVIDER_DAY_SKIPPED"

#: Browser provider found itself back on the login page; the session must be renewed.
PROVIDER_SESSION_LOST: str = "PROVIDER_SESSION_LOST"

# ---------------------------------------------------------------------------
# Notification
# ---------------------------------------------------------------------------

#: A channel delivered its notification.
NOTIFY_SENT: str = "NOTIFY_SENT"

#: A channel failed to deliver; the fan-out carried on with the others.
NOTIFY_ERROR: str = "NOTIFY_ERROR"
