"""One check-and-book cycle.

:func:`run_tick` performs a single tick against a provider:

1. Health check.  An unhealthy provider gets one session renewal
   (:meth:`~autotee.providers.base.BookingProvider.authenticate`) and a
   second probe; still unhealthy raises
   :class:`~autotee.core.exceptions.ProviderUnavailableError`.
2. Availability search for the job's query.
3. No slots: return :meth:`TickResult.no_match`.
4. Pick the earliest slot by ``(date, time)``.
5. Book it.  A declined booking raises
   :class:`~autotee.core.exceptions.BookingRejectedError`, so the next
   attempt searches again instead of retrying the same slot.

The function does no retry or scheduling of its own; exceptions propagate
to the scheduler, which classifies them.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from autotee.core import events
from autotee.core.attempt_context import AttemptContext
from autotee.core.exceptions import BookingRejectedError, ProviderUnavailableError
from autotee.core.models import BookingOutcome, Slot
from autotee.core.settings import EngineConfig
from autotee.providers.base import BookingProvider

__all__ = ["TickResult", "run_tick", "select_earliest"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TickResult:
    """What a tick that did not raise produced.

    Attributes:
        outcome: The successful booking, or ``None`` when nothing matched.
        candidates: How many eligible slots the search returned.
    """

    outcome: BookingOutcome | None = None
    candidates: int = 0

    @property
    def booked(self) -> bool:
        return self.outcome is not None and self.outcome.success

    @classmethod
    def no_match(cls) -> TickResult:
        return cls()

    @classmethod
    def success(cls, outcome: BookingOutcome, candidates: int) -> TickResult:
        return cls(outcome=outcome, candidates=candidates)


def select_earliest(slots: Iterable[Slot]) -> Slot | None:
    """Return the slot with the smallest ``(date, time)``; ``None`` for no slots.

    Price and input order never influence the choice.
    """
    return min(slots, key=lambda s: s.sort_key, default=None)


async def ensure_healthy(provider: BookingProvider) -> None:
    """Probe *provider*, renewing its session once if needed.

    Raises:
        ProviderUnavailableError: The probe still fails after renewal.
        ProviderAuthError: Renewal was refused.
    """
    if await provider.is_healthy():
        return
    logger.warning(
        "Provider %s unhealthy, renewing session", provider.name, extra={"event": events.TICK_UNHEALTHY}
    )
    await provider.authenticate()
    if not await provider.is_healthy():
        raise ProviderUnavailableError(provider.name, "health check failed after session renewal")


async def run_tick(
    provider: BookingProvider,
    config: EngineConfig,
    ctx: AttemptContext,
) -> TickResult:
    """Run one tick.  See the module docstring for the steps.

    Raises:
        BookingRejectedError: The chosen slot could not be booked.
        ProviderError: Any provider failure, unchanged.
    """
    logger.info(
        "Tick %d/%d for %s job %s",
        ctx.attempt,
        ctx.max_attempts,
        ctx.kind,
        ctx.job_id,
        extra={"event": events.TICK_START},
    )
    await ensure_healthy(provider)

    slots = await provider.find_availability(config.query)
    candidate = select_earliest(slots)
    if candidate is None:
        logger.info("No eligible tee times found", extra={"event": events.TICK_NO_MATCH})
        return TickResult.no_match()

    logger.info(
        "Selected %s at %s ($%.2f) from %d candidate(s)",
        candidate.label,
        candidate.course_name or "-",
        candidate.price,
        len(slots),
        extra={"event": events.SLOT_SELECTED},
    )
    outcome = await provider.book(candidate, config.booking_request(candidate))
    if not outcome.success:
        logger.warning(
            "Booking of %s rejected: %s",
            candidate.label,
            outcome.error or outcome.message,
            extra={"event": events.BOOKING_REJECTED},
        )
        raise BookingRejectedError(
            outcome.error or outcome.message or "booking declined", slot_id=candidate.id
        )

    if outcome.slot is None:
        outcome = outcome.model_copy(update={"slot": candidate})
    logger.info(
        "Booked %s (confirmation %s)",
        candidate.label,
        outcome.confirmation_code or outcome.booking_id or "n/a",
        extra={"event": events.BOOKING_SUCCEEDED},
    )
    return TickResult.success(outcome, len(slots))
