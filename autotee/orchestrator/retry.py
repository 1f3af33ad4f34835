"""Delay policy for rescheduling and retries.

Pure functions, independent of the queue: given an attempt number and the
configured delays they return how long to wait.  Every delay carries ±20 %
uniform jitter and is floored at :data:`MIN_DELAY_S`, so several engines
pointed at the same course never poll in lockstep.
"""

from __future__ import annotations

import random
from typing import Final

__all__ = [
    "JITTER_FRACTION",
    "MIN_DELAY_S",
    "jittered_interval",
    "backoff_delay",
]

#: Maximum relative deviation applied to any delay.
JITTER_FRACTION: Final[float] = 0.2

#: No delay is ever shorter than this.
MIN_DELAY_S: Final[float] = 1.0


def _jitter(value: float, rng: random.Random | None, fraction: float) -> float:
    uniform = rng.uniform if rng is not None else random.uniform
    return value * (1.0 + uniform(-fraction, fraction))


def jittered_interval(
    interval_s: float,
    rng: random.Random | None = None,
    *,
    jitter: float = JITTER_FRACTION,
    min_delay_s: float = MIN_DELAY_S,
) -> float:
    """Delay before the next recurring tick: ``interval_s × (1 ± jitter)``.

    Args:
        interval_s: Configured polling interval in seconds.
        rng: Random source; the module-level generator when ``None``.
        jitter: Relative jitter bound.
        min_delay_s: Floor applied after jitter.

    Returns:
        A delay in ``[max(min_delay_s, interval_s × (1 - jitter)),
        max(min_delay_s, interval_s × (1 + jitter))]``.
    """
    return max(min_delay_s, _jitter(interval_s, rng, jitter))


def backoff_delay(
    attempt: int,
    base_delay_s: float,
    *,
    multiplier: float = 2.0,
    max_delay_s: float = 300.0,
    rng: random.Random | None = None,
    jitter: float = JITTER_FRACTION,
    min_delay_s: float = MIN_DELAY_S,
) -> float:
    """Delay before retrying after failed attempt number *attempt* (1-based).

    ``base_delay_s × multiplier^(attempt - 1)`` with jitter, capped at
    *max_delay_s* and floored at *min_delay_s*.

    Examples:
        >>> backoff_delay(3, 5.0, jitter=0.0)
        20.0

    Raises:
        ValueError: If *attempt* is below 1.
    """
    if attempt < 1:
        raise ValueError(f"attempt must be ≥ 1, got {attempt!r}")
    raw = base_delay_s * multiplier ** (attempt - 1)
    return max(min_delay_s, min(max_delay_s, _jitter(raw, rng, jitter)))
