"""Randomised, human-scale pauses between browser actions."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable

__all__ = ["HumanPacer"]

logger = logging.getLogger(__name__)


class HumanPacer:
    """Sleeps a uniformly random duration between two bounds.

    Args:
        min_s: Default lower bound in seconds.
        max_s: Default upper bound in seconds.
        rng: Random source; a private :class:`random.Random` by default.
        sleep: Awaitable sleep function, replaced in tests.

    Raises:
        ValueError: If the bounds are negative or inverted.
    """

    def __init__(
        self,
        min_s: float = 1.0,
        max_s: float = 3.0,
        *,
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        if min_s < 0 or max_s < min_s:
            raise ValueError(f"invalid pause bounds: min_s={min_s!r} max_s={max_s!r}")
        self.min_s = min_s
        self.max_s = max_s
        self._rng = rng or random.Random()
        self._sleep = sleep

    def next_delay(self, min_s: float | None = None, max_s: float | None = None) -> float:
        low = self.min_s if min_s is None else min_s
        high = self.max_s if max_s is None else max_s
        return self._rng.uniform(low, max(low, high))

    async def pause(self, min_s: float | None = None, max_s: float | None = None) -> float:
        """Sleep for a random delay and return how long was slept."""
        delay = self.next_delay(min_s, max_s)
        await self._sleep(delay)
        return delay
