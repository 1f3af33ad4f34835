"""Lifetime engine statistics.

:class:`EngineStats` accumulates counters across every tick the scheduler
runs and offers two outputs:

1. **Log summary**: :meth:`EngineStats.format_summary` returns one line
   suitable for a single ``logger.info()`` call.
2. **JSON stats file**: :func:`write_stats_file` serialises
   :meth:`EngineStats.as_dict` to ``STATS_PATH`` (when configured) so
   operators can ``cat`` a snapshot of a running engine.

Write errors are logged at WARNING and never propagated.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

__all__ = ["EngineStats", "write_stats_file"]

logger = logging.getLogger(__name__)


@dataclass
class EngineStats:
    """Counters accumulated over the engine's lifetime.

    Attributes:
        ticks: Ticks run, whatever their result.
        no_match: Ticks that found no eligible slot.
        bookings: Successful bookings.
        rejected: Bookings the backend declined.
        retries: Transient failures that were rescheduled.
        failures: Jobs that ended failed (exhausted or terminal).
        last_error: Text of the most recent failure.
    """

    ticks: int = 0
    no_match: int = 0
    bookings: int = 0
    rejected: int = 0
    retries: int = 0
    failures: int = 0
    last_error: str | None = None

    _start_monotonic: float = field(default_factory=time.monotonic, repr=False)
    _started_at: datetime = field(default_factory=lambda: datetime.now(UTC), repr=False)

    @property
    def uptime_s(self) -> float:
        return time.monotonic() - self._start_monotonic

    def format_summary(self) -> str:
        """Example::

            engine stats | uptime: 1h02m13s | ticks=41 no_match=38 booked=1 rejected=1 retries=2 failures=0
        """
        hours, rem = divmod(int(self.uptime_s), 3600)
        minutes, seconds = divmod(rem, 60)
        return (
            f"engine stats | uptime: {hours}h{minutes:02d}m{seconds:02d}s | "
            f"ticks={self.ticks} no_match={self.no_match} booked={self.bookings} "
            f"rejected={self.rejected} retries={self.retries} failures={self.failures}"
        )

    def as_dict(self) -> dict[str, object]:
        return {
            "started_at": self._started_at.isoformat(),
            "uptime_s": round(self.uptime_s, 1),
            "ticks": self.ticks,
            "no_match": self.no_match,
            "bookings": self.bookings,
            "rejected": self.rejected,
            "retries": self.retries,
            "failures": self.failures,
            "last_error": self.last_error,
        }


def write_stats_file(stats: EngineStats, path: str | Path) -> None:
    """Write a JSON snapshot of *stats* to *path*; failures are logged only."""
    try:
        with open(path, "w", encoding="utf-8") as fh:
            json.dump(stats.as_dict(), fh, indent=2)
    except OSError:
        logger.warning("Failed to write stats file '%s'.", path, exc_info=True)
