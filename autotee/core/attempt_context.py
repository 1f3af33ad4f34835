"""Per-attempt context threaded through one tick of a job.

An :class:`AttemptContext` is created by the scheduler each time it claims a
job and is passed explicitly into the tick, the notifier and the history
sink.  :func:`bind_correlation` additionally binds the correlation id to
:data:`~autotee.core.logging_config.CORRELATION_ID_CTX` for the lifetime of
the tick, so every log line emitted underneath (provider calls included)
carries it without any module-level mutable state.

Typical usage::

    ctx = AttemptContext(
        job_id=job.id,
        correlation_id=job.correlation_id,
        attempt=job.attempts_made + 1,
        max_attempts=job.max_attempts,
        kind="recurring",
    )
    with bind_correlation(ctx):
        result = await run_tick(provider, config, ctx)
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from autotee.core.logging_config import CORRELATION_ID_CTX

__all__ = ["AttemptContext", "bind_correlation"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AttemptContext:
    """Immutable identity of one attempt of one job.

    Attributes:
        job_id: Queue entry id.
        correlation_id: Trace id shared by every attempt of the job.
        attempt: 1-based number of this attempt.
        max_attempts: Attempt budget of the job.
        kind: ``"recurring"`` or ``"immediate"``.
    """

    job_id: str
    correlation_id: str
    attempt: int = 1
    max_attempts: int = 1
    kind: str = "recurring"

    @property
    def is_last_attempt(self) -> bool:
        """``True`` when a transient failure now exhausts the job."""
        return self.attempt >= self.max_attempts

    def __str__(self) -> str:
        return (
            f"AttemptContext(job={self.job_id}, cid={self.correlation_id}, "
            f"attempt={self.attempt}/{self.max_attempts})"
        )


@contextmanager
def bind_correlation(ctx: AttemptContext) -> Iterator[AttemptContext]:
    """Bind *ctx*'s correlation id for log records until the block exits.

    The previous value is restored on exit, including when the block raises.
    """
    token = CORRELATION_ID_CTX.set(ctx.correlation_id)
    try:
        yield ctx
    finally:
        CORRELATION_ID_CTX.reset(token)
