"""Durable job queue on top of the ``jobs`` SQLite table.

:class:`JobStore` is the single data-access object for queued booking checks.
Every state change is committed before the method returns, so the queue
survives a process restart: on the next start the scheduler asks
:meth:`JobStore.recover_interrupted` for jobs that were ``active`` when the
process died.

Job lifecycle::

    waiting ──claim_next──▶ active ──complete──▶ completed
       ▲                      │
       └───schedule_retry─────┤
                              └──fail──▶ failed

    waiting ──discard_pending──▶ discarded

A booking reference is written with :meth:`JobStore.record_result` before
the job is completed, so a job that booked is recognisable even if the
process dies before ``complete`` commits.  :meth:`JobStore.prune` bounds the
number of finished rows kept.

Times are epoch seconds supplied by the caller, so tests can drive the
queue with a fake clock.
"""

from __future__ import annotations

import logging
from enum import StrEnum

import aiosqlite
from pydantic import BaseModel

from autotee.core import events
from autotee.core.exceptions import StorageError
from autotee.core.ids import new_correlation_id, new_job_id
from autotee.core.models import QueueMetrics

__all__ = ["JobKind", "JobState", "Job", "JobStore", "IMMEDIATE_PRIORITY", "BOOKED_PREFIX"]

logger = logging.getLogger(__name__)

#: Priority of manually triggered jobs; recurring jobs use 0.
IMMEDIATE_PRIORITY: int = 10

#: Prefix of the result stored on a job whose tick booked a tee time.
BOOKED_PREFIX: str = "booked:"

#: Finished rows kept by :meth:`JobStore.prune`.
KEEP_COMPLETED: int = 50
KEEP_FAILED: int = 100


class JobKind(StrEnum):
    RECURRING = "recurring"
    IMMEDIATE = "immediate"


class JobState(StrEnum):
    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    DISCARDED = "discarded"


class Job(BaseModel):
    """One row of the ``jobs`` table."""

    model_config = {"frozen": True}

    id: str
    kind: JobKind
    state: JobState
    priority: int = 0
    run_at: float
    attempts_made: int = 0
    max_attempts: int
    correlation_id: str
    last_error: str | None = None
    result: str | None = None
    created_at: float
    updated_at: float
    finished_at: float | None = None

    @property
    def next_attempt(self) -> int:
        return self.attempts_made + 1

    @property
    def booked(self) -> bool:
        """``True`` if this job already holds a booking reference."""
        return self.result is not None and self.result.startswith(BOOKED_PREFIX)

    @classmethod
    def from_row(cls, row: aiosqlite.Row) -> Job:
        return cls(**dict(row))


_COLUMNS = (
    "id, kind, state, priority, run_at, attempts_made, max_attempts, correlation_id, "
    "last_error, result, created_at, updated_at, finished_at"
)


class JobStore:
    """Data-access object for the ``jobs`` table.

    Owns no connection lifecycle: the caller supplies an open connection from
    :func:`~autotee.storage.database.open_db` and closes it when done.

    Args:
        conn: Open, configured :class:`aiosqlite.Connection`.
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def enqueue(
        self,
        kind: JobKind,
        *,
        run_at: float,
        max_attempts: int,
        now: float,
        priority: int = 0,
        correlation_id: str | None = None,
    ) -> Job:
        """Insert a new waiting job and return it."""
        job = Job(
            id=new_job_id(),
            kind=kind,
            state=JobState.WAITING,
            priority=priority,
            run_at=run_at,
            max_attempts=max_attempts,
            correlation_id=correlation_id or new_correlation_id(),
            created_at=now,
            updated_at=now,
        )
        await self._execute(
            f"INSERT INTO jobs ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                job.id,
                str(job.kind),
                str(job.state),
                job.priority,
                job.run_at,
                job.attempts_made,
                job.max_attempts,
                job.correlation_id,
                None,
                None,
                job.created_at,
                job.updated_at,
                None,
            ),
        )
        logger.debug(
            "Enqueued %s job %s (run_at=%.0f, priority=%d)",
            job.kind,
            job.id,
            job.run_at,
            job.priority,
            extra={"event": events.JOB_ENQUEUED},
        )
        return job

    async def claim_next(self, now: float) -> Job | None:
        """Move the highest-priority due job to ``active`` and return it.

        Among due jobs the highest priority wins, then the earliest
        ``run_at``, then the oldest.  Returns ``None`` when nothing is due.
        """
        row = await self._fetchone(
            f"SELECT {_COLUMNS} FROM jobs WHERE state = ? AND run_at <= ? "
            "ORDER BY priority DESC, run_at ASC, created_at ASC LIMIT 1",
            (str(JobState.WAITING), now),
        )
        if row is None:
            return None
        job = Job.from_row(row)
        await self._execute(
            "UPDATE jobs SET state = ?, updated_at = ? WHERE id = ?",
            (str(JobState.ACTIVE), now, job.id),
        )
        return job.model_copy(update={"state": JobState.ACTIVE, "updated_at": now})

    async def complete(self, job_id: str, *, now: float, result: str | None = None) -> None:
        await self._finish(job_id, JobState.COMPLETED, now=now, result=result, error=None)

    async def fail(self, job_id: str, *, now: float, error: str) -> None:
        await self._finish(job_id, JobState.FAILED, now=now, result=None, error=error)

    async def schedule_retry(self, job_id: str, *, run_at: float, now: float, error: str) -> None:
        """Count the attempt and put the job back to ``waiting`` at *run_at*."""
        await self._execute(
            "UPDATE jobs SET state = ?, run_at = ?, attempts_made = attempts_made + 1, "
            "last_error = ?, updated_at = ? WHERE id = ?",
            (str(JobState.WAITING), run_at, error, now, job_id),
        )

    async def discard_pending(self, *, now: float) -> int:
        """Mark every waiting job ``discarded``.  Returns how many were discarded."""
        cursor = await self._execute(
            "UPDATE jobs SET state = ?, updated_at = ?, finished_at = ? WHERE state = ?",
            (str(JobState.DISCARDED), now, now, str(JobState.WAITING)),
        )
        count = cursor.rowcount if cursor.rowcount is not None else 0
        if count:
            logger.info("Discarded %d pending job(s)", count, extra={"event": events.JOB_DISCARDED})
        return count

    async def record_result(self, job_id: str, *, result: str, now: float) -> None:
        """Store *result* on a job without changing its state."""
        await self._execute(
            "UPDATE jobs SET result = ?, updated_at = ? WHERE id = ?",
            (result, now, job_id),
        )

    async def prune(
        self, *, keep_completed: int = KEEP_COMPLETED, keep_failed: int = KEEP_FAILED
    ) -> int:
        """Delete finished jobs beyond the newest *keep_completed* / *keep_failed*.

        Discarded jobs share the completed allowance.  Returns how many rows
        were deleted.
        """
        deleted = 0
        for states, keep in (
            ((JobState.COMPLETED, JobState.DISCARDED), keep_completed),
            ((JobState.FAILED,), keep_failed),
        ):
            marks = ", ".join("?" for _ in states)
            params = tuple(str(state) for state in states)
            cursor = await self._execute(
                f"DELETE FROM jobs WHERE state IN ({marks}) AND id NOT IN ("
                f"SELECT id FROM jobs WHERE state IN ({marks}) "
                "ORDER BY finished_at DESC, updated_at DESC LIMIT ?)",
                (*params, *params, keep),
            )
            deleted += cursor.rowcount if cursor.rowcount is not None and cursor.rowcount > 0 else 0
        if deleted:
            logger.debug("Pruned %d finished job(s)", deleted)
        return deleted

    async def recover_interrupted(self) -> list[Job]:
        """Return the jobs left ``active`` by a previous process."""
        rows = await self._fetchall(
            f"SELECT {_COLUMNS} FROM jobs WHERE state = ? ORDER BY updated_at ASC",
            (str(JobState.ACTIVE),),
        )
        return [Job.from_row(row) for row in rows]

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, job_id: str) -> Job | None:
        row = await self._fetchone(f"SELECT {_COLUMNS} FROM jobs WHERE id = ?", (job_id,))
        return Job.from_row(row) if row is not None else None

    async def current(self) -> Job | None:
        """The job being processed right now, if any."""
        row = await self._fetchone(
            f"SELECT {_COLUMNS} FROM jobs WHERE state = ? ORDER BY updated_at DESC LIMIT 1",
            (str(JobState.ACTIVE),),
        )
        return Job.from_row(row) if row is not None else None

    async def next_pending(self) -> Job | None:
        """The waiting job that will be claimed next, ignoring whether it is due."""
        row = await self._fetchone(
            f"SELECT {_COLUMNS} FROM jobs WHERE state = ? "
            "ORDER BY priority DESC, run_at ASC, created_at ASC LIMIT 1",
            (str(JobState.WAITING),),
        )
        return Job.from_row(row) if row is not None else None

    async def last_finished(self) -> Job | None:
        row = await self._fetchone(
            f"SELECT {_COLUMNS} FROM jobs WHERE state IN (?, ?) "
            "ORDER BY finished_at DESC, updated_at DESC LIMIT 1",
            (str(JobState.COMPLETED), str(JobState.FAILED)),
        )
        return Job.from_row(row) if row is not None else None

    async def pending_count(self, kind: JobKind | None = None) -> int:
        """Number of waiting jobs, optionally of one *kind* only."""
        if kind is None:
            row = await self._fetchone(
                "SELECT COUNT(*) AS n FROM jobs WHERE state = ?", (str(JobState.WAITING),)
            )
        else:
            row = await self._fetchone(
                "SELECT COUNT(*) AS n FROM jobs WHERE state = ? AND kind = ?",
                (str(JobState.WAITING), str(kind)),
            )
        return int(row["n"]) if row is not None else 0

    async def next_due_at(self) -> float | None:
        """Earliest ``run_at`` among waiting jobs, or ``None`` if the queue is idle."""
        row = await self._fetchone(
            "SELECT MIN(run_at) AS due FROM jobs WHERE state = ?", (str(JobState.WAITING),)
        )
        if row is None or row["due"] is None:
            return None
        return float(row["due"])

    async def counts(self, now: float) -> QueueMetrics:
        """Job counts by state; waiting jobs split into due and delayed."""
        row = await self._fetchone(
            """
            SELECT
                SUM(CASE WHEN state = 'waiting' AND run_at <= :now THEN 1 ELSE 0 END) AS waiting,
                SUM(CASE WHEN state = 'waiting' AND run_at >  :now THEN 1 ELSE 0 END) AS delayed,
                SUM(CASE WHEN state = 'active'    THEN 1 ELSE 0 END) AS active,
                SUM(CASE WHEN state = 'completed' THEN 1 ELSE 0 END) AS completed,
                SUM(CASE WHEN state = 'failed'    THEN 1 ELSE 0 END) AS failed
            FROM jobs
            """,
            {"now": now},
        )
        if row is None:
            return QueueMetrics()
        return QueueMetrics(
            waiting=row["waiting"] or 0,
            active=row["active"] or 0,
            completed=row["completed"] or 0,
            failed=row["failed"] or 0,
            delayed=row["delayed"] or 0,
        )

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _finish(
        self,
        job_id: str,
        state: JobState,
        *,
        now: float,
        result: str | None,
        error: str | None,
    ) -> None:
        await self._execute(
            "UPDATE jobs SET state = ?, attempts_made = attempts_made + 1, result = ?, "
            "last_error = ?, updated_at = ?, finished_at = ? WHERE id = ?",
            (str(state), result, error, now, now, job_id),
        )

    async def _execute(self, sql: str, params: tuple | dict) -> aiosqlite.Cursor:
        try:
            cursor = await self._conn.execute(sql, params)
            await self._conn.commit()
        except aiosqlite.Error as exc:
            raise StorageError(f"Job queue write failed: {exc}") from exc
        return cursor

    async def _fetchone(self, sql: str, params: tuple | dict) -> aiosqlite.Row | None:
        try:
            cursor = await self._conn.execute(sql, params)
            return await cursor.fetchone()
        except aiosqlite.Error as exc:
            raise StorageError(f"Job queue read failed: {exc}") from exc

    async def _fetchall(self, sql: str, params: tuple | dict) -> list[aiosqlite.Row]:
        try:
            cursor = await self._conn.execute(sql, params)
            return list(await cursor.fetchall())
        except aiosqlite.Error as exc:
            raise StorageError(f"Job queue read failed: {exc}") from exc
