"""Attempt history sink.

Every finished attempt (booked, exhausted or terminally failed) is written to
the ``attempt_history`` table as one serialised
:class:`~autotee.core.models.BookingOutcome`, keyed by the job's correlation
id.  Reading and analysing that history is left to other tools;
:meth:`AttemptHistory.recent` exists for the ``status`` command and tests.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

import aiosqlite
from pydantic import BaseModel

from autotee.core.attempt_context import AttemptContext
from autotee.core.exceptions import StorageError
from autotee.core.models import BookingOutcome

__all__ = ["HistoryEntry", "AttemptHistory"]

logger = logging.getLogger(__name__)


class HistoryEntry(BaseModel):
    model_config = {"frozen": True}

    job_id: str
    correlation_id: str
    attempt: int
    outcome: BookingOutcome
    recorded_at: datetime


class AttemptHistory:
    """Append-only writer for ``attempt_history``.

    Args:
        conn: Open connection from :func:`~autotee.storage.database.open_db`.
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def record(self, ctx: AttemptContext, outcome: BookingOutcome) -> None:
        """Persist *outcome* for the attempt described by *ctx*.

        Raises:
            StorageError: If the row cannot be written.
        """
        try:
            await self._conn.execute(
                """
                INSERT INTO attempt_history
                    (job_id, correlation_id, attempt, success, booking_id, error, outcome_json, recorded_at)
                VALUES
                    (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    ctx.job_id,
                    ctx.correlation_id,
                    ctx.attempt,
                    1 if outcome.success else 0,
                    outcome.booking_id,
                    outcome.error,
                    outcome.model_dump_json(),
                    datetime.now(UTC).isoformat(),
                ),
            )
            await self._conn.commit()
        except aiosqlite.Error as exc:
            raise StorageError(f"Could not record attempt history: {exc}") from exc
        logger.debug("Recorded %s outcome for job %s", "success" if outcome.success else "failure", ctx.job_id)

    async def recent(self, limit: int = 10) -> list[HistoryEntry]:
        """Newest-first history entries."""
        cursor = await self._conn.execute(
            "SELECT job_id, correlation_id, attempt, outcome_json, recorded_at "
            "FROM attempt_history ORDER BY id DESC LIMIT ?",
            (limit,),
        )
        rows = await cursor.fetchall()
        return [
            HistoryEntry(
                job_id=row["job_id"],
                correlation_id=row["correlation_id"],
                attempt=row["attempt"],
                outcome=BookingOutcome.model_validate_json(row["outcome_json"]),
                recorded_at=datetime.fromisoformat(row["recorded_at"]),
            )
            for row in rows
        ]
