"""SQLite database initialisation for Autotee.

This module is responsible for:

* Opening (or creating) the SQLite file.
* Configuring PRAGMA settings (WAL journal mode, foreign keys).
* Bootstrapping the schema via ``CREATE TABLE IF NOT EXISTS``, which is safe
  to run on every startup.

The database holds two tables: ``jobs``, the durable job queue owned by
:class:`~autotee.storage.job_store.JobStore`, and ``attempt_history``, the
booking-outcome log written by
:class:`~autotee.storage.history.AttemptHistory`.

Typical usage::

    from autotee.storage.database import open_db

    async def main() -> None:
        conn = await open_db(settings.database_path_resolved)
        store = JobStore(conn)
        ...
        await conn.close()
"""

from __future__ import annotations

import logging
from pathlib import Path

import aiosqlite

__all__ = [
    "DEFAULT_DB_PATH",
    "open_db",
    "create_schema",
]

logger = logging.getLogger(__name__)

#: Fallback database path when no explicit path is passed to :func:`open_db`.
DEFAULT_DB_PATH: Path = Path("data/autotee.db")

# ---------------------------------------------------------------------------
# DDL
# ---------------------------------------------------------------------------

#: ``jobs`` is the durable job queue.
#:
#: Column notes
#: ------------
#: kind           ``recurring`` (periodic poll) or ``immediate`` (manual trigger).
#: state          ``waiting`` | ``active`` | ``completed`` | ``failed`` | ``discarded``.
#: priority       Higher is claimed first among due jobs (immediate = 10).
#: run_at         Epoch seconds at which the job becomes due.
#: attempts_made  Attempts already finished (successfully or not).
#: result         Short terminal summary, e.g. ``"booked:<id>"`` or ``"no_match"``.
#: created_at / updated_at / finished_at
#:                Epoch seconds, set by the application.
_DDL_JOBS = """\
CREATE TABLE IF NOT EXISTS jobs (
    id             TEXT     NOT NULL PRIMARY KEY,
    kind           TEXT     NOT NULL,
    state          TEXT     NOT NULL,
    priority       INTEGER  NOT NULL DEFAULT 0,
    run_at         REAL     NOT NULL,
    attempts_made  INTEGER  NOT NULL DEFAULT 0,
    max_attempts   INTEGER  NOT NULL,
    correlation_id TEXT     NOT NULL,
    last_error     TEXT,
    result         TEXT,
    created_at     REAL     NOT NULL,
    updated_at     REAL     NOT NULL,
    finished_at    REAL
)"""

_DDL_JOBS_INDEX = """\
CREATE INDEX IF NOT EXISTS idx_jobs_state_run_at ON jobs (state, run_at)"""

#: ``attempt_history`` holds one row per finished attempt.
#:
#: outcome_json   Serialised :class:`~autotee.core.models.BookingOutcome`.
_DDL_ATTEMPT_HISTORY = """\
CREATE TABLE IF NOT EXISTS attempt_history (
    id             INTEGER  PRIMARY KEY AUTOINCREMENT,
    job_id         TEXT     NOT NULL,
    correlation_id TEXT     NOT NULL,
    attempt        INTEGER  NOT NULL,
    success        INTEGER  NOT NULL,
    booking_id     TEXT,
    error          TEXT,
    outcome_json   TEXT     NOT NULL,
    recorded_at    TEXT     NOT NULL
)"""

# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def open_db(path: Path | str | None = None) -> aiosqlite.Connection:
    """Open (or create) the SQLite database and bootstrap the schema.

    Args:
        path: Filesystem path for the SQLite file, or ``":memory:"``.
            Defaults to :data:`DEFAULT_DB_PATH`.

    Returns:
        An open, configured :class:`aiosqlite.Connection`.  The caller is
        responsible for closing it.

    Raises:
        aiosqlite.OperationalError: If the database file cannot be opened or
            created.
    """
    target = str(path) if path is not None else str(DEFAULT_DB_PATH)
    if target != ":memory:":
        Path(target).parent.mkdir(parents=True, exist_ok=True)

    logger.debug("Opening SQLite database at %s", target)
    conn: aiosqlite.Connection = await aiosqlite.connect(target)
    conn.row_factory = aiosqlite.Row

    await _configure_pragmas(conn)
    await create_schema(conn)

    logger.info("SQLite database ready at %s", target)
    return conn


async def create_schema(conn: aiosqlite.Connection) -> None:
    """Create all required tables if they do not already exist."""
    await conn.execute(_DDL_JOBS)
    await conn.execute(_DDL_JOBS_INDEX)
    await conn.execute(_DDL_ATTEMPT_HISTORY)
    await conn.commit()
    logger.debug("Schema bootstrap complete (jobs, attempt_history)")


# ---------------------------------------------------------------------------
# Internals
# ---------------------------------------------------------------------------


async def _configure_pragmas(conn: aiosqlite.Connection) -> None:
    result = await conn.execute("PRAGMA journal_mode=WAL")
    row = await result.fetchone()
    mode = row[0] if row else "unknown"
    if mode != "wal":
        logger.debug("SQLite journal mode is %r (expected for in-memory databases)", mode)
    await conn.execute("PRAGMA foreign_keys=ON")
