"""SQLite-backed durable job queue and attempt history."""

from autotee.storage.database import DEFAULT_DB_PATH, create_schema, open_db
from autotee.storage.history import AttemptHistory
from autotee.storage.job_store import Job, JobKind, JobState, JobStore

__all__ = [
    "DEFAULT_DB_PATH",
    "open_db",
    "create_schema",
    "AttemptHistory",
    "Job",
    "JobKind",
    "JobState",
    "JobStore",
]
