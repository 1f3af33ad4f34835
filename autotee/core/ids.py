"""Identifier helpers for jobs and attempt correlation.

Two kinds of identifier exist:

+----------------+----------------------+-----------------------------------+
| Identifier     | Example              | Lifetime                          |
+================+======================+===================================+
| job id         | ``job-5d1c9a0e7b3f`` | One queue entry (all its retries) |
+----------------+----------------------+-----------------------------------+
| correlation id | ``c-1f2e3d4c``       | Assigned at job creation; stamped |
|                |                      | on every log line of that job and |
|                |                      | on its history record             |
+----------------+----------------------+-----------------------------------+

A retried job keeps its correlation id, so the trace of one logical attempt
spans its backoff retries.
"""

from __future__ import annotations

import uuid

__all__ = ["new_job_id", "new_correlation_id"]

#: Prefix for queue entry identifiers.
JOB_ID_PREFIX: str = "job-"

#: Prefix for correlation identifiers.
CORRELATION_ID_PREFIX: str = "c-"


def new_job_id() -> str:
    """Return a fresh, unique queue entry id such as ``"job-5d1c9a0e7b3f"``."""
    return f"{JOB_ID_PREFIX}{uuid.uuid4().hex[:12]}"


def new_correlation_id() -> str:
    """Return a fresh short correlation id such as ``"c-1f2e3d4c"``."""
    return f"{CORRELATION_ID_PREFIX}{uuid.uuid4().hex[:8]}"
