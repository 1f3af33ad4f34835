"""Scheduling, tick execution, error classification, and retry policy.

Public API
----------
* :class:`~autotee.orchestrator.scheduler.BookingScheduler`: the durable
  single-worker job loop.
* :func:`~autotee.orchestrator.runner.run_engine` /
  :func:`~autotee.orchestrator.runner.run_once`: process entry points.
* :func:`~autotee.orchestrator.tick.run_tick`: one check-and-book cycle.
* :func:`~autotee.orchestrator.retry.jittered_interval` /
  :func:`~autotee.orchestrator.retry.backoff_delay`: delay policy.
* :func:`~autotee.orchestrator.classify.classify_error`: exception to
  :class:`~autotee.orchestrator.classify.ErrorKind`.
"""

from autotee.orchestrator.classify import ErrorKind, classify_error
from autotee.orchestrator.metrics import EngineStats, write_stats_file
from autotee.orchestrator.retry import backoff_delay, jittered_interval
from autotee.orchestrator.runner import Engine, build_engine, run_engine, run_once
from autotee.orchestrator.scheduler import BookingScheduler, describe_status
from autotee.orchestrator.tick import TickResult, run_tick, select_earliest

__all__ = [
    "BookingScheduler",
    "describe_status",
    "Engine",
    "build_engine",
    "run_engine",
    "run_once",
    "TickResult",
    "run_tick",
    "select_earliest",
    "ErrorKind",
    "classify_error",
    "backoff_delay",
    "jittered_interval",
    "EngineStats",
    "write_stats_file",
]
