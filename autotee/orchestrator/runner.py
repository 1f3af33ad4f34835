"""Engine wiring and process-level entry points.

:func:`build_engine` assembles every runtime component from
:class:`~autotee.core.settings.Settings`:

1. Validates the booking configuration into an
   :class:`~autotee.core.settings.EngineConfig` (fails fast with
   :class:`~autotee.core.exceptions.ConfigError`).
2. Picks the provider by credential shape
   (:func:`~autotee.providers.factory.build_provider`).
3. Builds the notification fan-out
   (:func:`~autotee.notifiers.notifier.build_notifier`).
4. Opens the SQLite queue (:func:`~autotee.storage.database.open_db`).
5. Creates the :class:`~autotee.orchestrator.scheduler.BookingScheduler`.

:func:`run_engine` runs it until SIGTERM/SIGINT or until the engine halts;
:func:`run_once` performs a single immediate check and returns.

Typical usage::

    import asyncio
    from autotee.orchestrator.runner import run_engine

    asyncio.run(run_engine())
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from dataclasses import dataclass

import aiosqlite

from autotee.core.models import JobStatus
from autotee.core.settings import Settings, load_settings
from autotee.notifiers.notifier import Notifier, build_notifier
from autotee.orchestrator.scheduler import BookingScheduler
from autotee.providers.base import BookingProvider
from autotee.providers.factory import build_provider
from autotee.storage.database import open_db
from autotee.storage.history import AttemptHistory
from autotee.storage.job_store import JobStore

__all__ = ["Engine", "build_engine", "run_engine", "run_once"]

logger = logging.getLogger(__name__)


@dataclass
class Engine:
    """Everything one engine instance owns."""

    scheduler: BookingScheduler
    conn: aiosqlite.Connection

    async def close(self) -> None:
        """Stop the scheduler (closing provider and notifier), then the database."""
        try:
            await self.scheduler.stop()
        finally:
            await self.conn.close()
            logger.debug("Database connection closed.")


async def build_engine(
    settings: Settings,
    *,
    provider: BookingProvider | None = None,
    notifier: Notifier | None = None,
) -> Engine:
    """Assemble an :class:`Engine` from *settings*.

    Args:
        settings: Loaded settings.
        provider: Override the provider chosen from credentials.
        notifier: Override the notifier built from channel credentials.

    Raises:
        ConfigError: Booking configuration or provider credentials are invalid.
    """
    config = settings.to_engine_config()
    provider = provider or build_provider(settings)
    notifier = notifier or build_notifier(settings)

    conn = await open_db(settings.database_path_resolved)
    scheduler = BookingScheduler(
        provider,
        notifier,
        JobStore(conn),
        AttemptHistory(conn),
        config,
        stats_path=settings.stats_path or None,
    )
    logger.info(
        "Engine ready: provider=%s, window %s..%s %s-%s, party of %d",
        provider.name,
        config.query.start_date,
        config.query.end_date,
        config.query.earliest_time.strftime("%H:%M"),
        config.query.latest_time.strftime("%H:%M"),
        config.query.party_size,
    )
    return Engine(scheduler=scheduler, conn=conn)


async def run_engine(settings: Settings | None = None) -> JobStatus:
    """Run the engine continuously.

    Returns when the engine halts (booking made or terminal error) or when
    SIGTERM/SIGINT is received.  Either way the in-flight tick is allowed to
    finish and the provider session is closed before the database.

    Returns:
        The final job status.
    """
    settings = settings or load_settings()
    engine = await build_engine(settings)
    scheduler = engine.scheduler

    loop = asyncio.get_running_loop()
    shutdown = asyncio.Event()
    received: list[str] = []

    def _request_shutdown(signame: str) -> None:
        if not received:
            received.append(signame)
            logger.info("Received %s, shutting down after the current tick.", signame)
        shutdown.set()

    installed: list[signal.Signals] = []
    for sig in (signal.SIGTERM, signal.SIGINT):
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(sig, _request_shutdown, sig.name)
            installed.append(sig)

    try:
        await scheduler.start()
        shutdown_task = asyncio.create_task(shutdown.wait(), name="autotee-shutdown")
        worker_task = asyncio.create_task(scheduler.join(), name="autotee-join")
        done, pending = await asyncio.wait(
            {shutdown_task, worker_task}, return_when=asyncio.FIRST_COMPLETED
        )
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        for task in done:
            task.result()
        return await scheduler.get_status()
    finally:
        for sig in installed:
            with contextlib.suppress(Exception):
                loop.remove_signal_handler(sig)
        await engine.close()


async def run_once(settings: Settings | None = None) -> JobStatus:
    """Run a single immediate check (with its retries, if any are due) and return.

    No recurring job is scheduled.  Retries scheduled in the future are left
    in the queue for the next ``run``.
    """
    settings = settings or load_settings()
    engine = await build_engine(settings)
    scheduler = engine.scheduler
    try:
        await scheduler.start(spawn_worker=False, schedule_recurring=False)
        await scheduler.trigger_immediate_check()
        while await scheduler.process_next():
            pass
        return await scheduler.get_status()
    finally:
        await engine.close()
