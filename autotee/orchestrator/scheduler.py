"""Booking scheduler: the durable, single-worker job loop.

:class:`BookingScheduler` pulls due jobs from the
:class:`~autotee.storage.job_store.JobStore` one at a time and runs a
:func:`~autotee.orchestrator.tick.run_tick` for each, then decides what
happens next:

* **booked**: engine halts, job completed, success notification, outcome
  recorded, every other pending job discarded.  The booking reference is
  stored on the job first, and a restart completes such a job instead of
  running it again.  The notification goes out even if the queue write fails.
* **no match**: job completed; a recurring job enqueues its successor
  after a jittered polling interval.
* **transient failure** with attempts left: the job goes back to waiting
  after an exponential backoff.  Logged only.
* **transient failure, budget exhausted**: job failed, one failure
  notification, outcome recorded; the recurring chain continues.
* **terminal failure** (auth, not-found, config): job failed at once, one
  failure notification, engine halts.

Finished jobs beyond a fixed allowance are pruned after every tick.

Concurrency
~~~~~~~~~~~
One worker task and one :class:`asyncio.Lock` held for the whole of every
tick, so two ticks (and two booking transactions) never overlap and tick
*n+1* cannot start before tick *n* reached its terminal state.  ``pause()``
stops claims without interrupting the tick in flight; ``stop()`` waits for
it, then closes the provider and the notifier.

Manual checks enter the same queue with a higher priority, so they run
before the next recurring tick without disturbing its schedule.

Time comes from an injectable ``clock`` (epoch seconds) and randomness
from an injectable ``rng``, so tests can drive the scheduler with
:meth:`BookingScheduler.process_next` and no real waiting.
"""

from __future__ import annotations

import asyncio
import contextlib
import datetime as dt
import logging
import random
import time
from collections.abc import Callable
from pathlib import Path
from typing import Final

from autotee.core import events
from autotee.core.attempt_context import AttemptContext, bind_correlation
from autotee.core.exceptions import SchedulerError, StorageError
from autotee.core.models import BookingOutcome, JobPhase, JobStatus, QueueMetrics
from autotee.core.settings import EngineConfig
from autotee.notifiers.notifier import Notifier
from autotee.orchestrator.classify import ErrorKind, classify_error
from autotee.orchestrator.metrics import EngineStats, write_stats_file
from autotee.orchestrator.retry import backoff_delay, jittered_interval
from autotee.orchestrator.tick import run_tick
from autotee.providers.base import BookingProvider
from autotee.storage.history import AttemptHistory
from autotee.storage.job_store import (
    BOOKED_PREFIX,
    IMMEDIATE_PRIORITY,
    Job,
    JobKind,
    JobState,
    JobStore,
)

__all__ = ["BookingScheduler", "describe_status"]

logger = logging.getLogger(__name__)

Clock = Callable[[], float]

#: Longest the idle worker sleeps before re-checking the queue.
_MAX_IDLE_S: Final[float] = 60.0

_INTERRUPTED_ERROR: Final[str] = "interrupted by restart"


def _to_datetime(ts: float | None) -> dt.datetime | None:
    return dt.datetime.fromtimestamp(ts, dt.UTC) if ts is not None else None


async def describe_status(store: JobStore) -> JobStatus:
    """Build a :class:`JobStatus` from persisted queue state.

    The running job wins, then the next pending job, then the most recently
    finished one.
    """
    last = await store.last_finished()
    last_run = _to_datetime(last.finished_at) if last is not None else None

    active = await store.current()
    if active is not None:
        return JobStatus(
            job_id=active.id,
            phase=JobPhase.RUNNING,
            last_run=_to_datetime(active.updated_at),
            last_error=active.last_error,
            attempts=active.next_attempt,
            max_attempts=active.max_attempts,
        )

    pending = await store.next_pending()
    if pending is not None:
        return JobStatus(
            job_id=pending.id,
            phase=JobPhase.PENDING,
            last_run=last_run,
            next_run=_to_datetime(pending.run_at),
            last_error=pending.last_error or (last.last_error if last is not None else None),
            attempts=pending.attempts_made,
            max_attempts=pending.max_attempts,
        )

    if last is not None:
        return JobStatus(
            job_id=last.id,
            phase=JobPhase.COMPLETED if last.state == JobState.COMPLETED else JobPhase.FAILED,
            last_run=last_run,
            last_error=last.last_error,
            attempts=last.attempts_made,
            max_attempts=last.max_attempts,
        )
    return JobStatus()


class BookingScheduler:
    """Single-worker scheduler over a durable job queue.

    Args:
        provider: The booking backend.  Owned by the scheduler once started:
            :meth:`stop` closes it.
        notifier: Outcome notification fan-out.
        store: Durable job queue.
        history: Sink for finished attempts.
        config: Immutable engine configuration snapshot.
        clock: Epoch-seconds time source.
        rng: Random source for jitter.
        stats: Lifetime counters; a fresh :class:`EngineStats` when ``None``.
        stats_path: Where to write the JSON stats snapshot after each tick.
    """

    def __init__(
        self,
        provider: BookingProvider,
        notifier: Notifier,
        store: JobStore,
        history: AttemptHistory,
        config: EngineConfig,
        *,
        clock: Clock = time.time,
        rng: random.Random | None = None,
        stats: EngineStats | None = None,
        stats_path: str | Path | None = None,
    ) -> None:
        self._provider = provider
        self._notifier = notifier
        self._store = store
        self._history = history
        self._config = config
        self._clock = clock
        self._rng = rng or random.Random()
        self.stats = stats or EngineStats()
        self._stats_path = stats_path

        self._lock = asyncio.Lock()
        self._wakeup = asyncio.Event()
        self._unpaused = asyncio.Event()
        self._unpaused.set()
        self._worker_task: asyncio.Task[None] | None = None
        self._running = False
        self._paused = False
        self._halted = False

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._running

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def halted(self) -> bool:
        """``True`` once a booking succeeded or a terminal error occurred."""
        return self._halted

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, *, spawn_worker: bool = True, schedule_recurring: bool = True) -> None:
        """Recover interrupted jobs, seed the recurring chain, start the worker.

        Args:
            spawn_worker: Start the background worker task.  Tests and
                ``once`` mode pass ``False`` and call :meth:`process_next`.
            schedule_recurring: Enqueue a recurring job due now when none is
                pending.

        Raises:
            SchedulerError: If the scheduler is already running.
        """
        if self._running:
            raise SchedulerError("Scheduler is already running")
        self._running = True
        self._halted = False

        recovered = await self._store.recover_interrupted()
        for job in recovered:
            if job.booked:
                await self._settle_booked(job)
                continue
            logger.warning(
                "Recovering job %s left active by a previous run",
                job.id,
                extra={"event": events.ENGINE_RECOVERED_JOB},
            )
            ctx = self._context_for(job)
            with bind_correlation(ctx):
                await self._handle_failure(job, ctx, ErrorKind.TRANSIENT, _INTERRUPTED_ERROR)
        if recovered:
            await self._notifier.send_health_alert(
                f"Engine restarted with {len(recovered)} interrupted job(s)."
                + (" A booking was already made; the engine has halted." if self._halted else "")
            )

        if schedule_recurring and not self._halted:
            if await self._store.pending_count(JobKind.RECURRING) == 0:
                await self._enqueue_recurring(delay_s=0.0)

        if spawn_worker:
            self._worker_task = asyncio.create_task(self._worker(), name="autotee-worker")
        logger.info(
            "Scheduler started (poll interval %.0f s, max attempts %d)",
            self._config.poll_interval_s,
            self._config.max_attempts,
            extra={"event": events.ENGINE_START},
        )

    async def stop(self, timeout: float | None = None) -> None:
        """Let the in-flight tick finish, then close the provider and notifier.

        Args:
            timeout: Seconds to wait for the worker before cancelling it.
        """
        if not self._running:
            return
        self._running = False
        self._wakeup.set()
        self._unpaused.set()

        task, self._worker_task = self._worker_task, None
        if task is not None:
            try:
                await asyncio.wait_for(asyncio.shield(task), timeout)
            except TimeoutError:
                logger.warning("Worker did not finish within %.0f s; cancelling", timeout)
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

        async with self._lock:
            try:
                await self._provider.close()
            except Exception as exc:  # noqa: BLE001
                logger.warning("Error closing provider %s: %s", self._provider.name, exc)
            await self._notifier.close()

        logger.info("Scheduler stopped. %s", self.stats.format_summary(), extra={"event": events.ENGINE_STOP})

    async def join(self) -> None:
        """Wait until the worker exits (after a halt or :meth:`stop`)."""
        if self._worker_task is not None:
            await asyncio.shield(self._worker_task)

    # ------------------------------------------------------------------
    # Controls
    # ------------------------------------------------------------------

    def pause(self) -> None:
        """Stop claiming jobs; a tick already running is not interrupted."""
        if self._paused:
            return
        self._paused = True
        self._unpaused.clear()
        logger.info("Scheduler paused", extra={"event": events.ENGINE_PAUSE})

    def resume(self) -> None:
        if not self._paused:
            return
        self._paused = False
        self._unpaused.set()
        self._wakeup.set()
        logger.info("Scheduler resumed", extra={"event": events.ENGINE_RESUME})

    async def trigger_immediate_check(self) -> str:
        """Enqueue a priority one-off check due now and return its job id.

        Raises:
            SchedulerError: If the scheduler is not running or has halted.
        """
        if not self._running:
            raise SchedulerError("Cannot trigger a check: scheduler is not running")
        if self._halted:
            raise SchedulerError("Cannot trigger a check: engine has halted")
        now = self._clock()
        job = await self._store.enqueue(
            JobKind.IMMEDIATE,
            run_at=now,
            max_attempts=self._config.max_attempts,
            now=now,
            priority=IMMEDIATE_PRIORITY,
        )
        self._wakeup.set()
        logger.info("Immediate check %s enqueued", job.id, extra={"event": events.JOB_TRIGGERED})
        return job.id

    async def get_status(self) -> JobStatus:
        return await describe_status(self._store)

    async def get_metrics(self) -> QueueMetrics:
        return await self._store.counts(self._clock())

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    async def process_next(self) -> bool:
        """Claim and run one due job.

        Returns:
            ``True`` if a job was processed; ``False`` when paused, halted
            or when nothing is due.
        """
        async with self._lock:
            if self._paused or self._halted:
                return False
            job = await self._store.claim_next(self._clock())
            if job is None:
                return False
            await self._run_job(job)
            return True

    async def _worker(self) -> None:
        while self._running and not self._halted:
            await self._unpaused.wait()
            if not self._running or self._halted:
                break
            try:
                processed = await self.process_next()
            except StorageError:
                logger.exception("Job queue failure; retrying after the idle interval")
                processed = False
            if processed:
                continue
            self._wakeup.clear()
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._wakeup.wait(), timeout=await self._idle_delay())

    async def _idle_delay(self) -> float:
        due = await self._store.next_due_at()
        if due is None:
            return _MAX_IDLE_S
        return min(max(due - self._clock(), 0.0), _MAX_IDLE_S)

    async def _run_job(self, job: Job) -> None:
        ctx = self._context_for(job)
        with bind_correlation(ctx):
            self.stats.ticks += 1
            try:
                result = await run_tick(self._provider, self._config_for(job), ctx)
            except Exception as exc:  # noqa: BLE001
                kind = classify_error(exc)
                logger.warning(
                    "Attempt %d/%d failed (%s): %s",
                    ctx.attempt,
                    ctx.max_attempts,
                    kind,
                    exc,
                )
                if kind == ErrorKind.BOOKING_REJECTED:
                    self.stats.rejected += 1
                await self._handle_failure(job, ctx, kind, str(exc))
            else:
                if result.booked and result.outcome is not None:
                    await self._handle_success(job, ctx, result.outcome)
                else:
                    await self._handle_no_match(job)
            finally:
                await self._prune()
                logger.debug("%s", self.stats.format_summary())
                if self._stats_path:
                    write_stats_file(self.stats, self._stats_path)

    # ------------------------------------------------------------------
    # Outcome handling
    # ------------------------------------------------------------------

    async def _handle_success(self, job: Job, ctx: AttemptContext, outcome: BookingOutcome) -> None:
        now = self._clock()
        reference = outcome.confirmation_code or outcome.booking_id or "unknown"
        self.stats.bookings += 1
        # Halted before any queue write; nothing below may reopen the chain.
        self._halt("tee time booked")
        try:
            await self._store.record_result(job.id, result=f"{BOOKED_PREFIX}{reference}", now=now)
            await self._store.complete(job.id, now=now, result=f"{BOOKED_PREFIX}{reference}")
            await self._store.discard_pending(now=now)
        except StorageError:
            logger.exception(
                "Booked %s but could not save the job state; the engine stays halted", reference
            )
        else:
            logger.info("Job %s completed with a booking", job.id, extra={"event": events.JOB_COMPLETED})
        await self._record(ctx, outcome)
        await self._notifier.send_success(outcome, ctx)

    async def _settle_booked(self, job: Job) -> None:
        """Complete a job that booked before the previous run could finish it."""
        now = self._clock()
        logger.warning(
            "Job %s already booked (%s) before the previous run stopped; not running it again",
            job.id,
            job.result,
            extra={"event": events.ENGINE_RECOVERED_JOB},
        )
        await self._store.complete(job.id, now=now, result=job.result)
        await self._store.discard_pending(now=now)
        self._halt("tee time already booked")

    async def _handle_no_match(self, job: Job) -> None:
        await self._store.complete(job.id, now=self._clock(), result="no_match")
        self.stats.no_match += 1
        if job.kind == JobKind.RECURRING:
            await self._enqueue_recurring(jittered_interval(self._config.poll_interval_s, self._rng))

    async def _handle_failure(
        self, job: Job, ctx: AttemptContext, kind: ErrorKind, error: str
    ) -> None:
        now = self._clock()
        self.stats.last_error = error

        if not kind.is_terminal and not ctx.is_last_attempt:
            delay = backoff_delay(
                ctx.attempt,
                self._config.retry_base_delay_s,
                multiplier=self._config.backoff_multiplier,
                max_delay_s=self._config.retry_max_delay_s,
                rng=self._rng,
                min_delay_s=self._config.min_delay_s,
            )
            await self._store.schedule_retry(job.id, run_at=now + delay, now=now, error=error)
            self.stats.retries += 1
            logger.info(
                "Retrying job %s in %.1f s (attempt %d/%d)",
                job.id,
                delay,
                ctx.attempt + 1,
                ctx.max_attempts,
                extra={"event": events.JOB_RETRY_SCHEDULED},
            )
            return

        await self._store.fail(job.id, now=now, error=error)
        self.stats.failures += 1
        logger.error(
            "Job %s failed after %d attempt(s): %s",
            job.id,
            ctx.attempt,
            error,
            extra={"event": events.JOB_FAILED},
        )
        await self._record(ctx, BookingOutcome.failed(error))
        await self._notifier.send_failure(error, ctx, last_attempt=_to_datetime(now))

        if kind.is_terminal:
            await self._store.discard_pending(now=now)
            self._halt(f"terminal error ({kind})")
        elif job.kind == JobKind.RECURRING:
            await self._enqueue_recurring(jittered_interval(self._config.poll_interval_s, self._rng))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _config_for(self, job: Job) -> EngineConfig:
        query = self._config.query_for(dt.date.fromtimestamp(job.created_at))
        return self._config.model_copy(update={"query": query})

    def _context_for(self, job: Job) -> AttemptContext:
        return AttemptContext(
            job_id=job.id,
            correlation_id=job.correlation_id,
            attempt=job.next_attempt,
            max_attempts=job.max_attempts,
            kind=str(job.kind),
        )

    async def _enqueue_recurring(self, delay_s: float) -> None:
        now = self._clock()
        job = await self._store.enqueue(
            JobKind.RECURRING,
            run_at=now + delay_s,
            max_attempts=self._config.max_attempts,
            now=now,
        )
        logger.info("Next check %s in %.0f s", job.id, delay_s)

    async def _record(self, ctx: AttemptContext, outcome: BookingOutcome) -> None:
        try:
            await self._history.record(ctx, outcome)
        except StorageError as exc:
            logger.error("Could not record outcome for job %s: %s", ctx.job_id, exc)

    async def _prune(self) -> None:
        try:
            await self._store.prune()
        except StorageError as exc:
            logger.warning("Could not prune finished jobs: %s", exc)

    def _halt(self, reason: str) -> None:
        self._halted = True
        self._wakeup.set()
        logger.info("Engine halted: %s", reason, extra={"event": events.ENGINE_HALT})
