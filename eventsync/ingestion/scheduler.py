"""
Scheduler and retry layer.

A sweep finds every scraper source and importing calendar whose interval
has elapsed and queues one job per unit, staggered so runs do not all hit
the network at once. Failed runs are retried as new, delayed jobs with
exponential backoff; nothing retries in place.
"""

import heapq
import itertools
import logging
import random
import threading
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from functools import partial
from typing import Any

from sqlalchemy.orm import sessionmaker

from eventsync.configs.settings import Settings, get_settings
from eventsync.ingestion.deduplication import BatchDeduplicator, SweepResult
from eventsync.ingestion.errors import DescriptorNotFound
from eventsync.ingestion.orchestrator import IngestionCoordinator, RunResult
from eventsync.runtime.resilience import RetryPolicy
from eventsync.storage.database import get_session_factory
from eventsync.storage.models import Calendar, ScraperSource
from eventsync.storage.repository import EventStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3
AI_EXTRACTION_MAX_ATTEMPTS = 2

JOB_SOURCE = "source"
JOB_CALENDAR = "calendar"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# JOBS
# ============================================================================


@dataclass(frozen=True)
class SyncJob:
    """One unit of ingestion work: a source or a calendar, at a given attempt."""

    kind: str  # "source" | "calendar"
    target_id: int
    attempt: int = 1
    adapter_kind: str = "scraper"

    @property
    def max_attempts(self) -> int:
        if self.adapter_kind == "firecrawl":
            return AI_EXTRACTION_MAX_ATTEMPTS
        return DEFAULT_MAX_ATTEMPTS

    def next_attempt(self) -> "SyncJob":
        return replace(self, attempt=self.attempt + 1)

    def describe(self) -> str:
        return f"{self.kind}:{self.target_id} ({self.adapter_kind}, attempt {self.attempt}/{self.max_attempts})"


class QueueClosed(RuntimeError):
    """Raised when work is submitted to a queue that has been shut down."""


class JobQueue:
    """
    Worker pool with delayed submission.

    Immediate work goes straight to a ThreadPoolExecutor. Delayed work sits
    in a heap ordered by due time; a single timer thread moves it onto the
    pool when due.
    """

    def __init__(self, workers: int = 4):
        self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="eventsync-worker")
        self._heap: list[tuple[float, int, Callable[[], Any]]] = []
        self._seq = itertools.count()
        self._cond = threading.Condition()
        self._outstanding = 0
        self._closed = False
        self._timer = threading.Thread(target=self._timer_loop, name="eventsync-timer", daemon=True)
        self._timer.start()

    def submit(self, fn: Callable[[], Any], delay_s: float = 0.0) -> None:
        """Run ``fn`` on the pool after ``delay_s`` seconds."""
        with self._cond:
            if self._closed:
                raise QueueClosed("JobQueue is shut down")
            self._outstanding += 1
            if delay_s <= 0:
                self._dispatch(fn)
                return
            due = time.monotonic() + delay_s
            heapq.heappush(self._heap, (due, next(self._seq), fn))
            self._cond.notify_all()

    @property
    def pending(self) -> int:
        """Jobs waiting on their delay."""
        with self._cond:
            return len(self._heap)

    def join(self, timeout: float | None = None) -> bool:
        """Block until every submitted job (including ones submitted by jobs) finished."""
        with self._cond:
            return self._cond.wait_for(lambda: self._outstanding == 0, timeout=timeout)

    def drain(self) -> int:
        """Dispatch every delayed job now, ignoring what is left of its delay."""
        with self._cond:
            ready = [fn for _, _, fn in sorted(self._heap)]
            self._heap.clear()
            for fn in ready:
                self._dispatch(fn)
            self._cond.notify_all()
        return len(ready)

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting work. Delayed jobs not yet due are dropped."""
        with self._cond:
            self._closed = True
            dropped = len(self._heap)
            self._outstanding -= dropped
            self._heap.clear()
            self._cond.notify_all()
        if dropped:
            logger.warning(f"Dropped {dropped} delayed jobs on shutdown")
        self._executor.shutdown(wait=wait)

    def _dispatch(self, fn: Callable[[], Any]) -> None:
        future = self._executor.submit(fn)
        future.add_done_callback(self._on_done)

    def _on_done(self, future: Future) -> None:
        error = future.exception()
        if error is not None:
            logger.error(f"Job raised {type(error).__name__}: {error}")
        with self._cond:
            self._outstanding -= 1
            self._cond.notify_all()

    def _timer_loop(self) -> None:
        with self._cond:
            while not self._closed:
                if not self._heap:
                    self._cond.wait()
                    continue
                due, _, fn = self._heap[0]
                remaining = due - time.monotonic()
                if remaining > 0:
                    self._cond.wait(timeout=remaining)
                    continue
                heapq.heappop(self._heap)
                self._dispatch(fn)


# ============================================================================
# SCHEDULER
# ============================================================================


class Scheduler:
    """Find due work, queue it, and retry transient failures with backoff."""

    def __init__(
        self,
        coordinator: IngestionCoordinator,
        queue: JobQueue,
        settings: Settings | None = None,
        rng: random.Random | None = None,
    ):
        self.coordinator = coordinator
        self.queue = queue
        self.settings = settings or coordinator.settings
        self.rng = rng or random.Random()

    def retry_policy(self, job: SyncJob) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=job.max_attempts,
            base_delay_s=self.settings.RETRY_BASE_DELAY_S,
            max_delay_s=self.settings.RETRY_MAX_DELAY_S,
        )

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def due_sources(self, now: datetime | None = None) -> list[SyncJob]:
        now = now or _utc_now()
        session = self.coordinator.session_factory()
        try:
            sources = session.query(ScraperSource).filter(ScraperSource.enabled.is_(True)).order_by(ScraperSource.id).all()
            return [SyncJob(JOB_SOURCE, s.id, adapter_kind="scraper") for s in sources if s.due_for_scrape(now)]
        finally:
            session.close()

    def due_calendars(self, now: datetime | None = None) -> list[SyncJob]:
        now = now or _utc_now()
        session = self.coordinator.session_factory()
        try:
            calendars = (
                session.query(Calendar)
                .filter(Calendar.import_enabled.is_(True), Calendar.import_source.isnot(None))
                .order_by(Calendar.id)
                .all()
            )
            return [
                SyncJob(JOB_CALENDAR, c.id, adapter_kind=c.import_source)
                for c in calendars
                if c.needs_import_sync(now)
            ]
        finally:
            session.close()

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def sweep(self, now: datetime | None = None) -> list[SyncJob]:
        """Queue every due source and calendar with a random stagger."""
        now = now or _utc_now()
        jobs = self.due_sources(now) + self.due_calendars(now)
        max_stagger = self.settings.SCHEDULER_MAX_STAGGER_S

        for job in jobs:
            delay = self.rng.uniform(0, max_stagger) if max_stagger > 0 else 0.0
            logger.info(f"Queueing {job.describe()} in {delay:.0f}s")
            self.queue.submit(partial(self.run_job, job), delay_s=delay)

        if self.settings.DEDUP_AFTER_SWEEP and jobs:
            job = DedupSweepJob(self.coordinator.session_factory, self.settings)
            self.queue.submit(job.run, delay_s=max_stagger + self.settings.RETRY_BASE_DELAY_S)

        logger.info(f"Sweep queued {len(jobs)} jobs")
        return jobs

    def enqueue(self, job: SyncJob, delay_s: float = 0.0) -> None:
        self.queue.submit(partial(self.run_job, job), delay_s=delay_s)

    def run_job(self, job: SyncJob) -> RunResult | None:
        """
        Execute one job and schedule a retry if it failed transiently.

        Returns:
            The run result, or None if the target no longer exists
        """
        try:
            if job.kind == JOB_SOURCE:
                result = self.coordinator.run_source(job.target_id, attempt=job.attempt)
            else:
                result = self.coordinator.run_calendar(job.target_id, attempt=job.attempt)
        except DescriptorNotFound as e:
            logger.info(f"Discarding {job.describe()}: {e}")
            return None
        except Exception as e:
            # The coordinator already recorded the crash on the target
            logger.error(f"{job.describe()} crashed: {type(e).__name__}: {e}", exc_info=True)
            result = RunResult(
                False, f"{job.kind}-{job.target_id}", error=f"{type(e).__name__}: {e}", retryable=True
            )

        if result.success:
            return result

        if not result.retryable:
            logger.warning(f"{job.describe()} failed permanently: {result.error}")
            return result

        policy = self.retry_policy(job)
        if not policy.should_retry(job.attempt):
            logger.warning(f"{job.describe()} failed, giving up after {job.attempt} attempts: {result.error}")
            return result

        delay = policy.compute_backoff_s(job.attempt)
        logger.info(f"{job.describe()} failed ({result.error}); retrying in {delay:.0f}s")
        try:
            self.enqueue(job.next_attempt(), delay_s=delay)
        except QueueClosed:
            logger.warning(f"Queue is shut down; {job.describe()} will not be retried")
        return result


# ============================================================================
# DEDUP SWEEP
# ============================================================================


class DedupSweepJob:
    """Cross-source batch deduplication as a standalone, schedulable job."""

    def __init__(self, session_factory: sessionmaker, settings: Settings | None = None, lookback_days: int = 1):
        self.session_factory = session_factory
        self.settings = settings or get_settings()
        self.lookback_days = lookback_days

    def run(self, since: datetime | None = None) -> SweepResult:
        """Sweep events starting from ``since`` (default: yesterday onwards)."""
        if since is None:
            since = _utc_now() - timedelta(days=self.lookback_days)
        session = self.session_factory()
        try:
            result = BatchDeduplicator(EventStore(session, self.settings.tzinfo)).sweep(since=since)
            session.commit()
            return result
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


# ============================================================================
# ENTRY POINT
# ============================================================================


def scheduled_sync(settings: Settings | None = None, wait: bool = True) -> list[SyncJob]:
    """
    Periodic trigger: sweep once and (by default) wait for queued work.

    Run from cron or a process supervisor, e.g. every 15 minutes.

    With ``wait=False`` the staggered jobs are dispatched at once and the
    call returns while they run. The pool's worker threads still finish
    them before the interpreter exits, but failures are not retried.
    """
    settings = settings or get_settings()
    coordinator = IngestionCoordinator(get_session_factory(), settings)
    queue = JobQueue(workers=settings.SCHEDULER_WORKERS)
    try:
        jobs = Scheduler(coordinator, queue, settings).sweep()
        if wait:
            queue.join()
        else:
            queue.drain()
        return jobs
    finally:
        queue.shutdown(wait=wait)
