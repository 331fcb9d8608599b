"""Worker runtime: lease jobs, dispatch to handlers, apply retry policy.

Many worker processes may poll the same store; the store's atomic lease is
the only coordination between them. Within one process each registered job
type gets ``concurrency`` polling threads.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable

from vidforge.errors import is_permanent
from vidforge.jobs.models import (
    GenerateEpisodePayload,
    Job,
    JobType,
    PublishVideoPayload,
    RenderEpisodePayload,
    next_retry_delay,
    utcnow,
)
from vidforge.jobs.progress import ProgressReporter
from vidforge.jobs.queue import QueueClient

logger = logging.getLogger(__name__)


@dataclass
class JobContext:
    """What a handler gets besides its payload."""

    job: Job
    progress: ProgressReporter


Handler = Callable[[Any, JobContext], None]


@dataclass
class _Registration:
    job_type: JobType
    handler: Handler
    concurrency: int = 1
    poll_interval: float = 2.0
    threads: list[threading.Thread] = field(default_factory=list)


class Worker:
    def __init__(
        self,
        queue: QueueClient,
        *,
        lease_for: timedelta = timedelta(minutes=15),
        maintenance_interval: float | None = 60.0,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._queue = queue
        self._lease_for = lease_for
        self._maintenance_interval = maintenance_interval
        self._clock = clock
        self._registrations: dict[JobType, _Registration] = {}
        self._stop = threading.Event()
        self._maintenance_thread: threading.Thread | None = None
        self._running = False

    # ── registration / lifecycle ─────────────────────────────────────────

    def register_handler(
        self,
        job_type: JobType,
        handler: Handler,
        concurrency: int = 1,
        poll_interval: float = 2.0,
    ) -> None:
        if self._running:
            raise RuntimeError("Cannot register handlers on a running worker")
        self._registrations[job_type] = _Registration(
            job_type=job_type,
            handler=handler,
            concurrency=max(1, concurrency),
            poll_interval=poll_interval,
        )
        logger.info("Registered %s handler (concurrency=%d)", job_type.value, concurrency)

    def start(self) -> None:
        if self._running:
            return
        if not self._registrations:
            raise RuntimeError("No handlers registered")
        self._stop.clear()
        self._running = True
        for reg in self._registrations.values():
            for i in range(reg.concurrency):
                t = threading.Thread(
                    target=self._poll_loop,
                    args=(reg,),
                    name=f"worker-{reg.job_type.value}-{i}",
                    daemon=True,
                )
                reg.threads.append(t)
                t.start()
        if self._maintenance_interval:
            self._maintenance_thread = threading.Thread(
                target=self._maintenance_loop, name="worker-maintenance", daemon=True
            )
            self._maintenance_thread.start()
        logger.info("Worker started: %s", ", ".join(t.value for t in self._registrations))

    def stop(self, timeout: float | None = None) -> None:
        """Stop leasing new jobs and wait for in-flight handlers to finish."""
        if not self._running:
            return
        self._stop.set()
        for reg in self._registrations.values():
            for t in reg.threads:
                t.join(timeout)
            reg.threads.clear()
        if self._maintenance_thread is not None:
            self._maintenance_thread.join(timeout)
            self._maintenance_thread = None
        self._running = False
        logger.info("Worker stopped")

    @property
    def running(self) -> bool:
        return self._running

    # ── polling ──────────────────────────────────────────────────────────

    def _poll_loop(self, reg: _Registration) -> None:
        while not self._stop.is_set():
            try:
                job = self._queue.store.lease(reg.job_type, self._lease_for, now=self._clock())
            except Exception as e:
                logger.error("Lease failed for %s: %s", reg.job_type.value, e)
                self._stop.wait(reg.poll_interval)
                continue
            if job is None:
                self._stop.wait(reg.poll_interval)
                continue
            try:
                self.process(job)
            except Exception as e:
                # job row stays active; requeue_expired recovers it after the lease
                logger.exception("Processing %s job %s failed in the store: %s", reg.job_type.value, job.id, e)
                self._stop.wait(reg.poll_interval)

    def _maintenance_loop(self) -> None:
        while not self._stop.wait(self._maintenance_interval):
            try:
                self.run_maintenance()
            except Exception as e:
                logger.error("Queue maintenance failed: %s", e)

    def run_maintenance(self) -> tuple[int, int]:
        """Requeue timed-out leases and purge rows past their retention window."""
        now = self._clock()
        requeued = self._queue.store.requeue_expired(now=now)
        purged = self._queue.store.purge(now=now)
        if requeued or purged:
            logger.info("Maintenance: requeued %d expired leases, purged %d jobs", requeued, purged)
        return requeued, purged

    def work_once(self, job_type: JobType) -> Job | None:
        """Lease and process at most one job synchronously; return its final record."""
        job = self._queue.store.lease(job_type, self._lease_for, now=self._clock())
        if job is None:
            return None
        self.process(job)
        return self._queue.store.get(job.id)

    # ── execution ────────────────────────────────────────────────────────

    def process(self, job: Job) -> None:
        progress = ProgressReporter(self._queue.log_sink, job.id, job.name.value)
        progress("Job started", 0, attempt=job.retry_count + 1)
        try:
            self._dispatch(job, JobContext(job=job, progress=progress))
        except Exception as e:
            self._on_failure(job, e, progress)
            return
        if self._queue.store.mark_completed(job.id, now=self._clock()):
            progress("Job completed", 100)
            logger.info("Completed %s job %s", job.name.value, job.id)
        else:
            logger.warning("Job %s was no longer active at completion; lease lost", job.id)

    def _dispatch(self, job: Job, ctx: JobContext) -> None:
        match job.payload:
            case GenerateEpisodePayload():
                handler = self._handler_for(JobType.GENERATE_EPISODE)
            case RenderEpisodePayload():
                handler = self._handler_for(JobType.RENDER_EPISODE)
            case PublishVideoPayload():
                handler = self._handler_for(JobType.PUBLISH_VIDEO)
            case _:
                raise TypeError(f"Unknown payload type: {type(job.payload).__name__}")
        handler(job.payload, ctx)

    def _handler_for(self, job_type: JobType) -> Handler:
        reg = self._registrations.get(job_type)
        if reg is None:
            raise LookupError(f"No handler registered for {job_type.value}")
        return reg.handler

    def _on_failure(self, job: Job, exc: Exception, progress: ProgressReporter) -> None:
        now = self._clock()
        error = f"{type(exc).__name__}: {exc}"
        store = self._queue.store

        if not is_permanent(exc) and job.retry_count < job.retry_limit:
            retry_count = job.retry_count + 1
            start_after = now + next_retry_delay(job, retry_count)
            moved = store.mark_retry(job.id, retry_count, start_after, error)
            logger.warning(
                "Job %s (%s) failed, retry %d/%d at %s: %s",
                job.id, job.name.value, retry_count, job.retry_limit, start_after.isoformat(), error,
            )
            progress(f"Attempt failed, retrying: {exc}", 0, error=error, retry_count=retry_count)
        else:
            moved = store.mark_failed(job.id, error, now=now)
            reason = "permanent error" if is_permanent(exc) else "retries exhausted"
            logger.error("Job %s (%s) failed (%s): %s", job.id, job.name.value, reason, error)
            progress(f"Job failed ({reason}): {exc}", 0, error=error)
        if not moved:
            logger.warning("Job %s was no longer active at failure; lease lost", job.id)
