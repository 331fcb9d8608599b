"""Queue client: one explicit handle to the job store and progress sink.

Constructed once per process and passed to producers and the worker
runtime. Nothing is bound lazily at import time.
"""

from __future__ import annotations

import logging

from vidforge.jobs.progress import JobLogSink, LoggingJobLogSink
from vidforge.jobs.store import JobStore

logger = logging.getLogger(__name__)


class QueueNotInitialized(RuntimeError):
    pass


class QueueClient:
    def __init__(self, store: JobStore, log_sink: JobLogSink | None = None):
        self._store = store
        self._log_sink = log_sink or LoggingJobLogSink()
        self._started = False

    def init(self) -> "QueueClient":
        self._started = True
        logger.info("Job queue started (%s)", type(self._store).__name__)
        return self

    def shutdown(self) -> None:
        if not self._started:
            return
        self._started = False
        self._store.close()
        logger.info("Job queue stopped")

    @property
    def started(self) -> bool:
        return self._started

    @property
    def store(self) -> JobStore:
        if not self._started:
            raise QueueNotInitialized("Queue client not initialized. Call init() first.")
        return self._store

    @property
    def log_sink(self) -> JobLogSink:
        return self._log_sink

    def __enter__(self) -> "QueueClient":
        return self.init()

    def __exit__(self, *exc) -> None:
        self.shutdown()
