"""Job progress log: append-only, best-effort.

Sink failures are logged and swallowed: a broken log table must never fail
the job that was trying to report on itself.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

from vidforge.jobs.models import JobLogEntry

logger = logging.getLogger(__name__)


class JobLogSink(Protocol):
    def append(self, entry: JobLogEntry) -> None: ...


class LoggingJobLogSink:
    """Writes progress entries to the Python log only."""

    def append(self, entry: JobLogEntry) -> None:
        pct = f" ({entry.progress}%)" if entry.progress is not None else ""
        logger.info("[%s] %s%s %s", entry.queue_name, entry.message, pct, entry.metadata or "")


class PostgresJobLogSink:
    """Persist entries in ``<schema>.job_log`` for status polling."""

    def __init__(self, database_url: str, schema: str = "jobs"):
        self._url = database_url
        self._table = f"{schema}.job_log"
        self._conn = self._connect(schema)

    def _connect(self, schema: str):
        try:
            import psycopg
            conn = psycopg.connect(self._url, autocommit=True)
            conn.execute(f"CREATE SCHEMA IF NOT EXISTS {schema}")
            conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {self._table} (
                    id BIGSERIAL PRIMARY KEY,
                    job_id TEXT NOT NULL,
                    queue_name TEXT NOT NULL,
                    message TEXT NOT NULL,
                    progress INT,
                    metadata JSONB,
                    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
                )
            """)
            conn.execute(f"""
                CREATE INDEX IF NOT EXISTS idx_job_log_job
                ON {self._table} (job_id, created_at)
            """)
            return conn
        except ImportError:
            raise ImportError(
                "psycopg required for Postgres job log. pip install 'psycopg[binary]'"
            )

    def append(self, entry: JobLogEntry) -> None:
        self._conn.execute(
            f"""
            INSERT INTO {self._table} (job_id, queue_name, message, progress, metadata, created_at)
            VALUES (%s, %s, %s, %s, %s::jsonb, %s)
            """,
            (
                entry.job_id,
                entry.queue_name,
                entry.message,
                entry.progress,
                json.dumps(entry.metadata, default=str),
                entry.created_at,
            ),
        )


class ProgressReporter:
    """Bound to one job; handlers call it to report progress."""

    def __init__(self, sink: JobLogSink, job_id: str, queue_name: str):
        self._sink = sink
        self.job_id = job_id
        self.queue_name = queue_name

    def __call__(self, message: str, progress: int | float | None = None, **metadata: Any) -> None:
        pct = None if progress is None else max(0, min(100, int(round(progress))))
        try:
            entry = JobLogEntry(
                job_id=self.job_id,
                queue_name=self.queue_name,
                message=message,
                progress=pct,
                metadata=metadata,
            )
            self._sink.append(entry)
        except Exception as e:
            logger.warning("Failed to log job progress for %s: %s", self.job_id, e)
