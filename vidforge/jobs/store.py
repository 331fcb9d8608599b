"""Job queue storage: Postgres (preferred) or in-memory fallback.

Every state transition is a single-row update conditioned on the state the
caller expects the row to be in. A transition that matches no row means
another worker (or the lease reaper) already moved the job; callers get
``False`` back and must not assume ownership.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from datetime import datetime, timedelta
from typing import Protocol

from vidforge.jobs.models import (
    LEASABLE_STATES,
    NON_TERMINAL_STATES,
    Job,
    JobState,
    JobType,
    parse_payload,
    utcnow,
)

logger = logging.getLogger(__name__)


class JobStore(Protocol):
    def create(self, job: Job) -> Job: ...
    def get(self, job_id: str) -> Job | None: ...
    def lease(self, name: JobType, lease_for: timedelta, now: datetime | None = None) -> Job | None: ...
    def mark_completed(self, job_id: str, now: datetime | None = None) -> bool: ...
    def mark_retry(self, job_id: str, retry_count: int, start_after: datetime, error: str) -> bool: ...
    def mark_failed(self, job_id: str, error: str, now: datetime | None = None) -> bool: ...
    def cancel(self, job_id: str, now: datetime | None = None) -> bool: ...
    def requeue_expired(self, now: datetime | None = None) -> int: ...
    def purge(self, now: datetime | None = None) -> int: ...
    def count_by_state(self, name: JobType | None = None) -> dict[str, int]: ...
    def close(self) -> None: ...


def _keep_until(now: datetime, window: timedelta | None) -> datetime | None:
    return now + window if window is not None else None


# ---------------------------------------------------------------------------
# Postgres implementation
# ---------------------------------------------------------------------------

_COLUMNS = (
    "id, name, payload, state, retry_count, retry_limit, retry_delay, retry_backoff, "
    "remove_on_complete, remove_on_fail, singleton_key, start_after, lease_expires_at, "
    "keep_until, last_error, created_at, started_at, completed_at"
)

_NON_TERMINAL_SQL = ", ".join(f"'{s.value}'" for s in NON_TERMINAL_STATES)
_LEASABLE_SQL = ", ".join(f"'{s.value}'" for s in LEASABLE_STATES)


class PostgresJobStore:
    """Persist jobs in Postgres. Lease uses FOR UPDATE SKIP LOCKED so
    concurrent workers never claim the same row."""

    def __init__(self, database_url: str, schema: str = "jobs"):
        self._url = database_url
        self._schema = schema
        self._table = f"{schema}.job"
        self._conn = self._connect()
        self._ensure_tables()

    def _connect(self):
        try:
            import psycopg
            return psycopg.connect(self._url, autocommit=True)
        except ImportError:
            raise ImportError(
                "psycopg required for Postgres job store. pip install 'psycopg[binary]'"
            )

    def _ensure_tables(self) -> None:
        self._conn.execute(f"CREATE SCHEMA IF NOT EXISTS {self._schema}")
        self._conn.execute(f"""
            CREATE TABLE IF NOT EXISTS {self._table} (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                payload JSONB NOT NULL DEFAULT '{{}}',
                state TEXT NOT NULL,
                retry_count INT NOT NULL DEFAULT 0,
                retry_limit INT NOT NULL DEFAULT 0,
                retry_delay DOUBLE PRECISION NOT NULL DEFAULT 0,
                retry_backoff BOOLEAN NOT NULL DEFAULT FALSE,
                remove_on_complete DOUBLE PRECISION,
                remove_on_fail DOUBLE PRECISION,
                singleton_key TEXT,
                start_after TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                lease_expires_at TIMESTAMPTZ,
                keep_until TIMESTAMPTZ,
                last_error TEXT,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                started_at TIMESTAMPTZ,
                completed_at TIMESTAMPTZ
            )
        """)
        self._conn.execute(f"""
            CREATE UNIQUE INDEX IF NOT EXISTS idx_job_singleton_key
            ON {self._table} (singleton_key)
            WHERE singleton_key IS NOT NULL AND state IN ({_NON_TERMINAL_SQL})
        """)
        self._conn.execute(f"""
            CREATE INDEX IF NOT EXISTS idx_job_fetch
            ON {self._table} (name, state, start_after)
        """)

    def create(self, job: Job) -> Job:
        row = self._conn.execute(
            f"""
            INSERT INTO {self._table} ({_COLUMNS})
            VALUES (%s, %s, %s::jsonb, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (singleton_key)
                WHERE singleton_key IS NOT NULL AND state IN ({_NON_TERMINAL_SQL})
            DO NOTHING
            RETURNING {_COLUMNS}
            """,
            self._job_to_row(job),
        ).fetchone()
        if row:
            return self._row_to_job(row)
        existing = self._find_singleton(job.singleton_key)
        if existing is None:
            # Holder reached a terminal state between INSERT and SELECT
            return self.create(job)
        logger.info("Singleton %s already queued as %s", job.singleton_key, existing.id)
        return existing

    def _find_singleton(self, key: str | None) -> Job | None:
        if key is None:
            return None
        row = self._conn.execute(
            f"""
            SELECT {_COLUMNS} FROM {self._table}
            WHERE singleton_key = %s AND state IN ({_NON_TERMINAL_SQL})
            ORDER BY created_at DESC LIMIT 1
            """,
            (key,),
        ).fetchone()
        return self._row_to_job(row) if row else None

    def get(self, job_id: str) -> Job | None:
        row = self._conn.execute(
            f"SELECT {_COLUMNS} FROM {self._table} WHERE id = %s",
            (job_id,),
        ).fetchone()
        return self._row_to_job(row) if row else None

    def lease(self, name: JobType, lease_for: timedelta, now: datetime | None = None) -> Job | None:
        now = now or utcnow()
        row = self._conn.execute(
            f"""
            UPDATE {self._table} SET
                state = 'active', started_at = %s, lease_expires_at = %s
            WHERE id = (
                SELECT id FROM {self._table}
                WHERE name = %s AND state IN ({_LEASABLE_SQL}) AND start_after <= %s
                ORDER BY created_at
                LIMIT 1
                FOR UPDATE SKIP LOCKED
            )
            RETURNING {_COLUMNS}
            """,
            (now, now + lease_for, name.value, now),
        ).fetchone()
        return self._row_to_job(row) if row else None

    def mark_completed(self, job_id: str, now: datetime | None = None) -> bool:
        now = now or utcnow()
        cur = self._conn.execute(
            f"""
            UPDATE {self._table} SET
                state = 'completed', completed_at = %s, lease_expires_at = NULL,
                keep_until = CASE WHEN remove_on_complete IS NULL THEN NULL
                                  ELSE %s + make_interval(secs => remove_on_complete) END
            WHERE id = %s AND state = 'active'
            """,
            (now, now, job_id),
        )
        return cur.rowcount == 1

    def mark_retry(self, job_id: str, retry_count: int, start_after: datetime, error: str) -> bool:
        cur = self._conn.execute(
            f"""
            UPDATE {self._table} SET
                state = 'retry', retry_count = %s, start_after = %s,
                lease_expires_at = NULL, last_error = %s
            WHERE id = %s AND state = 'active'
            """,
            (retry_count, start_after, error[:2000], job_id),
        )
        return cur.rowcount == 1

    def mark_failed(self, job_id: str, error: str, now: datetime | None = None) -> bool:
        now = now or utcnow()
        cur = self._conn.execute(
            f"""
            UPDATE {self._table} SET
                state = 'failed', completed_at = %s, lease_expires_at = NULL, last_error = %s,
                keep_until = CASE WHEN remove_on_fail IS NULL THEN NULL
                                  ELSE %s + make_interval(secs => remove_on_fail) END
            WHERE id = %s AND state = 'active'
            """,
            (now, error[:2000], now, job_id),
        )
        return cur.rowcount == 1

    def cancel(self, job_id: str, now: datetime | None = None) -> bool:
        now = now or utcnow()
        cur = self._conn.execute(
            f"""
            UPDATE {self._table} SET state = 'cancelled', completed_at = %s,
                keep_until = CASE WHEN remove_on_fail IS NULL THEN NULL
                                  ELSE %s + make_interval(secs => remove_on_fail) END
            WHERE id = %s AND state IN ({_LEASABLE_SQL})
            """,
            (now, now, job_id),
        )
        return cur.rowcount == 1

    def requeue_expired(self, now: datetime | None = None) -> int:
        """Return timed-out leases to the queue, counting the lost run as an attempt."""
        now = now or utcnow()
        retried = self._conn.execute(
            f"""
            UPDATE {self._table} SET
                state = 'retry', retry_count = retry_count + 1, start_after = %s,
                lease_expires_at = NULL, last_error = 'lease expired'
            WHERE state = 'active' AND lease_expires_at < %s AND retry_count < retry_limit
            """,
            (now, now),
        ).rowcount
        failed = self._conn.execute(
            f"""
            UPDATE {self._table} SET
                state = 'failed', completed_at = %s, lease_expires_at = NULL,
                last_error = 'lease expired',
                keep_until = CASE WHEN remove_on_fail IS NULL THEN NULL
                                  ELSE %s + make_interval(secs => remove_on_fail) END
            WHERE state = 'active' AND lease_expires_at < %s AND retry_count >= retry_limit
            """,
            (now, now, now),
        ).rowcount
        return retried + failed

    def purge(self, now: datetime | None = None) -> int:
        now = now or utcnow()
        return self._conn.execute(
            f"DELETE FROM {self._table} WHERE keep_until IS NOT NULL AND keep_until < %s",
            (now,),
        ).rowcount

    def count_by_state(self, name: JobType | None = None) -> dict[str, int]:
        if name is None:
            rows = self._conn.execute(
                f"SELECT state, COUNT(*) FROM {self._table} GROUP BY state"
            ).fetchall()
        else:
            rows = self._conn.execute(
                f"SELECT state, COUNT(*) FROM {self._table} WHERE name = %s GROUP BY state",
                (name.value,),
            ).fetchall()
        return {state: count for state, count in rows}

    def close(self) -> None:
        self._conn.close()

    def _job_to_row(self, job: Job) -> tuple:
        return (
            job.id,
            job.name.value,
            json.dumps(job.payload.model_dump(mode="json")),
            job.state.value,
            job.retry_count,
            job.retry_limit,
            job.retry_delay.total_seconds(),
            job.retry_backoff,
            job.remove_on_complete.total_seconds() if job.remove_on_complete is not None else None,
            job.remove_on_fail.total_seconds() if job.remove_on_fail is not None else None,
            job.singleton_key,
            job.start_after,
            job.lease_expires_at,
            job.keep_until,
            job.last_error,
            job.created_at,
            job.started_at,
            job.completed_at,
        )

    def _row_to_job(self, row) -> Job:
        payload = row[2] if isinstance(row[2], dict) else json.loads(row[2])
        return Job(
            id=row[0],
            name=JobType(row[1]),
            payload=parse_payload(payload),
            state=JobState(row[3]),
            retry_count=row[4],
            retry_limit=row[5],
            retry_delay=timedelta(seconds=row[6]),
            retry_backoff=row[7],
            remove_on_complete=timedelta(seconds=row[8]) if row[8] is not None else None,
            remove_on_fail=timedelta(seconds=row[9]) if row[9] is not None else None,
            singleton_key=row[10],
            start_after=row[11],
            lease_expires_at=row[12],
            keep_until=row[13],
            last_error=row[14],
            created_at=row[15],
            started_at=row[16],
            completed_at=row[17],
        )


# ---------------------------------------------------------------------------
# In-memory implementation (single process; development and tests)
# ---------------------------------------------------------------------------

class MemoryJobStore:
    """Thread-safe in-process job store. One lock guards every transition."""

    def __init__(self) -> None:
        self._jobs: dict[str, Job] = {}
        self._lock = threading.Lock()

    def create(self, job: Job) -> Job:
        with self._lock:
            if job.singleton_key is not None:
                for existing in self._jobs.values():
                    if existing.singleton_key == job.singleton_key and existing.state in NON_TERMINAL_STATES:
                        logger.info("Singleton %s already queued as %s", job.singleton_key, existing.id)
                        return existing.model_copy()
            self._jobs[job.id] = job.model_copy()
            return job.model_copy()

    def get(self, job_id: str) -> Job | None:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy() if job else None

    def lease(self, name: JobType, lease_for: timedelta, now: datetime | None = None) -> Job | None:
        now = now or utcnow()
        with self._lock:
            eligible = [
                j for j in self._jobs.values()
                if j.name == name and j.state in LEASABLE_STATES and j.start_after <= now
            ]
            if not eligible:
                return None
            job = min(eligible, key=lambda j: j.created_at)
            job.state = JobState.ACTIVE
            job.started_at = now
            job.lease_expires_at = now + lease_for
            return job.model_copy()

    def _active(self, job_id: str) -> Job | None:
        job = self._jobs.get(job_id)
        if job is None or job.state != JobState.ACTIVE:
            return None
        return job

    def mark_completed(self, job_id: str, now: datetime | None = None) -> bool:
        now = now or utcnow()
        with self._lock:
            job = self._active(job_id)
            if job is None:
                return False
            job.state = JobState.COMPLETED
            job.completed_at = now
            job.lease_expires_at = None
            job.keep_until = _keep_until(now, job.remove_on_complete)
            return True

    def mark_retry(self, job_id: str, retry_count: int, start_after: datetime, error: str) -> bool:
        with self._lock:
            job = self._active(job_id)
            if job is None:
                return False
            job.state = JobState.RETRY
            job.retry_count = retry_count
            job.start_after = start_after
            job.lease_expires_at = None
            job.last_error = error[:2000]
            return True

    def mark_failed(self, job_id: str, error: str, now: datetime | None = None) -> bool:
        now = now or utcnow()
        with self._lock:
            job = self._active(job_id)
            if job is None:
                return False
            job.state = JobState.FAILED
            job.completed_at = now
            job.lease_expires_at = None
            job.last_error = error[:2000]
            job.keep_until = _keep_until(now, job.remove_on_fail)
            return True

    def cancel(self, job_id: str, now: datetime | None = None) -> bool:
        now = now or utcnow()
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.state not in LEASABLE_STATES:
                return False
            job.state = JobState.CANCELLED
            job.completed_at = now
            job.keep_until = _keep_until(now, job.remove_on_fail)
            return True

    def requeue_expired(self, now: datetime | None = None) -> int:
        now = now or utcnow()
        moved = 0
        with self._lock:
            for job in self._jobs.values():
                if job.state != JobState.ACTIVE or job.lease_expires_at is None:
                    continue
                if job.lease_expires_at >= now:
                    continue
                job.lease_expires_at = None
                job.last_error = "lease expired"
                if job.retry_count < job.retry_limit:
                    job.state = JobState.RETRY
                    job.retry_count += 1
                    job.start_after = now
                else:
                    job.state = JobState.FAILED
                    job.completed_at = now
                    job.keep_until = _keep_until(now, job.remove_on_fail)
                moved += 1
        return moved

    def purge(self, now: datetime | None = None) -> int:
        now = now or utcnow()
        with self._lock:
            expired = [
                job_id for job_id, job in self._jobs.items()
                if job.keep_until is not None and job.keep_until < now
            ]
            for job_id in expired:
                del self._jobs[job_id]
        return len(expired)

    def count_by_state(self, name: JobType | None = None) -> dict[str, int]:
        counts: dict[str, int] = {}
        with self._lock:
            for job in self._jobs.values():
                if name is not None and job.name != name:
                    continue
                counts[job.state.value] = counts.get(job.state.value, 0) + 1
        return counts

    def close(self) -> None:
        pass


def new_job_id() -> str:
    return f"job_{uuid.uuid4().hex[:16]}"


def get_job_store(database_url: str | None, schema: str = "jobs") -> JobStore:
    """Postgres job store if a database URL is configured, else in-memory."""
    if database_url:
        store = PostgresJobStore(database_url, schema=schema)
        logger.info("Using Postgres job store (schema %s)", schema)
        return store
    logger.warning("No database URL configured; using in-memory job store (single process only)")
    return MemoryJobStore()
