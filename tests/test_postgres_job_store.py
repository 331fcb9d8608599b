"""Postgres job store tests. Run only when VIDFORGE_TEST_DATABASE_URL is set."""

import os
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from vidforge.jobs.models import Job, JobState, JobType, RenderEpisodePayload
from vidforge.jobs.store import PostgresJobStore, new_job_id

DATABASE_URL = os.environ.get("VIDFORGE_TEST_DATABASE_URL")

pytestmark = pytest.mark.skipif(not DATABASE_URL, reason="VIDFORGE_TEST_DATABASE_URL not set")


@pytest.fixture
def schema():
    name = f"vidforge_test_{uuid.uuid4().hex[:8]}"
    yield name
    store = PostgresJobStore(DATABASE_URL, schema=name)
    store._conn.execute(f"DROP SCHEMA IF EXISTS {name} CASCADE")
    store.close()


@pytest.fixture
def pg_store(schema):
    store = PostgresJobStore(DATABASE_URL, schema=schema)
    yield store
    store.close()


def _job(render_id="r1", singleton_key=None, **kwargs):
    return Job(
        id=new_job_id(),
        name=JobType.RENDER_EPISODE,
        payload=RenderEpisodePayload(render_id=render_id),
        singleton_key=singleton_key,
        **kwargs,
    )


def test_round_trip_keeps_payload_and_options(pg_store, clock):
    job = pg_store.create(_job("r7", start_after=clock.now, retry_limit=4, retry_delay=timedelta(seconds=15)))
    stored = pg_store.get(job.id)
    assert stored.payload == RenderEpisodePayload(render_id="r7")
    assert stored.retry_limit == 4
    assert stored.retry_delay == timedelta(seconds=15)
    assert stored.state == JobState.CREATED


def test_singleton_conflict_returns_existing_job(pg_store, clock):
    first = pg_store.create(_job(singleton_key="render-episode-r1", start_after=clock.now))
    second = pg_store.create(_job(singleton_key="render-episode-r1", start_after=clock.now))
    assert second.id == first.id
    assert pg_store.count_by_state(JobType.RENDER_EPISODE) == {"created": 1}


def test_singleton_released_after_terminal_state(pg_store, clock):
    first = pg_store.create(_job(singleton_key="render-episode-r1", start_after=clock.now))
    pg_store.lease(JobType.RENDER_EPISODE, timedelta(minutes=1), now=clock.now)
    assert pg_store.mark_completed(first.id, now=clock.now)
    second = pg_store.create(_job(singleton_key="render-episode-r1", start_after=clock.now))
    assert second.id != first.id


def test_concurrent_leasers_on_separate_connections(schema, clock):
    seed = PostgresJobStore(DATABASE_URL, schema=schema)
    job = seed.create(_job(start_after=clock.now))
    stores = [PostgresJobStore(DATABASE_URL, schema=schema) for _ in range(6)]
    barrier = threading.Barrier(len(stores))

    def lease(store):
        barrier.wait()
        return store.lease(JobType.RENDER_EPISODE, timedelta(minutes=1), now=clock.now)

    try:
        with ThreadPoolExecutor(max_workers=len(stores)) as pool:
            results = list(pool.map(lease, stores))
    finally:
        for store in stores:
            store.close()

    winners = [r for r in results if r is not None]
    assert [w.id for w in winners] == [job.id]
    assert seed.get(job.id).state == JobState.ACTIVE
    seed.close()


def test_transitions_require_active(pg_store, clock):
    job = pg_store.create(_job(start_after=clock.now))
    assert not pg_store.mark_completed(job.id, now=clock.now)
    pg_store.lease(JobType.RENDER_EPISODE, timedelta(minutes=1), now=clock.now)
    assert pg_store.mark_retry(job.id, 1, clock.now + timedelta(seconds=10), "boom")
    stored = pg_store.get(job.id)
    assert stored.state == JobState.RETRY
    assert stored.retry_count == 1
    assert stored.last_error == "boom"


def test_requeue_expired_counts_attempt_then_fails(pg_store, clock):
    job = pg_store.create(_job(start_after=clock.now, retry_limit=1))
    pg_store.lease(JobType.RENDER_EPISODE, timedelta(minutes=1), now=clock.now)
    assert pg_store.requeue_expired(now=clock.now) == 0
    assert pg_store.requeue_expired(now=clock.advance(minutes=2)) == 1
    assert pg_store.get(job.id).state == JobState.RETRY

    pg_store.lease(JobType.RENDER_EPISODE, timedelta(minutes=1), now=clock.now)
    assert pg_store.requeue_expired(now=clock.advance(minutes=2)) == 1
    stored = pg_store.get(job.id)
    assert stored.state == JobState.FAILED
    assert stored.last_error == "lease expired"
