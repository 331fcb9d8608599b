"""Tests for the in-memory job store state machine."""

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

from vidforge.jobs.models import (
    GenerateEpisodePayload,
    Job,
    JobState,
    JobType,
    RenderEpisodePayload,
)
from vidforge.jobs.store import MemoryJobStore, get_job_store, new_job_id


def _job(render_id="r1", singleton_key=None, **kwargs):
    return Job(
        id=new_job_id(),
        name=JobType.RENDER_EPISODE,
        payload=RenderEpisodePayload(render_id=render_id),
        singleton_key=singleton_key,
        **kwargs,
    )


def test_new_job_id_format():
    job_id = new_job_id()
    assert job_id.startswith("job_")
    assert len(job_id) == 20


def test_get_job_store_without_url_is_memory():
    assert isinstance(get_job_store(None), MemoryJobStore)


class TestSingleton:
    def test_same_key_returns_existing_job(self, job_store):
        first = job_store.create(_job(singleton_key="render-episode-r1"))
        second = job_store.create(_job(singleton_key="render-episode-r1"))
        assert second.id == first.id
        assert job_store.count_by_state() == {"created": 1}

    def test_active_job_still_blocks_duplicate(self, job_store, clock):
        first = job_store.create(_job(singleton_key="k", start_after=clock.now))
        job_store.lease(JobType.RENDER_EPISODE, timedelta(minutes=1), now=clock.now)
        assert job_store.create(_job(singleton_key="k")).id == first.id

    def test_terminal_job_allows_new_one(self, job_store, clock):
        first = job_store.create(_job(singleton_key="k", start_after=clock.now))
        job_store.lease(JobType.RENDER_EPISODE, timedelta(minutes=1), now=clock.now)
        assert job_store.mark_completed(first.id, now=clock.now)
        second = job_store.create(_job(singleton_key="k"))
        assert second.id != first.id

    def test_jobs_without_key_are_not_deduplicated(self, job_store):
        a = job_store.create(_job())
        b = job_store.create(_job())
        assert a.id != b.id


class TestLease:
    def test_lease_marks_active_with_expiry(self, job_store, clock):
        job = job_store.create(_job(start_after=clock.now))
        leased = job_store.lease(JobType.RENDER_EPISODE, timedelta(minutes=5), now=clock.now)
        assert leased.id == job.id
        assert leased.state == JobState.ACTIVE
        assert leased.lease_expires_at == clock.now + timedelta(minutes=5)

    def test_lease_respects_start_after(self, job_store, clock):
        job_store.create(_job(start_after=clock.now + timedelta(seconds=30)))
        assert job_store.lease(JobType.RENDER_EPISODE, timedelta(minutes=1), now=clock.now) is None
        clock.advance(seconds=31)
        assert job_store.lease(JobType.RENDER_EPISODE, timedelta(minutes=1), now=clock.now) is not None

    def test_lease_filters_by_type(self, job_store, clock):
        job_store.create(_job(start_after=clock.now))
        assert job_store.lease(JobType.GENERATE_EPISODE, timedelta(minutes=1), now=clock.now) is None

    def test_job_is_leased_once(self, job_store, clock):
        job_store.create(_job(start_after=clock.now))
        assert job_store.lease(JobType.RENDER_EPISODE, timedelta(minutes=1), now=clock.now) is not None
        assert job_store.lease(JobType.RENDER_EPISODE, timedelta(minutes=1), now=clock.now) is None

    def test_concurrent_leasers_get_the_job_once(self, job_store, clock):
        job = job_store.create(_job(start_after=clock.now))
        barrier = threading.Barrier(8)

        def lease(_):
            barrier.wait()
            return job_store.lease(JobType.RENDER_EPISODE, timedelta(minutes=1), now=clock.now)

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lease, range(8)))
        winners = [r for r in results if r is not None]
        assert [w.id for w in winners] == [job.id]

    def test_oldest_job_first(self, job_store, clock):
        older = job_store.create(_job("r1", start_after=clock.now, created_at=clock.now - timedelta(minutes=2)))
        job_store.create(_job("r2", start_after=clock.now, created_at=clock.now - timedelta(minutes=1)))
        assert job_store.lease(JobType.RENDER_EPISODE, timedelta(minutes=1), now=clock.now).id == older.id


class TestTransitions:
    def test_transition_requires_active(self, job_store, clock):
        job = job_store.create(_job(start_after=clock.now))
        assert not job_store.mark_completed(job.id, now=clock.now)
        assert not job_store.mark_failed(job.id, "x", now=clock.now)
        assert not job_store.mark_retry(job.id, 1, clock.now, "x")

    def test_completed_job_sets_retention(self, job_store, clock):
        job = job_store.create(_job(start_after=clock.now))
        job_store.lease(JobType.RENDER_EPISODE, timedelta(minutes=1), now=clock.now)
        job_store.mark_completed(job.id, now=clock.now)
        stored = job_store.get(job.id)
        assert stored.state == JobState.COMPLETED
        assert stored.keep_until == clock.now + timedelta(minutes=10)

    def test_cancel_only_waiting_jobs(self, job_store, clock):
        waiting = job_store.create(_job("r1", start_after=clock.now))
        assert job_store.cancel(waiting.id, now=clock.now)
        assert job_store.get(waiting.id).state == JobState.CANCELLED
        running = job_store.create(_job("r2", start_after=clock.now))
        job_store.lease(JobType.RENDER_EPISODE, timedelta(minutes=1), now=clock.now)
        assert not job_store.cancel(running.id, now=clock.now)

    def test_get_returns_copy(self, job_store):
        job = job_store.create(_job())
        copy = job_store.get(job.id)
        copy.state = JobState.FAILED
        assert job_store.get(job.id).state == JobState.CREATED


class TestMaintenance:
    def test_expired_lease_counts_as_attempt(self, job_store, clock):
        job = job_store.create(_job(start_after=clock.now, retry_limit=2))
        job_store.lease(JobType.RENDER_EPISODE, timedelta(minutes=1), now=clock.now)
        assert job_store.requeue_expired(now=clock.now) == 0
        assert job_store.requeue_expired(now=clock.advance(minutes=2)) == 1
        stored = job_store.get(job.id)
        assert stored.state == JobState.RETRY
        assert stored.retry_count == 1
        assert stored.last_error == "lease expired"

    def test_expired_lease_without_retries_fails(self, job_store, clock):
        job = job_store.create(_job(start_after=clock.now, retry_limit=0))
        job_store.lease(JobType.RENDER_EPISODE, timedelta(minutes=1), now=clock.now)
        job_store.requeue_expired(now=clock.advance(minutes=2))
        assert job_store.get(job.id).state == JobState.FAILED

    def test_late_completion_after_requeue_is_rejected(self, job_store, clock):
        job = job_store.create(_job(start_after=clock.now))
        job_store.lease(JobType.RENDER_EPISODE, timedelta(minutes=1), now=clock.now)
        job_store.requeue_expired(now=clock.advance(minutes=2))
        assert not job_store.mark_completed(job.id, now=clock.now)

    def test_purge_removes_rows_past_retention(self, job_store, clock):
        done = job_store.create(_job("r1", start_after=clock.now))
        job_store.lease(JobType.RENDER_EPISODE, timedelta(minutes=1), now=clock.now)
        job_store.mark_completed(done.id, now=clock.now)
        kept = job_store.create(
            Job(
                id=new_job_id(),
                name=JobType.GENERATE_EPISODE,
                payload=GenerateEpisodePayload(episode_id="e1"),
                remove_on_complete=None,
                start_after=clock.now,
            )
        )
        job_store.lease(JobType.GENERATE_EPISODE, timedelta(minutes=1), now=clock.now)
        job_store.mark_completed(kept.id, now=clock.now)

        assert job_store.purge(now=clock.advance(minutes=5)) == 0
        assert job_store.purge(now=clock.advance(minutes=6)) == 1
        assert job_store.get(done.id) is None
        assert job_store.get(kept.id) is not None
