"""Job producers: typed submission with per-type retry policy and dedup keys."""

from __future__ import annotations

import logging
from datetime import timedelta

from vidforge.config import Settings
from vidforge.jobs.models import (
    GenerateEpisodePayload,
    Job,
    JobOptions,
    JobType,
    Platform,
    PublishVideoPayload,
    RenderEpisodePayload,
    job_type_of,
)
from vidforge.jobs.queue import QueueClient
from vidforge.jobs.store import new_job_id

logger = logging.getLogger(__name__)

AnyPayload = GenerateEpisodePayload | RenderEpisodePayload | PublishVideoPayload


def default_job_options(settings: Settings | None = None) -> dict[JobType, JobOptions]:
    """Per-type defaults.

    Generation is cheap to retry, publishing is not (a retried upload that
    actually landed the first time posts twice); rendering uses the baseline.
    """
    if settings is None:
        base = JobOptions()
        generate_limit, publish_limit = 5, 2
    else:
        base = JobOptions(
            retry_limit=settings.job_retry_limit,
            retry_delay=timedelta(seconds=settings.job_retry_delay),
            retry_backoff=settings.job_retry_backoff,
            remove_on_complete=(
                timedelta(seconds=settings.job_remove_on_complete)
                if settings.job_remove_on_complete is not None else None
            ),
            remove_on_fail=(
                timedelta(seconds=settings.job_remove_on_fail)
                if settings.job_remove_on_fail is not None else None
            ),
        )
        generate_limit, publish_limit = settings.generate_retry_limit, settings.publish_retry_limit
    return {
        JobType.GENERATE_EPISODE: base.model_copy(update={"retry_limit": generate_limit}),
        JobType.RENDER_EPISODE: base.model_copy(),
        JobType.PUBLISH_VIDEO: base.model_copy(update={"retry_limit": publish_limit}),
    }


def singleton_key_for(payload: AnyPayload) -> str:
    match payload:
        case GenerateEpisodePayload(episode_id=episode_id):
            return f"generate-episode-{episode_id}"
        case RenderEpisodePayload(render_id=render_id):
            return f"render-episode-{render_id}"
        case PublishVideoPayload(episode_id=episode_id, platform=platform):
            return f"publish-video-{episode_id}-{platform.value}"
    raise TypeError(f"Unknown payload type: {type(payload).__name__}")


class JobProducer:
    def __init__(self, queue: QueueClient, defaults: dict[JobType, JobOptions] | None = None):
        self._queue = queue
        self._defaults = defaults or default_job_options()

    def options_for(self, job_type: JobType) -> JobOptions:
        return self._defaults[job_type].model_copy()

    def enqueue(self, payload: AnyPayload, options: JobOptions | None = None) -> str:
        """Persist a new job and return its id.

        If a non-terminal job with the same singleton key exists, no row is
        created and the existing job's id is returned.
        """
        job_type = job_type_of(payload)
        opts = options or self.options_for(job_type)
        job = Job(
            id=new_job_id(),
            name=job_type,
            payload=payload,
            retry_limit=opts.retry_limit,
            retry_delay=opts.retry_delay,
            retry_backoff=opts.retry_backoff,
            remove_on_complete=opts.remove_on_complete,
            remove_on_fail=opts.remove_on_fail,
            singleton_key=opts.singleton_key,
        )
        if opts.start_after is not None:
            job.start_after = opts.start_after
        stored = self._queue.store.create(job)
        if stored.id == job.id:
            logger.info("Created %s job: %s", job_type.value, stored.id)
        return stored.id

    def _enqueue_singleton(self, payload: AnyPayload) -> str:
        opts = self.options_for(job_type_of(payload))
        opts.singleton_key = singleton_key_for(payload)
        return self.enqueue(payload, opts)

    def create_generate_episode_job(self, episode_id: str) -> str:
        return self._enqueue_singleton(GenerateEpisodePayload(episode_id=episode_id))

    def create_render_episode_job(self, render_id: str) -> str:
        return self._enqueue_singleton(RenderEpisodePayload(render_id=render_id))

    def create_publish_video_job(
        self,
        episode_id: str,
        platform: Platform | str,
        *,
        scheduled: bool = False,
        schedule_id: str | None = None,
        series_id: str | None = None,
    ) -> str:
        payload = PublishVideoPayload(
            episode_id=episode_id,
            platform=Platform(platform),
            scheduled=scheduled,
            schedule_id=schedule_id,
            series_id=series_id,
        )
        return self._enqueue_singleton(payload)
