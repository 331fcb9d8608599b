"""Wire settings into a queue client, producer, handlers and worker."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta

from vidforge.config import Settings
from vidforge.generate import GenerateHandler
from vidforge.jobs.models import JobType
from vidforge.jobs.producer import JobProducer, default_job_options
from vidforge.jobs.progress import JobLogSink, LoggingJobLogSink, PostgresJobLogSink
from vidforge.jobs.queue import QueueClient
from vidforge.jobs.store import get_job_store
from vidforge.jobs.worker import Worker
from vidforge.llm import get_provider_from_settings
from vidforge.publish import PublishHandler, build_adapters, youtube_credentials
from vidforge.render import EncodingProfile, FFmpegTranscoder, RenderHandler
from vidforge.scheduler import SchedulerEvaluator
from vidforge.storage import get_object_storage
from vidforge.store import ContentStore, get_content_store

logger = logging.getLogger(__name__)


def build_queue(settings: Settings) -> QueueClient:
    store = get_job_store(settings.vidforge_database_url, schema=settings.vidforge_jobs_schema)
    sink: JobLogSink
    if settings.vidforge_database_url:
        sink = PostgresJobLogSink(settings.vidforge_database_url, schema=settings.vidforge_jobs_schema)
    else:
        sink = LoggingJobLogSink()
    return QueueClient(store, log_sink=sink)


def build_producer(settings: Settings, queue: QueueClient) -> JobProducer:
    return JobProducer(queue, defaults=default_job_options(settings))


def build_worker(
    settings: Settings,
    queue: QueueClient,
    content: ContentStore,
    job_types: list[JobType] | None = None,
) -> Worker:
    """Worker with a handler registered for each of *job_types* (default: all)."""
    job_types = job_types or list(JobType)
    worker = Worker(
        queue,
        lease_for=timedelta(seconds=settings.worker_lease_seconds),
        maintenance_interval=settings.worker_maintenance_interval,
    )
    poll = settings.worker_poll_interval

    if JobType.GENERATE_EPISODE in job_types:
        handler = GenerateHandler(content, get_provider_from_settings(settings))
        worker.register_handler(JobType.GENERATE_EPISODE, handler, settings.generate_concurrency, poll)

    if JobType.RENDER_EPISODE in job_types:
        transcoder = FFmpegTranscoder(
            settings.ffmpeg_path,
            settings.ffprobe_path,
            EncodingProfile.from_settings(settings),
        )
        handler = RenderHandler(
            content,
            get_object_storage(settings),
            transcoder,
            settings.scratch_dir,
            signed_url_ttl=settings.signed_url_ttl_seconds,
            download_concurrency=settings.download_concurrency,
            subtitle_font=settings.render_subtitle_font,
            subtitle_size=settings.render_subtitle_size,
            preset=settings.render_preset,
        )
        worker.register_handler(JobType.RENDER_EPISODE, handler, settings.render_concurrency, poll)

    if JobType.PUBLISH_VIDEO in job_types:
        handler = PublishHandler(
            content,
            build_adapters(settings),
            youtube_credentials=youtube_credentials(settings),
        )
        worker.register_handler(JobType.PUBLISH_VIDEO, handler, settings.publish_concurrency, poll)

    return worker


def build_scheduler(settings: Settings, content: ContentStore, producer: JobProducer) -> SchedulerEvaluator:
    return SchedulerEvaluator(content, producer, default_platforms=settings.default_platforms)


@dataclass
class Runtime:
    """Everything a process needs, built once from settings."""

    settings: Settings
    queue: QueueClient
    content: ContentStore
    producer: JobProducer

    @classmethod
    def from_settings(cls, settings: Settings) -> "Runtime":
        queue = build_queue(settings).init()
        return cls(
            settings=settings,
            queue=queue,
            content=get_content_store(settings),
            producer=build_producer(settings, queue),
        )

    def worker(self, job_types: list[JobType] | None = None) -> Worker:
        return build_worker(self.settings, self.queue, self.content, job_types)

    def scheduler(self) -> SchedulerEvaluator:
        return build_scheduler(self.settings, self.content, self.producer)

    def close(self) -> None:
        self.queue.shutdown()
        close = getattr(self.content, "close", None)
        if close is not None:
            close()
