"""Durable job queue: storage, producers and the worker runtime."""

from vidforge.jobs.models import (
    GenerateEpisodePayload,
    Job,
    JobOptions,
    JobState,
    JobType,
    Platform,
    PublishVideoPayload,
    RenderEpisodePayload,
)
from vidforge.jobs.producer import JobProducer, default_job_options
from vidforge.jobs.queue import QueueClient
from vidforge.jobs.store import JobStore, MemoryJobStore, PostgresJobStore, get_job_store, new_job_id
from vidforge.jobs.worker import JobContext, Worker

__all__ = [
    "GenerateEpisodePayload",
    "Job",
    "JobContext",
    "JobOptions",
    "JobProducer",
    "JobState",
    "JobStore",
    "JobType",
    "MemoryJobStore",
    "Platform",
    "PostgresJobStore",
    "PublishVideoPayload",
    "QueueClient",
    "RenderEpisodePayload",
    "Worker",
    "default_job_options",
    "get_job_store",
    "new_job_id",
]
