"""Job schema, state machine and typed payloads."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobType(str, Enum):
    GENERATE_EPISODE = "generate-episode"
    RENDER_EPISODE = "render-episode"
    PUBLISH_VIDEO = "publish-video"


class JobState(str, Enum):
    CREATED = "created"
    RETRY = "retry"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.CANCELLED, JobState.FAILED)


# States that hold a singleton key
NON_TERMINAL_STATES = (JobState.CREATED, JobState.RETRY, JobState.ACTIVE)
# States a worker may lease from
LEASABLE_STATES = (JobState.CREATED, JobState.RETRY)


class Platform(str, Enum):
    YOUTUBE = "youtube"
    TIKTOK = "tiktok"
    INSTAGRAM = "instagram"
    TWITTER = "twitter"


# ---------------------------------------------------------------------------
# Payloads: closed tagged union keyed on ``kind``
# ---------------------------------------------------------------------------

class GenerateEpisodePayload(BaseModel):
    kind: Literal["generate-episode"] = "generate-episode"
    episode_id: str


class RenderEpisodePayload(BaseModel):
    kind: Literal["render-episode"] = "render-episode"
    render_id: str


class PublishVideoPayload(BaseModel):
    kind: Literal["publish-video"] = "publish-video"
    episode_id: str
    platform: Platform
    scheduled: bool = False
    schedule_id: str | None = None
    series_id: str | None = None


JobPayload = Annotated[
    Union[GenerateEpisodePayload, RenderEpisodePayload, PublishVideoPayload],
    Field(discriminator="kind"),
]

_payload_adapter: TypeAdapter[Any] = TypeAdapter(JobPayload)


def parse_payload(data: dict[str, Any]) -> GenerateEpisodePayload | RenderEpisodePayload | PublishVideoPayload:
    """Validate a stored payload dict back into its variant."""
    return _payload_adapter.validate_python(data)


def job_type_of(payload: GenerateEpisodePayload | RenderEpisodePayload | PublishVideoPayload) -> JobType:
    return JobType(payload.kind)


# ---------------------------------------------------------------------------
# Options & job record
# ---------------------------------------------------------------------------

class JobOptions(BaseModel):
    """Per-submission retry / retention / dedup policy."""

    retry_limit: int = Field(default=3, ge=0)
    retry_delay: timedelta = timedelta(seconds=30)
    retry_backoff: bool = True
    # None keeps the row forever
    remove_on_complete: timedelta | None = timedelta(minutes=10)
    remove_on_fail: timedelta | None = timedelta(hours=1)
    singleton_key: str | None = None
    start_after: datetime | None = None


class Job(BaseModel):
    """One durable unit of work tracked through the state machine."""

    id: str
    name: JobType
    payload: JobPayload
    state: JobState = JobState.CREATED
    retry_count: int = 0
    retry_limit: int = 3
    retry_delay: timedelta = timedelta(seconds=30)
    retry_backoff: bool = True
    remove_on_complete: timedelta | None = timedelta(minutes=10)
    remove_on_fail: timedelta | None = timedelta(hours=1)
    singleton_key: str | None = None
    start_after: datetime = Field(default_factory=utcnow)
    lease_expires_at: datetime | None = None
    keep_until: datetime | None = None
    last_error: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    started_at: datetime | None = None
    completed_at: datetime | None = None


def next_retry_delay(job: Job, retry_count: int) -> timedelta:
    """Delay before attempt number ``retry_count`` (1 for the first retry).

    With backoff the delay doubles per attempt: delay, 2×delay, 4×delay, ...
    """
    if not job.retry_backoff or retry_count <= 1:
        return job.retry_delay
    return job.retry_delay * (2 ** (retry_count - 1))


class JobLogEntry(BaseModel):
    """Structured progress entry appended to the job log sink."""

    job_id: str
    queue_name: str
    message: str
    progress: int | None = Field(default=None, ge=0, le=100)
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
