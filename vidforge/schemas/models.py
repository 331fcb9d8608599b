"""Pydantic models: single source of truth for Series, Episode, Scene, Render, Schedule, publish records."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SeriesStatus(str, Enum):
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    DISABLED = "DISABLED"


class EpisodeStatus(str, Enum):
    DRAFT = "DRAFT"
    GENERATING = "GENERATING"
    GENERATED = "GENERATED"
    RENDERED = "RENDERED"
    COMPLETED = "COMPLETED"
    PUBLISHED = "PUBLISHED"
    FAILED = "FAILED"


# Episode statuses the scheduler treats as ready to publish
PUBLISH_READY_STATUSES = (EpisodeStatus.COMPLETED, EpisodeStatus.RENDERED)


class RenderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class SceneType(str, Enum):
    VISUAL = "visual"
    AUDIO = "audio"
    TEXT = "text"


class Brand(BaseModel):
    id: str
    user_id: str
    name: str = ""


class Series(BaseModel):
    id: str
    brand_id: str
    title: str = ""
    topic: str = ""
    status: SeriesStatus = SeriesStatus.ACTIVE


class ScriptSection(BaseModel):
    """One timed block of a generated script."""

    start_time: str = "0:00"
    duration: float = 0
    content: str = ""
    visual: str = ""
    voice_over: str = ""


class EpisodeScript(BaseModel):
    """Structured output of the content-generation provider."""

    script_sections: list[ScriptSection] = Field(default_factory=list)
    key_points: list[str] = Field(default_factory=list)
    call_to_action: str = ""
    estimated_duration: float = 0
    speaking_notes: list[str] = Field(default_factory=list)


class Episode(BaseModel):
    id: str
    series_id: str
    title: str = ""
    topic: str = ""
    duration: int = 60  # target seconds
    status: EpisodeStatus = EpisodeStatus.DRAFT
    script: EpisodeScript | None = None
    created_at: datetime = Field(default_factory=_now)


class Scene(BaseModel):
    """One ordered segment of an episode timeline."""

    id: str
    episode_id: str
    idx: int
    start_time: float = 0.0  # seconds
    end_time: float = 0.0
    type: SceneType = SceneType.VISUAL
    src: str  # object path in the assets bucket
    pan_zoom: str | None = None  # ffmpeg filter chain applied verbatim

    @property
    def duration(self) -> float:
        return max(0.0, self.end_time - self.start_time)


class Render(BaseModel):
    id: str
    episode_id: str
    status: RenderStatus = RenderStatus.PENDING
    url: str | None = None
    preset: str | None = None
    bitrate: int | None = None  # bits/s
    size_mb: float | None = None
    created_at: datetime = Field(default_factory=_now)

    @property
    def publishable(self) -> bool:
        return self.status == RenderStatus.COMPLETED and bool(self.url)


class Schedule(BaseModel):
    id: str
    series_id: str
    cron_expr: str
    timezone: str = "UTC"
    platforms: list[str] = Field(default_factory=lambda: ["youtube"])


class PublishRecord(BaseModel):
    """A completed publish event (the analytics row)."""

    id: str = ""
    episode_id: str
    platform: str
    video_id: str
    created_at: datetime = Field(default_factory=_now)


class SocialAccount(BaseModel):
    user_id: str
    platform: str
    oauth: dict[str, Any] = Field(default_factory=dict)


class RenderContext(BaseModel):
    """A render with its resolved ownership chain and ordered scenes."""

    render: Render
    episode: Episode
    series: Series
    user_id: str
    scenes: list[Scene] = Field(default_factory=list)
