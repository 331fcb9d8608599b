"""Pydantic models: single source of truth for all data shapes."""

from vidforge.schemas.models import (
    PUBLISH_READY_STATUSES,
    Brand,
    Episode,
    EpisodeScript,
    EpisodeStatus,
    PublishRecord,
    Render,
    RenderContext,
    RenderStatus,
    Scene,
    SceneType,
    Schedule,
    ScriptSection,
    Series,
    SeriesStatus,
    SocialAccount,
)

__all__ = [
    "PUBLISH_READY_STATUSES",
    "Brand",
    "Episode",
    "EpisodeScript",
    "EpisodeStatus",
    "PublishRecord",
    "Render",
    "RenderContext",
    "RenderStatus",
    "Scene",
    "SceneType",
    "Schedule",
    "ScriptSection",
    "Series",
    "SeriesStatus",
    "SocialAccount",
]
