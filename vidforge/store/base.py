"""Content data store interface (Protocol) and lookups shared by handlers."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from vidforge.errors import OwnershipError, RecordNotFound
from vidforge.schemas.models import (
    Episode,
    EpisodeScript,
    EpisodeStatus,
    PublishRecord,
    Render,
    RenderContext,
    RenderStatus,
    Scene,
    Schedule,
    Series,
)


@runtime_checkable
class ContentStore(Protocol):
    """
    Row-level access to the tables the pipeline reads and writes.

    Episodes, series and scenes are written by the (external) CRUD layer;
    the pipeline only updates render status, episode generation status and
    appends publish records.
    """

    def get_render(self, render_id: str) -> Render | None: ...
    def list_renders(self, episode_id: str) -> list[Render]:
        """Renders for an episode, newest first."""
        ...
    def update_render(
        self,
        render_id: str,
        status: RenderStatus,
        *,
        url: str | None = None,
        size_mb: float | None = None,
        bitrate: int | None = None,
        preset: str | None = None,
    ) -> None: ...

    def get_episode(self, episode_id: str) -> Episode | None: ...
    def list_episodes(self, series_id: str) -> list[Episode]: ...
    def update_episode(
        self,
        episode_id: str,
        status: EpisodeStatus,
        *,
        script: EpisodeScript | None = None,
    ) -> None: ...

    def get_series(self, series_id: str) -> Series | None: ...
    def get_owner_id(self, series: Series) -> str | None:
        """Series → brand → user id."""
        ...
    def list_scenes(self, episode_id: str) -> list[Scene]:
        """Scenes ordered by sequence index."""
        ...

    def list_schedules(self) -> list[Schedule]: ...

    def count_publish_records(self, platform: str, since: datetime) -> int: ...
    def record_publish(self, record: PublishRecord) -> str: ...
    def get_social_account(self, user_id: str, platform: str) -> dict[str, Any] | None: ...


def resolve_episode_owner(store: ContentStore, episode_id: str) -> tuple[Episode, Series, str]:
    """Episode, its series and the owning user id. Raises permanent errors."""
    episode = store.get_episode(episode_id)
    if episode is None:
        raise RecordNotFound("Episode", episode_id)
    series = store.get_series(episode.series_id)
    if series is None:
        raise OwnershipError(f"Series {episode.series_id} not found for episode {episode_id}")
    user_id = store.get_owner_id(series)
    if not user_id:
        raise OwnershipError(f"User ID not found for episode {episode_id}")
    return episode, series, user_id


def resolve_render_context(store: ContentStore, render_id: str) -> RenderContext:
    render = store.get_render(render_id)
    if render is None:
        raise RecordNotFound("Render", render_id)
    episode, series, user_id = resolve_episode_owner(store, render.episode_id)
    return RenderContext(
        render=render,
        episode=episode,
        series=series,
        user_id=user_id,
        scenes=sorted(store.list_scenes(episode.id), key=lambda s: s.idx),
    )


def latest_publishable_render(store: ContentStore, episode_id: str) -> Render | None:
    """Newest render with status completed and a non-null url."""
    for render in store.list_renders(episode_id):
        if render.publishable:
            return render
    return None
