"""In-memory content store (development and tests)."""

from __future__ import annotations

import threading
import uuid
from datetime import datetime
from typing import Any

from vidforge.schemas.models import (
    Brand,
    Episode,
    EpisodeScript,
    EpisodeStatus,
    PublishRecord,
    Render,
    RenderStatus,
    Scene,
    Schedule,
    Series,
)


class MemoryContentStore:
    def __init__(self) -> None:
        self.brands: dict[str, Brand] = {}
        self.series: dict[str, Series] = {}
        self.episodes: dict[str, Episode] = {}
        self.scenes: dict[str, list[Scene]] = {}
        self.renders: dict[str, Render] = {}
        self.schedules: dict[str, Schedule] = {}
        self.publish_records: list[PublishRecord] = []
        self.social_accounts: dict[tuple[str, str], dict[str, Any]] = {}
        self._lock = threading.Lock()

    # ── seeding ──────────────────────────────────────────────────────────

    def add(self, *items: Brand | Series | Episode | Scene | Render | Schedule) -> None:
        with self._lock:
            for item in items:
                if isinstance(item, Brand):
                    self.brands[item.id] = item
                elif isinstance(item, Series):
                    self.series[item.id] = item
                elif isinstance(item, Episode):
                    self.episodes[item.id] = item
                elif isinstance(item, Scene):
                    self.scenes.setdefault(item.episode_id, []).append(item)
                elif isinstance(item, Render):
                    self.renders[item.id] = item
                elif isinstance(item, Schedule):
                    self.schedules[item.id] = item
                else:
                    raise TypeError(f"Unsupported record: {type(item).__name__}")

    def add_social_account(self, user_id: str, platform: str, oauth: dict[str, Any]) -> None:
        self.social_accounts[(user_id, platform)] = oauth

    # ── renders ──────────────────────────────────────────────────────────

    def get_render(self, render_id: str) -> Render | None:
        render = self.renders.get(render_id)
        return render.model_copy() if render else None

    def list_renders(self, episode_id: str) -> list[Render]:
        renders = [r for r in self.renders.values() if r.episode_id == episode_id]
        return sorted(renders, key=lambda r: r.created_at, reverse=True)

    def update_render(
        self,
        render_id: str,
        status: RenderStatus,
        *,
        url: str | None = None,
        size_mb: float | None = None,
        bitrate: int | None = None,
        preset: str | None = None,
    ) -> None:
        with self._lock:
            render = self.renders.get(render_id)
            if render is None:
                return
            render.status = status
            if url is not None:
                render.url = url
            if size_mb is not None:
                render.size_mb = size_mb
            if bitrate is not None:
                render.bitrate = bitrate
            if preset is not None:
                render.preset = preset

    # ── episodes / series / scenes ───────────────────────────────────────

    def get_episode(self, episode_id: str) -> Episode | None:
        episode = self.episodes.get(episode_id)
        return episode.model_copy() if episode else None

    def list_episodes(self, series_id: str) -> list[Episode]:
        return [e for e in self.episodes.values() if e.series_id == series_id]

    def update_episode(
        self,
        episode_id: str,
        status: EpisodeStatus,
        *,
        script: EpisodeScript | None = None,
    ) -> None:
        with self._lock:
            episode = self.episodes.get(episode_id)
            if episode is None:
                return
            episode.status = status
            if script is not None:
                episode.script = script

    def get_series(self, series_id: str) -> Series | None:
        return self.series.get(series_id)

    def get_owner_id(self, series: Series) -> str | None:
        brand = self.brands.get(series.brand_id)
        return brand.user_id if brand else None

    def list_scenes(self, episode_id: str) -> list[Scene]:
        return sorted(self.scenes.get(episode_id, []), key=lambda s: s.idx)

    # ── schedules / publishing ───────────────────────────────────────────

    def list_schedules(self) -> list[Schedule]:
        return list(self.schedules.values())

    def count_publish_records(self, platform: str, since: datetime) -> int:
        return sum(
            1 for r in self.publish_records
            if r.platform == platform and r.created_at >= since
        )

    def record_publish(self, record: PublishRecord) -> str:
        with self._lock:
            if not record.id:
                record = record.model_copy(update={"id": f"pub_{uuid.uuid4().hex[:16]}"})
            self.publish_records.append(record)
        return record.id

    def get_social_account(self, user_id: str, platform: str) -> dict[str, Any] | None:
        return self.social_accounts.get((user_id, platform))
