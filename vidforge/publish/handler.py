"""publish-video handler: rate-limit check, latest render lookup, platform upload, publish record."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Mapping

from vidforge.errors import AccountNotConnected, RateLimitExceeded, RenderNotReady, UnsupportedPlatform
from vidforge.jobs.models import Platform, PublishVideoPayload, utcnow
from vidforge.jobs.worker import JobContext
from vidforge.publish.base import PublishAdapter, PublishOptions
from vidforge.schemas.models import Episode, PublishRecord
from vidforge.store.base import ContentStore, latest_publishable_render, resolve_episode_owner

logger = logging.getLogger(__name__)


class PublishHandler:
    def __init__(
        self,
        store: ContentStore,
        adapters: Mapping[Platform, PublishAdapter],
        *,
        youtube_credentials: dict[str, Any] | None = None,
        visibility: str = "private",
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.adapters = dict(adapters)
        self.youtube_credentials = youtube_credentials
        self.visibility = visibility
        self._clock = clock

    def __call__(self, payload: PublishVideoPayload, ctx: JobContext) -> None:
        platform = payload.platform
        ctx.progress(f"Starting video publish to {platform.value}", 0, episode_id=payload.episode_id)
        episode, series, user_id = resolve_episode_owner(self.store, payload.episode_id)

        adapter = self.adapters.get(platform)
        if adapter is None:
            raise UnsupportedPlatform(f"Unsupported platform: {platform.value}")

        self.check_rate_limit(adapter)

        render = latest_publishable_render(self.store, episode.id)
        if render is None:
            raise RenderNotReady(f"No completed render found for episode {episode.id}")

        options = PublishOptions(
            tags=[t for t in (series.title,) if t],
            visibility=self.visibility,
            credentials=self._credentials(platform, user_id),
        )
        ctx.progress(f"Publishing to {platform.value}...", 50, render_id=render.id)
        external_id = adapter.upload(render.url, episode.title, self._description(episode), options)

        record_id = self.store.record_publish(
            PublishRecord(
                episode_id=episode.id,
                platform=platform.value,
                video_id=external_id,
                created_at=self._clock(),
            )
        )
        ctx.progress(
            f"Video published successfully to {platform.value}",
            100,
            video_id=external_id,
            record_id=record_id,
            scheduled=payload.scheduled,
        )
        logger.info("Published episode %s to %s as %s", episode.id, platform.value, external_id)

    def check_rate_limit(self, adapter: PublishAdapter) -> None:
        since = self._clock() - adapter.limits.window
        count = self.store.count_publish_records(adapter.platform.value, since)
        if count >= adapter.limits.ceiling:
            raise RateLimitExceeded(adapter.platform.value, count, adapter.limits.ceiling)

    def _credentials(self, platform: Platform, user_id: str) -> dict[str, Any]:
        if platform == Platform.YOUTUBE and self.youtube_credentials:
            return dict(self.youtube_credentials)
        oauth = self.store.get_social_account(user_id, platform.value)
        if not oauth:
            raise AccountNotConnected(
                f"{platform.value} account not connected for user {user_id}"
            )
        return oauth

    @staticmethod
    def _description(episode: Episode) -> str:
        if episode.script and episode.script.call_to_action:
            return episode.script.call_to_action
        return episode.topic
