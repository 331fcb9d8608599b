"""Platform publishing: adapters per platform and the publish-video handler."""

from __future__ import annotations

from vidforge.config import Settings
from vidforge.jobs.models import Platform
from vidforge.publish.base import PublishAdapter, PublishOptions, RateLimit
from vidforge.publish.handler import PublishHandler
from vidforge.publish.instagram import InstagramAdapter
from vidforge.publish.tiktok import TikTokAdapter
from vidforge.publish.twitter import TwitterAdapter
from vidforge.publish.youtube import YouTubeAdapter


def build_adapters(settings: Settings) -> dict[Platform, PublishAdapter]:
    return {
        Platform.YOUTUBE: YouTubeAdapter(RateLimit(settings.youtube_daily_limit)),
        Platform.TIKTOK: TikTokAdapter(RateLimit(settings.tiktok_daily_limit)),
        Platform.INSTAGRAM: InstagramAdapter(RateLimit(settings.instagram_daily_limit)),
        Platform.TWITTER: TwitterAdapter(RateLimit(settings.twitter_daily_limit)),
    }


def youtube_credentials(settings: Settings) -> dict[str, str] | None:
    """Channel-level OAuth credentials, or None if not fully configured."""
    creds = {
        "client_id": settings.youtube_client_id,
        "client_secret": settings.youtube_client_secret,
        "refresh_token": settings.youtube_refresh_token,
    }
    return creds if all(creds.values()) else None


__all__ = [
    "InstagramAdapter",
    "PublishAdapter",
    "PublishHandler",
    "PublishOptions",
    "RateLimit",
    "TikTokAdapter",
    "TwitterAdapter",
    "YouTubeAdapter",
    "build_adapters",
    "youtube_credentials",
]
