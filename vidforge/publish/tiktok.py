"""TikTok Content Posting API, direct post with the video pulled from the render URL."""

from __future__ import annotations

import logging

import httpx

from vidforge.errors import PublishError
from vidforge.jobs.models import Platform
from vidforge.publish.base import PublishOptions, RateLimit, check_response, require_credential

logger = logging.getLogger(__name__)

INIT_URL = "https://open.tiktokapis.com/v2/post/publish/video/init/"

_PRIVACY = {
    "public": "PUBLIC_TO_EVERYONE",
    "unlisted": "MUTUAL_FOLLOW_FRIENDS",
    "private": "SELF_ONLY",
}


class TikTokAdapter:
    platform = Platform.TIKTOK

    def __init__(self, limits: RateLimit = RateLimit(10), client: httpx.Client | None = None):
        self.limits = limits
        self._client = client or httpx.Client(timeout=60.0)

    def upload(self, render_url: str, title: str, description: str, options: PublishOptions) -> str:
        access_token = require_credential(options, "access_token", self.platform)
        caption = " ".join(p for p in (title, description, *(f"#{t}" for t in options.tags)) if p)
        response = self._client.post(
            INIT_URL,
            headers={"Authorization": f"Bearer {access_token}"},
            json={
                "post_info": {
                    "title": caption[:2200],
                    "privacy_level": _PRIVACY.get(options.visibility, "SELF_ONLY"),
                },
                "source_info": {"source": "PULL_FROM_URL", "video_url": render_url},
            },
        )
        check_response(response, "TikTok publish init")
        body = response.json()
        error = body.get("error") or {}
        if error.get("code") not in (None, "ok"):
            raise PublishError(f"TikTok publish init failed: {error.get('code')} {error.get('message', '')}")
        publish_id = (body.get("data") or {}).get("publish_id")
        if not publish_id:
            raise PublishError("TikTok returned no publish_id")
        logger.info("TikTok publish started: %s", publish_id)
        return publish_id
