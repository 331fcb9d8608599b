"""X/Twitter: chunked media upload (INIT/APPEND/FINALIZE/STATUS), then a post carrying the media."""

from __future__ import annotations

import logging
import time
from typing import Callable

import httpx

from vidforge.errors import PublishError
from vidforge.jobs.models import Platform
from vidforge.publish.base import (
    PublishOptions,
    RateLimit,
    check_response,
    fetch_video,
    require_credential,
)

logger = logging.getLogger(__name__)

MEDIA_UPLOAD_URL = "https://upload.twitter.com/1.1/media/upload.json"
TWEETS_URL = "https://api.twitter.com/2/tweets"
CHUNK_SIZE = 4 * 1024 * 1024


class TwitterAdapter:
    platform = Platform.TWITTER

    def __init__(
        self,
        limits: RateLimit = RateLimit(50),
        client: httpx.Client | None = None,
        max_polls: int = 60,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.limits = limits
        self._client = client or httpx.Client(timeout=120.0)
        self._max_polls = max_polls
        self._sleep = sleep

    def upload(self, render_url: str, title: str, description: str, options: PublishOptions) -> str:
        access_token = require_credential(options, "access_token", self.platform)
        auth = {"Authorization": f"Bearer {access_token}"}
        video = fetch_video(self._client, render_url)
        media_id = self._upload_media(video, auth)

        text = " ".join(p for p in (title, description, *(f"#{t}" for t in options.tags)) if p)
        response = self._client.post(
            TWEETS_URL,
            headers=auth,
            json={"text": text[:280], "media": {"media_ids": [media_id]}},
        )
        tweet_id = check_response(response, "Tweet create").json()["data"]["id"]
        logger.info("Posted tweet %s with media %s", tweet_id, media_id)
        return tweet_id

    def _upload_media(self, video: bytes, auth: dict[str, str]) -> str:
        response = self._client.post(
            MEDIA_UPLOAD_URL,
            headers=auth,
            data={
                "command": "INIT",
                "total_bytes": str(len(video)),
                "media_type": "video/mp4",
                "media_category": "tweet_video",
            },
        )
        media_id = check_response(response, "Media upload INIT").json()["media_id_string"]

        for index, start in enumerate(range(0, len(video), CHUNK_SIZE)):
            response = self._client.post(
                MEDIA_UPLOAD_URL,
                headers=auth,
                data={"command": "APPEND", "media_id": media_id, "segment_index": str(index)},
                files={"media": ("chunk", video[start:start + CHUNK_SIZE], "application/octet-stream")},
            )
            check_response(response, f"Media upload APPEND {index}")

        response = self._client.post(
            MEDIA_UPLOAD_URL,
            headers=auth,
            data={"command": "FINALIZE", "media_id": media_id},
        )
        info = check_response(response, "Media upload FINALIZE").json().get("processing_info")
        self._wait_for_processing(media_id, info, auth)
        return media_id

    def _wait_for_processing(self, media_id: str, info: dict | None, auth: dict[str, str]) -> None:
        for _ in range(self._max_polls):
            if not info or info.get("state") == "succeeded":
                return
            if info.get("state") == "failed":
                raise PublishError(f"Media {media_id} processing failed: {info.get('error')}")
            self._sleep(float(info.get("check_after_secs", 5)))
            response = self._client.get(
                MEDIA_UPLOAD_URL,
                headers=auth,
                params={"command": "STATUS", "media_id": media_id},
            )
            info = check_response(response, "Media upload STATUS").json().get("processing_info")
        raise PublishError(f"Media {media_id} still processing after {self._max_polls} polls")
