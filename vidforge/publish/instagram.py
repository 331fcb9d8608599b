"""Instagram Graph API reels: create container → poll until processed → publish."""

from __future__ import annotations

import logging
import time
from typing import Callable

import httpx

from vidforge.errors import PublishError
from vidforge.jobs.models import Platform
from vidforge.publish.base import PublishOptions, RateLimit, check_response, require_credential

logger = logging.getLogger(__name__)

GRAPH_URL = "https://graph.facebook.com/v19.0"


class InstagramAdapter:
    platform = Platform.INSTAGRAM

    def __init__(
        self,
        limits: RateLimit = RateLimit(25),
        client: httpx.Client | None = None,
        poll_interval: float = 5.0,
        max_polls: int = 60,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.limits = limits
        self._client = client or httpx.Client(timeout=60.0)
        self._poll_interval = poll_interval
        self._max_polls = max_polls
        self._sleep = sleep

    def upload(self, render_url: str, title: str, description: str, options: PublishOptions) -> str:
        access_token = require_credential(options, "access_token", self.platform)
        account_id = require_credential(options, "account_id", self.platform)
        caption = "\n\n".join(p for p in (title, description) if p)
        if options.tags:
            caption += "\n\n" + " ".join(f"#{t}" for t in options.tags)

        response = self._client.post(
            f"{GRAPH_URL}/{account_id}/media",
            data={
                "media_type": "REELS",
                "video_url": render_url,
                "caption": caption,
                "access_token": access_token,
            },
        )
        container_id = check_response(response, "Instagram container create").json()["id"]
        self._wait_until_ready(container_id, access_token)

        response = self._client.post(
            f"{GRAPH_URL}/{account_id}/media_publish",
            data={"creation_id": container_id, "access_token": access_token},
        )
        post_id = check_response(response, "Instagram publish").json()["id"]
        logger.info("Published Instagram reel %s", post_id)
        return post_id

    def _wait_until_ready(self, container_id: str, access_token: str) -> None:
        for _ in range(self._max_polls):
            response = self._client.get(
                f"{GRAPH_URL}/{container_id}",
                params={"fields": "status_code", "access_token": access_token},
            )
            status = check_response(response, "Instagram container status").json().get("status_code")
            if status == "FINISHED":
                return
            if status in ("ERROR", "EXPIRED"):
                raise PublishError(f"Instagram container {container_id} processing {status}")
            self._sleep(self._poll_interval)
        raise PublishError(f"Instagram container {container_id} not ready after {self._max_polls} polls")
