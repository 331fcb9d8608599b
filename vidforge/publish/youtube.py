"""YouTube Data API v3: OAuth refresh, then resumable upload in 256 KiB chunks."""

from __future__ import annotations

import logging

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

TOKEN_URL = "https://oauth2.googleapis.com/token"
UPLOAD_URL = "https://www.googleapis.com/upload/youtube/v3/videos"
CHUNK_SIZE = 256 * 1024
MAX_STALLS = 5


class YouTubeAdapter:
    platform = Platform.YOUTUBE

    def __init__(self, limits: RateLimit = RateLimit(6), client: httpx.Client | None = None):
        self.limits = limits
        self._client = client or httpx.Client(timeout=120.0)

    def upload(self, render_url: str, title: str, description: str, options: PublishOptions) -> str:
        access_token = self._access_token(options)
        video = fetch_video(self._client, render_url)
        upload_url = self._init_upload(access_token, title, description, options, len(video))
        video_id = self._upload_chunks(upload_url, video)
        logger.info("Uploaded YouTube video %s (%d bytes)", video_id, len(video))
        return video_id

    def _access_token(self, options: PublishOptions) -> str:
        response = self._client.post(
            TOKEN_URL,
            data={
                "client_id": require_credential(options, "client_id", self.platform),
                "client_secret": require_credential(options, "client_secret", self.platform),
                "refresh_token": require_credential(options, "refresh_token", self.platform),
                "grant_type": "refresh_token",
            },
        )
        check_response(response, "YouTube token refresh")
        return response.json()["access_token"]

    def _init_upload(
        self,
        access_token: str,
        title: str,
        description: str,
        options: PublishOptions,
        size: int,
    ) -> str:
        response = self._client.post(
            UPLOAD_URL,
            params={"uploadType": "resumable", "part": "snippet,status"},
            headers={
                "Authorization": f"Bearer {access_token}",
                "X-Upload-Content-Length": str(size),
                "X-Upload-Content-Type": "video/mp4",
            },
            json={
                "snippet": {"title": title, "description": description, "tags": options.tags},
                "status": {"privacyStatus": options.visibility},
            },
        )
        check_response(response, "YouTube upload init")
        location = response.headers.get("Location")
        if not location:
            raise PublishError("YouTube upload init returned no upload URL")
        return location

    def _upload_chunks(self, upload_url: str, video: bytes) -> str:
        total = len(video)
        offset = 0
        stalls = 0
        while offset < total:
            end = min(offset + CHUNK_SIZE, total) - 1
            response = self._client.put(
                upload_url,
                content=video[offset:end + 1],
                headers={
                    "Content-Range": f"bytes {offset}-{end}/{total}",
                    "Content-Type": "video/mp4",
                },
            )
            if response.status_code == 308:
                # Resume incomplete; Range tells us what the server has
                received = response.headers.get("Range")
                new_offset = int(received.rsplit("-", 1)[1]) + 1 if received else offset
                stalls = 0 if new_offset > offset else stalls + 1
                if stalls >= MAX_STALLS:
                    raise PublishError(f"YouTube upload stalled at byte {offset}")
                offset = new_offset
                continue
            check_response(response, "YouTube chunk upload")
            video_id = response.json().get("id")
            if not video_id:
                break
            return video_id
        raise PublishError("Upload completed but no video ID received")
