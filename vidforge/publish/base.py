"""Publish adapter protocol, rate-limit declaration and shared HTTP helpers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any, Protocol
from urllib.parse import unquote, urlparse

import httpx
from pydantic import BaseModel, Field

from vidforge.errors import DownloadError, PublishError
from vidforge.jobs.models import Platform


@dataclass(frozen=True)
class RateLimit:
    """At most ``ceiling`` posts per rolling ``window``."""

    ceiling: int
    window: timedelta = timedelta(hours=24)


class PublishOptions(BaseModel):
    tags: list[str] = Field(default_factory=list)
    visibility: str = "private"  # private | unlisted | public
    credentials: dict[str, Any] = Field(default_factory=dict)


class PublishAdapter(Protocol):
    platform: Platform
    limits: RateLimit

    def upload(self, render_url: str, title: str, description: str, options: PublishOptions) -> str:
        """Publish the video at *render_url*; return the platform's id for the post."""
        ...


def require_credential(options: PublishOptions, key: str, platform: Platform) -> str:
    value = options.credentials.get(key)
    if not value:
        raise PublishError(f"Missing {platform.value} credential: {key}")
    return str(value)


def fetch_video(client: httpx.Client, url: str) -> bytes:
    """Whole render in memory; renders are short vertical clips."""
    parsed = urlparse(url)
    try:
        if parsed.scheme == "file":
            return Path(unquote(parsed.path)).read_bytes()
        response = client.get(url, follow_redirects=True)
        response.raise_for_status()
        return response.content
    except (httpx.HTTPError, OSError) as e:
        raise DownloadError(f"Failed to download video file: {e}") from e


def check_response(response: httpx.Response, what: str) -> httpx.Response:
    if response.is_error:
        raise PublishError(f"{what} failed: {response.status_code} {response.text[:300]}")
    return response
