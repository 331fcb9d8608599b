"""Object storage interface and signed-URL downloads."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Protocol
from urllib.parse import unquote, urlparse

import httpx

from vidforge.errors import DownloadError

logger = logging.getLogger(__name__)

ASSETS_BUCKET = "assets"
SUBTITLES_BUCKET = "subtitles"
RENDERS_BUCKET = "renders"


class ObjectStorage(Protocol):
    def create_signed_url(self, bucket: str, path: str, expires_in: int = 3600) -> str | None:
        """Time-limited download URL, or None when the object does not exist."""
        ...

    def upload(self, bucket: str, path: str, file_path: Path, content_type: str, upsert: bool = True) -> None: ...

    def public_url(self, bucket: str, path: str) -> str: ...


def download_file(url: str, dest: Path, timeout: float = 120.0) -> Path:
    """Stream *url* to *dest*. Partial files are removed on failure."""
    dest.parent.mkdir(parents=True, exist_ok=True)
    parsed = urlparse(url)
    try:
        if parsed.scheme == "file":
            shutil.copyfile(unquote(parsed.path), dest)
            return dest
        with httpx.Client(follow_redirects=True, timeout=timeout) as client:
            with client.stream("GET", url) as response:
                response.raise_for_status()
                with open(dest, "wb") as f:
                    for chunk in response.iter_bytes():
                        f.write(chunk)
        return dest
    except (httpx.HTTPError, OSError) as e:
        dest.unlink(missing_ok=True)
        raise DownloadError(f"Download failed for {dest.name}: {e}") from e
