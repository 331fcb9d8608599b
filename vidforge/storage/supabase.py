"""Supabase Storage over its REST API."""

from __future__ import annotations

import logging
from pathlib import Path
from urllib.parse import quote

import httpx

from vidforge.errors import StorageError

logger = logging.getLogger(__name__)


class SupabaseStorage:
    def __init__(
        self,
        supabase_url: str,
        service_role_key: str,
        timeout: float = 300.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self._base = supabase_url.rstrip("/") + "/storage/v1"
        self._headers = {
            "Authorization": f"Bearer {service_role_key}",
            "apikey": service_role_key,
        }
        self._timeout = timeout
        self._transport = transport

    def _object_path(self, bucket: str, path: str) -> str:
        return f"{bucket}/{quote(path.lstrip('/'))}"

    def create_signed_url(self, bucket: str, path: str, expires_in: int = 3600) -> str | None:
        try:
            with httpx.Client(timeout=30.0, transport=self._transport) as client:
                response = client.post(
                    f"{self._base}/object/sign/{self._object_path(bucket, path)}",
                    headers=self._headers,
                    json={"expiresIn": expires_in},
                )
        except httpx.HTTPError as e:
            raise StorageError(f"Signing {bucket}/{path} failed: {e}") from e
        if response.status_code in (400, 404):
            logger.debug("No object %s/%s (%s)", bucket, path, response.status_code)
            return None
        if response.is_error:
            raise StorageError(f"Signing {bucket}/{path} failed: {response.status_code} {response.text[:200]}")
        try:
            body = response.json()
        except ValueError as e:
            raise StorageError(f"Signing {bucket}/{path} returned invalid JSON: {e}") from e
        signed = body.get("signedURL") or body.get("signedUrl")
        if not signed:
            return None
        return f"{self._base}{signed}" if signed.startswith("/") else signed

    def upload(self, bucket: str, path: str, file_path: Path, content_type: str, upsert: bool = True) -> None:
        headers = {
            **self._headers,
            "Content-Type": content_type,
            "x-upsert": "true" if upsert else "false",
        }
        try:
            data = Path(file_path).read_bytes()
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                response = client.post(
                    f"{self._base}/object/{self._object_path(bucket, path)}",
                    headers=headers,
                    content=data,
                )
        except (httpx.HTTPError, OSError) as e:
            raise StorageError(f"Upload failed: {e}") from e
        if response.is_error:
            raise StorageError(f"Upload failed: {response.status_code} {response.text[:200]}")

    def public_url(self, bucket: str, path: str) -> str:
        return f"{self._base}/object/public/{self._object_path(bucket, path)}"
