"""File-based object storage (fallback when no Supabase project is configured)."""

from __future__ import annotations

import shutil
from pathlib import Path

from vidforge.errors import StorageError


class LocalStorage:
    """Buckets are directories under *root*; URLs are ``file://`` URIs."""

    def __init__(self, root: Path):
        self._root = Path(root)
        self._root.mkdir(parents=True, exist_ok=True)

    def _path(self, bucket: str, path: str) -> Path:
        return self._root / bucket / path.lstrip("/")

    def create_signed_url(self, bucket: str, path: str, expires_in: int = 3600) -> str | None:
        target = self._path(bucket, path)
        if not target.exists():
            return None
        return target.resolve().as_uri()

    def upload(self, bucket: str, path: str, file_path: Path, content_type: str, upsert: bool = True) -> None:
        target = self._path(bucket, path)
        if target.exists() and not upsert:
            raise StorageError(f"Object already exists: {bucket}/{path}")
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(file_path, target)

    def public_url(self, bucket: str, path: str) -> str:
        return self._path(bucket, path).resolve().as_uri()
