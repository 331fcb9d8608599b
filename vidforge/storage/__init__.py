"""Object storage: Supabase Storage or local directory fallback."""

from __future__ import annotations

import logging

from vidforge.config import Settings
from vidforge.storage.base import (
    ASSETS_BUCKET,
    RENDERS_BUCKET,
    SUBTITLES_BUCKET,
    ObjectStorage,
    download_file,
)
from vidforge.storage.local import LocalStorage
from vidforge.storage.supabase import SupabaseStorage

logger = logging.getLogger(__name__)


def get_object_storage(settings: Settings) -> ObjectStorage:
    if settings.supabase_url and settings.supabase_service_role_key:
        logger.info("Using Supabase storage")
        return SupabaseStorage(settings.supabase_url, settings.supabase_service_role_key)
    logger.info("Using local storage (%s)", settings.storage_dir)
    return LocalStorage(settings.storage_dir)


__all__ = [
    "ASSETS_BUCKET",
    "RENDERS_BUCKET",
    "SUBTITLES_BUCKET",
    "LocalStorage",
    "ObjectStorage",
    "SupabaseStorage",
    "download_file",
    "get_object_storage",
]
