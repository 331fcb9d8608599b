"""Content data store: Postgres or in-memory."""

from __future__ import annotations

import logging

from vidforge.config import Settings
from vidforge.store.base import (
    ContentStore,
    latest_publishable_render,
    resolve_episode_owner,
    resolve_render_context,
)
from vidforge.store.memory import MemoryContentStore

logger = logging.getLogger(__name__)


def get_content_store(settings: Settings) -> ContentStore:
    """Return the configured content store (Postgres if configured, else in-memory)."""
    if settings.vidforge_database_url:
        from vidforge.store.postgres import PostgresContentStore

        logger.info("Using Postgres content store")
        return PostgresContentStore(settings.vidforge_database_url)
    logger.warning("VIDFORGE_DATABASE_URL not set; using empty in-memory content store")
    return MemoryContentStore()


__all__ = [
    "ContentStore",
    "MemoryContentStore",
    "get_content_store",
    "latest_publishable_render",
    "resolve_episode_owner",
    "resolve_render_context",
]
