"""Postgres content store over the application tables.

The tables are owned by the application's CRUD layer; this module only
reads them and writes the columns the pipeline is responsible for.
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime
from typing import Any

from vidforge.schemas.models import (
    Episode,
    EpisodeScript,
    EpisodeStatus,
    PublishRecord,
    Render,
    RenderStatus,
    Scene,
    SceneType,
    Schedule,
    Series,
    SeriesStatus,
)

logger = logging.getLogger(__name__)

_RENDER_COLS = "id, episode_id, status, url, preset, bitrate, size_mb, created_at"
_EPISODE_COLS = "id, series_id, title, topic, duration, status, script, created_at"


class PostgresContentStore:
    def __init__(self, database_url: str):
        self._url = database_url
        self._conn = self._connect()

    def _connect(self):
        try:
            import psycopg
            return psycopg.connect(self._url, autocommit=True)
        except ImportError:
            raise ImportError(
                "psycopg required for Postgres content store. pip install 'psycopg[binary]'"
            )

    # ── renders ──────────────────────────────────────────────────────────

    def get_render(self, render_id: str) -> Render | None:
        row = self._conn.execute(
            f"SELECT {_RENDER_COLS} FROM renders WHERE id = %s", (render_id,)
        ).fetchone()
        return self._row_to_render(row) if row else None

    def list_renders(self, episode_id: str) -> list[Render]:
        rows = self._conn.execute(
            f"SELECT {_RENDER_COLS} FROM renders WHERE episode_id = %s ORDER BY created_at DESC",
            (episode_id,),
        ).fetchall()
        return [self._row_to_render(r) for r in rows]

    def update_render(
        self,
        render_id: str,
        status: RenderStatus,
        *,
        url: str | None = None,
        size_mb: float | None = None,
        bitrate: int | None = None,
        preset: str | None = None,
    ) -> None:
        self._conn.execute(
            """
            UPDATE renders SET
                status = %s,
                url = COALESCE(%s, url),
                size_mb = COALESCE(%s, size_mb),
                bitrate = COALESCE(%s, bitrate),
                preset = COALESCE(%s, preset)
            WHERE id = %s
            """,
            (status.value, url, size_mb, bitrate, preset, render_id),
        )

    # ── episodes / series / scenes ───────────────────────────────────────

    def get_episode(self, episode_id: str) -> Episode | None:
        row = self._conn.execute(
            f"SELECT {_EPISODE_COLS} FROM episodes WHERE id = %s", (episode_id,)
        ).fetchone()
        return self._row_to_episode(row) if row else None

    def list_episodes(self, series_id: str) -> list[Episode]:
        rows = self._conn.execute(
            f"SELECT {_EPISODE_COLS} FROM episodes WHERE series_id = %s ORDER BY created_at",
            (series_id,),
        ).fetchall()
        return [self._row_to_episode(r) for r in rows]

    def update_episode(
        self,
        episode_id: str,
        status: EpisodeStatus,
        *,
        script: EpisodeScript | None = None,
    ) -> None:
        script_json = json.dumps(script.model_dump(mode="json")) if script else None
        self._conn.execute(
            """
            UPDATE episodes SET status = %s, script = COALESCE(%s::jsonb, script)
            WHERE id = %s
            """,
            (status.value, script_json, episode_id),
        )

    def get_series(self, series_id: str) -> Series | None:
        row = self._conn.execute(
            "SELECT id, brand_id, title, topic, status FROM series WHERE id = %s",
            (series_id,),
        ).fetchone()
        if not row:
            return None
        return Series(
            id=row[0],
            brand_id=row[1],
            title=row[2] or "",
            topic=row[3] or "",
            status=SeriesStatus(row[4]) if row[4] else SeriesStatus.ACTIVE,
        )

    def get_owner_id(self, series: Series) -> str | None:
        row = self._conn.execute(
            "SELECT user_id FROM brands WHERE id = %s", (series.brand_id,)
        ).fetchone()
        return str(row[0]) if row and row[0] else None

    def list_scenes(self, episode_id: str) -> list[Scene]:
        rows = self._conn.execute(
            """
            SELECT id, episode_id, idx, start_time, end_time, type, src, pan_zoom
            FROM scenes WHERE episode_id = %s ORDER BY idx
            """,
            (episode_id,),
        ).fetchall()
        return [
            Scene(
                id=str(r[0]),
                episode_id=str(r[1]),
                idx=r[2],
                start_time=float(r[3] or 0),
                end_time=float(r[4] or 0),
                type=SceneType(r[5]) if r[5] else SceneType.VISUAL,
                src=r[6],
                pan_zoom=r[7],
            )
            for r in rows
        ]

    # ── schedules / publishing ───────────────────────────────────────────

    def list_schedules(self) -> list[Schedule]:
        rows = self._conn.execute(
            "SELECT id, series_id, cron_expr, timezone, platforms FROM schedules"
        ).fetchall()
        return [
            Schedule(
                id=str(r[0]),
                series_id=str(r[1]),
                cron_expr=r[2] or "",
                timezone=r[3] or "UTC",
                platforms=list(r[4]) if r[4] else ["youtube"],
            )
            for r in rows
        ]

    def count_publish_records(self, platform: str, since: datetime) -> int:
        row = self._conn.execute(
            "SELECT COUNT(*) FROM analytics WHERE platform = %s AND created_at >= %s",
            (platform, since),
        ).fetchone()
        return int(row[0]) if row else 0

    def record_publish(self, record: PublishRecord) -> str:
        record_id = record.id or f"pub_{uuid.uuid4().hex[:16]}"
        self._conn.execute(
            """
            INSERT INTO analytics (id, episode_id, platform, video_id, collected_at, created_at)
            VALUES (%s, %s, %s, %s, %s, %s)
            """,
            (
                record_id,
                record.episode_id,
                record.platform,
                record.video_id,
                record.created_at.date(),
                record.created_at,
            ),
        )
        return record_id

    def get_social_account(self, user_id: str, platform: str) -> dict[str, Any] | None:
        row = self._conn.execute(
            "SELECT oauth FROM social_accounts WHERE user_id = %s AND platform = %s",
            (user_id, platform),
        ).fetchone()
        if not row or not row[0]:
            return None
        return row[0] if isinstance(row[0], dict) else json.loads(row[0])

    def close(self) -> None:
        self._conn.close()

    # ── row mapping ──────────────────────────────────────────────────────

    def _row_to_render(self, row) -> Render:
        return Render(
            id=str(row[0]),
            episode_id=str(row[1]),
            status=RenderStatus(row[2]),
            url=row[3],
            preset=row[4],
            bitrate=row[5],
            size_mb=float(row[6]) if row[6] is not None else None,
            created_at=row[7],
        )

    def _row_to_episode(self, row) -> Episode:
        script = row[6]
        if script and not isinstance(script, dict):
            script = json.loads(script)
        return Episode(
            id=str(row[0]),
            series_id=str(row[1]),
            title=row[2] or "",
            topic=row[3] or "",
            duration=row[4] or 60,
            status=EpisodeStatus(row[5]) if row[5] else EpisodeStatus.DRAFT,
            script=EpisodeScript.model_validate(script) if script else None,
            created_at=row[7],
        )
