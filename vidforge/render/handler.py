"""render-episode handler: fetch → download → filter-build → transcode → upload → finalize."""

from __future__ import annotations

import logging
import shutil
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from vidforge.errors import DownloadError, PermanentJobError
from vidforge.jobs.models import RenderEpisodePayload
from vidforge.jobs.worker import JobContext
from vidforge.render.builder import build_render_graph
from vidforge.render.transcoder import TranscodeRequest, Transcoder
from vidforge.schemas.models import RenderContext, RenderStatus, Scene
from vidforge.storage.base import (
    ASSETS_BUCKET,
    RENDERS_BUCKET,
    SUBTITLES_BUCKET,
    ObjectStorage,
    download_file,
)
from vidforge.store.base import ContentStore, resolve_render_context

logger = logging.getLogger(__name__)

# Transcode progress is reported inside this band of the job's 0-100 scale
_TRANSCODE_START = 30
_TRANSCODE_SPAN = 60


class RenderHandler:
    def __init__(
        self,
        store: ContentStore,
        storage: ObjectStorage,
        transcoder: Transcoder,
        scratch_root: Path,
        *,
        signed_url_ttl: int = 3600,
        download_concurrency: int = 4,
        subtitle_font: str = "Arial",
        subtitle_size: int = 24,
        preset: str = "medium",
    ):
        self.store = store
        self.storage = storage
        self.transcoder = transcoder
        self.scratch_root = Path(scratch_root)
        self.signed_url_ttl = signed_url_ttl
        self.download_concurrency = max(1, download_concurrency)
        self.subtitle_font = subtitle_font
        self.subtitle_size = subtitle_size
        self.preset = preset

    def __call__(self, payload: RenderEpisodePayload, ctx: JobContext) -> None:
        render_id = payload.render_id
        progress = ctx.progress
        scratch = self._scratch_dir(render_id)
        try:
            progress("Resolving render", 0, render_id=render_id)
            rc = resolve_render_context(self.store, render_id)
            if not rc.scenes:
                raise PermanentJobError(f"No scenes found for episode {rc.episode.id}")

            self.store.update_render(render_id, RenderStatus.PROCESSING)
            scratch.mkdir(parents=True, exist_ok=True)

            progress("Downloading scenes", 10, scene_count=len(rc.scenes))
            inputs = self._download_scenes(rc.scenes, scratch)
            subtitle_path = self._download_subtitles(rc.episode.id, scratch)
            progress("Assets downloaded", 25, subtitles=subtitle_path is not None)

            graph = build_render_graph(
                rc.scenes,
                subtitle_path,
                font_name=self.subtitle_font,
                font_size=self.subtitle_size,
            )
            output_path = scratch / "output.mp4"
            request = TranscodeRequest(
                inputs=inputs,
                graph=graph,
                output_path=output_path,
                subtitle_path=subtitle_path,
                duration=sum(s.duration for s in rc.scenes) or None,
            )
            progress("Transcoding", _TRANSCODE_START)
            self.transcoder.transcode(request, on_progress=self._transcode_progress(ctx))

            progress("Uploading render", 90)
            self._finalize(rc, output_path)
            progress("Render completed", 100, render_id=render_id)
            logger.info("Render %s completed for episode %s", render_id, rc.episode.id)
        except Exception as e:
            self._mark_failed(render_id, e)
            progress(f"Render failed: {e}", 0, error=str(e))
            raise
        finally:
            shutil.rmtree(scratch, ignore_errors=True)

    def _scratch_dir(self, render_id: str) -> Path:
        """Per-render scratch directory; must be a direct child of the scratch root."""
        if not render_id or render_id in (".", "..") or "/" in render_id or "\\" in render_id:
            raise PermanentJobError(f"Invalid render id {render_id!r}")
        root = self.scratch_root.resolve()
        scratch = (root / render_id).resolve()
        if scratch.parent != root:
            raise PermanentJobError(f"Invalid render id {render_id!r}")
        return scratch

    def _download_scenes(self, scenes: list[Scene], scratch: Path) -> list[Path]:
        def fetch(item: tuple[int, Scene]) -> Path:
            i, scene = item
            url = self.storage.create_signed_url(ASSETS_BUCKET, scene.src, self.signed_url_ttl)
            if not url:
                raise DownloadError(f"Failed to get signed URL for scene {scene.id} ({scene.src})")
            return download_file(url, scratch / f"scene_{i}.mp4")

        with ThreadPoolExecutor(max_workers=self.download_concurrency) as pool:
            return list(pool.map(fetch, enumerate(scenes)))

    def _download_subtitles(self, episode_id: str, scratch: Path) -> Path | None:
        """Subtitles are optional; any failure here just means no burn-in."""
        try:
            url = self.storage.create_signed_url(
                SUBTITLES_BUCKET, f"{episode_id}.srt", self.signed_url_ttl
            )
            if not url:
                return None
            return download_file(url, scratch / "subtitles.srt")
        except Exception as e:
            logger.warning("No subtitles for episode %s: %s", episode_id, e)
            return None

    def _transcode_progress(self, ctx: JobContext):
        last = {"pct": -1}

        def report(pct: float) -> None:
            mapped = int(_TRANSCODE_START + pct * _TRANSCODE_SPAN / 100)
            # one log row per whole percent at most
            if mapped > last["pct"]:
                last["pct"] = mapped
                ctx.progress("Transcoding", mapped)

        return report

    def _finalize(self, rc: RenderContext, output_path: Path) -> None:
        probe = self.transcoder.probe(output_path)
        object_path = f"{rc.user_id}/{rc.episode.id}.mp4"
        self.storage.upload(RENDERS_BUCKET, object_path, output_path, "video/mp4", upsert=True)
        url = self.storage.public_url(RENDERS_BUCKET, object_path)
        self.store.update_render(
            rc.render.id,
            RenderStatus.COMPLETED,
            url=url,
            size_mb=round(probe.size_mb, 2),
            bitrate=probe.bitrate,
            preset=self.preset,
        )

    def _mark_failed(self, render_id: str, exc: Exception) -> None:
        try:
            if self.store.get_render(render_id) is not None:
                self.store.update_render(render_id, RenderStatus.FAILED)
        except Exception as e:
            logger.warning("Could not mark render %s failed after %s: %s", render_id, exc, e)
