"""External transcoder: ffmpeg for encoding, ffprobe for output metadata."""

from __future__ import annotations

import json
import logging
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Protocol

from pydantic import BaseModel

from vidforge.config import Settings
from vidforge.errors import TranscodeError
from vidforge.render.builder import RenderGraph

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]


@dataclass
class EncodingProfile:
    """H.264/AAC, fixed portrait frame, CRF-driven quality, closed GOP."""

    width: int = 1080
    height: int = 1920
    crf: int = 20
    preset: str = "medium"
    gop: int = 48
    audio_bitrate: str = "192k"

    @classmethod
    def from_settings(cls, settings: Settings) -> "EncodingProfile":
        return cls(
            width=settings.render_width,
            height=settings.render_height,
            crf=settings.render_crf,
            preset=settings.render_preset,
            gop=settings.render_gop,
            audio_bitrate=settings.render_audio_bitrate,
        )

    def output_args(self) -> list[str]:
        return [
            "-c:v", "libx264",
            "-preset", self.preset,
            "-crf", str(self.crf),
            "-pix_fmt", "yuv420p",
            "-s", f"{self.width}x{self.height}",
            "-g", str(self.gop),
            "-keyint_min", str(self.gop),
            "-sc_threshold", "0",
            "-flags", "+cgop",
            "-c:a", "aac",
            "-b:a", self.audio_bitrate,
            "-movflags", "+faststart",
        ]


@dataclass
class TranscodeRequest:
    inputs: list[Path]
    graph: RenderGraph
    output_path: Path
    subtitle_path: Path | None = None
    duration: float | None = None  # expected output seconds, for progress
    extra_args: list[str] = field(default_factory=list)


class ProbeResult(BaseModel):
    bitrate: int | None = None
    duration: float | None = None
    size_bytes: int = 0

    @property
    def size_mb(self) -> float:
        return self.size_bytes / (1024 * 1024)


class Transcoder(Protocol):
    def transcode(self, request: TranscodeRequest, on_progress: ProgressCallback | None = None) -> Path: ...
    def probe(self, path: Path) -> ProbeResult: ...


def parse_progress_line(line: str, duration: float | None) -> float | None:
    """Percent complete from one ``-progress`` key=value line, if it carries one."""
    key, _, value = line.strip().partition("=")
    if key == "progress" and value == "end":
        return 100.0
    if key not in ("out_time_us", "out_time_ms") or not duration or duration <= 0:
        return None
    try:
        # ffmpeg reports microseconds under both keys
        seconds = int(value) / 1_000_000
    except ValueError:
        return None
    return max(0.0, min(100.0, seconds / duration * 100))


class FFmpegTranscoder:
    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        ffprobe_path: str = "ffprobe",
        profile: EncodingProfile | None = None,
    ):
        self._ffmpeg = ffmpeg_path
        self._ffprobe = ffprobe_path
        self.profile = profile or EncodingProfile()

    def build_command(self, request: TranscodeRequest) -> list[str]:
        cmd = [self._ffmpeg, "-y", "-hide_banner", "-nostats", "-progress", "pipe:1"]
        for path in request.inputs:
            cmd += ["-i", str(path)]
        if request.subtitle_path is not None:
            cmd += ["-i", str(request.subtitle_path)]
        cmd += [
            "-filter_complex", request.graph.render(),
            "-map", f"[{request.graph.video_out}]",
            "-map", f"[{request.graph.audio_out}]",
        ]
        cmd += self.profile.output_args()
        cmd += request.extra_args
        cmd.append(str(request.output_path))
        return cmd

    def transcode(self, request: TranscodeRequest, on_progress: ProgressCallback | None = None) -> Path:
        cmd = self.build_command(request)
        log_path = request.output_path.with_suffix(".ffmpeg.log")
        logger.info("Running ffmpeg with %d inputs → %s", len(request.inputs), request.output_path.name)
        with open(log_path, "wb") as log:
            try:
                proc = subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=log, text=True)
            except FileNotFoundError as e:
                raise TranscodeError(f"ffmpeg not found at {self._ffmpeg}") from e
            try:
                for line in proc.stdout or ():
                    pct = parse_progress_line(line, request.duration)
                    if pct is not None and on_progress is not None:
                        on_progress(pct)
                returncode = proc.wait()
            except BaseException:
                proc.kill()
                proc.wait()
                raise

        if returncode != 0:
            tail = log_path.read_text(encoding="utf-8", errors="replace")[-2000:] if log_path.exists() else ""
            raise TranscodeError(f"ffmpeg exited with code {returncode}", returncode=returncode, log_tail=tail)
        if not request.output_path.exists():
            raise TranscodeError("ffmpeg finished but produced no output file")
        return request.output_path

    def probe(self, path: Path) -> ProbeResult:
        cmd = [
            self._ffprobe, "-v", "quiet",
            "-print_format", "json",
            "-show_streams", "-show_format",
            str(path),
        ]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=60)
        except (FileNotFoundError, subprocess.TimeoutExpired) as e:
            raise TranscodeError(f"ffprobe failed: {e}") from e
        if result.returncode != 0:
            raise TranscodeError(f"ffprobe exited with code {result.returncode}", returncode=result.returncode)
        return parse_probe_output(result.stdout, path.stat().st_size)


def parse_probe_output(raw: str, size_bytes: int) -> ProbeResult:
    """Video stream bitrate (container bitrate as fallback) and duration."""
    data = json.loads(raw or "{}")
    fmt = data.get("format") or {}
    video = next(
        (s for s in data.get("streams", []) if s.get("codec_type") == "video"),
        {},
    )

    def _int(value) -> int | None:
        try:
            return int(value)
        except (TypeError, ValueError):
            return None

    def _float(value) -> float | None:
        try:
            return float(value)
        except (TypeError, ValueError):
            return None

    return ProbeResult(
        bitrate=_int(video.get("bit_rate")) or _int(fmt.get("bit_rate")),
        duration=_float(fmt.get("duration")) or _float(video.get("duration")),
        size_bytes=size_bytes,
    )
