"""Video rendering: filter graph IR, ffmpeg transcoder and the render-episode handler."""

from vidforge.render.builder import RenderGraph, build_render_graph
from vidforge.render.graph import Filter, FilterChain, FilterGraph
from vidforge.render.handler import RenderHandler
from vidforge.render.transcoder import (
    EncodingProfile,
    FFmpegTranscoder,
    ProbeResult,
    TranscodeRequest,
    Transcoder,
)

__all__ = [
    "EncodingProfile",
    "FFmpegTranscoder",
    "Filter",
    "FilterChain",
    "FilterGraph",
    "ProbeResult",
    "RenderGraph",
    "RenderHandler",
    "TranscodeRequest",
    "Transcoder",
    "build_render_graph",
]
