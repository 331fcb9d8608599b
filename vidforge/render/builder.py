"""Build the render filter graph from an episode's ordered scenes.

Input ``i`` of the transcoder is scene ``i``'s media file.

    [i:v] → pan/zoom → setpts            → [v<i>]   ┐
                                                    ├ concat → (subtitles) → [vout]
    [i:a] → asplit → main / side
            side keyed off main → sidechaincompress → [a<i>_duck] ┐
                                                                  ├ amix → [aout]
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from vidforge.render.graph import Filter, FilterGraph, quote_value
from vidforge.schemas.models import Scene

VIDEO_OUT = "vout"
AUDIO_OUT = "aout"

# Music-under-voice ducking. ffmpeg clamps makeup to [1, 64].
DUCKING = {
    "threshold": 0.4,
    "ratio": 8,
    "attack": 20,
    "release": 200,
    "makeup": 1,
    "level_sc": 0.6,
}


@dataclass
class RenderGraph:
    graph: FilterGraph
    video_out: str = VIDEO_OUT
    audio_out: str = AUDIO_OUT

    def render(self) -> str:
        return self.graph.render()


def build_render_graph(
    scenes: Sequence[Scene],
    subtitle_path: Path | None = None,
    *,
    font_name: str = "Arial",
    font_size: int = 24,
) -> RenderGraph:
    if not scenes:
        raise ValueError("Cannot build a render graph without scenes")

    graph = FilterGraph()
    n = len(scenes)

    for i, scene in enumerate(scenes):
        video_filters: list[Filter] = []
        if scene.pan_zoom and scene.pan_zoom.strip(" ,"):
            video_filters.append(Filter.raw(scene.pan_zoom))
        video_filters.append(Filter.of("setpts", "PTS-STARTPTS"))
        graph.add([f"{i}:v"], video_filters, [f"v{i}"])

    for i in range(n):
        graph.add([f"{i}:a"], [Filter.of("asplit", 2)], [f"a{i}_main", f"a{i}_side"])
        graph.add(
            [f"a{i}_side", f"a{i}_main"],
            [Filter.of("sidechaincompress", **DUCKING)],
            [f"a{i}_duck"],
        )

    graph.add(
        [f"a{i}_duck" for i in range(n)],
        [Filter.of("amix", inputs=n, duration="longest")],
        [AUDIO_OUT],
    )

    concat_out = "vcat" if subtitle_path is not None else VIDEO_OUT
    graph.add(
        [f"v{i}" for i in range(n)],
        [Filter.of("concat", n=n, v=1, a=0)],
        [concat_out],
    )

    if subtitle_path is not None:
        graph.add(
            [concat_out],
            [
                Filter.of(
                    "subtitles",
                    filename=quote_value(str(subtitle_path)),
                    force_style=quote_value(f"FontName={font_name},FontSize={font_size}"),
                )
            ],
            [VIDEO_OUT],
        )

    graph.validate()
    return RenderGraph(graph=graph)
