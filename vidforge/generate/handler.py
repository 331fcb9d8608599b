"""generate-episode handler: prompt the LLM for a structured script and persist it."""

from __future__ import annotations

import logging

from vidforge.jobs.models import GenerateEpisodePayload
from vidforge.jobs.worker import JobContext
from vidforge.llm.base import LLMProvider
from vidforge.schemas.models import Episode, EpisodeScript, EpisodeStatus, Series
from vidforge.store.base import ContentStore, resolve_episode_owner

logger = logging.getLogger(__name__)


def build_script_prompt(episode: Episode, series: Series) -> str:
    return f"""Create a detailed video script for a short vertical video episode.
Episode Title: {episode.title}
Topic: {episode.topic or series.topic or "General content"}
Series: {series.title}
Target Duration: {episode.duration} seconds

Return:
- script_sections: sections with start_time ("m:ss"), duration (seconds), content, visual (visual description) and voice_over (spoken text)
- key_points: main takeaways
- call_to_action: suggested call to action
- estimated_duration: total duration in seconds
- speaking_notes: key phrases to emphasize

Section durations should add up to roughly the target duration."""


class GenerateHandler:
    def __init__(self, store: ContentStore, llm: LLMProvider):
        self.store = store
        self.llm = llm

    def __call__(self, payload: GenerateEpisodePayload, ctx: JobContext) -> None:
        episode_id = payload.episode_id
        ctx.progress("Starting episode generation", 0, episode_id=episode_id)
        episode, series, _ = resolve_episode_owner(self.store, episode_id)

        self.store.update_episode(episode_id, EpisodeStatus.GENERATING)
        ctx.progress("Generating script", 20, episode_id=episode_id)
        try:
            script = self.llm.complete_structured(build_script_prompt(episode, series), EpisodeScript)
        except Exception:
            # Back to a state the user can regenerate from; the runtime decides on retry
            self.store.update_episode(episode_id, EpisodeStatus.DRAFT)
            raise

        self.store.update_episode(episode_id, EpisodeStatus.GENERATED, script=script)
        ctx.progress(
            "Episode generation completed",
            100,
            episode_id=episode_id,
            sections=len(script.script_sections),
        )
        logger.info("Generated script for episode %s (%d sections)", episode_id, len(script.script_sections))
