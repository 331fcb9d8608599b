"""Submit the full generate → render → publish set of jobs for one episode."""

from __future__ import annotations

import logging
from typing import Sequence

from pydantic import BaseModel, Field

from vidforge.jobs.models import Platform
from vidforge.jobs.producer import JobProducer

logger = logging.getLogger(__name__)


class PipelineJobs(BaseModel):
    generate_job_id: str
    render_job_id: str
    publish_job_ids: dict[str, str] = Field(default_factory=dict)  # platform → job id


def create_episode_processing_pipeline(
    producer: JobProducer,
    episode_id: str,
    render_id: str,
    platforms: Sequence[Platform | str] = (Platform.YOUTUBE,),
) -> PipelineJobs:
    """Enqueue all three stages at once.

    Stages are not chained: the render and publish jobs may be leased before
    generation finishes. Publish retries with ``RenderNotReady`` until a
    render lands or its retries run out.
    """
    generate_id = producer.create_generate_episode_job(episode_id)
    render_job_id = producer.create_render_episode_job(render_id)
    publish_ids = {
        Platform(p).value: producer.create_publish_video_job(episode_id, p)
        for p in platforms
    }
    logger.info(
        "Created processing pipeline for episode %s: generate=%s render=%s publish=%s",
        episode_id, generate_id, render_job_id, publish_ids,
    )
    return PipelineJobs(
        generate_job_id=generate_id,
        render_job_id=render_job_id,
        publish_job_ids=publish_ids,
    )
