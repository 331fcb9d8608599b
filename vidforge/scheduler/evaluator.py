"""Walk recurring schedules and enqueue publish jobs for the ones that are due."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Sequence

from pydantic import BaseModel, Field

from vidforge.jobs.models import utcnow
from vidforge.jobs.producer import JobProducer
from vidforge.schemas.models import PUBLISH_READY_STATUSES, Episode, Schedule, SeriesStatus
from vidforge.scheduler.cron import is_schedule_due
from vidforge.store.base import ContentStore

logger = logging.getLogger(__name__)


class DueEpisode(BaseModel):
    episode_id: str
    episode_title: str = ""
    series_id: str
    series_title: str = ""
    schedule_id: str


class SchedulerRunSummary(BaseModel):
    checked_schedules: int = 0
    due_schedules: int = 0
    due_episodes: list[DueEpisode] = Field(default_factory=list)
    job_ids: list[str] = Field(default_factory=list)
    errors: dict[str, str] = Field(default_factory=dict)  # schedule id → error
    executed_at: datetime = Field(default_factory=utcnow)

    @property
    def jobs_created(self) -> int:
        return len(self.job_ids)


class SchedulerEvaluator:
    def __init__(
        self,
        store: ContentStore,
        producer: JobProducer,
        *,
        default_platforms: Sequence[str] = ("youtube",),
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.producer = producer
        self.default_platforms = list(default_platforms)
        self._clock = clock

    def run(self, now: datetime | None = None) -> SchedulerRunSummary:
        now = now or self._clock()
        schedules = self.store.list_schedules()
        summary = SchedulerRunSummary(checked_schedules=len(schedules), executed_at=now)
        logger.info("Checking %d schedules", len(schedules))

        for schedule in schedules:
            try:
                self._evaluate(schedule, now, summary)
            except Exception as e:
                # One bad schedule must not stop the rest
                logger.error("Error processing schedule %s: %s", schedule.id, e)
                summary.errors[schedule.id] = str(e)

        logger.info(
            "Scheduler run: %d checked, %d due, %d episodes, %d jobs, %d errors",
            summary.checked_schedules,
            summary.due_schedules,
            len(summary.due_episodes),
            summary.jobs_created,
            len(summary.errors),
        )
        return summary

    def _evaluate(self, schedule: Schedule, now: datetime, summary: SchedulerRunSummary) -> None:
        series = self.store.get_series(schedule.series_id) if schedule.series_id else None
        if series is None:
            logger.warning("Schedule %s has no associated series", schedule.id)
            return
        if series.status in (SeriesStatus.DISABLED, SeriesStatus.PAUSED):
            logger.info("Skipping schedule %s for %s series %s", schedule.id, series.status.value, series.title)
            return
        if not is_schedule_due(schedule.cron_expr, schedule.timezone, now):
            logger.debug("Schedule %s not due", schedule.id)
            return

        summary.due_schedules += 1
        platforms = schedule.platforms or self.default_platforms
        for episode in self.ready_episodes(series.id):
            summary.due_episodes.append(
                DueEpisode(
                    episode_id=episode.id,
                    episode_title=episode.title,
                    series_id=series.id,
                    series_title=series.title,
                    schedule_id=schedule.id,
                )
            )
            for platform in platforms:
                job_id = self.producer.create_publish_video_job(
                    episode.id,
                    platform,
                    scheduled=True,
                    schedule_id=schedule.id,
                    series_id=series.id,
                )
                summary.job_ids.append(job_id)
                logger.info("Scheduled publish of episode %s to %s: %s", episode.id, platform, job_id)

    def ready_episodes(self, series_id: str) -> list[Episode]:
        """Publish-ready episodes that have at least one publishable render."""
        return [
            episode
            for episode in self.store.list_episodes(series_id)
            if episode.status in PUBLISH_READY_STATUSES
            and any(r.publishable for r in self.store.list_renders(episode.id))
        ]
