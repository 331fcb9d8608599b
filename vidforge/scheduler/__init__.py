"""Recurring publish schedules."""

from vidforge.scheduler.cron import is_schedule_due, matches_cron_field, parse_cron
from vidforge.scheduler.evaluator import SchedulerEvaluator, SchedulerRunSummary

__all__ = [
    "SchedulerEvaluator",
    "SchedulerRunSummary",
    "is_schedule_due",
    "matches_cron_field",
    "parse_cron",
]
