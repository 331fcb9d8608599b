"""Five-field cron expressions evaluated in an IANA timezone.

Fields: minute hour day-of-month month day-of-week. Each field is a comma
list of ``*``, ``*/N``, ``A/N``, ``N``, ``N-M`` or ``N-M/S``. Day-of-week
uses 0 = Sunday and also accepts 7 for Sunday. All five fields must match.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from vidforge.errors import InvalidCronExpression

logger = logging.getLogger(__name__)

# (name, min, max) per position
FIELDS = (
    ("minute", 0, 59),
    ("hour", 0, 23),
    ("day-of-month", 1, 31),
    ("month", 1, 12),
    ("day-of-week", 0, 7),
)


def _int(text: str, field: str) -> int:
    if not (text.isascii() and text.isdecimal()):
        raise InvalidCronExpression(f"Non-numeric value {text!r} in {field}")
    return int(text)


def parse_cron_field(field: str, lo: int, hi: int) -> frozenset[int]:
    """Set of values in [lo, hi] matched by *field*."""
    values: set[int] = set()
    if not field:
        raise InvalidCronExpression("Empty cron field")
    for part in field.split(","):
        base, _, step_text = part.partition("/")
        step = _int(step_text, part) if step_text else 1
        if step == 0:
            raise InvalidCronExpression(f"Zero step in {part!r}")

        if base == "*":
            start, end = lo, hi
        elif "-" in base:
            a, _, b = base.partition("-")
            start, end = _int(a, part), _int(b, part)
        else:
            start = _int(base, part)
            # "A/N" runs from A to the top of the range
            end = hi if step_text else start

        if start < lo or end > hi or start > end:
            raise InvalidCronExpression(f"{part!r} outside {lo}-{hi}")
        values.update(range(start, end + 1, step))
    return frozenset(values)


def matches_cron_field(field: str, value: int, lo: int, hi: int) -> bool:
    return value in parse_cron_field(field, lo, hi)


@dataclass(frozen=True)
class CronExpression:
    minutes: frozenset[int]
    hours: frozenset[int]
    days: frozenset[int]
    months: frozenset[int]
    weekdays: frozenset[int]

    def matches(self, local: datetime) -> bool:
        # isoweekday: Monday=1 … Sunday=7 → cron 0=Sunday
        weekday = local.isoweekday() % 7
        return (
            local.minute in self.minutes
            and local.hour in self.hours
            and local.day in self.days
            and local.month in self.months
            and weekday in self.weekdays
        )


def parse_cron(expr: str) -> CronExpression:
    parts = expr.split()
    if len(parts) != 5:
        raise InvalidCronExpression(f"Expected 5 fields, got {len(parts)}: {expr!r}")
    sets = [parse_cron_field(p, lo, hi) for p, (_, lo, hi) in zip(parts, FIELDS)]
    weekdays = frozenset(0 if d == 7 else d for d in sets[4])
    return CronExpression(sets[0], sets[1], sets[2], sets[3], weekdays)


def is_schedule_due(cron_expr: str, timezone: str, now: datetime) -> bool:
    """True if *now* (aware) falls in a minute matched by *cron_expr* in *timezone*.

    Malformed expressions and unknown timezones are logged and never due.
    """
    try:
        cron = parse_cron(cron_expr)
    except InvalidCronExpression as e:
        logger.warning("Invalid cron expression %r: %s", cron_expr, e)
        return False
    try:
        tz = ZoneInfo(timezone or "UTC")
    except (ZoneInfoNotFoundError, ValueError) as e:
        logger.warning("Unknown timezone %r: %s", timezone, e)
        return False
    return cron.matches(now.astimezone(tz))
