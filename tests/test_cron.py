"""Tests for cron field matching and timezone-aware due checks."""

from datetime import datetime, timezone

import pytest

from vidforge.errors import InvalidCronExpression
from vidforge.scheduler.cron import is_schedule_due, matches_cron_field, parse_cron


def _utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "field,value,expected",
    [
        ("*", 17, True),
        ("5", 5, True),
        ("5", 6, False),
        ("*/15", 30, True),
        ("*/15", 31, False),
        ("10-20", 10, True),
        ("10-20", 20, True),
        ("10-20", 21, False),
        ("1,15,30", 15, True),
        ("1,15,30", 16, False),
        ("5/10", 25, True),
        ("5/10", 20, False),
        ("5/10", 0, False),
        ("0-30/10", 20, True),
        ("0-30/10", 40, False),
        ("1-5,*/20", 40, True),
    ],
)
def test_matches_minute_field(field, value, expected):
    assert matches_cron_field(field, value, 0, 59) is expected


def test_step_counts_from_field_minimum():
    # day-of-month starts at 1
    assert matches_cron_field("*/2", 1, 1, 31)
    assert matches_cron_field("*/2", 3, 1, 31)
    assert not matches_cron_field("*/2", 2, 1, 31)


@pytest.mark.parametrize("field", ["", "x", "\u00b2", "1\u0663", "*/\u00b2", "*/0", "5-", "-5", "70", "20-10", "1,,2", "*/x"])
def test_malformed_fields_raise(field):
    with pytest.raises(InvalidCronExpression):
        matches_cron_field(field, 0, 0, 59)


def test_parse_maps_sunday_seven_to_zero():
    assert parse_cron("0 0 * * 7").weekdays == frozenset({0})
    assert parse_cron("0 0 * * 5-7").weekdays == frozenset({5, 6, 0})


@pytest.mark.parametrize("expr", ["0 9 * *", "\u00b2 9 * * *", "0 9 * * 1 2026", "", "a b c d e", "0 25 * * *", "*/0 * * * *"])
def test_malformed_expression_never_due(expr):
    assert is_schedule_due(expr, "UTC", _utc(2024, 1, 8, 9, 0)) is False


class TestTimezone:
    EXPR = "0 9 * * 1"  # 09:00 every Monday
    TZ = "America/New_York"

    def test_due_at_nine_monday_new_york_winter(self):
        # 2024-01-08 is a Monday; EST is UTC-5
        assert is_schedule_due(self.EXPR, self.TZ, _utc(2024, 1, 8, 14, 0))

    def test_due_at_nine_monday_new_york_summer(self):
        # EDT is UTC-4
        assert is_schedule_due(self.EXPR, self.TZ, _utc(2024, 7, 8, 13, 0))
        assert not is_schedule_due(self.EXPR, self.TZ, _utc(2024, 7, 8, 14, 0))

    def test_not_due_at_nine_utc(self):
        assert not is_schedule_due(self.EXPR, self.TZ, _utc(2024, 1, 8, 9, 0))

    def test_not_due_other_minute_or_day(self):
        assert not is_schedule_due(self.EXPR, self.TZ, _utc(2024, 1, 8, 14, 1))
        assert not is_schedule_due(self.EXPR, self.TZ, _utc(2024, 1, 9, 14, 0))

    def test_local_day_differs_from_utc_day(self):
        # 2024-01-09 03:30 UTC is still Monday 22:30 in New York
        assert is_schedule_due("30 22 * * 1", self.TZ, _utc(2024, 1, 9, 3, 30))

    def test_unknown_timezone_never_due(self):
        assert not is_schedule_due("* * * * *", "Mars/Olympus_Mons", _utc(2024, 1, 8, 9, 0))


def test_sunday_as_seven_and_zero():
    sunday = _utc(2024, 1, 7, 0, 0)
    assert is_schedule_due("0 0 * * 7", "UTC", sunday)
    assert is_schedule_due("0 0 * * 0", "UTC", sunday)
    assert not is_schedule_due("0 0 * * 1", "UTC", sunday)


def test_month_and_day_fields():
    assert is_schedule_due("0 12 15 6 *", "UTC", _utc(2024, 6, 15, 12, 0))
    assert not is_schedule_due("0 12 15 6 *", "UTC", _utc(2024, 7, 15, 12, 0))
