"""
Unit tests for the time window resolver.

All windows end on the client's local today, inclusive.
"""
from datetime import date, datetime, timezone

import pytest

from services.time_window import (
    day_of_week,
    local_today,
    resolve_time_window,
    resolve_timezone,
)

# Wednesday 2024-01-10, 12:00 UTC
WEDNESDAY_NOON = datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)


class TestPeriods:
    @pytest.mark.parametrize("period,start", [
        ("day", date(2024, 1, 10)),
        ("week", date(2024, 1, 8)),
        ("month", date(2024, 1, 1)),
        ("year", date(2024, 1, 1)),
    ])
    def test_known_periods(self, period, start):
        window = resolve_time_window("UTC", period, now=WEDNESDAY_NOON)
        assert window.start == start
        assert window.end == date(2024, 1, 10)
        assert window.period == period

    def test_unknown_period_falls_back_to_trailing_seven_days(self):
        window = resolve_time_window("UTC", "fortnight", now=WEDNESDAY_NOON)
        assert window.start == date(2024, 1, 3)
        assert window.end == date(2024, 1, 10)

    def test_missing_period_defaults_to_week(self):
        window = resolve_time_window("UTC", None, now=WEDNESDAY_NOON)
        assert window.period == "week"
        assert window.start == date(2024, 1, 8)

    def test_period_is_case_insensitive(self):
        window = resolve_time_window("UTC", "MONTH", now=WEDNESDAY_NOON)
        assert window.start == date(2024, 1, 1)

    def test_sunday_belongs_to_week_started_previous_monday(self):
        sunday = datetime(2024, 1, 14, 12, 0, tzinfo=timezone.utc)
        window = resolve_time_window("UTC", "week", now=sunday)
        assert window.start == date(2024, 1, 8)
        assert window.end == date(2024, 1, 14)

    def test_monday_week_is_a_single_day(self):
        monday = datetime(2024, 1, 8, 9, 0, tzinfo=timezone.utc)
        window = resolve_time_window("UTC", "week", now=monday)
        assert window.start == window.end == date(2024, 1, 8)


class TestTimezones:
    def test_today_follows_the_client_timezone(self):
        # 20:00 UTC on the 9th is already the morning of the 10th in Adelaide
        instant = datetime(2024, 1, 9, 20, 0, tzinfo=timezone.utc)
        assert local_today("UTC", instant) == date(2024, 1, 9)
        assert local_today("Australia/Adelaide", instant) == date(2024, 1, 10)

    def test_day_window_moves_with_timezone(self):
        instant = datetime(2024, 1, 9, 20, 0, tzinfo=timezone.utc)
        assert resolve_time_window("America/New_York", "day", now=instant).start == date(2024, 1, 9)
        assert resolve_time_window("Australia/Adelaide", "day", now=instant).start == date(2024, 1, 10)

    def test_naive_now_is_treated_as_utc(self):
        assert local_today("UTC", datetime(2024, 1, 9, 23, 30)) == date(2024, 1, 9)

    @pytest.mark.parametrize("tz_name", [None, "", "Not/AZone", "../etc/passwd", "America", "Europe", "A" * 300])
    def test_unsupported_timezone_falls_back_to_default(self, tz_name):
        assert resolve_timezone(tz_name).key == "Australia/Adelaide"

    def test_window_reports_resolved_timezone(self):
        window = resolve_time_window("Mars/Olympus", "day", now=WEDNESDAY_NOON)
        assert window.timezone == "Australia/Adelaide"


class TestDayOfWeek:
    def test_sunday_is_zero(self):
        assert day_of_week(date(2024, 1, 7)) == 0

    def test_monday_through_saturday(self):
        assert [day_of_week(date(2024, 1, d)) for d in range(8, 14)] == [1, 2, 3, 4, 5, 6]
