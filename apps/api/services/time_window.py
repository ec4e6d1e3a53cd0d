"""
Time Window Resolver

Turns (timezone, period keyword) into the calendar-date window that metric
aggregation runs over. Pure; "today" is always the client's local date,
never the server's.

Periods:
- day:   [today, today]
- week:  [Monday on/before today, today]
- month: [1st of this month, today]
- year:  [January 1, today]
- anything else: trailing [today - 7 days, today]
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from core.config import settings

logger = logging.getLogger(__name__)

PERIODS = ("day", "week", "month", "year")
DEFAULT_PERIOD = "week"
FALLBACK_TRAILING_DAYS = 7


@dataclass(frozen=True)
class TimeWindow:
    start: date
    end: date
    timezone: str
    period: str


def resolve_timezone(tz_name: Optional[str]) -> ZoneInfo:
    """Resolve an IANA name, falling back to the configured default."""
    if tz_name:
        try:
            return ZoneInfo(tz_name)
        except (ZoneInfoNotFoundError, ValueError, OSError) as e:
            logger.debug(f"Unsupported timezone '{tz_name}', using {settings.DEFAULT_TIMEZONE}: {e}")
    return ZoneInfo(settings.DEFAULT_TIMEZONE)


def local_today(tz_name: Optional[str] = None, now: Optional[datetime] = None) -> date:
    """Calendar date of `now` (default: current instant) in the given timezone."""
    tz = resolve_timezone(tz_name)
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(tz).date()


def day_of_week(d: date) -> int:
    """Sunday-based weekday (0=Sunday .. 6=Saturday), as stored on workouts."""
    return (d.weekday() + 1) % 7


def days_from_monday(d: date) -> int:
    # Sunday counts as day 7 of the week that started the previous Monday
    return d.weekday()


def resolve_time_window(
    tz_name: Optional[str] = None,
    period: Optional[str] = None,
    now: Optional[datetime] = None,
) -> TimeWindow:
    """
    Resolve the aggregation window for a period in a timezone.

    Unknown periods and unknown timezones are not errors: they fall back to
    the trailing 7-day window and DEFAULT_TIMEZONE respectively.
    """
    tz = resolve_timezone(tz_name)
    today = local_today(tz.key, now)
    period = (period or DEFAULT_PERIOD).lower()

    if period == "day":
        start = today
    elif period == "week":
        start = today - timedelta(days=days_from_monday(today))
    elif period == "month":
        start = today.replace(day=1)
    elif period == "year":
        start = date(today.year, 1, 1)
    else:
        start = today - timedelta(days=FALLBACK_TRAILING_DAYS)

    return TimeWindow(start=start, end=today, timezone=tz.key, period=period)
