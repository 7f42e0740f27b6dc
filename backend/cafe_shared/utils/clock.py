"""
Cafe-local wall clock.

Timestamps are stored as naive datetimes in the cafe's time zone, truncated to
the second. "Today" and "this month" are evaluated in the same frame.
"""

from datetime import datetime
from zoneinfo import ZoneInfo

from cafe_shared.config.settings import settings


def cafe_now(tz_name: str | None = None) -> datetime:
    """Current cafe-local time without tzinfo or microseconds."""
    tz = ZoneInfo(tz_name or settings.cafe_timezone)
    return datetime.now(tz).replace(tzinfo=None, microsecond=0)


def start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def start_of_month(moment: datetime) -> datetime:
    return start_of_day(moment).replace(day=1)
