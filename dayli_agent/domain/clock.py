"""Single source of "now" for every date computation in the pipeline."""

from typing import Callable
from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo


Clock = Callable[[], datetime]


def system_clock() -> datetime:
    """Aware UTC wall-clock time"""
    return datetime.now(timezone.utc)


def fixed_clock(moment: datetime) -> Clock:
    """Clock frozen at one instant"""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return lambda: moment


def localize(moment: datetime, tz_name: str) -> datetime:
    """Express an instant in the user's timezone"""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(ZoneInfo(tz_name))


def at_local_time(day: date, hhmm: str, tz_name: str) -> datetime:
    """Aware datetime for an HH:MM wall-clock time on a day in the given timezone"""
    hour, minute = (int(part) for part in hhmm.split(":", 1))
    return datetime.combine(day, time(hour, minute), tzinfo=ZoneInfo(tz_name))
