"""Local-time helpers for calendar-day bucketing.

``tz=None`` everywhere means the system's local zone.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, tzinfo


def to_local(moment: datetime, tz: tzinfo | None = None) -> datetime:
    if tz is None:
        return moment.astimezone()
    return moment.astimezone(tz)


def local_now(tz: tzinfo | None = None) -> datetime:
    return datetime.now(tz) if tz is not None else datetime.now().astimezone()


def local_today(tz: tzinfo | None = None) -> date:
    return local_now(tz).date()


def day_key(moment: datetime, tz: tzinfo | None = None) -> date:
    """Calendar date of *moment* in the local zone."""
    return to_local(moment, tz).date()


def start_of_day(day: date, tz: tzinfo | None = None) -> datetime:
    """Local midnight opening *day*, as an aware datetime."""
    midnight = datetime(day.year, day.month, day.day)
    if tz is None:
        return midnight.astimezone()
    return midnight.replace(tzinfo=tz)


def day_bounds(day: date, tz: tzinfo | None = None) -> tuple[datetime, datetime]:
    """``(start, end)`` of *day*; end is the next local midnight."""
    return start_of_day(day, tz), start_of_day(day + timedelta(days=1), tz)
