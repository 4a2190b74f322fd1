"""Calendar window and ISO-week helpers shared by the condition evaluators.

All functions are pure. Calendar boundaries (start of day, start of week)
are taken in the timezone of the value passed in; stored timestamps are UTC.
"""

from collections.abc import Iterable
from datetime import date, datetime, timedelta, timezone
from enum import Enum


class WindowUnit(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


WINDOW_DAYS = {
    WindowUnit.DAY: 1,
    WindowUnit.WEEK: 7,
    WindowUnit.MONTH: 30,
}


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on the way back)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def start_of_day(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def truncate_to_window_start(
    value: datetime, unit: WindowUnit | str, count: int = 1
) -> datetime:
    """Start of the trailing calendar window that ends on `value`'s day.

    A one-day window starts at midnight of `value`'s day; a one-week window
    covers that day plus the six before it, and so on. This is a calendar
    window, not a rolling clock: 23:59 and 00:01 of the same day share it.
    """
    if count < 1:
        raise ValueError("Window count must be at least 1")
    days = WINDOW_DAYS[WindowUnit(unit)] * count
    return start_of_day(value) - timedelta(days=days - 1)


def count_in_window(
    timestamps: Iterable[datetime], start: datetime, end: datetime
) -> int:
    return sum(1 for ts in timestamps if start <= ts <= end)


def _as_date(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def week_key(value: date | datetime) -> str:
    """ISO 8601 week key, e.g. '2025-01'.

    The year is the ISO year (the year holding the week's Thursday), so
    2024-12-31 maps to '2025-01'. Keys sort chronologically as strings.
    """
    iso_year, iso_week, _ = _as_date(value).isocalendar()
    return f"{iso_year}-{iso_week:02d}"


def week_start(value: date | datetime) -> date:
    """Monday of the ISO week containing `value`."""
    day = _as_date(value)
    return day - timedelta(days=day.weekday())


def trailing_week_keys(anchor: date | datetime, weeks: int) -> list[str]:
    """Keys of the anchor's week and the `weeks - 1` weeks before it, newest first."""
    monday = week_start(anchor)
    return [week_key(monday - timedelta(weeks=offset)) for offset in range(weeks)]


def consecutive_week_streak(covered: set[str], anchor: date | datetime) -> int:
    """Number of contiguous covered weeks ending at the anchor's week."""
    streak = 0
    monday = week_start(anchor)
    while week_key(monday) in covered:
        streak += 1
        monday -= timedelta(weeks=1)
    return streak
