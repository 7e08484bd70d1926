"""
Time helpers.

All timestamps are stored as naive UTC datetimes.
"""
from datetime import date, datetime, time, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime | date, end_of_day: bool = False) -> datetime:
    """
    Normalize an incoming date/datetime to naive UTC.

    Plain dates become midnight, or the last microsecond of the day when
    ``end_of_day`` is set (deadlines given as a date run through that day).
    """
    if not isinstance(value, datetime):
        return datetime.combine(value, time.max if end_of_day else time.min)
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value
