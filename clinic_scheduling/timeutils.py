"""
Clock-time helpers.

Appointment and schedule times are wall-clock times within a single
scheduled date. Arithmetic is done in minutes since midnight.
"""

from datetime import datetime, time, timedelta
from typing import Tuple, Union

MINUTES_PER_DAY = 24 * 60


def to_time(value: Union[time, timedelta, str]) -> time:
    """Convert a time, a timedelta since midnight, or an "HH:MM[:SS]" string to time."""
    if isinstance(value, time):
        return value
    if isinstance(value, timedelta):
        return (datetime.min + value).time()
    if isinstance(value, str):
        parts = value.strip().split(":")
        if len(parts) not in (2, 3) or not all(p.isdigit() for p in parts):
            raise ValueError(f"Invalid time string: {value!r}")
        return time(*(int(p) for p in parts))
    raise ValueError(f"Cannot convert {type(value)} to time")


def format_time(value: time) -> str:
    return value.strftime("%H:%M")


def to_minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def is_whole_minute(value: time) -> bool:
    return value.second == 0 and value.microsecond == 0


def from_minutes(minutes: int) -> time:
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise ValueError(f"{minutes} minutes is outside a single day")
    return time(minutes // 60, minutes % 60)


def add_minutes(value: time, minutes: int) -> time:
    """Shift a clock time; raises ValueError when the result leaves the day."""
    return from_minutes(to_minutes(value) + minutes)


def duration_minutes(start: time, end: time) -> int:
    return to_minutes(end) - to_minutes(start)


def overlaps(a: Tuple, b: Tuple) -> bool:
    """Half-open overlap of two (start, end) intervals of minutes or times; touching ends do not overlap."""
    return a[0] < b[1] and a[1] > b[0]
