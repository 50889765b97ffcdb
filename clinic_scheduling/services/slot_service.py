# clinic_scheduling/services/slot_service.py
"""
Slot Generation Service

Enumerates free bookable start times for a staff member on a date,
considering:
- The working window and break (calendar_service)
- Existing non-cancelled appointments of the staff member (conflict_service)
"""
from datetime import date, time
from typing import Dict, Iterator, List, Optional, Tuple

import structlog
from sqlalchemy.orm import Session

from .. import crud
from ..config import get_settings
from ..schemas import ConflictKind, Unavailable, WorkingWindow
from ..timeutils import format_time, from_minutes, to_minutes
from .calendar_service import get_working_window
from .conflict_service import detect_conflicts

logger = structlog.get_logger(__name__)

SlotKey = Tuple[int, date, int, int]


class _SlotBooking:
    """Candidate interval checked against the staff timetable."""
    __slots__ = ("staff_id", "room_id", "scheduled_date", "start_time", "end_time")

    def __init__(self, staff_id: int, scheduled_date: date, start_time: time, end_time: time):
        self.staff_id = staff_id
        self.room_id = None
        self.scheduled_date = scheduled_date
        self.start_time = start_time
        self.end_time = end_time


def iter_free_slots(
    window: WorkingWindow,
    appointments,
    duration_minutes: int,
    step_minutes: int
) -> Iterator[time]:
    """
    Yield start times t, from the window start in steps of step_minutes,
    such that [t, t + duration) fits in the window, misses the break and
    overlaps none of the staff member's appointments.
    """
    if duration_minutes <= 0:
        raise ValueError("Service duration must be positive")
    if step_minutes <= 0:
        raise ValueError("Slot step must be positive")

    appointments = list(appointments)
    window_start = to_minutes(window.start)
    window_end = to_minutes(window.end)
    break_span = (
        (to_minutes(window.break_start), to_minutes(window.break_end)) if window.has_break else None
    )

    current = window_start
    while current + duration_minutes <= window_end:
        slot_end = current + duration_minutes
        if break_span and current < break_span[1] and slot_end > break_span[0]:
            current += step_minutes
            continue

        # Same overlap rule as booking, restricted to the staff dimension
        slot_start_time = from_minutes(current)
        slot_end_time = from_minutes(slot_end)
        slot = _SlotBooking(window.staff_id, window.date, slot_start_time, slot_end_time)
        report = detect_conflicts(slot, appointments, dimensions=(ConflictKind.staff,))
        if not report.has_conflict:
            yield slot_start_time

        current += step_minutes


class SlotCache:
    """
    Memoises free-slot lists per (staff, date, duration, step).

    Entries for a (staff, date) pair must be invalidated after any booking,
    reschedule or cancellation touching that pair.
    """

    def __init__(self):
        self._entries: Dict[SlotKey, List[str]] = {}

    def get(self, key: SlotKey) -> Optional[List[str]]:
        slots = self._entries.get(key)
        return list(slots) if slots is not None else None

    def set(self, key: SlotKey, slots: List[str]) -> None:
        self._entries[key] = list(slots)

    def invalidate(self, staff_id: int, target_date: date) -> int:
        stale = [k for k in self._entries if k[0] == staff_id and k[1] == target_date]
        for key in stale:
            del self._entries[key]
        if stale:
            logger.debug("slot_cache_invalidated", staff_id=staff_id, date=target_date.isoformat(), entries=len(stale))
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: SlotKey) -> bool:
        return key in self._entries


def free_slots(
    db: Session,
    staff_id: int,
    target_date: date,
    duration_minutes: int,
    step_minutes: Optional[int] = None,
    cache: Optional[SlotCache] = None
) -> List[str]:
    """
    Ordered "HH:MM" start times bookable for a service of the given duration.
    Empty when the staff member is not scheduled or on leave that day.
    """
    if step_minutes is None:
        step_minutes = get_settings().slot_step_minutes
    key = (staff_id, target_date, duration_minutes, step_minutes)
    if cache is not None:
        cached = cache.get(key)
        if cached is not None:
            return cached

    window = get_working_window(db, staff_id, target_date)
    if isinstance(window, Unavailable):
        logger.debug("no_working_window", staff_id=staff_id, date=target_date.isoformat(), reason=window.reason.value)
        slots = []
    else:
        appointments = crud.get_active_appointments_for_day(db, target_date, staff_id=staff_id)
        slots = [format_time(t) for t in iter_free_slots(window, appointments, duration_minutes, step_minutes)]

    if cache is not None:
        cache.set(key, slots)
    return slots
