# clinic_scheduling/services/calendar_service.py
"""
Schedule Calendar

Resolves the working window of a staff member for a date from the
recurring weekly schedule rows and approved leave.
"""
from datetime import date, time
from typing import Iterable, Optional, Union

from sqlalchemy.orm import Session

from .. import crud, models
from ..exceptions import DuringBreak, InvalidInterval, OutOfWorkingHours, StaffNotScheduled, StaffOnLeave
from ..schemas import Unavailable, UnavailableReason, WorkingWindow
from ..timeutils import add_minutes, format_time, overlaps

WindowOrUnavailable = Union[WorkingWindow, Unavailable]


def resolve_working_window(
    staff_id: int,
    target_date: date,
    schedule: Optional[models.StaffWorkingSchedule],
    leaves: Iterable[models.StaffLeave] = ()
) -> WindowOrUnavailable:
    """
    Pure resolution of a working window.

    Leave covering the date wins over the schedule row; a missing or
    inactive schedule row means the staff member does not work that day.
    Only approved leave counts.
    """
    for leave in leaves:
        if not getattr(leave, "is_approved", True):
            continue
        if leave.staff_id == staff_id and leave.start_date <= target_date <= leave.end_date:
            return Unavailable(staff_id=staff_id, date=target_date, reason=UnavailableReason.on_leave)

    if (
        schedule is None
        or not schedule.is_active
        or schedule.staff_id != staff_id
        or schedule.day_of_week != target_date.weekday()
    ):
        return Unavailable(staff_id=staff_id, date=target_date, reason=UnavailableReason.not_scheduled)

    has_break = schedule.break_start is not None and schedule.break_end is not None
    return WorkingWindow(
        staff_id=staff_id,
        date=target_date,
        start=schedule.start_time,
        end=schedule.end_time,
        break_start=schedule.break_start if has_break else None,
        break_end=schedule.break_end if has_break else None,
    )


def get_working_window(db: Session, staff_id: int, target_date: date) -> WindowOrUnavailable:
    """Working window of a staff member on a date (0=Monday weekday index)."""
    leaves = crud.get_approved_leaves(db, target_date, staff_id=staff_id)
    schedule = crud.get_active_schedule(db, staff_id, target_date.weekday())
    return resolve_working_window(staff_id, target_date, schedule, leaves)


def require_window(window: WindowOrUnavailable) -> WorkingWindow:
    """Turn an Unavailable result into the matching typed failure."""
    if isinstance(window, Unavailable):
        if window.reason == UnavailableReason.on_leave:
            raise StaffOnLeave(f"Staff member {window.staff_id} is on leave on {window.date.isoformat()}")
        raise StaffNotScheduled(f"Staff member {window.staff_id} is not scheduled to work on {window.date.isoformat()}")
    return window


def validate_interval(window: WorkingWindow, start: time, end: time) -> None:
    """Check that [start, end) is a proper interval inside the window and outside its break."""
    if end <= start:
        raise InvalidInterval(f"End time {format_time(end)} must be after start time {format_time(start)}")

    if start < window.start or end > window.end:
        raise OutOfWorkingHours(
            f"{format_time(start)}-{format_time(end)} is outside working hours "
            f"{format_time(window.start)}-{format_time(window.end)}"
        )

    if window.has_break and overlaps((start, end), (window.break_start, window.break_end)):
        raise DuringBreak(
            f"{format_time(start)}-{format_time(end)} overlaps the break "
            f"{format_time(window.break_start)}-{format_time(window.break_end)}"
        )


def is_bookable(window: WindowOrUnavailable, start: time, end: time) -> bool:
    if isinstance(window, Unavailable):
        return False
    try:
        validate_interval(window, start, end)
    except (InvalidInterval, OutOfWorkingHours, DuringBreak):
        return False
    return True


def end_after(start: time, minutes: int) -> time:
    """End of an appointment of the given length; intervals never cross midnight."""
    try:
        return add_minutes(start, minutes)
    except ValueError:
        raise InvalidInterval(f"A {minutes} minute appointment starting at {format_time(start)} would end after midnight")
