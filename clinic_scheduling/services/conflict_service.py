# clinic_scheduling/services/conflict_service.py
"""
Conflict Detection Service

Detects scheduling conflicts between a candidate interval and existing
appointments sharing the same staff member or the same room, considering:
- Half-open intervals [start, end): touching appointments never conflict
- Appointment status (cancelled appointments never conflict)
- The appointment being rescheduled (excluded from its own check)
"""
from datetime import date, time
from typing import Iterable, Optional, Sequence

from sqlalchemy.orm import Session

from .. import crud, models
from ..exceptions import ServiceNotFound
from ..schemas import AppointmentCandidate, AvailableResources, ConflictingAppointment, ConflictKind, ConflictReport
from ..timeutils import overlaps
from .calendar_service import end_after, is_bookable, resolve_working_window

ALL_DIMENSIONS = (ConflictKind.staff, ConflictKind.room)


def intervals_overlap(start1: time, end1: time, start2: time, end2: time) -> bool:
    """start1 < end2 and end1 > start2, compared at full time precision."""
    return overlaps((start1, end1), (start2, end2))


def detect_conflicts(
    candidate,
    existing: Iterable,
    exclude_appointment_id: Optional[int] = None,
    dimensions: Sequence[ConflictKind] = ALL_DIMENSIONS
) -> ConflictReport:
    """
    Compare a candidate against already-fetched appointments.

    ``candidate`` needs staff_id, room_id, scheduled_date, start_time and
    end_time; ``existing`` items additionally need id and status. A
    conflicting appointment sharing both staff and room is listed under
    both dimensions.
    """
    report = ConflictReport()
    for appt in existing:
        if appt.status == models.AppointmentStatus.CANCELLED:
            continue
        if exclude_appointment_id is not None and appt.id == exclude_appointment_id:
            continue
        if appt.scheduled_date != candidate.scheduled_date:
            continue
        if not intervals_overlap(candidate.start_time, candidate.end_time, appt.start_time, appt.end_time):
            continue

        entry = ConflictingAppointment.model_validate(appt)
        if ConflictKind.staff in dimensions and appt.staff_id == candidate.staff_id:
            report.staff_conflicts.append(entry)
        if ConflictKind.room in dimensions and appt.room_id == candidate.room_id:
            report.room_conflicts.append(entry)
    return report


def with_end_time(db: Session, candidate: AppointmentCandidate) -> AppointmentCandidate:
    """Fill a missing end time from the service duration."""
    if candidate.end_time is not None:
        return candidate
    service = crud.get_service(db, candidate.service_id)
    if service is None:
        raise ServiceNotFound(f"Service {candidate.service_id} not found")
    return candidate.model_copy(update={"end_time": end_after(candidate.start_time, service.duration)})


def check_conflict(
    db: Session,
    candidate,
    exclude_appointment_id: Optional[int] = None,
    dimensions: Sequence[ConflictKind] = ALL_DIMENSIONS
) -> ConflictReport:
    """
    Detect overlaps with stored non-cancelled appointments.

    A candidate without an end time is measured with its service duration.

    Atomicity against concurrent writers is the caller's job: run this and
    the persisting write inside one transaction holding the timetable locks
    (see crud.lock_timetable).
    """
    candidate = with_end_time(db, candidate)
    existing = crud.get_active_appointments_for_day(
        db,
        candidate.scheduled_date,
        staff_id=candidate.staff_id if ConflictKind.staff in dimensions else None,
        room_id=candidate.room_id if ConflictKind.room in dimensions else None,
        exclude_appointment_id=exclude_appointment_id,
    )
    return detect_conflicts(candidate, existing, exclude_appointment_id, dimensions)


def find_available_resources(
    db: Session,
    target_date: date,
    start_time: time,
    end_time: time,
    exclude_appointment_id: Optional[int] = None
) -> AvailableResources:
    """
    Staff members and rooms free for [start_time, end_time) on a date.

    Staff must be scheduled that weekday, not on leave, have the interval
    inside working hours and outside the break, and have no overlapping
    appointment. Rooms must be active with no overlapping appointment.
    """
    day_appointments = [
        appt for appt in crud.get_active_appointments_for_day(db, target_date)
        if appt.id != exclude_appointment_id
        and intervals_overlap(start_time, end_time, appt.start_time, appt.end_time)
    ]
    busy_staff = {appt.staff_id for appt in day_appointments}
    busy_rooms = {appt.room_id for appt in day_appointments}

    leaves = crud.get_approved_leaves(db, target_date)
    staff_ids = []
    for schedule in crud.get_active_schedules_for_day(db, target_date.weekday()):
        if schedule.staff_id in busy_staff:
            continue
        window = resolve_working_window(schedule.staff_id, target_date, schedule, leaves)
        if is_bookable(window, start_time, end_time):
            staff_ids.append(schedule.staff_id)

    room_ids = [room.id for room in crud.get_active_rooms(db) if room.id not in busy_rooms]

    return AvailableResources(
        date=target_date,
        start_time=start_time,
        end_time=end_time,
        staff_ids=sorted(staff_ids),
        room_ids=sorted(room_ids),
    )
