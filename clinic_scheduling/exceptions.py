# clinic_scheduling/exceptions.py
"""Typed failures reported by the scheduling engine.

Every failure carries a stable ``code`` so callers can map it to a
response without parsing messages.
"""
from typing import Optional


class SchedulingError(Exception):
    code = "SCHEDULING_ERROR"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.__class__.__doc__ or self.code
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class InvalidInterval(SchedulingError):
    """Appointment end time must be after its start time."""
    code = "INVALID_INTERVAL"


class StaffUnavailable(SchedulingError):
    """Staff member has no working window on this date."""
    code = "STAFF_UNAVAILABLE"


class StaffNotScheduled(StaffUnavailable):
    """Staff member is not scheduled to work on this date."""
    code = "STAFF_NOT_SCHEDULED"


class StaffOnLeave(StaffUnavailable):
    """Staff member is on leave on this date."""
    code = "STAFF_ON_LEAVE"


class OutOfWorkingHours(SchedulingError):
    """Appointment time is outside staff working hours."""
    code = "OUT_OF_WORKING_HOURS"


class DuringBreak(SchedulingError):
    """Appointment time overlaps the staff break."""
    code = "DURING_BREAK"


class SchedulingConflict(SchedulingError):
    """Time slot conflicts with existing appointments."""
    code = "CONFLICT"

    def __init__(self, report, message: Optional[str] = None):
        self.report = report
        super().__init__(message or report.describe())

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["conflicts"] = self.report.model_dump(mode="json")
        return data


class StaffConflict(SchedulingConflict):
    code = "STAFF_CONFLICT"


class RoomConflict(SchedulingConflict):
    code = "ROOM_CONFLICT"


class InvalidTransition(SchedulingError):
    """Status change not permitted from the current state."""
    code = "INVALID_TRANSITION"


class AppointmentNotFound(SchedulingError):
    """Appointment not found."""
    code = "APPOINTMENT_NOT_FOUND"


class ServiceNotFound(SchedulingError):
    """Service not found."""
    code = "SERVICE_NOT_FOUND"


class RoomUnavailable(SchedulingError):
    """Room does not exist or is not active."""
    code = "ROOM_UNAVAILABLE"


class PackageNotFound(SchedulingError):
    """Package not found."""
    code = "PACKAGE_NOT_FOUND"


class PackageNotBookable(SchedulingError):
    """Invalid or inactive package for this patient."""
    code = "PACKAGE_NOT_BOOKABLE"


class ServiceNotInPackage(SchedulingError):
    """Service not found in package."""
    code = "SERVICE_NOT_IN_PACKAGE"


class NoRemainingSessions(SchedulingError):
    """No remaining sessions for this service."""
    code = "NO_REMAINING_SESSIONS"


class RecomputeFailed(SchedulingError):
    """Package session counts could not be recomputed."""
    code = "RECOMPUTE_FAILED"
