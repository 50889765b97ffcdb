# clinic_scheduling/schemas.py
from datetime import date, datetime, time, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from .models import AppointmentStatus, PackageStatus
from .timeutils import format_time, is_whole_minute


# --- Base Schemas ---
class BaseSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# --- Calendar ---
class WorkingWindow(BaseSchema):
    """Bookable hours of a staff member on one date."""
    staff_id: int
    date: date
    start: time
    end: time
    break_start: Optional[time] = None
    break_end: Optional[time] = None

    @property
    def has_break(self) -> bool:
        return self.break_start is not None and self.break_end is not None


class UnavailableReason(str, Enum):
    not_scheduled = "not scheduled"
    on_leave = "on leave"


class Unavailable(BaseSchema):
    staff_id: int
    date: date
    reason: UnavailableReason


# --- Appointments ---
class AppointmentCandidate(BaseSchema):
    """Appointment descriptor submitted for booking."""
    patient_id: int
    service_id: int
    staff_id: int
    room_id: int
    scheduled_date: date
    start_time: time
    end_time: Optional[time] = None  # derived from the service duration when omitted
    package_id: Optional[int] = None
    notes: Optional[str] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def check_whole_minutes(cls, v):
        if v is not None and not is_whole_minute(v):
            raise ValueError("appointment times are booked in whole minutes (HH:MM)")
        return v


class AppointmentResponse(BaseSchema):
    id: int
    patient_id: int
    package_id: Optional[int] = None
    service_id: int
    staff_id: int
    room_id: int
    scheduled_date: date
    start_time: time
    end_time: time
    status: AppointmentStatus
    notes: Optional[str] = None
    has_conflict: bool = False
    conflict_reason: Optional[str] = None


# --- Conflicts ---
class ConflictKind(str, Enum):
    staff = "staff"
    room = "room"


class ConflictingAppointment(BaseSchema):
    id: int
    staff_id: int
    room_id: int
    scheduled_date: date
    start_time: time
    end_time: time


class ConflictReport(BaseSchema):
    staff_conflicts: List[ConflictingAppointment] = Field(default_factory=list)
    room_conflicts: List[ConflictingAppointment] = Field(default_factory=list)

    @computed_field
    @property
    def staff_conflict(self) -> bool:
        return bool(self.staff_conflicts)

    @computed_field
    @property
    def room_conflict(self) -> bool:
        return bool(self.room_conflicts)

    @computed_field
    @property
    def has_conflict(self) -> bool:
        return self.staff_conflict or self.room_conflict

    @property
    def conflicting_ids(self) -> List[int]:
        seen = []
        for appt in self.staff_conflicts + self.room_conflicts:
            if appt.id not in seen:
                seen.append(appt.id)
        return seen

    def describe(self) -> str:
        """Human-readable summary, stored as the conflict reason of forced bookings."""
        if not self.has_conflict:
            return "No conflict"
        parts = []
        for label, conflicts in (("Staff", self.staff_conflicts), ("Room", self.room_conflicts)):
            if conflicts:
                spans = ", ".join(
                    f"#{c.id} {format_time(c.start_time)}-{format_time(c.end_time)}" for c in conflicts
                )
                parts.append(f"{label} conflict with appointment(s) {spans}")
        return "; ".join(parts)


class AvailableResources(BaseSchema):
    date: date
    start_time: time
    end_time: time
    staff_ids: List[int] = Field(default_factory=list)
    room_ids: List[int] = Field(default_factory=list)


# --- Packages ---
class PackageItemTally(BaseSchema):
    service_id: int
    session_count: int
    previous_consumed_count: int
    consumed_count: int

    @property
    def remaining(self) -> int:
        return max(0, self.session_count - self.consumed_count)


class RecomputeResult(BaseSchema):
    package_id: int
    previous_status: PackageStatus
    status: PackageStatus
    items: List[PackageItemTally] = Field(default_factory=list)
    skipped: bool = False  # CANCELLED packages are never modified

    @property
    def changed(self) -> bool:
        return self.status != self.previous_status or any(
            i.consumed_count != i.previous_consumed_count for i in self.items
        )


# --- Lifecycle ---
class LifecycleEventType(str, Enum):
    created = "created"
    rescheduled = "rescheduled"
    status_changed = "statusChanged"
    conflict_overridden = "conflictOverridden"
    package_recomputed = "packageRecomputed"


class LifecycleEvent(BaseSchema):
    type: LifecycleEventType
    appointment_id: Optional[int] = None
    package_id: Optional[int] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class LedgerWarning(BaseSchema):
    """Non-fatal problem of the follow-up package recompute."""
    code: str
    package_id: int
    message: str


class LifecycleResult(BaseSchema):
    appointment: AppointmentResponse
    events: List[LifecycleEvent] = Field(default_factory=list)
    warnings: List[LedgerWarning] = Field(default_factory=list)
    recompute: Optional[RecomputeResult] = None


class BookingFailure(BaseSchema):
    index: int
    code: str
    message: str


class BulkBookingResult(BaseSchema):
    created: List[LifecycleResult] = Field(default_factory=list)
    errors: List[BookingFailure] = Field(default_factory=list)
