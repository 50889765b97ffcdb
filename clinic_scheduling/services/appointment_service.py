# clinic_scheduling/services/appointment_service.py
"""
Appointment Lifecycle

State machine:
    SCHEDULED -> COMPLETED | CANCELLED | NO_SHOW   (terminal, once)
    SCHEDULED -> SCHEDULED                         (reschedule: date/time only)

Every write runs the same validation pipeline (interval, working window,
break, staff/room conflicts) inside a transaction that holds the timetable
row locks, so check and insert are atomic for the store. Terminal
transitions of package-linked appointments are followed by a package
ledger recompute, which is best-effort: its failures come back as
warnings and never undo the status change.
"""
from datetime import date, time
from typing import Iterable, Optional, Union

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import crud, models
from ..exceptions import (
    AppointmentNotFound, InvalidInterval, InvalidTransition, NoRemainingSessions,
    PackageNotBookable, PackageNotFound, RecomputeFailed, RoomConflict, RoomUnavailable,
    SchedulingConflict, SchedulingError, ServiceNotFound, ServiceNotInPackage, StaffConflict,
)
from ..schemas import (
    AppointmentCandidate, AppointmentResponse, BookingFailure, BulkBookingResult, ConflictReport,
    LedgerWarning, LifecycleEvent, LifecycleEventType, LifecycleResult,
)
from ..timeutils import duration_minutes, format_time, is_whole_minute
from .calendar_service import end_after, get_working_window, require_window, validate_interval
from .conflict_service import check_conflict
from .package_service import PackageLedger
from .slot_service import SlotCache

logger = structlog.get_logger(__name__)


def conflict_error(report: ConflictReport) -> SchedulingConflict:
    """Staff conflicts take precedence; the report always lists both dimensions."""
    if report.staff_conflict:
        return StaffConflict(report)
    return RoomConflict(report)


class AppointmentLifecycle:
    """Validated creation, rescheduling and status transitions of appointments."""

    def __init__(self, db: Session, ledger: Optional[PackageLedger] = None, slot_cache: Optional[SlotCache] = None):
        self.db = db
        self.ledger = ledger or PackageLedger(db)
        self.slot_cache = slot_cache

    # ---------- validation pipeline ----------

    def _validate(self, booking: AppointmentCandidate, exclude_appointment_id: Optional[int] = None) -> ConflictReport:
        if booking.end_time <= booking.start_time:
            raise InvalidInterval(
                f"End time {format_time(booking.end_time)} must be after start time {format_time(booking.start_time)}"
            )
        window = require_window(get_working_window(self.db, booking.staff_id, booking.scheduled_date))
        validate_interval(window, booking.start_time, booking.end_time)
        return check_conflict(self.db, booking, exclude_appointment_id=exclude_appointment_id)

    def _check_package(self, candidate: AppointmentCandidate) -> None:
        package = crud.get_package(self.db, candidate.package_id, for_update=True)
        if package is None:
            raise PackageNotFound(f"Package {candidate.package_id} not found")
        if package.status != models.PackageStatus.ACTIVE or package.patient_id != candidate.patient_id:
            raise PackageNotBookable(f"Package {package.id} is not an active package of patient {candidate.patient_id}")

        remaining = self.ledger.remaining_sessions(package.id, candidate.service_id)
        if remaining is None:
            raise ServiceNotInPackage(f"Service {candidate.service_id} is not part of package {package.id}")
        if remaining <= 0:
            raise NoRemainingSessions(f"No remaining sessions for service {candidate.service_id} in package {package.id}")

    def _rollback(self, error: Exception, action: str, **context) -> None:
        self.db.rollback()
        if isinstance(error, SchedulingError):
            logger.info("booking_rejected", action=action, code=error.code, reason=error.message, **context)
        else:
            logger.error("booking_failed", action=action, error=str(error), **context)

    def _invalidate(self, staff_id: int, *dates: date) -> None:
        if self.slot_cache is None:
            return
        for target_date in set(dates):
            self.slot_cache.invalidate(staff_id, target_date)

    def _recompute(self, package_id: int, appointment_id: int, result: LifecycleResult) -> None:
        try:
            recompute = self.ledger.recompute(package_id)
        except (PackageNotFound, RecomputeFailed) as e:
            logger.warning("package_recompute_warning", package_id=package_id, appointment_id=appointment_id, code=e.code)
            result.warnings.append(LedgerWarning(code=e.code, package_id=package_id, message=e.message))
            return
        result.recompute = recompute
        result.events.append(LifecycleEvent(
            type=LifecycleEventType.package_recomputed,
            appointment_id=appointment_id,
            package_id=package_id,
            details={
                "status": recompute.status.value,
                "previous_status": recompute.previous_status.value,
                "skipped": recompute.skipped,
                "consumed": {str(i.service_id): i.consumed_count for i in recompute.items},
            },
        ))

    @staticmethod
    def _override_event(appointment: models.Appointment, report: ConflictReport) -> LifecycleEvent:
        return LifecycleEvent(
            type=LifecycleEventType.conflict_overridden,
            appointment_id=appointment.id,
            package_id=appointment.package_id,
            details={"reason": report.describe(), "conflicting_appointment_ids": report.conflicting_ids},
        )

    # ---------- operations ----------

    def create(self, candidate: AppointmentCandidate, allow_conflict: bool = False) -> LifecycleResult:
        """
        Book a new SCHEDULED appointment.

        With allow_conflict=True a staff/room overlap does not reject the
        booking; it is persisted with has_conflict set and a readable
        conflict_reason. Working-hour and break rules still apply.
        """
        context = {"staff_id": candidate.staff_id, "room_id": candidate.room_id, "date": candidate.scheduled_date.isoformat()}
        try:
            service = crud.get_service(self.db, candidate.service_id)
            if service is None:
                raise ServiceNotFound(f"Service {candidate.service_id} not found")
            end_time = candidate.end_time
            if end_time is None:
                end_time = end_after(candidate.start_time, service.duration)
            booking = candidate.model_copy(update={"end_time": end_time})

            if booking.package_id is not None:
                self._check_package(booking)

            room = crud.lock_timetable(self.db, booking.staff_id, booking.room_id, booking.scheduled_date.weekday())
            if room is None or not room.is_active:
                raise RoomUnavailable(f"Room {booking.room_id} does not exist or is not active")

            report = self._validate(booking)
            if report.has_conflict and not allow_conflict:
                raise conflict_error(report)

            appointment = crud.add_appointment(self.db, models.Appointment(
                patient_id=booking.patient_id,
                package_id=booking.package_id,
                service_id=booking.service_id,
                staff_id=booking.staff_id,
                room_id=booking.room_id,
                scheduled_date=booking.scheduled_date,
                start_time=booking.start_time,
                end_time=booking.end_time,
                status=models.AppointmentStatus.SCHEDULED,
                notes=booking.notes,
                has_conflict=report.has_conflict,
                conflict_reason=report.describe() if report.has_conflict else None,
            ))
            self.db.commit()
        except (SchedulingError, crud.CRUDError) as e:
            self._rollback(e, "create", **context)
            raise
        except SQLAlchemyError as e:
            self._rollback(e, "create", **context)
            raise crud.CRUDError("A database error occurred while creating the appointment.") from e

        self._invalidate(appointment.staff_id, appointment.scheduled_date)
        result = LifecycleResult(appointment=AppointmentResponse.model_validate(appointment))
        result.events.append(LifecycleEvent(
            type=LifecycleEventType.created,
            appointment_id=appointment.id,
            package_id=appointment.package_id,
            details={
                "staff_id": appointment.staff_id,
                "room_id": appointment.room_id,
                "date": appointment.scheduled_date.isoformat(),
                "start_time": format_time(appointment.start_time),
                "end_time": format_time(appointment.end_time),
            },
        ))
        if report.has_conflict:
            result.events.append(self._override_event(appointment, report))
            logger.warning("conflict_overridden", appointment_id=appointment.id, reason=report.describe())
        logger.info("appointment_created", appointment_id=appointment.id, **context)

        if appointment.package_id is not None:
            self._recompute(appointment.package_id, appointment.id, result)
        return result

    def create_many(self, candidates: Iterable[AppointmentCandidate], allow_conflict: bool = False) -> BulkBookingResult:
        """
        Book several appointments in order, each in its own transaction.
        Earlier bookings are visible to later ones; failures are collected.
        """
        result = BulkBookingResult()
        for index, candidate in enumerate(candidates):
            try:
                result.created.append(self.create(candidate, allow_conflict=allow_conflict))
            except SchedulingError as e:
                result.errors.append(BookingFailure(index=index, code=e.code, message=e.message))
            except crud.CRUDError as e:
                result.errors.append(BookingFailure(index=index, code="DATABASE_ERROR", message=str(e)))
        logger.info("bulk_booking_finished", created=len(result.created), failed=len(result.errors))
        return result

    def reschedule(
        self,
        appointment_id: int,
        new_date: date,
        new_start: time,
        allow_conflict: bool = False
    ) -> LifecycleResult:
        """Move a SCHEDULED appointment to a new date/start, keeping its duration."""
        context = {"appointment_id": appointment_id, "date": new_date.isoformat()}
        try:
            appointment = crud.get_appointment(self.db, appointment_id, for_update=True)
            if appointment is None:
                raise AppointmentNotFound(f"Appointment {appointment_id} not found")
            if appointment.status != models.AppointmentStatus.SCHEDULED:
                raise InvalidTransition(
                    f"Appointment {appointment_id} is {appointment.status.value}; only scheduled appointments can be rescheduled"
                )

            if not is_whole_minute(new_start):
                raise InvalidInterval(f"Start time {new_start.isoformat()} is not a whole minute")
            new_end = end_after(new_start, duration_minutes(appointment.start_time, appointment.end_time))
            booking = AppointmentCandidate(
                patient_id=appointment.patient_id,
                service_id=appointment.service_id,
                staff_id=appointment.staff_id,
                room_id=appointment.room_id,
                scheduled_date=new_date,
                start_time=new_start,
                end_time=new_end,
                package_id=appointment.package_id,
            )
            room = crud.lock_timetable(self.db, booking.staff_id, booking.room_id, new_date.weekday())
            if room is None or not room.is_active:
                raise RoomUnavailable(f"Room {booking.room_id} does not exist or is not active")
            report = self._validate(booking, exclude_appointment_id=appointment.id)
            if report.has_conflict and not allow_conflict:
                raise conflict_error(report)

            previous = {
                "date": appointment.scheduled_date.isoformat(),
                "start_time": format_time(appointment.start_time),
                "end_time": format_time(appointment.end_time),
            }
            old_date = appointment.scheduled_date
            appointment.scheduled_date = new_date
            appointment.start_time = new_start
            appointment.end_time = new_end
            appointment.has_conflict = report.has_conflict
            appointment.conflict_reason = report.describe() if report.has_conflict else None
            self.db.commit()
        except (SchedulingError, crud.CRUDError) as e:
            self._rollback(e, "reschedule", **context)
            raise
        except SQLAlchemyError as e:
            self._rollback(e, "reschedule", **context)
            raise crud.CRUDError("A database error occurred while rescheduling the appointment.") from e

        self._invalidate(appointment.staff_id, old_date, new_date)
        result = LifecycleResult(appointment=AppointmentResponse.model_validate(appointment))
        result.events.append(LifecycleEvent(
            type=LifecycleEventType.rescheduled,
            appointment_id=appointment.id,
            package_id=appointment.package_id,
            details={
                "from": previous,
                "to": {
                    "date": new_date.isoformat(),
                    "start_time": format_time(new_start),
                    "end_time": format_time(new_end),
                },
            },
        ))
        if report.has_conflict:
            result.events.append(self._override_event(appointment, report))
            logger.warning("conflict_overridden", appointment_id=appointment.id, reason=report.describe())
        logger.info("appointment_rescheduled", **context)
        return result

    def transition_status(
        self,
        appointment_id: int,
        new_status: Union[models.AppointmentStatus, str]
    ) -> LifecycleResult:
        """
        Move a SCHEDULED appointment to COMPLETED, CANCELLED or NO_SHOW.
        Repeating the current status is a no-op.
        """
        context = {"appointment_id": appointment_id}
        try:
            try:
                target = models.AppointmentStatus(getattr(new_status, "value", new_status))
            except ValueError:
                raise InvalidTransition(f"Unknown appointment status {new_status!r}")

            appointment = crud.get_appointment(self.db, appointment_id, for_update=True)
            if appointment is None:
                raise AppointmentNotFound(f"Appointment {appointment_id} not found")

            previous = appointment.status
            if previous == target:
                self.db.rollback()
                return LifecycleResult(appointment=AppointmentResponse.model_validate(appointment))

            if previous != models.AppointmentStatus.SCHEDULED or not target.is_terminal:
                raise InvalidTransition(f"Cannot change appointment {appointment_id} from {previous.value} to {target.value}")

            appointment.status = target
            self.db.commit()
        except (SchedulingError, crud.CRUDError) as e:
            self._rollback(e, "update", **context)
            raise
        except SQLAlchemyError as e:
            self._rollback(e, "update", **context)
            raise crud.CRUDError("A database error occurred while updating the appointment status.") from e

        if target == models.AppointmentStatus.CANCELLED:
            self._invalidate(appointment.staff_id, appointment.scheduled_date)

        result = LifecycleResult(appointment=AppointmentResponse.model_validate(appointment))
        result.events.append(LifecycleEvent(
            type=LifecycleEventType.status_changed,
            appointment_id=appointment.id,
            package_id=appointment.package_id,
            details={"from": previous.value, "to": target.value},
        ))
        logger.info("appointment_status_changed", previous=previous.value, status=target.value, **context)

        if appointment.package_id is not None:
            self._recompute(appointment.package_id, appointment.id, result)
        return result

    def cancel(self, appointment_id: int) -> LifecycleResult:
        return self.transition_status(appointment_id, models.AppointmentStatus.CANCELLED)
