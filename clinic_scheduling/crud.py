# clinic_scheduling/crud.py - Record store queries used by the scheduling engine
from sqlalchemy.orm import Session, selectinload
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from datetime import date
from typing import Iterable, List, Optional
import logging

from . import models

logger = logging.getLogger(__name__)


class CRUDError(Exception):
    pass


# ==================== STAFF SCHEDULES & LEAVE ====================

def get_active_schedule(db: Session, staff_id: int, day_of_week: int, for_update: bool = False) -> Optional[models.StaffWorkingSchedule]:
    """Get the active recurring schedule row of a staff member for a weekday."""
    try:
        query = db.query(models.StaffWorkingSchedule).filter(
            models.StaffWorkingSchedule.staff_id == staff_id,
            models.StaffWorkingSchedule.day_of_week == day_of_week,
            models.StaffWorkingSchedule.is_active.is_(True)
        )
        if for_update:
            query = query.with_for_update()
        return query.first()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching schedule for staff {staff_id}, day {day_of_week}: {e}")
        raise CRUDError("A database error occurred while fetching the staff schedule.")


def get_active_schedules_for_day(db: Session, day_of_week: int) -> List[models.StaffWorkingSchedule]:
    """All active schedule rows for a weekday, one per working staff member."""
    try:
        return db.query(models.StaffWorkingSchedule).filter(
            models.StaffWorkingSchedule.day_of_week == day_of_week,
            models.StaffWorkingSchedule.is_active.is_(True)
        ).order_by(models.StaffWorkingSchedule.staff_id).all()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching schedules for day {day_of_week}: {e}")
        raise CRUDError("A database error occurred while fetching staff schedules.")


def get_approved_leaves(db: Session, target_date: date, staff_id: Optional[int] = None) -> List[models.StaffLeave]:
    """Approved leave records covering a date (inclusive range)."""
    try:
        query = db.query(models.StaffLeave).filter(
            models.StaffLeave.is_approved.is_(True),
            models.StaffLeave.start_date <= target_date,
            models.StaffLeave.end_date >= target_date
        )
        if staff_id is not None:
            query = query.filter(models.StaffLeave.staff_id == staff_id)
        return query.all()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching leaves for {target_date}: {e}")
        raise CRUDError("A database error occurred while fetching staff leave.")


# ==================== ROOMS & SERVICES ====================

def get_room(db: Session, room_id: int, for_update: bool = False) -> Optional[models.Room]:
    try:
        query = db.query(models.Room).filter(models.Room.id == room_id)
        if for_update:
            query = query.with_for_update()
        return query.first()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching room {room_id}: {e}")
        raise CRUDError("A database error occurred while fetching the room.")


def get_active_rooms(db: Session) -> List[models.Room]:
    try:
        return db.query(models.Room).filter(models.Room.is_active.is_(True)).order_by(models.Room.id).all()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching rooms: {e}")
        raise CRUDError("A database error occurred while fetching rooms.")


def get_service(db: Session, service_id: int) -> Optional[models.Service]:
    try:
        return db.query(models.Service).filter(models.Service.id == service_id).first()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching service {service_id}: {e}")
        raise CRUDError("A database error occurred while fetching the service.")


# ==================== APPOINTMENTS ====================

def get_appointment(db: Session, appointment_id: int, for_update: bool = False) -> Optional[models.Appointment]:
    try:
        query = db.query(models.Appointment).filter(models.Appointment.id == appointment_id)
        if for_update:
            query = query.with_for_update()
        return query.first()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching appointment {appointment_id}: {e}")
        raise CRUDError("A database error occurred while fetching the appointment.")


def get_active_appointments_for_day(
    db: Session,
    target_date: date,
    staff_id: Optional[int] = None,
    room_id: Optional[int] = None,
    exclude_appointment_id: Optional[int] = None
) -> List[models.Appointment]:
    """
    Non-cancelled appointments on a date sharing the given staff member OR room.
    With neither staff_id nor room_id, every non-cancelled appointment of the day.
    """
    try:
        query = db.query(models.Appointment).filter(
            models.Appointment.scheduled_date == target_date,
            models.Appointment.status != models.AppointmentStatus.CANCELLED
        )
        resources = []
        if staff_id is not None:
            resources.append(models.Appointment.staff_id == staff_id)
        if room_id is not None:
            resources.append(models.Appointment.room_id == room_id)
        if resources:
            query = query.filter(or_(*resources))
        if exclude_appointment_id is not None:
            query = query.filter(models.Appointment.id != exclude_appointment_id)
        return query.order_by(models.Appointment.start_time.asc(), models.Appointment.id.asc()).all()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching appointments for {target_date}: {e}")
        raise CRUDError("A database error occurred while fetching appointments.")


def lock_timetable(db: Session, staff_id: int, room_id: int, day_of_week: int) -> Optional[models.Room]:
    """
    Serialize writers on a staff/room timetable by locking the staff schedule
    row for the weekday and the room row until the transaction ends.
    Returns the locked room (None if it does not exist).
    """
    get_active_schedule(db, staff_id, day_of_week, for_update=True)
    return get_room(db, room_id, for_update=True)


def add_appointment(db: Session, appointment: models.Appointment) -> models.Appointment:
    """Stage a new appointment and flush it to obtain its id. Does NOT commit."""
    try:
        db.add(appointment)
        db.flush()
        return appointment
    except SQLAlchemyError as e:
        logger.error(f"Error creating appointment: {e}")
        raise CRUDError("A database error occurred while creating the appointment.")


# ==================== PACKAGES ====================

def get_package(db: Session, package_id: int, for_update: bool = False) -> Optional[models.ServicePackage]:
    try:
        query = db.query(models.ServicePackage).options(
            selectinload(models.ServicePackage.items)
        ).filter(models.ServicePackage.id == package_id)
        if for_update:
            query = query.with_for_update()
        return query.first()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching package {package_id}: {e}")
        raise CRUDError("A database error occurred while fetching the package.")


def get_package_appointments(db: Session, package_id: int, service_id: Optional[int] = None) -> List[models.Appointment]:
    """Non-cancelled appointments linked to a package."""
    try:
        query = db.query(models.Appointment).filter(
            models.Appointment.package_id == package_id,
            models.Appointment.status != models.AppointmentStatus.CANCELLED
        )
        if service_id is not None:
            query = query.filter(models.Appointment.service_id == service_id)
        return query.all()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching appointments of package {package_id}: {e}")
        raise CRUDError("A database error occurred while fetching package appointments.")


def get_package_ids(db: Session, exclude_statuses: Iterable[models.PackageStatus] = ()) -> List[int]:
    try:
        query = db.query(models.ServicePackage.id)
        excluded = list(exclude_statuses)
        if excluded:
            query = query.filter(~models.ServicePackage.status.in_(excluded))
        return [row[0] for row in query.order_by(models.ServicePackage.id).all()]
    except SQLAlchemyError as e:
        logger.error(f"Error listing packages: {e}")
        raise CRUDError("A database error occurred while listing packages.")
