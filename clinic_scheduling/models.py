# clinic_scheduling/models.py
from sqlalchemy import (
    Column, Integer, String, DateTime, Time, ForeignKey, Text, Date,
    Enum as SQLAlchemyEnum, Boolean, Index, UniqueConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from .database import Base
import enum


class AppointmentStatus(str, enum.Enum):
    SCHEDULED = "SCHEDULED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"

    @property
    def is_terminal(self) -> bool:
        return self is not AppointmentStatus.SCHEDULED


class PackageStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class Room(Base):
    """Treatment room; shared resource for conflict detection"""
    __tablename__ = "rooms"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    appointments = relationship("Appointment", back_populates="room")


class Service(Base):
    """Bookable treatment service"""
    __tablename__ = "services"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), unique=True, nullable=False)
    duration = Column(Integer, nullable=False)  # minutes
    session_count = Column(Integer, default=1, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


class StaffWorkingSchedule(Base):
    """Recurring weekly working hours of a staff member (one row per weekday)"""
    __tablename__ = "staff_schedules"
    __table_args__ = (
        Index('idx_staff_schedule_staff_day', 'staff_id', 'day_of_week'),
        UniqueConstraint('staff_id', 'day_of_week', name='uq_staff_day'),
    )

    id = Column(Integer, primary_key=True, index=True)
    staff_id = Column(Integer, nullable=False, index=True)

    day_of_week = Column(Integer, nullable=False)  # 0=Monday, 6=Sunday
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    break_start = Column(Time, nullable=True)
    break_end = Column(Time, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)


class StaffLeave(Base):
    """Leave/absence of a staff member over an inclusive date range"""
    __tablename__ = "staff_leaves"
    __table_args__ = (
        Index('idx_staff_leave_range', 'staff_id', 'start_date', 'end_date'),
    )

    id = Column(Integer, primary_key=True, index=True)
    staff_id = Column(Integer, nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    reason = Column(Text, nullable=True)
    is_approved = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())


class ServicePackage(Base):
    """Bundle of pre-paid sessions across one or more services"""
    __tablename__ = "packages"
    __table_args__ = (
        Index('idx_packages_patient_status', 'patient_id', 'status'),
    )

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, nullable=False, index=True)
    name = Column(String(255), nullable=False, default="Package")
    status = Column(SQLAlchemyEnum(PackageStatus, name='package_status'), default=PackageStatus.ACTIVE, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    items = relationship("PackageItem", back_populates="package", cascade="all, delete-orphan", order_by="PackageItem.id")
    appointments = relationship("Appointment", back_populates="package")


class PackageItem(Base):
    """Per-service session target and derived consumed count of a package"""
    __tablename__ = "package_items"
    __table_args__ = (
        UniqueConstraint('package_id', 'service_id', name='uq_package_service'),
    )

    id = Column(Integer, primary_key=True, index=True)
    package_id = Column(Integer, ForeignKey("packages.id"), nullable=False)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False)
    session_count = Column(Integer, nullable=False)
    # Derived by the package ledger; never edited elsewhere
    consumed_count = Column(Integer, default=0, nullable=False)

    package = relationship("ServicePackage", back_populates="items")
    service = relationship("Service")


class Appointment(Base):
    """Booked treatment session for a patient with one staff member in one room"""
    __tablename__ = "appointments"
    __table_args__ = (
        Index('idx_appointments_staff_date', 'staff_id', 'scheduled_date'),
        Index('idx_appointments_room_date', 'room_id', 'scheduled_date'),
        Index('idx_appointments_package_status', 'package_id', 'status'),
    )

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, nullable=False, index=True)
    package_id = Column(Integer, ForeignKey("packages.id"), nullable=True)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False)
    staff_id = Column(Integer, nullable=False)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=False)

    # Timing: half-open interval [start_time, end_time) on scheduled_date
    scheduled_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)

    status = Column(SQLAlchemyEnum(AppointmentStatus, name='appointment_status'), default=AppointmentStatus.SCHEDULED, nullable=False)
    notes = Column(Text, nullable=True)

    # Forced double bookings
    has_conflict = Column(Boolean, default=False, nullable=False)
    conflict_reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    package = relationship("ServicePackage", back_populates="appointments")
    service = relationship("Service")
    room = relationship("Room", back_populates="appointments")
