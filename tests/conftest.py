# tests/conftest.py
import itertools
from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from clinic_scheduling import models
from clinic_scheduling.config import get_settings
from clinic_scheduling.database import Base
from clinic_scheduling.timeutils import to_time

# 2026-01-05 is a Monday (weekday 0)
MONDAY = date(2026, 1, 5)
TUESDAY = date(2026, 1, 6)


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch):
    """Every test starts from default settings, whatever the shell exports."""
    for name in (
        "PACKAGE_CONSUMING_STATUSES", "SLOT_STEP_MINUTES", "SLOT_CACHE_ENABLED",
        "DATABASE_URL", "LOG_JSON", "LOG_LEVEL", "ENVIRONMENT",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def engine():
    """In-memory SQLite database shared by every session of one test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = Session()
    yield session
    session.close()


class Factory:
    """Creates and commits rows with sensible defaults."""

    def __init__(self, db):
        self.db = db
        self._seq = itertools.count(1)

    def _save(self, obj):
        self.db.add(obj)
        self.db.commit()
        self.db.refresh(obj)
        return obj

    def room(self, name=None, is_active=True):
        return self._save(models.Room(name=name or f"Room {next(self._seq)}", is_active=is_active))

    def service(self, name=None, duration=30, session_count=1):
        return self._save(models.Service(
            name=name or f"Service {next(self._seq)}",
            duration=duration,
            session_count=session_count,
            is_active=True,
        ))

    def schedule(self, staff_id, day_of_week=0, start="09:00", end="17:00",
                 break_start=None, break_end=None, is_active=True):
        return self._save(models.StaffWorkingSchedule(
            staff_id=staff_id,
            day_of_week=day_of_week,
            start_time=to_time(start),
            end_time=to_time(end),
            break_start=to_time(break_start) if break_start else None,
            break_end=to_time(break_end) if break_end else None,
            is_active=is_active,
        ))

    def leave(self, staff_id, start_date, end_date=None, is_approved=True):
        return self._save(models.StaffLeave(
            staff_id=staff_id,
            start_date=start_date,
            end_date=end_date or start_date,
            is_approved=is_approved,
        ))

    def package(self, patient_id, items, status=models.PackageStatus.ACTIVE):
        """``items`` maps service id to session target."""
        package = models.ServicePackage(patient_id=patient_id, name=f"Package {next(self._seq)}", status=status)
        for service_id, session_count in items.items():
            package.items.append(models.PackageItem(service_id=service_id, session_count=session_count, consumed_count=0))
        return self._save(package)

    def appointment(self, staff_id, room_id, service_id, start, end, scheduled_date=MONDAY,
                    status=models.AppointmentStatus.SCHEDULED, patient_id=1, package_id=None):
        return self._save(models.Appointment(
            patient_id=patient_id,
            package_id=package_id,
            service_id=service_id,
            staff_id=staff_id,
            room_id=room_id,
            scheduled_date=scheduled_date,
            start_time=to_time(start),
            end_time=to_time(end),
            status=status,
            has_conflict=False,
        ))


@pytest.fixture
def factory(db):
    return Factory(db)
