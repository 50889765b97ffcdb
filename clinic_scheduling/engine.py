# clinic_scheduling/engine.py - Entry point wiring the scheduling services to one session
from datetime import date
from typing import List, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from .config import Settings, get_settings
from .core.logging import setup_logging
from .database import create_tables
from .schemas import AvailableResources
from .services.appointment_service import AppointmentLifecycle
from .services.calendar_service import WindowOrUnavailable, get_working_window
from .services.conflict_service import check_conflict, find_available_resources
from .services.package_service import PackageLedger
from .services.slot_service import SlotCache, free_slots


def startup(settings: Optional[Settings] = None, bind: Optional[Engine] = None):
    """Configure logging and make sure the tables exist."""
    settings = settings or get_settings()
    logger = setup_logging(settings)
    create_tables(bind=bind)
    logger.info("scheduling_engine_started", environment=settings.environment, slot_cache=settings.slot_cache_enabled)
    return logger


class SchedulingEngine:
    """
    The scheduling services bound to one database session.

    A slot cache is created when SLOT_CACHE_ENABLED is set, unless the
    caller shares its own across engines.
    """

    def __init__(self, db: Session, settings: Optional[Settings] = None, slot_cache: Optional[SlotCache] = None):
        self.db = db
        self.settings = settings or get_settings()
        if slot_cache is None and self.settings.slot_cache_enabled:
            slot_cache = SlotCache()
        self.slot_cache = slot_cache
        self.ledger = PackageLedger(db, consuming_statuses=self.settings.consuming_statuses)
        self.appointments = AppointmentLifecycle(db, ledger=self.ledger, slot_cache=slot_cache)

    def working_window(self, staff_id: int, target_date: date) -> WindowOrUnavailable:
        return get_working_window(self.db, staff_id, target_date)

    def free_slots(self, staff_id: int, target_date: date, duration_minutes: int, step_minutes: Optional[int] = None) -> List[str]:
        return free_slots(
            self.db,
            staff_id,
            target_date,
            duration_minutes,
            step_minutes=self.settings.slot_step_minutes if step_minutes is None else step_minutes,
            cache=self.slot_cache,
        )

    def check_conflict(self, candidate, exclude_appointment_id: Optional[int] = None):
        return check_conflict(self.db, candidate, exclude_appointment_id=exclude_appointment_id)

    def available_resources(self, target_date: date, start_time, end_time) -> AvailableResources:
        return find_available_resources(self.db, target_date, start_time, end_time)
