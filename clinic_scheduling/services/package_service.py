# clinic_scheduling/services/package_service.py
"""
Package Ledger

Keeps package item consumed counts and package status consistent with the
appointments linked to the package. Counts are always re-derived from the
appointments and overwritten, never incremented, so recomputing is
idempotent and safe to retry.
"""
from collections import Counter
from typing import Dict, Iterable, List, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import crud, models
from ..config import get_settings
from ..exceptions import PackageNotFound, RecomputeFailed
from ..schemas import PackageItemTally, RecomputeResult

logger = structlog.get_logger(__name__)


class PackageLedger:
    """Re-derives package session consumption from the record store."""

    def __init__(self, db: Session, consuming_statuses: Optional[Iterable] = None):
        self.db = db
        if consuming_statuses is None:
            consuming_statuses = get_settings().consuming_statuses
        self.consuming_statuses = frozenset(
            models.AppointmentStatus(getattr(s, "value", s)) for s in consuming_statuses
        )
        if models.AppointmentStatus.CANCELLED in self.consuming_statuses:
            raise ValueError("Cancelled appointments can never consume a package session")

    def tally(self, appointments: Iterable) -> Dict[int, int]:
        """Consumed sessions per service id among the given appointments."""
        return dict(Counter(
            appt.service_id for appt in appointments
            if appt.status in self.consuming_statuses
        ))

    @staticmethod
    def derive_status(current: models.PackageStatus, items: List[PackageItemTally]) -> models.PackageStatus:
        if current == models.PackageStatus.CANCELLED:
            return current
        if all(item.consumed_count >= item.session_count for item in items):
            return models.PackageStatus.COMPLETED
        return models.PackageStatus.ACTIVE

    def recompute(self, package_id: int) -> RecomputeResult:
        """
        Overwrite every item's consumed count with a fresh tally and derive
        the package status. CANCELLED packages are returned untouched.
        Commits on success.
        """
        try:
            package = crud.get_package(self.db, package_id, for_update=True)
            if package is None:
                raise PackageNotFound(f"Package {package_id} not found")

            previous_status = package.status
            if previous_status == models.PackageStatus.CANCELLED:
                skipped = RecomputeResult(
                    package_id=package_id,
                    previous_status=previous_status,
                    status=previous_status,
                    items=[self._snapshot(item, item.consumed_count) for item in package.items],
                    skipped=True,
                )
                self.db.commit()
                logger.info("package_recompute_skipped", package_id=package_id, status=previous_status.value)
                return skipped

            consumed = self.tally(crud.get_package_appointments(self.db, package_id))

            tallies = []
            for item in package.items:
                tally = PackageItemTally(
                    service_id=item.service_id,
                    session_count=item.session_count,
                    previous_consumed_count=item.consumed_count or 0,
                    consumed_count=consumed.get(item.service_id, 0),
                )
                item.consumed_count = tally.consumed_count
                tallies.append(tally)

            new_status = self.derive_status(previous_status, tallies)
            package.status = new_status
            self.db.commit()
        except PackageNotFound:
            self.db.rollback()
            raise
        except (SQLAlchemyError, crud.CRUDError) as e:
            self.db.rollback()
            logger.error("package_recompute_failed", package_id=package_id, error=str(e))
            raise RecomputeFailed(f"Recompute of package {package_id} failed: {e}") from e

        result = RecomputeResult(
            package_id=package_id,
            previous_status=previous_status,
            status=new_status,
            items=tallies,
        )
        logger.info(
            "package_recomputed",
            package_id=package_id,
            status=result.status.value,
            previous_status=previous_status.value,
            changed=result.changed,
        )
        return result

    def recompute_many(self, package_ids: Iterable[int]) -> List[RecomputeResult]:
        seen = []
        for package_id in package_ids:
            if package_id not in seen:
                seen.append(package_id)
        return [self.recompute(package_id) for package_id in seen]

    def recompute_all(self) -> List[RecomputeResult]:
        """Recompute every package that is not CANCELLED; fixes any drift."""
        package_ids = crud.get_package_ids(self.db, exclude_statuses=[models.PackageStatus.CANCELLED])
        logger.info("recomputing_all_packages", count=len(package_ids))
        return self.recompute_many(package_ids)

    def remaining_sessions(self, package_id: int, service_id: int) -> Optional[int]:
        """
        Sessions of a service still bookable in a package: target minus every
        non-cancelled appointment already reserved against it.
        None when the package has no item for the service.
        """
        package = crud.get_package(self.db, package_id)
        if package is None:
            raise PackageNotFound(f"Package {package_id} not found")
        item = next((i for i in package.items if i.service_id == service_id), None)
        if item is None:
            return None
        reserved = len(crud.get_package_appointments(self.db, package_id, service_id=service_id))
        return max(0, item.session_count - reserved)

    @staticmethod
    def _snapshot(item: models.PackageItem, consumed: int) -> PackageItemTally:
        return PackageItemTally(
            service_id=item.service_id,
            session_count=item.session_count,
            previous_consumed_count=consumed or 0,
            consumed_count=consumed or 0,
        )
