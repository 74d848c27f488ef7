"""Lecturer auto-assignment: collect demand and supply, allocate greedily, persist."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from threading import Lock
from typing import Iterable, Iterator, Optional, Sequence

from backend.domain.constraints import AssignmentConfig, validate_assignment_config
from backend.domain.models import (
    AssignmentRecord,
    AutoAssignSummary,
    DemandUnit,
    PersistenceOutcome,
    SupplyUnit,
)
from backend.repository.data_repository import DataRepository, RepositoryError
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)

NOTHING_TO_DO_MESSAGE = "No unassigned students found"
NO_LECTURERS_MESSAGE = "No available lecturers with remaining slots"


class NoAvailableLecturersError(Exception):
    """Raised when a period has no lecturer with remaining slots."""


class AssignmentInProgressError(Exception):
    """Raised when another run for the same period holds the lock too long."""


class DepartmentIndex:
    """Supply units grouped by department, in first-seen order.

    Holds its own copies of the units so decrements stay local to one run.
    """

    def __init__(self) -> None:
        self._units_by_department: dict[str, list[SupplyUnit]] = {}

    @classmethod
    def from_supply(cls, supply: Iterable[SupplyUnit]) -> "DepartmentIndex":
        index = cls()
        for unit in supply:
            index._units_by_department.setdefault(unit.department, []).append(replace(unit))
        return index

    def __contains__(self, department: object) -> bool:
        return department in self._units_by_department

    def __iter__(self) -> Iterator[str]:
        return iter(self._units_by_department)

    def units(self, department: str) -> list[SupplyUnit]:
        return self._units_by_department.get(department, [])

    def candidates(self, department: str) -> list[SupplyUnit]:
        """Units with capacity left, most remaining slots first.

        ``sorted`` is stable even with ``reverse=True``, so ties keep
        first-encountered order.
        """
        eligible = [unit for unit in self.units(department) if unit.slots_remaining > 0]
        return sorted(eligible, key=lambda unit: unit.slots_remaining, reverse=True)

    def remaining_slots(self) -> dict[str, int]:
        """In-run slots left per lecturer id, in index order."""
        return {
            unit.lecturer_id: unit.slots_remaining
            for units in self._units_by_department.values()
            for unit in units
        }


@dataclass
class _PeriodLock:
    lock: Lock = field(default_factory=Lock)
    users: int = 0


@dataclass(frozen=True)
class AllocationOutcome:
    records: list[AssignmentRecord]
    skipped_registration_ids: list[str]
    department_index: DepartmentIndex

    @property
    def skipped(self) -> int:
        return len(self.skipped_registration_ids)


def allocate(
    demand: Sequence[DemandUnit],
    supply: Sequence[SupplyUnit],
    *,
    status: str = "lecturer_confirmed",
) -> AllocationOutcome:
    """Assign each demand unit to the least-loaded lecturer of its department.

    Single pass in demand order. Never raises; unmatched units are skipped.
    """
    index = DepartmentIndex.from_supply(supply)
    records: list[AssignmentRecord] = []
    skipped: list[str] = []

    for unit in demand:
        if not unit.department or unit.department not in index:
            logger.info(
                "No available lecturer | student_id=%s | department=%s",
                unit.student_id,
                unit.department,
            )
            skipped.append(unit.registration_id)
            continue

        candidates = index.candidates(unit.department)
        if not candidates:
            logger.info(
                "No available slots | student_id=%s | department=%s",
                unit.student_id,
                unit.department,
            )
            skipped.append(unit.registration_id)
            continue

        chosen = candidates[0]
        records.append(
            AssignmentRecord(
                registration_id=unit.registration_id,
                lecturer_id=chosen.lecturer_id,
                status=status,
            )
        )
        chosen.slots_remaining -= 1

    return AllocationOutcome(
        records=records,
        skipped_registration_ids=skipped,
        department_index=index,
    )


def persist_assignments(
    repository: DataRepository,
    records: Sequence[AssignmentRecord],
) -> PersistenceOutcome:
    """Apply each record as its own update; a failure never stops the rest."""
    confirmed: list[str] = []
    failed: list[str] = []
    for record in records:
        try:
            updated = repository.assign_lecturer(
                record.registration_id,
                record.lecturer_id,
                record.status,
            )
        except RepositoryError:
            logger.exception(
                "Failed to assign student | registration_id=%s | lecturer_id=%s",
                record.registration_id,
                record.lecturer_id,
            )
            failed.append(record.registration_id)
            continue
        if not updated:
            logger.error(
                "Assignment rejected by store | registration_id=%s | lecturer_id=%s",
                record.registration_id,
                record.lecturer_id,
            )
            failed.append(record.registration_id)
            continue
        confirmed.append(record.registration_id)
    return PersistenceOutcome(
        confirmed_registration_ids=confirmed,
        failed_registration_ids=failed,
    )


class AutoAssignmentService:
    """Orchestrates demand collection, supply collection, allocation and persistence."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._config = AssignmentConfig(
            pending_status=self._settings.registration_pending_status,
            confirmed_status=self._settings.assignment_confirmed_status,
            lock_timeout_seconds=self._settings.assignment_lock_timeout_seconds,
        )
        validate_assignment_config(self._config)
        self._registry_lock = Lock()
        self._period_locks: dict[str, _PeriodLock] = {}

    def _checkout_lock(self, period_id: str) -> _PeriodLock:
        with self._registry_lock:
            entry = self._period_locks.setdefault(period_id, _PeriodLock())
            entry.users += 1
            return entry

    def _checkin_lock(self, period_id: str, entry: _PeriodLock) -> None:
        """Drop the registry entry once no run holds or waits on it."""
        with self._registry_lock:
            entry.users -= 1
            if entry.users == 0:
                self._period_locks.pop(period_id, None)

    def collect_demand(self, period_id: str) -> list[DemandUnit]:
        return self._repository.list_unassigned_registrations(period_id)

    def collect_supply(self, period_id: str) -> list[SupplyUnit]:
        return self._repository.list_available_lecturers(period_id)

    def auto_assign(self, period_id: str) -> AutoAssignSummary:
        entry = self._checkout_lock(period_id)
        try:
            if not entry.lock.acquire(timeout=self._config.lock_timeout_seconds):
                raise AssignmentInProgressError(
                    f"Auto-assignment for period {period_id} is already running"
                )
            try:
                return self._run(period_id)
            finally:
                entry.lock.release()
        finally:
            self._checkin_lock(period_id, entry)

    def _run(self, period_id: str) -> AutoAssignSummary:
        demand = self.collect_demand(period_id)
        if not demand:
            logger.info("Auto-assign skipped | period_id=%s | reason=no_demand", period_id)
            return AutoAssignSummary(
                status="nothing_to_do",
                message=NOTHING_TO_DO_MESSAGE,
                assigned=0,
            )

        supply = self.collect_supply(period_id)
        if not supply:
            logger.warning(
                "Auto-assign aborted | period_id=%s | unassigned=%s | reason=no_supply",
                period_id,
                len(demand),
            )
            raise NoAvailableLecturersError(NO_LECTURERS_MESSAGE)

        outcome = allocate(demand, supply, status=self._config.confirmed_status)
        persisted = persist_assignments(self._repository, outcome.records)
        assigned = len(outcome.records)

        logger.info(
            (
                "Auto-assign completed | period_id=%s | assigned=%s | confirmed=%s | "
                "skipped=%s | failed=%s | total_unassigned=%s"
            ),
            period_id,
            assigned,
            persisted.confirmed,
            outcome.skipped,
            len(persisted.failed_registration_ids),
            len(demand),
        )
        logger.debug(
            "In-run slots remaining | period_id=%s | slots=%s",
            period_id,
            outcome.department_index.remaining_slots(),
        )
        return AutoAssignSummary(
            status="completed",
            message=f"Successfully assigned {assigned} students",
            assigned=assigned,
            total_unassigned=len(demand),
            confirmed=persisted.confirmed,
            skipped_registration_ids=list(outcome.skipped_registration_ids),
            failed_registration_ids=list(persisted.failed_registration_ids),
        )
