"""Domain models for lecturer auto-assignment."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class DemandUnit:
    """A student registration waiting for a lecturer."""

    registration_id: str
    student_id: str
    department: Optional[str]
    registered_at: str = ""


@dataclass
class SupplyUnit:
    """A lecturer's remaining capacity for one period.

    The allocator decrements ``slots_remaining`` on its own in-run copy.
    """

    lecturer_id: str
    department: str
    slots_remaining: int
    lecturer_name: str = ""


@dataclass(frozen=True)
class AssignmentRecord:
    registration_id: str
    lecturer_id: str
    status: str


@dataclass(frozen=True)
class PersistenceOutcome:
    confirmed_registration_ids: list[str]
    failed_registration_ids: list[str]

    @property
    def confirmed(self) -> int:
        return len(self.confirmed_registration_ids)


@dataclass(frozen=True)
class AutoAssignSummary:
    status: str
    message: str
    assigned: int
    total_unassigned: int = 0
    confirmed: int = 0
    skipped_registration_ids: list[str] = field(default_factory=list)
    failed_registration_ids: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class CurrentUser:
    user_id: str
    role: str
    department: Optional[str] = None


@dataclass(frozen=True)
class InternshipPeriod:
    period_id: str
    semester: str
    academic_year: str
    registration_start: str
    registration_end: str
    lecturer_selection_end: str
    start_date: str
    end_date: str
    is_active: bool


@dataclass(frozen=True)
class LecturerAvailability:
    period_id: str
    lecturer_id: str
    lecturer_name: str
    lecturer_department: Optional[str]
    max_students: int
    assigned_count: int
    slots_remaining: int
