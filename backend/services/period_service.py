"""Period, lecturer-capacity and registration workflows around auto-assignment."""

from __future__ import annotations

from dataclasses import replace
from typing import Optional, Sequence

from backend.domain.constraints import validate_max_students
from backend.domain.models import InternshipPeriod, LecturerAvailability
from backend.repository.data_repository import (
    DataRepository,
    DuplicateRecordError,
    RegistrationRecord,
)
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


class PeriodValidationError(Exception):
    """Raised when period workflow inputs are invalid."""


class PeriodNotFoundError(Exception):
    """Raised when a period id does not exist."""


class DuplicateRegistrationError(Exception):
    """Raised when a student registers twice for one period."""


PERIOD_FIELDS = (
    "semester",
    "academic_year",
    "registration_start",
    "registration_end",
    "lecturer_selection_end",
    "start_date",
    "end_date",
    "is_active",
)


def _validate_dates(period: InternshipPeriod) -> None:
    # ISO dates compare correctly as strings.
    if period.registration_start > period.registration_end:
        raise PeriodValidationError("registration_start must not be after registration_end")
    if period.registration_end > period.lecturer_selection_end:
        raise PeriodValidationError("lecturer_selection_end must not be before registration_end")
    if period.start_date > period.end_date:
        raise PeriodValidationError("start_date must not be after end_date")


class PeriodService:
    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)

    def _require_period(self, period_id: str) -> InternshipPeriod:
        period = self._repository.get_period(period_id)
        if period is None:
            raise PeriodNotFoundError(f"Period {period_id} not found")
        return period

    def list_periods(self) -> list[InternshipPeriod]:
        return self._repository.list_periods()

    def create_period(
        self,
        *,
        semester: str,
        academic_year: str,
        registration_start: str,
        registration_end: str,
        lecturer_selection_end: str,
        start_date: str,
        end_date: str,
        is_active: bool = False,
    ) -> InternshipPeriod:
        _validate_dates(
            InternshipPeriod(
                period_id="",
                semester=semester,
                academic_year=academic_year,
                registration_start=registration_start,
                registration_end=registration_end,
                lecturer_selection_end=lecturer_selection_end,
                start_date=start_date,
                end_date=end_date,
                is_active=is_active,
            )
        )
        period = self._repository.create_period(
            semester=semester,
            academic_year=academic_year,
            registration_start=registration_start,
            registration_end=registration_end,
            lecturer_selection_end=lecturer_selection_end,
            start_date=start_date,
            end_date=end_date,
            is_active=is_active,
        )
        logger.info("Period created | period_id=%s | is_active=%s", period.period_id, is_active)
        return period

    def update_period(self, period_id: str, **changes) -> InternshipPeriod:
        """Apply a partial update; ``None`` values leave a field unchanged."""
        unknown = set(changes) - set(PERIOD_FIELDS)
        if unknown:
            raise PeriodValidationError(f"Unknown period fields: {', '.join(sorted(unknown))}")
        current = self._require_period(period_id)
        merged = replace(
            current,
            **{name: value for name, value in changes.items() if value is not None},
        )
        _validate_dates(merged)
        updated = self._repository.update_period(merged)
        if updated is None:
            raise PeriodNotFoundError(f"Period {period_id} not found")
        logger.info(
            "Period updated | period_id=%s | is_active=%s",
            period_id,
            updated.is_active,
        )
        return updated

    def delete_period(self, period_id: str) -> None:
        if not self._repository.delete_period(period_id):
            raise PeriodNotFoundError(f"Period {period_id} not found")
        logger.info("Period deleted | period_id=%s", period_id)

    def list_period_lecturers(self, period_id: str) -> list[LecturerAvailability]:
        return self._repository.list_lecturer_availability(period_id)

    def add_lecturers(
        self,
        period_id: str,
        lecturer_ids: Sequence[str],
        max_students: Optional[int] = None,
    ) -> list[LecturerAvailability]:
        if not lecturer_ids:
            raise PeriodValidationError("lecturer_ids must contain at least one id")
        capacity = max_students if max_students is not None else self._settings.default_max_students
        try:
            validate_max_students(capacity)
        except ValueError as exc:
            raise PeriodValidationError(str(exc)) from exc
        self._require_period(period_id)

        unique_ids = list(dict.fromkeys(lecturer_ids))
        profiles = self._repository.list_profiles_by_ids(unique_ids)
        lecturer_ids_found = {
            profile.profile_id for profile in profiles if profile.role == "lecturer"
        }
        unknown = [lecturer_id for lecturer_id in unique_ids if lecturer_id not in lecturer_ids_found]
        if unknown:
            raise PeriodValidationError(f"Not lecturers: {', '.join(unknown)}")

        try:
            self._repository.add_period_lecturers(period_id, unique_ids, capacity)
        except DuplicateRecordError as exc:
            raise PeriodValidationError("One or more lecturers are already in this period") from exc
        logger.info(
            "Lecturers added | period_id=%s | count=%s | max_students=%s",
            period_id,
            len(unique_ids),
            capacity,
        )
        added = set(unique_ids)
        return [
            row
            for row in self._repository.list_lecturer_availability(period_id)
            if row.lecturer_id in added
        ]

    def remove_lecturer(self, period_id: str, lecturer_id: str) -> bool:
        return self._repository.remove_period_lecturer(period_id, lecturer_id)

    def register_student(self, period_id: str, student_id: str) -> RegistrationRecord:
        self._require_period(period_id)
        try:
            registration_id = self._repository.create_registration(period_id, student_id)
        except DuplicateRecordError as exc:
            raise DuplicateRegistrationError("Student is already registered for this period") from exc
        return self._repository.get_registration(registration_id)

    def available_lecturers_for(
        self,
        period_id: str,
        department: Optional[str],
    ) -> list[LecturerAvailability]:
        """Lecturers of one department, most remaining slots first."""
        if not department:
            return []
        return self._repository.list_lecturer_availability(
            period_id,
            department=department,
            order_by_slots=True,
        )
