from __future__ import annotations

import logging
import threading
from dataclasses import replace

import pytest

from backend.domain.models import SupplyUnit
from backend.repository.data_repository import DataRepository, RepositoryError
from backend.services.assignment_service import (
    AssignmentInProgressError,
    AutoAssignmentService,
    NoAvailableLecturersError,
)
from backend.utils.config import get_settings


PERIOD_ID = "period-1"


def _build_test_settings(tmp_path, filename: str, **overrides):
    base = get_settings()
    return replace(base, database_path=tmp_path / filename, **overrides)


def _build_repository(tmp_path, filename: str, **overrides) -> tuple[DataRepository, object]:
    settings = _build_test_settings(tmp_path, filename, **overrides)
    repository = DataRepository(settings)
    repository.initialize_database()
    repository.create_period(
        semester="1",
        academic_year="2026-2027",
        registration_start="2026-09-01",
        registration_end="2026-09-15",
        lecturer_selection_end="2026-09-22",
        start_date="2026-10-01",
        end_date="2026-12-31",
        is_active=True,
        period_id=PERIOD_ID,
    )
    return repository, settings


def _add_lecturers(repository: DataRepository, lecturers: list[tuple[str, str, int]]) -> None:
    for lecturer_id, department, max_students in lecturers:
        repository.create_profile(
            email=f"{lecturer_id}@example.edu",
            full_name=lecturer_id,
            role="lecturer",
            department=department,
            password_hash="unused",
            profile_id=lecturer_id,
        )
        repository.add_period_lecturers(PERIOD_ID, [lecturer_id], max_students)


def _register_students(repository: DataRepository, students: list[tuple[str, str | None]]) -> list[str]:
    registration_ids = []
    for position, (student_id, department) in enumerate(students):
        repository.create_profile(
            email=f"{student_id}@example.edu",
            full_name=student_id,
            role="student",
            department=department,
            password_hash="unused",
            profile_id=student_id,
        )
        registration_ids.append(
            repository.create_registration(
                PERIOD_ID,
                student_id,
                registered_at=f"2026-09-02T08:00:{position:02d}+00:00",
                registration_id=f"reg-{student_id}",
            )
        )
    return registration_ids


def test_two_unassigned_students_fill_one_lecturer(tmp_path):
    repository, settings = _build_repository(tmp_path, "scenario_a.db")
    _add_lecturers(repository, [("lec-cs", "CS", 6)])
    first, second, third = _register_students(
        repository, [("s1", "CS"), ("s2", "CS"), ("s3", "CS")]
    )
    assert repository.assign_lecturer(first, "lec-cs", "lecturer_confirmed")

    service = AutoAssignmentService(repository=repository, settings=settings)
    assert service.collect_supply(PERIOD_ID)[0].slots_remaining == 5

    summary = service.auto_assign(PERIOD_ID)

    assert summary.status == "completed"
    assert summary.assigned == 2
    assert summary.total_unassigned == 2
    assert summary.confirmed == 2
    for registration_id in (second, third):
        record = repository.get_registration(registration_id)
        assert record.assigned_lecturer_id == "lec-cs"
        assert record.status == "lecturer_confirmed"
    assert repository.list_lecturer_availability(PERIOD_ID)[0].slots_remaining == 3


def test_unmatched_department_is_skipped_but_counted(tmp_path):
    repository, settings = _build_repository(tmp_path, "scenario_b.db")
    _add_lecturers(repository, [("lec-cs", "CS", 3)])
    cs_registration, ee_registration = _register_students(repository, [("s1", "CS"), ("s2", "EE")])

    summary = AutoAssignmentService(repository=repository, settings=settings).auto_assign(PERIOD_ID)

    assert summary.assigned == 1
    assert summary.total_unassigned == 2
    assert summary.skipped_registration_ids == [ee_registration]
    assert repository.get_registration(cs_registration).assigned_lecturer_id == "lec-cs"
    assert repository.get_registration(ee_registration).assigned_lecturer_id is None


def test_no_demand_short_circuits_before_supply(tmp_path, monkeypatch):
    repository, settings = _build_repository(tmp_path, "scenario_c.db")
    service = AutoAssignmentService(repository=repository, settings=settings)

    def _fail(period_id):
        raise AssertionError("supply collector must not run without demand")

    monkeypatch.setattr(service, "collect_supply", _fail)

    summary = service.auto_assign(PERIOD_ID)

    assert summary.status == "nothing_to_do"
    assert summary.message == "No unassigned students found"
    assert summary.assigned == 0


def test_unknown_period_is_nothing_to_do(tmp_path):
    repository, settings = _build_repository(tmp_path, "unknown_period.db")

    summary = AutoAssignmentService(repository=repository, settings=settings).auto_assign("missing")

    assert summary.status == "nothing_to_do"


def test_no_lecturer_capacity_raises(tmp_path):
    repository, settings = _build_repository(tmp_path, "scenario_d.db")
    _register_students(repository, [("s1", "CS")])
    service = AutoAssignmentService(repository=repository, settings=settings)

    with pytest.raises(NoAvailableLecturersError, match="No available lecturers with remaining slots"):
        service.auto_assign(PERIOD_ID)


def test_full_lecturers_count_as_no_supply(tmp_path):
    repository, settings = _build_repository(tmp_path, "scenario_d_full.db")
    _add_lecturers(repository, [("lec-cs", "CS", 1)])
    first, _ = _register_students(repository, [("s1", "CS"), ("s2", "CS")])
    assert repository.assign_lecturer(first, "lec-cs", "lecturer_confirmed")

    with pytest.raises(NoAvailableLecturersError):
        AutoAssignmentService(repository=repository, settings=settings).auto_assign(PERIOD_ID)


def test_tied_lecturers_split_students(tmp_path):
    repository, settings = _build_repository(tmp_path, "scenario_e.db")
    _add_lecturers(repository, [("lec-a", "CS", 3), ("lec-b", "CS", 3)])
    first, second = _register_students(repository, [("s1", "CS"), ("s2", "CS")])

    AutoAssignmentService(repository=repository, settings=settings).auto_assign(PERIOD_ID)

    assert repository.get_registration(first).assigned_lecturer_id == "lec-a"
    assert repository.get_registration(second).assigned_lecturer_id == "lec-b"


def test_failed_update_does_not_stop_the_batch(tmp_path, monkeypatch):
    repository, settings = _build_repository(tmp_path, "persist_failure.db")
    _add_lecturers(repository, [("lec-cs", "CS", 5)])
    first, second, third = _register_students(
        repository, [("s1", "CS"), ("s2", "CS"), ("s3", "CS")]
    )
    original_assign = repository.assign_lecturer

    def _flaky_assign(registration_id, lecturer_id, status):
        if registration_id == first:
            raise RepositoryError("disk I/O error")
        return original_assign(registration_id, lecturer_id, status)

    monkeypatch.setattr(repository, "assign_lecturer", _flaky_assign)

    summary = AutoAssignmentService(repository=repository, settings=settings).auto_assign(PERIOD_ID)

    assert summary.assigned == 3
    assert summary.confirmed == 2
    assert summary.failed_registration_ids == [first]
    assert repository.get_registration(first).assigned_lecturer_id is None
    assert repository.get_registration(second).assigned_lecturer_id == "lec-cs"
    assert repository.get_registration(third).assigned_lecturer_id == "lec-cs"


def test_stale_capacity_snapshot_is_rejected_by_store(tmp_path, monkeypatch):
    repository, settings = _build_repository(tmp_path, "stale_snapshot.db")
    _add_lecturers(repository, [("lec-cs", "CS", 1)])
    first, second = _register_students(repository, [("s1", "CS"), ("s2", "CS")])
    service = AutoAssignmentService(repository=repository, settings=settings)
    monkeypatch.setattr(
        service,
        "collect_supply",
        lambda period_id: [SupplyUnit(lecturer_id="lec-cs", department="CS", slots_remaining=2)],
    )

    summary = service.auto_assign(PERIOD_ID)

    assert summary.assigned == 2
    assert summary.confirmed == 1
    assert summary.failed_registration_ids == [second]
    assert repository.list_lecturer_availability(PERIOD_ID)[0].slots_remaining == 0


def test_rerun_only_sees_students_still_unassigned(tmp_path):
    repository, settings = _build_repository(tmp_path, "rerun.db")
    _add_lecturers(repository, [("lec-cs", "CS", 5)])
    _register_students(repository, [("s1", "CS"), ("s2", "EE"), ("s3", "CS")])
    service = AutoAssignmentService(repository=repository, settings=settings)

    first_run = service.auto_assign(PERIOD_ID)
    second_run = service.auto_assign(PERIOD_ID)

    assert first_run.total_unassigned == 3
    assert second_run.total_unassigned == 1
    assert second_run.assigned == 0


def test_collector_failure_propagates(tmp_path, monkeypatch):
    repository, settings = _build_repository(tmp_path, "collector_failure.db")

    def _broken(period_id):
        raise RepositoryError("no such table")

    monkeypatch.setattr(repository, "list_unassigned_registrations", _broken)

    with pytest.raises(RepositoryError):
        AutoAssignmentService(repository=repository, settings=settings).auto_assign(PERIOD_ID)


def test_concurrent_runs_do_not_oversubscribe(tmp_path):
    repository, settings = _build_repository(tmp_path, "concurrent.db")
    _add_lecturers(repository, [("lec-a", "CS", 2), ("lec-b", "CS", 2)])
    registration_ids = _register_students(
        repository, [(f"s{index}", "CS") for index in range(6)]
    )
    service = AutoAssignmentService(repository=repository, settings=settings)
    errors: list[BaseException] = []

    def _run() -> None:
        try:
            service.auto_assign(PERIOD_ID)
        except NoAvailableLecturersError:
            pass
        except BaseException as exc:  # surfaced in the assertion below
            errors.append(exc)

    threads = [threading.Thread(target=_run) for _ in range(3)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assigned = [repository.get_registration(rid).assigned_lecturer_id for rid in registration_ids]
    assert assigned.count("lec-a") == 2
    assert assigned.count("lec-b") == 2
    assert assigned.count(None) == 2


def test_lock_timeout_raises_in_progress(tmp_path):
    repository, settings = _build_repository(
        tmp_path,
        "lock_timeout.db",
        assignment_lock_timeout_seconds=0.05,
    )
    service = AutoAssignmentService(repository=repository, settings=settings)
    held = service._checkout_lock(PERIOD_ID)
    held.lock.acquire()
    try:
        with pytest.raises(AssignmentInProgressError):
            service.auto_assign(PERIOD_ID)
    finally:
        held.lock.release()
        service._checkin_lock(PERIOD_ID, held)

    assert service.auto_assign("other-period").status == "nothing_to_do"


def test_period_lock_entries_are_released_after_runs(tmp_path):
    repository, settings = _build_repository(
        tmp_path,
        "lock_registry.db",
        assignment_lock_timeout_seconds=0.05,
    )
    _add_lecturers(repository, [("lec-cs", "CS", 2)])
    _register_students(repository, [("s1", "CS")])
    service = AutoAssignmentService(repository=repository, settings=settings)

    service.auto_assign(PERIOD_ID)
    for index in range(5):
        service.auto_assign(f"unknown-{index}")

    held = service._checkout_lock(PERIOD_ID)
    held.lock.acquire()
    try:
        with pytest.raises(AssignmentInProgressError):
            service.auto_assign(PERIOD_ID)
        assert set(service._period_locks) == {PERIOD_ID}
    finally:
        held.lock.release()
        service._checkin_lock(PERIOD_ID, held)

    assert service._period_locks == {}


def test_run_logs_in_run_remaining_slots(tmp_path, caplog):
    repository, settings = _build_repository(tmp_path, "slots_log.db")
    _add_lecturers(repository, [("lec-a", "CS", 3), ("lec-b", "EE", 1)])
    _register_students(repository, [("s1", "CS"), ("s2", "CS"), ("s3", "EE")])
    caplog.set_level(logging.DEBUG, logger="backend.services.assignment_service")

    AutoAssignmentService(repository=repository, settings=settings).auto_assign(PERIOD_ID)

    slot_lines = [
        record.getMessage()
        for record in caplog.records
        if record.getMessage().startswith("In-run slots remaining")
    ]
    assert slot_lines == [
        f"In-run slots remaining | period_id={PERIOD_ID} | slots={{'lec-a': 1, 'lec-b': 0}}"
    ]


def test_invalid_status_configuration_is_rejected(tmp_path):
    settings = _build_test_settings(
        tmp_path,
        "bad_config.db",
        assignment_confirmed_status="registered",
    )

    with pytest.raises(ValueError):
        AutoAssignmentService(repository=DataRepository(settings), settings=settings)
