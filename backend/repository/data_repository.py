"""Repository layer responsible for all database access."""

from __future__ import annotations

import sqlite3
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Sequence

from backend.domain.models import (
    DemandUnit,
    InternshipPeriod,
    LecturerAvailability,
    SupplyUnit,
)
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


class RepositoryError(RuntimeError):
    """Raised when a storage operation fails."""


class DuplicateRecordError(RepositoryError):
    """Raised when an insert violates a uniqueness constraint."""


@dataclass(frozen=True)
class ProfileRecord:
    """Profile projection used by auth and period workflows."""

    profile_id: str
    email: str
    full_name: str
    role: str
    department: Optional[str]
    password_hash: str


@dataclass(frozen=True)
class RegistrationRecord:
    registration_id: str
    period_id: str
    student_id: str
    status: str
    assigned_lecturer_id: Optional[str]
    registered_at: str


def _new_id() -> str:
    return str(uuid.uuid4())


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class DataRepository:
    """Encapsulates SQLite access so business logic stays storage-agnostic."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._db_path = Path(self._settings.database_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def database_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self._db_path, timeout=10.0)
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON;")
        return connection

    def initialize_database(self) -> None:
        """Create all persistence artifacts before API startup."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS profiles (
                        id TEXT PRIMARY KEY,
                        email TEXT NOT NULL UNIQUE,
                        full_name TEXT NOT NULL,
                        role TEXT NOT NULL CHECK (role IN ('admin', 'lecturer', 'student')),
                        department TEXT,
                        password_hash TEXT NOT NULL,
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS internship_periods (
                        id TEXT PRIMARY KEY,
                        semester TEXT NOT NULL,
                        academic_year TEXT NOT NULL,
                        registration_start TEXT NOT NULL,
                        registration_end TEXT NOT NULL,
                        lecturer_selection_end TEXT NOT NULL,
                        start_date TEXT NOT NULL,
                        end_date TEXT NOT NULL,
                        is_active INTEGER NOT NULL DEFAULT 0 CHECK (is_active IN (0,1)),
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS period_lecturers (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        period_id TEXT NOT NULL,
                        lecturer_id TEXT NOT NULL,
                        max_students INTEGER NOT NULL CHECK (max_students > 0),
                        UNIQUE (period_id, lecturer_id),
                        FOREIGN KEY (period_id) REFERENCES internship_periods(id) ON DELETE CASCADE,
                        FOREIGN KEY (lecturer_id) REFERENCES profiles(id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS student_registrations (
                        id TEXT PRIMARY KEY,
                        period_id TEXT NOT NULL,
                        student_id TEXT NOT NULL,
                        status TEXT NOT NULL DEFAULT 'registered',
                        assigned_lecturer_id TEXT,
                        registered_at TEXT NOT NULL,
                        UNIQUE (period_id, student_id),
                        FOREIGN KEY (period_id) REFERENCES internship_periods(id) ON DELETE CASCADE,
                        FOREIGN KEY (student_id) REFERENCES profiles(id),
                        FOREIGN KEY (assigned_lecturer_id) REFERENCES profiles(id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE VIEW IF NOT EXISTS lecturer_availability AS
                    SELECT
                        pl.id AS position,
                        pl.period_id,
                        pl.lecturer_id,
                        p.full_name AS lecturer_name,
                        p.department AS lecturer_department,
                        pl.max_students,
                        COUNT(sr.id) AS assigned_count,
                        pl.max_students - COUNT(sr.id) AS slots_remaining
                    FROM period_lecturers AS pl
                    INNER JOIN profiles AS p ON p.id = pl.lecturer_id
                    LEFT JOIN student_registrations AS sr
                        ON sr.period_id = pl.period_id
                       AND sr.assigned_lecturer_id = pl.lecturer_id
                    GROUP BY pl.id;
                    """
                )

                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_registrations_period_status
                    ON student_registrations(period_id, status, assigned_lecturer_id);
                    """
                )
                conn.commit()
            logger.info("Database initialized at %s", self._db_path)
        except sqlite3.Error as exc:
            raise RepositoryError(f"Database initialization failed: {exc}") from exc

    def seed_demo_data(self, password_hash: str) -> None:
        """Seed a small demo period only when no profiles exist yet."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT COUNT(*) AS count FROM profiles;")
                if int(cursor.fetchone()["count"]) > 0:
                    logger.info("Demo data already present; skipping seed")
                    return

                profiles = [
                    ("admin@example.edu", "Site Admin", "admin", None),
                    ("lan.nguyen@example.edu", "Lan Nguyen", "lecturer", "CS"),
                    ("minh.tran@example.edu", "Minh Tran", "lecturer", "CS"),
                    ("hoa.le@example.edu", "Hoa Le", "lecturer", "EE"),
                    ("student01@example.edu", "Student 01", "student", "CS"),
                    ("student02@example.edu", "Student 02", "student", "CS"),
                    ("student03@example.edu", "Student 03", "student", "CS"),
                    ("student04@example.edu", "Student 04", "student", "EE"),
                    ("student05@example.edu", "Student 05", "student", "ME"),
                ]
                profile_ids: dict[str, str] = {}
                for email, full_name, role, department in profiles:
                    profile_ids[email] = _new_id()
                    cursor.execute(
                        """
                        INSERT INTO profiles (id, email, full_name, role, department, password_hash)
                        VALUES (?, ?, ?, ?, ?, ?);
                        """,
                        (profile_ids[email], email, full_name, role, department, password_hash),
                    )

                period_id = _new_id()
                cursor.execute(
                    """
                    INSERT INTO internship_periods (
                        id, semester, academic_year, registration_start, registration_end,
                        lecturer_selection_end, start_date, end_date, is_active
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, 1);
                    """,
                    (
                        period_id,
                        "1",
                        "2026-2027",
                        "2026-09-01",
                        "2026-09-15",
                        "2026-09-22",
                        "2026-10-01",
                        "2026-12-31",
                    ),
                )
                cursor.executemany(
                    """
                    INSERT INTO period_lecturers (period_id, lecturer_id, max_students)
                    VALUES (?, ?, ?);
                    """,
                    [
                        (period_id, profile_ids["lan.nguyen@example.edu"], 2),
                        (period_id, profile_ids["minh.tran@example.edu"], 3),
                        (period_id, profile_ids["hoa.le@example.edu"], 1),
                    ],
                )
                for email, _, role, _ in profiles:
                    if role != "student":
                        continue
                    cursor.execute(
                        """
                        INSERT INTO student_registrations (id, period_id, student_id, status, registered_at)
                        VALUES (?, ?, ?, ?, ?);
                        """,
                        (
                            _new_id(),
                            period_id,
                            profile_ids[email],
                            self._settings.registration_pending_status,
                            _utc_now(),
                        ),
                    )
                conn.commit()
            logger.info("Demo seed completed | period_id=%s | profiles=%s", period_id, len(profiles))
        except sqlite3.Error as exc:
            raise RepositoryError(f"Demo data seeding failed: {exc}") from exc

    # --- profiles ---

    def create_profile(
        self,
        *,
        email: str,
        full_name: str,
        role: str,
        department: Optional[str],
        password_hash: str,
        profile_id: Optional[str] = None,
    ) -> str:
        new_id = profile_id or _new_id()
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO profiles (id, email, full_name, role, department, password_hash)
                    VALUES (?, ?, ?, ?, ?, ?);
                    """,
                    (new_id, email, full_name, role, department, password_hash),
                )
                conn.commit()
        except sqlite3.IntegrityError as exc:
            raise DuplicateRecordError(f"Profile could not be created: {exc}") from exc
        return new_id

    def _profile_from_row(self, row: sqlite3.Row) -> ProfileRecord:
        return ProfileRecord(
            profile_id=str(row["id"]),
            email=str(row["email"]),
            full_name=str(row["full_name"]),
            role=str(row["role"]),
            department=row["department"],
            password_hash=str(row["password_hash"]),
        )

    def get_profile(self, profile_id: str) -> Optional[ProfileRecord]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM profiles WHERE id = ?;", (profile_id,))
            row = cursor.fetchone()
            if row is None:
                return None
            return self._profile_from_row(row)

    def get_profile_by_email(self, email: str) -> Optional[ProfileRecord]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM profiles WHERE email = ?;", (email,))
            row = cursor.fetchone()
            if row is None:
                return None
            return self._profile_from_row(row)

    def list_profiles_by_ids(self, profile_ids: Sequence[str]) -> List[ProfileRecord]:
        if not profile_ids:
            return []
        placeholders = ",".join("?" for _ in profile_ids)
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"SELECT * FROM profiles WHERE id IN ({placeholders});",
                tuple(profile_ids),
            )
            return [self._profile_from_row(row) for row in cursor.fetchall()]

    # --- periods ---

    def _period_from_row(self, row: sqlite3.Row) -> InternshipPeriod:
        return InternshipPeriod(
            period_id=str(row["id"]),
            semester=str(row["semester"]),
            academic_year=str(row["academic_year"]),
            registration_start=str(row["registration_start"]),
            registration_end=str(row["registration_end"]),
            lecturer_selection_end=str(row["lecturer_selection_end"]),
            start_date=str(row["start_date"]),
            end_date=str(row["end_date"]),
            is_active=bool(row["is_active"]),
        )

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
        is_active: bool,
        period_id: Optional[str] = None,
    ) -> InternshipPeriod:
        """Insert a period; an active period deactivates every other one."""
        new_id = period_id or _new_id()
        with self._connect() as conn:
            cursor = conn.cursor()
            if is_active:
                cursor.execute("UPDATE internship_periods SET is_active = 0;")
            cursor.execute(
                """
                INSERT INTO internship_periods (
                    id, semester, academic_year, registration_start, registration_end,
                    lecturer_selection_end, start_date, end_date, is_active
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?);
                """,
                (
                    new_id,
                    semester,
                    academic_year,
                    registration_start,
                    registration_end,
                    lecturer_selection_end,
                    start_date,
                    end_date,
                    1 if is_active else 0,
                ),
            )
            conn.commit()
            cursor.execute("SELECT * FROM internship_periods WHERE id = ?;", (new_id,))
            return self._period_from_row(cursor.fetchone())

    def get_period(self, period_id: str) -> Optional[InternshipPeriod]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM internship_periods WHERE id = ?;", (period_id,))
            row = cursor.fetchone()
            if row is None:
                return None
            return self._period_from_row(row)

    def list_periods(self) -> List[InternshipPeriod]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT * FROM internship_periods ORDER BY registration_start DESC, id ASC;"
            )
            return [self._period_from_row(row) for row in cursor.fetchall()]

    def update_period(self, period: InternshipPeriod) -> Optional[InternshipPeriod]:
        """Overwrite a period's fields; activating it deactivates every other one."""
        with self._connect() as conn:
            cursor = conn.cursor()
            if period.is_active:
                cursor.execute(
                    "UPDATE internship_periods SET is_active = 0 WHERE id != ?;",
                    (period.period_id,),
                )
            cursor.execute(
                """
                UPDATE internship_periods
                SET semester = ?, academic_year = ?, registration_start = ?,
                    registration_end = ?, lecturer_selection_end = ?,
                    start_date = ?, end_date = ?, is_active = ?
                WHERE id = ?;
                """,
                (
                    period.semester,
                    period.academic_year,
                    period.registration_start,
                    period.registration_end,
                    period.lecturer_selection_end,
                    period.start_date,
                    period.end_date,
                    1 if period.is_active else 0,
                    period.period_id,
                ),
            )
            if cursor.rowcount == 0:
                conn.rollback()
                return None
            conn.commit()
            cursor.execute("SELECT * FROM internship_periods WHERE id = ?;", (period.period_id,))
            return self._period_from_row(cursor.fetchone())

    def delete_period(self, period_id: str) -> bool:
        """Delete a period; its lecturers and registrations go with it."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM internship_periods WHERE id = ?;", (period_id,))
            conn.commit()
            return cursor.rowcount > 0

    # --- period lecturers ---

    def add_period_lecturers(
        self,
        period_id: str,
        lecturer_ids: Sequence[str],
        max_students: int,
    ) -> int:
        """Attach lecturers to a period in the given order; returns rows inserted."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.executemany(
                    """
                    INSERT INTO period_lecturers (period_id, lecturer_id, max_students)
                    VALUES (?, ?, ?);
                    """,
                    [(period_id, lecturer_id, max_students) for lecturer_id in lecturer_ids],
                )
                conn.commit()
                return len(lecturer_ids)
        except sqlite3.IntegrityError as exc:
            raise DuplicateRecordError(f"Lecturers could not be added: {exc}") from exc

    def remove_period_lecturer(self, period_id: str, lecturer_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "DELETE FROM period_lecturers WHERE period_id = ? AND lecturer_id = ?;",
                (period_id, lecturer_id),
            )
            conn.commit()
            return cursor.rowcount > 0

    def list_lecturer_availability(
        self,
        period_id: str,
        department: Optional[str] = None,
        order_by_slots: bool = False,
    ) -> List[LecturerAvailability]:
        """Return the availability view for a period, optionally by department."""
        query = "SELECT * FROM lecturer_availability WHERE period_id = ?"
        params: list[str] = [period_id]
        if department is not None:
            query += " AND lecturer_department = ?"
            params.append(department)
        if order_by_slots:
            query += " ORDER BY slots_remaining DESC, position ASC;"
        else:
            query += " ORDER BY lecturer_name ASC, position ASC;"
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(query, tuple(params))
            return [
                LecturerAvailability(
                    period_id=str(row["period_id"]),
                    lecturer_id=str(row["lecturer_id"]),
                    lecturer_name=str(row["lecturer_name"]),
                    lecturer_department=row["lecturer_department"],
                    max_students=int(row["max_students"]),
                    assigned_count=int(row["assigned_count"]),
                    slots_remaining=int(row["slots_remaining"]),
                )
                for row in cursor.fetchall()
            ]

    # --- registrations ---

    def create_registration(
        self,
        period_id: str,
        student_id: str,
        *,
        registered_at: Optional[str] = None,
        registration_id: Optional[str] = None,
    ) -> str:
        new_id = registration_id or _new_id()
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO student_registrations (id, period_id, student_id, status, registered_at)
                    VALUES (?, ?, ?, ?, ?);
                    """,
                    (
                        new_id,
                        period_id,
                        student_id,
                        self._settings.registration_pending_status,
                        registered_at or _utc_now(),
                    ),
                )
                conn.commit()
        except sqlite3.IntegrityError as exc:
            raise DuplicateRecordError(f"Registration could not be created: {exc}") from exc
        return new_id

    def get_registration(self, registration_id: str) -> Optional[RegistrationRecord]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT * FROM student_registrations WHERE id = ?;",
                (registration_id,),
            )
            row = cursor.fetchone()
            if row is None:
                return None
            return RegistrationRecord(
                registration_id=str(row["id"]),
                period_id=str(row["period_id"]),
                student_id=str(row["student_id"]),
                status=str(row["status"]),
                assigned_lecturer_id=row["assigned_lecturer_id"],
                registered_at=str(row["registered_at"]),
            )

    def list_unassigned_registrations(self, period_id: str) -> List[DemandUnit]:
        """Registered, unassigned students of a period, oldest registration first."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT
                    sr.id,
                    sr.student_id,
                    sr.registered_at,
                    p.department
                FROM student_registrations AS sr
                LEFT JOIN profiles AS p ON p.id = sr.student_id
                WHERE sr.period_id = ?
                  AND sr.status = ?
                  AND sr.assigned_lecturer_id IS NULL
                ORDER BY sr.registered_at ASC, sr.rowid ASC;
                """,
                (period_id, self._settings.registration_pending_status),
            )
            return [
                DemandUnit(
                    registration_id=str(row["id"]),
                    student_id=str(row["student_id"]),
                    department=row["department"],
                    registered_at=str(row["registered_at"]),
                )
                for row in cursor.fetchall()
            ]

    def list_available_lecturers(self, period_id: str) -> List[SupplyUnit]:
        """Lecturers of a period with remaining slots, in the order they were added."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT lecturer_id, lecturer_name, lecturer_department, slots_remaining
                FROM lecturer_availability
                WHERE period_id = ?
                  AND slots_remaining > 0
                ORDER BY position ASC;
                """,
                (period_id,),
            )
            return [
                SupplyUnit(
                    lecturer_id=str(row["lecturer_id"]),
                    department=row["lecturer_department"],
                    slots_remaining=int(row["slots_remaining"]),
                    lecturer_name=str(row["lecturer_name"]),
                )
                for row in cursor.fetchall()
            ]

    def assign_lecturer(self, registration_id: str, lecturer_id: str, status: str) -> bool:
        """Assign one registration, only if it is still pending and the lecturer has room.

        Returns False when the row was not updated.
        """
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    """
                    UPDATE student_registrations
                    SET assigned_lecturer_id = ?, status = ?
                    WHERE id = ?
                      AND status = ?
                      AND assigned_lecturer_id IS NULL
                      AND EXISTS (
                          SELECT 1
                          FROM lecturer_availability AS la
                          WHERE la.period_id = student_registrations.period_id
                            AND la.lecturer_id = ?
                            AND la.slots_remaining > 0
                      );
                    """,
                    (
                        lecturer_id,
                        status,
                        registration_id,
                        self._settings.registration_pending_status,
                        lecturer_id,
                    ),
                )
                conn.commit()
                return cursor.rowcount == 1
        except sqlite3.Error as exc:
            raise RepositoryError(
                f"Assignment update failed for registration {registration_id}: {exc}"
            ) from exc
