"""Environment-driven application settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parents[2]


def _env_bool(name: str, default: bool) -> bool:
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    app_name: str
    app_version: str
    database_path: Path
    log_level: str
    registration_pending_status: str
    assignment_confirmed_status: str
    assignment_lock_timeout_seconds: float
    default_max_students: int
    session_ttl_minutes: int
    password_hash_iterations: int
    seed_demo_data: bool
    demo_password: str


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings once per process; use ``dataclasses.replace`` for variants."""
    return Settings(
        app_name=os.getenv("APP_NAME", "Internship Lecturer Assignment"),
        app_version=os.getenv("APP_VERSION", "1.0.0"),
        database_path=Path(
            os.getenv("DATABASE_PATH", str(PROJECT_ROOT / "data" / "internship.db"))
        ),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        registration_pending_status="registered",
        assignment_confirmed_status=os.getenv(
            "ASSIGNMENT_CONFIRMED_STATUS", "lecturer_confirmed"
        ),
        assignment_lock_timeout_seconds=float(
            os.getenv("ASSIGNMENT_LOCK_TIMEOUT_SECONDS", "30")
        ),
        default_max_students=int(os.getenv("DEFAULT_MAX_STUDENTS", "20")),
        session_ttl_minutes=int(os.getenv("SESSION_TTL_MINUTES", "480")),
        password_hash_iterations=int(os.getenv("PASSWORD_HASH_ITERATIONS", "120000")),
        seed_demo_data=_env_bool("SEED_DEMO_DATA", True),
        demo_password=os.getenv("DEMO_PASSWORD", "changeme"),
    )
