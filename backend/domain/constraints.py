"""Domain-level validation rules for lecturer assignment."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class AssignmentConfig:
    pending_status: str
    confirmed_status: str
    lock_timeout_seconds: float


def validate_assignment_config(config: AssignmentConfig) -> None:
    if not config.pending_status.strip():
        raise ValueError("pending_status must be non-empty")
    if not config.confirmed_status.strip():
        raise ValueError("confirmed_status must be non-empty")
    if config.pending_status == config.confirmed_status:
        raise ValueError("confirmed_status must differ from pending_status")
    if config.lock_timeout_seconds <= 0:
        raise ValueError("lock_timeout_seconds must be > 0")


def validate_max_students(max_students: int) -> None:
    if max_students <= 0:
        raise ValueError("max_students must be > 0")
