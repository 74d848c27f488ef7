"""Password login and bearer-session resolution."""

from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from threading import RLock
from typing import Optional

from backend.domain.models import CurrentUser
from backend.repository.data_repository import DataRepository
from backend.utils.config import Settings, get_settings


_HASH_ALGORITHM = "pbkdf2_sha256"


class AuthenticationError(Exception):
    """Base authentication failure."""


class InvalidCredentialsError(AuthenticationError):
    """Raised when email/password do not match a profile."""


class InvalidSessionError(AuthenticationError):
    """Raised when a bearer token is unknown or expired."""


@dataclass(frozen=True)
class _Session:
    user_id: str
    expires_at: datetime


def hash_password(password: str, iterations: int, salt: Optional[str] = None) -> str:
    resolved_salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac(
        "sha256",
        password.encode("utf-8"),
        resolved_salt.encode("utf-8"),
        iterations,
    ).hex()
    return f"{_HASH_ALGORITHM}${iterations}${resolved_salt}${digest}"


def verify_password(password: str, encoded: str) -> bool:
    try:
        algorithm, iterations, salt, _ = encoded.split("$", 3)
    except ValueError:
        return False
    if algorithm != _HASH_ALGORITHM:
        return False
    candidate = hash_password(password, int(iterations), salt=salt)
    return secrets.compare_digest(candidate, encoded)


class AuthService:
    """Validates login credentials and bearer tokens."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._sessions: dict[str, _Session] = {}
        self._lock = RLock()

    def hash_password(self, password: str) -> str:
        return hash_password(password, self._settings.password_hash_iterations)

    def login(self, email: str, password: str) -> str:
        profile = self._repository.get_profile_by_email(email)
        if profile is None or not verify_password(password, profile.password_hash):
            raise InvalidCredentialsError("Invalid email or password")
        token = secrets.token_urlsafe(32)
        expires_at = datetime.now(timezone.utc) + timedelta(
            minutes=self._settings.session_ttl_minutes
        )
        with self._lock:
            self._sessions[token] = _Session(user_id=profile.profile_id, expires_at=expires_at)
        return token

    def logout(self, bearer_token: str) -> None:
        with self._lock:
            self._sessions.pop(bearer_token, None)

    def current_user(self, bearer_token: str) -> CurrentUser:
        with self._lock:
            session = self._sessions.get(bearer_token)
            if session is None:
                raise InvalidSessionError("No active session. Login first.")
            if session.expires_at <= datetime.now(timezone.utc):
                del self._sessions[bearer_token]
                raise InvalidSessionError("Session expired. Login again.")
        profile = self._repository.get_profile(session.user_id)
        if profile is None:
            raise InvalidSessionError("Session user no longer exists")
        return CurrentUser(
            user_id=profile.profile_id,
            role=profile.role,
            department=profile.department,
        )
