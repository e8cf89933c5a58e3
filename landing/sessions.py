"""Stateless admin sessions backed by signed JWTs."""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from functools import lru_cache
from datetime import datetime, timedelta
from typing import Callable, Optional, Tuple

from jose import JWTError, jwt

from .database import Database, current_timestamp, parse_datetime, serialize_datetime
from .errors import AuthError, ForbiddenError
from .models import Admin, AdminClaims
from .security import MISSING_TOKEN_MESSAGE, hash_password, verify_password

logger = logging.getLogger("landing.sessions")

JWT_ALGORITHM = "HS256"
INVALID_CREDENTIALS_MESSAGE = "Invalid username or password"
INVALID_TOKEN_MESSAGE = "Invalid authentication token"
DEFAULT_ADMIN_ROLE = "super_admin"


@lru_cache(maxsize=1)
def _dummy_password_hash() -> str:
    return hash_password("landing-unknown-admin")


@dataclass(frozen=True)
class LoginResult:
    token: str
    admin: Admin
    expires_at: datetime


def _row_to_admin(row: sqlite3.Row) -> Admin:
    return Admin(
        id=int(row["id"]),
        username=str(row["username"]),
        email=str(row["email"]),
        role=str(row["role"]),
        last_login=parse_datetime(row["last_login"]),
        created_at=parse_datetime(str(row["created_at"])),
    )


class AdminSessionService:
    """Verify admin credentials, then issue and check session tokens."""

    def __init__(
        self,
        database: Database,
        *,
        secret: str,
        ttl: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = current_timestamp,
    ) -> None:
        if not secret:
            raise ValueError("A signing secret is required for admin sessions")
        self._database = database
        self._secret = secret
        self._ttl = ttl
        self._clock = clock

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def get_admin(self, username: str) -> Optional[Admin]:
        rows = self._database.execute("SELECT * FROM admins WHERE username = ?", (username,))
        if not rows:
            return None
        return _row_to_admin(rows[0])

    def _password_hash(self, admin_id: int) -> str:
        rows = self._database.execute("SELECT password_hash FROM admins WHERE id = ?", (admin_id,))
        return str(rows[0]["password_hash"]) if rows else ""

    def login(self, username: str, password: str) -> LoginResult:
        """Authenticate an admin.

        Unknown usernames and wrong passwords raise the same
        :class:`AuthError`, and neither touches ``last_login``. The returned
        admin carries the *previous* ``last_login`` value.
        """

        admin = self.get_admin(username.strip())
        if admin is None:
            # Unknown usernames still pay for one hash check.
            verify_password(password, _dummy_password_hash())
        if admin is None or not verify_password(password, self._password_hash(admin.id)):
            logger.warning("Failed admin login for username %r", username)
            raise AuthError(INVALID_CREDENTIALS_MESSAGE)

        now = self._clock()
        self._database.execute(
            "UPDATE admins SET last_login = ? WHERE id = ?",
            (serialize_datetime(now), admin.id),
        )

        token, expires_at = self.issue(admin, now=now)
        logger.info("Admin logged in: id=%s username=%s", admin.id, admin.username)
        return LoginResult(token=token, admin=admin, expires_at=expires_at)

    def issue(self, admin: Admin, *, now: Optional[datetime] = None) -> Tuple[str, datetime]:
        issued_at = now or self._clock()
        expires_at = issued_at + self._ttl
        claims = {
            "id": admin.id,
            "username": admin.username,
            "role": admin.role,
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
        }
        return jwt.encode(claims, self._secret, algorithm=JWT_ALGORITHM), expires_at

    def verify(self, token: str) -> AdminClaims:
        if not token:
            raise AuthError(MISSING_TOKEN_MESSAGE)
        try:
            payload = jwt.decode(token, self._secret, algorithms=[JWT_ALGORITHM])
        except JWTError as exc:
            raise ForbiddenError(INVALID_TOKEN_MESSAGE) from exc

        try:
            return AdminClaims(
                id=int(payload["id"]),
                username=str(payload["username"]),
                role=str(payload["role"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ForbiddenError(INVALID_TOKEN_MESSAGE) from exc


def seed_admin(
    database: Database,
    *,
    username: str,
    email: str,
    password: str,
    role: str = DEFAULT_ADMIN_ROLE,
) -> Tuple[Admin, bool]:
    """Create the initial admin account unless one with ``username`` exists.

    Returns the admin and whether it was created by this call.
    """

    rows = database.execute("SELECT * FROM admins WHERE username = ?", (username,))
    if rows:
        return _row_to_admin(rows[0]), False

    created_at = current_timestamp()
    database.execute(
        """
        INSERT INTO admins (username, email, password_hash, role, created_at)
        VALUES (?, ?, ?, ?, ?)
        """,
        (username, email.strip().lower(), hash_password(password), role, serialize_datetime(created_at)),
    )
    rows = database.execute("SELECT * FROM admins WHERE username = ?", (username,))
    logger.info("Seeded admin account %s", username)
    return _row_to_admin(rows[0]), True


__all__ = [
    "AdminSessionService",
    "INVALID_CREDENTIALS_MESSAGE",
    "INVALID_TOKEN_MESSAGE",
    "LoginResult",
    "seed_admin",
]
