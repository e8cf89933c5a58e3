"""Password hashing and bearer token authentication for the admin API."""
from __future__ import annotations

from typing import Callable

from fastapi import Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from passlib.context import CryptContext

from .errors import AuthError
from .models import AdminClaims

# New hashes use PBKDF2; bcrypt hashes created by older deployments still verify.
_pwd_context = CryptContext(schemes=["pbkdf2_sha256", "bcrypt"], deprecated="auto")

MISSING_TOKEN_MESSAGE = "Authentication token required"


def hash_password(password: str) -> str:
    if not password:
        raise ValueError("Password must not be empty")
    return _pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    if not hashed:
        return False
    try:
        return _pwd_context.verify(password, hashed)
    except ValueError:
        return False


class AdminTokenAuth:
    """FastAPI dependency resolving ``Authorization: Bearer`` into admin claims.

    A missing token raises :class:`AuthError` (401); token verification errors
    come from ``verifier`` and surface as :class:`ForbiddenError` (403).
    """

    def __init__(self, verifier: Callable[[str], AdminClaims]) -> None:
        self._verifier = verifier
        self._bearer = HTTPBearer(auto_error=False)

    async def __call__(self, request: Request) -> AdminClaims:
        credentials: HTTPAuthorizationCredentials | None = await self._bearer(request)  # type: ignore[assignment]
        if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
            raise AuthError(MISSING_TOKEN_MESSAGE)

        claims = self._verifier(credentials.credentials)
        request.state.admin = claims
        return claims


__all__ = ["AdminTokenAuth", "hash_password", "verify_password"]
