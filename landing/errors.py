"""Error taxonomy shared by the services and the HTTP boundary."""
from __future__ import annotations

from typing import Dict, List, Optional


class LandingError(RuntimeError):
    """Base class for errors that map onto an HTTP status code."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(LandingError):
    """Raised when request input is malformed or missing."""

    status_code = 400

    def __init__(self, message: str, errors: Optional[List[Dict[str, str]]] = None) -> None:
        super().__init__(message)
        self.errors = list(errors or [])


class ConflictError(LandingError):
    status_code = 409


class AuthError(LandingError):
    """Missing credentials or credentials that do not match."""

    status_code = 401


class ForbiddenError(LandingError):
    """A token was supplied but could not be verified."""

    status_code = 403


class NotFoundError(LandingError):
    status_code = 404


class DatabaseError(LandingError):
    """Raised for any persistence failure; keeps the driver message."""

    status_code = 500

    def __init__(self, message: str, *, integrity: bool = False) -> None:
        super().__init__(message)
        self.integrity = integrity


class DeliveryError(LandingError):
    """Raised when the email transport fails. Never surfaced to API callers."""

    status_code = 502


__all__ = [
    "AuthError",
    "ConflictError",
    "DatabaseError",
    "DeliveryError",
    "ForbiddenError",
    "LandingError",
    "NotFoundError",
    "ValidationError",
]
