"""Error taxonomy shared by the record store and the HTTP layer."""
from __future__ import annotations

from http import HTTPStatus


class PolicyVaultError(RuntimeError):
    """Base class for errors that are rendered to API callers."""

    status_code: int = HTTPStatus.INTERNAL_SERVER_ERROR
    default_message = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class ValidationError(PolicyVaultError):
    """Raised when a request is missing input or carries malformed values."""

    status_code = HTTPStatus.BAD_REQUEST
    default_message = "Invalid request"


class InvalidPolicyReference(ValidationError):
    default_message = "Invalid policy ID format. Please select a valid policy."


class DuplicateEmail(PolicyVaultError):
    status_code = HTTPStatus.BAD_REQUEST
    default_message = "User with this email already exists"


class Unauthenticated(PolicyVaultError):
    """No bearer credential was presented."""

    status_code = HTTPStatus.UNAUTHORIZED
    default_message = "Access denied. Token required."


class InvalidCredentials(PolicyVaultError):
    """Login failed; the message never says which half was wrong."""

    status_code = HTTPStatus.UNAUTHORIZED
    default_message = "Invalid credentials"


class InvalidCredential(PolicyVaultError):
    """A bearer credential was presented but is forged, malformed or expired."""

    status_code = HTTPStatus.FORBIDDEN
    default_message = "Invalid or expired token"


class NotFound(PolicyVaultError):
    """The record is absent or belongs to another owner."""

    status_code = HTTPStatus.NOT_FOUND
    default_message = "Not found"


class PolicyNotFound(NotFound):
    default_message = "Policy not found or does not belong to you"


class InternalError(PolicyVaultError):
    """Unexpected store failure. Details are logged, never returned."""


__all__ = [
    "DuplicateEmail",
    "InternalError",
    "InvalidCredential",
    "InvalidCredentials",
    "InvalidPolicyReference",
    "NotFound",
    "PolicyNotFound",
    "PolicyVaultError",
    "Unauthenticated",
    "ValidationError",
]
