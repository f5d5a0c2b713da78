"""
Domain-level exceptions for the credential authority.

These are framework-agnostic. The HTTP translation lives in
``ticketing.api.errors``; every subclass maps to exactly one status class.
"""

from __future__ import annotations


class CredentialError(Exception):
    """Base class for credential domain errors."""

    status_code = 500
    error_code = "INTERNAL_SERVER_ERROR"
    default_message = "Internal server error"

    def __init__(self, message: str | None = None, *, error_code: str | None = None) -> None:
        self.message = message or self.default_message
        if error_code:
            self.error_code = error_code
        super().__init__(self.message)


class ValidationError(CredentialError):
    """Malformed or missing input."""

    status_code = 400
    error_code = "VALIDATION_ERROR"
    default_message = "Invalid input"


class ExpiredSecretError(ValidationError):
    """A reset secret matched but its window has passed."""

    error_code = "AUTH_SECRET_EXPIRED"
    default_message = "Reset token has expired"


class AlreadyVerifiedError(ValidationError):
    """Verification was requested for an account that is already verified."""

    error_code = "AUTH_ALREADY_VERIFIED"
    default_message = "User already verified"


class ConflictError(CredentialError):
    """Uniqueness violation on username or email."""

    status_code = 409
    error_code = "USER_CONFLICT"
    default_message = "Account already exists"


class NotFoundError(CredentialError):
    """No matching resource, or an invalid/expired secret."""

    status_code = 404
    error_code = "NOT_FOUND"
    default_message = "Not found"


class UnauthorizedError(CredentialError):
    """Missing, invalid, revoked or expired credential, or insufficient role."""

    status_code = 401
    error_code = "AUTH_UNAUTHORIZED"
    default_message = "Unauthorized"


class UserNotFoundError(NotFoundError):
    error_code = "USER_NOT_FOUND"
    default_message = "User not found"


class InvalidSecretError(NotFoundError):
    """Unknown, consumed or expired verification or reset secret."""

    error_code = "AUTH_SECRET_INVALID"
    default_message = "User not found or token expired"


class InvalidCredentialsError(UnauthorizedError):
    """Unknown account or wrong password; the two are never distinguished."""

    error_code = "AUTH_INVALID_CREDENTIALS"
    default_message = "Invalid credentials"


class MissingTokenError(UnauthorizedError):
    error_code = "AUTH_MISSING_TOKEN"
    default_message = "Missing bearer token"


class InvalidTokenError(UnauthorizedError):
    error_code = "AUTH_TOKEN_INVALID"
    default_message = "Invalid token"


class RevokedTokenError(UnauthorizedError):
    error_code = "AUTH_TOKEN_REVOKED"
    default_message = "Token has been revoked"


class ForbiddenRoleError(UnauthorizedError):
    """The caller's role may not perform the operation."""

    error_code = "AUTH_FORBIDDEN_ROLE"
    default_message = "Insufficient role"


class ServerError(CredentialError):
    """Unexpected collaborator failure."""


class DuplicateAccountError(Exception):
    """Raised by store adapters when a unique key already exists."""

    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(f"duplicate {field}")


class NotificationError(Exception):
    """Raised by notifiers when delivery fails."""
