"""Pydantic models for the credential domain."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

MIN_PASSWORD_LENGTH = 8


class Role(StrEnum):
    """Authorization tiers."""

    USER = "user"
    ORGANIZER = "organizer"
    ADMIN = "admin"


class SecretRecord(BaseModel):
    """Stored half of an outstanding secret token."""

    model_config = ConfigDict(frozen=True)

    secret_hash: str
    expires_at: datetime


class UserAccount(BaseModel):
    """Persisted user record. Instances are immutable snapshots."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    username: str
    firstname: str = ""
    lastname: str = ""
    email: str
    password_hash: str = Field(min_length=1)
    role: Role = Role.USER
    is_verified: bool = False
    verification: SecretRecord | None = None
    password_reset: SecretRecord | None = None
    created_at: datetime

    def public_view(self) -> dict[str, Any]:
        """Return the outward representation without hashes or secrets."""
        return self.model_dump(
            mode="json",
            exclude={"password_hash", "verification", "password_reset"},
        )


class AuditStatus(StrEnum):
    """Lifecycle of a role-change audit entry."""

    REQUESTED = "requested"
    APPLIED = "applied"
    FAILED = "failed"


class AuditEntry(BaseModel):
    """Audit trail record for privileged changes."""

    model_config = ConfigDict(frozen=True)

    entry_id: str
    action: str
    details: str
    user_id: str
    actor_id: str = ""
    status: AuditStatus = AuditStatus.REQUESTED
    created_at: datetime


class SessionClaims(BaseModel):
    """Claims resolved from a valid, unrevoked bearer token."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    username: str
    email: str
    role: Role
    jti: str
    expires_at: int


class IssuedSession(BaseModel):
    """Bearer token handed back on login."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    expires_at: int
    user: dict[str, Any]


class RegisterRequest(BaseModel):
    """Registration payload."""

    username: str = Field(min_length=3, max_length=64)
    firstname: str = Field(min_length=1, max_length=128)
    lastname: str = Field(min_length=1, max_length=128)
    email: str = Field(min_length=3, max_length=254)
    password: str = Field(min_length=MIN_PASSWORD_LENGTH, max_length=256)


class LoginRequest(BaseModel):
    """Login payload; ``username_or_email`` containing ``@`` is an email."""

    model_config = ConfigDict(populate_by_name=True)

    username_or_email: str = Field(min_length=1, alias="usernameOrEmail")
    password: str = Field(min_length=1)


class ForgotPasswordRequest(BaseModel):
    """Forgot-password payload."""

    email: str = Field(min_length=3)


class ResetPasswordRequest(BaseModel):
    """Reset-password payload. Missing token is reported as a domain error."""

    model_config = ConfigDict(populate_by_name=True)

    reset_token: str = Field(default="", alias="resetToken")
    password: str = Field(min_length=MIN_PASSWORD_LENGTH, max_length=256)


class ChangePasswordRequest(BaseModel):
    """Change-password payload. Empty fields are reported as a domain error."""

    model_config = ConfigDict(populate_by_name=True)

    current_password: str = Field(default="", alias="currentPassword")
    new_password: str = Field(default="", alias="newPassword")
    confirm_password: str = Field(default="", alias="confirmPassword")


class UpdateRoleRequest(BaseModel):
    """Admin role change payload."""

    role: str = Field(min_length=1)


class UpdateProfileRequest(BaseModel):
    """Self-service profile update. Only these fields are editable."""

    model_config = ConfigDict(extra="forbid")

    username: str | None = Field(default=None, min_length=3, max_length=64)
    firstname: str | None = Field(default=None, min_length=1, max_length=128)
    lastname: str | None = Field(default=None, min_length=1, max_length=128)
    email: str | None = Field(default=None, min_length=3, max_length=254)
