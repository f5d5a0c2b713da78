"""Pydantic API response models used in OpenAPI contracts."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field


class ApiErrorResponse(BaseModel):
    """Stable error envelope for API responses."""

    error_code: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error message")


class HealthResponse(BaseModel):
    """Health check payload."""

    status: Literal["ok"]


class MessageResponse(BaseModel):
    """Plain acknowledgement."""

    message: str


class UserResponse(BaseModel):
    """Single account, never carrying hashes or secrets."""

    message: str = ""
    user: dict[str, Any]


class UsersListResponse(BaseModel):
    """All accounts."""

    users: list[dict[str, Any]] = Field(default_factory=list)


class LoginResponse(BaseModel):
    """Bearer token issued on login."""

    message: str = "Login successful"
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: dict[str, Any]


class AuthMeResponse(BaseModel):
    """Resolved caller claims."""

    user: dict[str, Any]
