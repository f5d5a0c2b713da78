"""Public API response contracts."""

from ticketing.api.contracts.models import (
    ApiErrorResponse,
    AuthMeResponse,
    HealthResponse,
    LoginResponse,
    MessageResponse,
    UserResponse,
    UsersListResponse,
)

__all__ = [
    "ApiErrorResponse",
    "AuthMeResponse",
    "HealthResponse",
    "LoginResponse",
    "MessageResponse",
    "UserResponse",
    "UsersListResponse",
]
