"""HTTP middleware that resolves the caller on protected API routes."""

from __future__ import annotations

from typing import Callable

from fastapi import Request
from fastapi.responses import JSONResponse

from ticketing.api.contracts import ApiErrorResponse
from ticketing.auth.errors import UnauthorizedError
from ticketing.auth.service import CredentialAuthority

PUBLIC_ROUTES: frozenset[tuple[str, str]] = frozenset(
    {
        ("GET", "/api/health"),
        ("POST", "/api/users"),
        ("GET", "/api/users/verify"),
        ("POST", "/api/users/login"),
        ("POST", "/api/users/logout"),
        ("POST", "/api/users/forgot-password"),
        ("POST", "/api/users/reset-password"),
    }
)


def extract_bearer_token(authorization: str | None) -> str:
    """Extract bearer token from authorization header value."""
    parts = (authorization or "").strip().split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return ""
    return parts[1].strip()


def request_token(request: Request, cookie_name: str) -> str:
    """Bearer header first, then the session cookie."""
    return extract_bearer_token(request.headers.get("authorization")) or (
        request.cookies.get(cookie_name) or ""
    ).strip()


def create_auth_middleware(authority: CredentialAuthority, *, cookie_name: str) -> Callable:
    """Create middleware that rejects unauthenticated or revoked callers."""

    async def auth_middleware(request: Request, call_next: Callable):
        """Attach resolved claims to ``request.state.caller`` for protected paths."""
        path = request.url.path.rstrip("/") or "/"
        if not path.startswith("/api/") or (request.method, path) in PUBLIC_ROUTES:
            return await call_next(request)
        if request.method == "OPTIONS":
            return await call_next(request)

        try:
            request.state.caller = authority.authenticate(request_token(request, cookie_name))
        except UnauthorizedError as exc:
            return JSONResponse(
                status_code=exc.status_code,
                content=ApiErrorResponse(
                    error_code=exc.error_code, message=exc.message
                ).model_dump(),
            )
        return await call_next(request)

    return auth_middleware
