"""User and credential API router."""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, Query, Request, Response
from fastapi.responses import RedirectResponse

from ticketing.api.contracts import (
    ApiErrorResponse,
    AuthMeResponse,
    LoginResponse,
    MessageResponse,
    UserResponse,
    UsersListResponse,
)
from ticketing.auth.errors import MissingTokenError, UnauthorizedError
from ticketing.auth.middleware import request_token
from ticketing.auth.models import (
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    RegisterRequest,
    ResetPasswordRequest,
    SessionClaims,
    UpdateProfileRequest,
    UpdateRoleRequest,
)
from ticketing.auth.rate_limiter import LoginRateLimiter
from ticketing.auth.service import CredentialAuthority

_ERRORS_400 = {400: {"model": ApiErrorResponse}}
_ERRORS_401 = {401: {"model": ApiErrorResponse}}
_ERRORS_404 = {404: {"model": ApiErrorResponse}}
_ERRORS_409 = {409: {"model": ApiErrorResponse}}
_ERRORS_429 = {429: {"model": ApiErrorResponse}}


def _caller(request: Request) -> SessionClaims:
    caller = getattr(request.state, "caller", None)
    if not isinstance(caller, SessionClaims):
        raise MissingTokenError()
    return caller


def create_users_router(
    authority: CredentialAuthority,
    rate_limiter: LoginRateLimiter,
    *,
    cookie_name: str,
    post_verification_redirect_url: str,
    secure_cookies: bool = False,
) -> APIRouter:
    """Build the /api/users router."""
    router = APIRouter(prefix="/api/users", tags=["users"])

    @router.post(
        "",
        status_code=201,
        response_model=UserResponse,
        responses={**_ERRORS_400, **_ERRORS_409},
    )
    async def register(req: RegisterRequest) -> UserResponse:
        """Create an account and email its verification link."""
        user = await authority.register(
            req.username, req.firstname, req.lastname, req.email, req.password
        )
        return UserResponse(message="Signup Successful", user=user.public_view())

    @router.get("/verify", responses={**_ERRORS_400, **_ERRORS_404})
    async def verify(token: str = Query(default="")) -> RedirectResponse:
        """Consume a verification secret and redirect to the post-verification page."""
        await authority.verify(token)
        return RedirectResponse(url=post_verification_redirect_url, status_code=302)

    @router.post(
        "/reverify",
        response_model=MessageResponse,
        responses={**_ERRORS_400, **_ERRORS_401, **_ERRORS_404},
    )
    async def reverify(request: Request) -> MessageResponse:
        """Restart the verification window for the caller."""
        resent = await authority.reverify(_caller(request))
        if resent:
            return MessageResponse(message="Verification email sent")
        return MessageResponse(message="Verification link extended")

    @router.post(
        "/login",
        response_model=LoginResponse,
        responses={**_ERRORS_401, **_ERRORS_429},
    )
    async def login(req: LoginRequest, request: Request, response: Response) -> LoginResponse:
        """Authenticate and return a bearer token, also set as a session cookie."""
        client_ip = (request.client.host if request.client else "") or "unknown"
        attempt = {"identifier": req.username_or_email, "client_ip": client_ip}
        # SQLite limiter calls run off the event loop.
        await asyncio.to_thread(rate_limiter.assert_allowed, **attempt)
        try:
            session = await authority.login(req.username_or_email, req.password)
        except UnauthorizedError:
            await asyncio.to_thread(rate_limiter.record_failure, **attempt)
            raise
        await asyncio.to_thread(rate_limiter.record_success, **attempt)
        response.set_cookie(
            cookie_name,
            session.access_token,
            max_age=session.expires_in,
            httponly=True,
            samesite="lax",
            secure=secure_cookies,
        )
        return LoginResponse(
            access_token=session.access_token,
            token_type=session.token_type,
            expires_in=session.expires_in,
            user=session.user,
        )

    @router.post("/logout", response_model=MessageResponse)
    async def logout(request: Request, response: Response) -> MessageResponse:
        """Revoke the presented token, if any, and clear the session cookie."""
        authority.logout(request_token(request, cookie_name))
        response.delete_cookie(cookie_name)
        return MessageResponse(message="Logout successful")

    @router.post(
        "/forgot-password",
        response_model=MessageResponse,
        responses=_ERRORS_404,
    )
    async def forgot_password(req: ForgotPasswordRequest) -> MessageResponse:
        await authority.forgot_password(req.email)
        return MessageResponse(message="Password reset token sent to email")

    @router.post(
        "/reset-password",
        response_model=MessageResponse,
        responses={**_ERRORS_400, **_ERRORS_404},
    )
    async def reset_password(req: ResetPasswordRequest) -> MessageResponse:
        await authority.reset_password(req.reset_token, req.password)
        return MessageResponse(message="Password reset successful")

    @router.post(
        "/change-password",
        response_model=MessageResponse,
        responses={**_ERRORS_400, **_ERRORS_401, **_ERRORS_404},
    )
    async def change_password(req: ChangePasswordRequest, request: Request) -> MessageResponse:
        await authority.change_password(
            _caller(request), req.current_password, req.new_password, req.confirm_password
        )
        return MessageResponse(message="Password changed successfully")

    @router.get("/me", response_model=AuthMeResponse, responses=_ERRORS_401)
    async def me(request: Request) -> AuthMeResponse:
        """Return the caller's resolved claims."""
        return AuthMeResponse(user=_caller(request).model_dump(mode="json"))

    @router.get("", response_model=UsersListResponse, responses=_ERRORS_401)
    async def list_users(request: Request) -> UsersListResponse:
        users = await authority.list_users(_caller(request))
        return UsersListResponse(users=[user.public_view() for user in users])

    @router.get(
        "/{user_id}",
        response_model=UserResponse,
        responses={**_ERRORS_401, **_ERRORS_404},
    )
    async def get_user(user_id: str, request: Request) -> UserResponse:
        user = await authority.get_user(_caller(request), user_id)
        return UserResponse(user=user.public_view())

    @router.patch(
        "/{user_id}",
        response_model=UserResponse,
        responses={**_ERRORS_400, **_ERRORS_401, **_ERRORS_404, **_ERRORS_409},
    )
    async def update_profile(
        user_id: str, req: UpdateProfileRequest, request: Request
    ) -> UserResponse:
        """Edit the caller's own profile."""
        user = await authority.update_profile(
            _caller(request), user_id, req.model_dump(exclude_unset=True)
        )
        return UserResponse(message="User updated successfully", user=user.public_view())

    @router.patch(
        "/{user_id}/role",
        response_model=UserResponse,
        responses={**_ERRORS_400, **_ERRORS_401, **_ERRORS_404},
    )
    async def update_role(user_id: str, req: UpdateRoleRequest, request: Request) -> UserResponse:
        """Admin-only role change."""
        user = await authority.update_user_role(_caller(request), user_id, req.role)
        return UserResponse(message="User role updated successfully", user=user.public_view())

    @router.delete(
        "/{user_id}",
        response_model=UserResponse,
        responses={**_ERRORS_400, **_ERRORS_401, **_ERRORS_404},
    )
    async def delete_user(user_id: str, request: Request) -> UserResponse:
        user = await authority.delete_user(_caller(request), user_id)
        return UserResponse(message="User deleted successfully", user=user.public_view())

    return router
