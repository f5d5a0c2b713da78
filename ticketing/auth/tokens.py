"""Bearer session tokens carrying identity and role claims."""

from __future__ import annotations

import time
import uuid
from typing import Any, Callable

from ticketing.auth.errors import InvalidTokenError
from ticketing.auth.models import IssuedSession, Role, SessionClaims, UserAccount
from ticketing.core.config import AuthConfig
from ticketing.core.security import build_signed_token, decode_signed_token

TOKEN_TYPE = "session"


class TokenIssuer:
    """Mint and decode HMAC-signed session tokens."""

    def __init__(self, config: AuthConfig, clock: Callable[[], float] = time.time) -> None:
        self._config = config
        self._clock = clock

    def mint(self, user: UserAccount) -> IssuedSession:
        """Issue a session token for ``user`` expiring after the configured TTL."""
        now_ts = int(self._clock())
        expires_at = now_ts + self._config.session_token_ttl_seconds
        payload = {
            "iss": self._config.issuer,
            "sub": user.user_id,
            "username": user.username,
            "email": user.email,
            "role": str(user.role),
            "type": TOKEN_TYPE,
            "iat": now_ts,
            "exp": expires_at,
            "jti": uuid.uuid4().hex,
        }
        return IssuedSession(
            access_token=build_signed_token(payload, self._config.secret_key),
            expires_in=self._config.session_token_ttl_seconds,
            expires_at=expires_at,
            user=user.public_view(),
        )

    def decode(self, token: str) -> SessionClaims:
        """Validate signature, expiry, issuer and type; raise ``InvalidTokenError``."""
        try:
            payload: dict[str, Any] = decode_signed_token(
                token, self._config.secret_key, now=int(self._clock())
            )
        except ValueError as exc:
            raise InvalidTokenError(str(exc)) from exc

        if str(payload.get("iss") or "") != self._config.issuer:
            raise InvalidTokenError("Invalid token issuer")
        if str(payload.get("type") or "") != TOKEN_TYPE:
            raise InvalidTokenError("Invalid token type")
        try:
            role = Role(str(payload.get("role") or ""))
        except ValueError as exc:
            raise InvalidTokenError("Invalid token claims") from exc
        user_id = str(payload.get("sub") or "")
        if not user_id:
            raise InvalidTokenError("Invalid token claims")

        return SessionClaims(
            user_id=user_id,
            username=str(payload.get("username") or ""),
            email=str(payload.get("email") or ""),
            role=role,
            jti=str(payload.get("jti") or ""),
            expires_at=int(payload["exp"]),
        )
