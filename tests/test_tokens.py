from __future__ import annotations

from datetime import datetime, timezone

import pytest

from ticketing.auth.errors import UnauthorizedError
from ticketing.auth.models import Role, UserAccount
from ticketing.auth.tokens import TokenIssuer
from ticketing.core.security import build_signed_token
from tests.fakes import FrozenClock, auth_config


def _user(role: Role = Role.ORGANIZER) -> UserAccount:
    return UserAccount(
        user_id="u1",
        username="alice",
        email="alice@x.com",
        password_hash="hash",
        role=role,
        created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
    )


def test_mint_and_decode_round_trip_claims() -> None:
    clock = FrozenClock()
    issuer = TokenIssuer(auth_config(), clock=clock.timestamp)

    session = issuer.mint(_user())
    claims = issuer.decode(session.access_token)

    assert claims.user_id == "u1"
    assert claims.role is Role.ORGANIZER
    assert claims.expires_at == int(clock.timestamp()) + 3600
    assert "password_hash" not in session.user


def test_decode_rejects_expired_token() -> None:
    clock = FrozenClock()
    issuer = TokenIssuer(auth_config(session_token_ttl_seconds=60), clock=clock.timestamp)
    token = issuer.mint(_user()).access_token

    clock.advance(seconds=61)

    with pytest.raises(UnauthorizedError) as exc:
        issuer.decode(token)
    assert exc.value.status_code == 401


def test_decode_rejects_tampered_and_malformed_tokens() -> None:
    issuer = TokenIssuer(auth_config())
    token = issuer.mint(_user()).access_token
    header, payload, signature = token.split(".")

    with pytest.raises(UnauthorizedError):
        issuer.decode(f"{header}.{payload}x.{signature}")
    with pytest.raises(UnauthorizedError):
        issuer.decode("not-a-token")


def test_decode_rejects_foreign_issuer_and_signing_key() -> None:
    issuer = TokenIssuer(auth_config())
    other_issuer = TokenIssuer(auth_config(issuer="someone-else"))
    other_key = TokenIssuer(auth_config(secret_key="other-secret"))

    with pytest.raises(UnauthorizedError):
        issuer.decode(other_issuer.mint(_user()).access_token)
    with pytest.raises(UnauthorizedError):
        issuer.decode(other_key.mint(_user()).access_token)


def test_decode_rejects_unknown_role_claim() -> None:
    config = auth_config()
    issuer = TokenIssuer(config)
    token = build_signed_token(
        {
            "iss": config.issuer,
            "sub": "u1",
            "role": "superuser",
            "type": "session",
            "exp": 4_000_000_000,
        },
        config.secret_key,
    )

    with pytest.raises(UnauthorizedError):
        issuer.decode(token)
