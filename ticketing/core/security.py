"""Password hashing, secret digests and HMAC-signed session tokens."""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import secrets
import time
from typing import Any

PASSWORD_SCHEME = "pbkdf2_sha256"
PBKDF2_ROUNDS = 120_000
SALT_BYTES = 16

TOKEN_ALGORITHM = "HS256"


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


def _derive(password: str, salt: bytes, rounds: int) -> bytes:
    return hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, rounds)


def hash_password(password: str, *, rounds: int = PBKDF2_ROUNDS) -> str:
    """Return ``scheme$rounds$salt$digest`` for ``password`` with a fresh salt."""
    salt = secrets.token_bytes(SALT_BYTES)
    digest = _derive(password, salt, rounds)
    return "$".join((PASSWORD_SCHEME, str(rounds), _b64encode(salt), _b64encode(digest)))


def verify_password(password: str, stored_hash: str) -> bool:
    """Constant-time check of ``password`` against a stored hash.

    Unknown schemes and corrupt hashes never match.
    """
    parts = stored_hash.split("$")
    if len(parts) != 4 or parts[0] != PASSWORD_SCHEME:
        return False
    try:
        rounds = int(parts[1])
        salt = _b64decode(parts[2])
        expected = _b64decode(parts[3])
    except ValueError:
        return False
    if rounds <= 0:
        return False
    return hmac.compare_digest(_derive(password, salt, rounds), expected)


def sha256_hex(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def _sign(signing_input: str, secret_key: str) -> bytes:
    return hmac.new(
        secret_key.encode("utf-8"), signing_input.encode("utf-8"), hashlib.sha256
    ).digest()


def _encode_segment(data: dict[str, Any]) -> str:
    return _b64encode(json.dumps(data, separators=(",", ":"), sort_keys=True).encode("utf-8"))


def _decode_segment(segment: str) -> dict[str, Any]:
    try:
        data = json.loads(_b64decode(segment))
    except (ValueError, UnicodeDecodeError) as exc:
        raise ValueError("Invalid token segment") from exc
    if not isinstance(data, dict):
        raise ValueError("Invalid token segment")
    return data


def build_signed_token(payload: dict[str, Any], secret_key: str) -> str:
    """Serialize ``payload`` as a compact ``header.payload.signature`` token."""
    header = _encode_segment({"alg": TOKEN_ALGORITHM, "typ": "JWT"})
    unsigned = f"{header}.{_encode_segment(payload)}"
    return f"{unsigned}.{_b64encode(_sign(unsigned, secret_key))}"


def decode_signed_token(
    token: str, secret_key: str, *, now: int | None = None
) -> dict[str, Any]:
    """Return the payload of a token signed with ``secret_key``.

    Raises ``ValueError`` for malformed, forged, foreign-algorithm or expired
    tokens, and for tokens without an ``exp`` claim.
    """
    segments = token.split(".")
    if len(segments) != 3:
        raise ValueError("Malformed token")
    header_part, payload_part, signature_part = segments
    try:
        signature = _b64decode(signature_part)
    except ValueError as exc:
        raise ValueError("Malformed token") from exc
    if not hmac.compare_digest(_sign(f"{header_part}.{payload_part}", secret_key), signature):
        raise ValueError("Invalid token signature")

    if _decode_segment(header_part).get("alg") != TOKEN_ALGORITHM:
        raise ValueError("Unsupported token algorithm")
    payload = _decode_segment(payload_part)

    try:
        expires_at = int(payload.get("exp") or 0)
    except (TypeError, ValueError) as exc:
        raise ValueError("Invalid token expiry") from exc
    current = int(time.time()) if now is None else now
    if expires_at <= 0 or expires_at < current:
        raise ValueError("Token expired")
    return payload
