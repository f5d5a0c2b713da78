"""Single-use, time-bounded secret tokens for email verification and password reset."""

from __future__ import annotations

import hmac
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

from ticketing.auth.models import SecretRecord
from ticketing.core.security import sha256_hex

Clock = Callable[[], datetime]

SECRET_BYTES = 32


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class IssuedSecret:
    """Plaintext secret (deliver once, never store) plus its stored half."""

    plaintext: str
    record: SecretRecord


class SecretTokenService:
    """Issue and check secrets whose only persisted form is a SHA-256 digest."""

    def __init__(self, clock: Clock = utc_now) -> None:
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    @staticmethod
    def hash_secret(candidate: str) -> str:
        return sha256_hex(candidate)

    def issue(self, validity: timedelta) -> IssuedSecret:
        """Draw a fresh secret valid for ``validity`` from now."""
        if validity <= timedelta(0):
            raise ValueError("validity window must be positive")
        plaintext = secrets.token_hex(SECRET_BYTES)
        record = SecretRecord(
            secret_hash=self.hash_secret(plaintext),
            expires_at=self.now() + validity,
        )
        return IssuedSecret(plaintext=plaintext, record=record)

    def extend(self, record: SecretRecord, validity: timedelta) -> SecretRecord:
        """Restart the window of an outstanding secret without changing it."""
        return SecretRecord(secret_hash=record.secret_hash, expires_at=self.now() + validity)

    def verify(
        self,
        stored_hash: str,
        candidate: str,
        expires_at: datetime,
        now: datetime | None = None,
    ) -> bool:
        """Return True only for a matching, unexpired secret.

        Mismatch and expiry are deliberately indistinguishable to callers.
        """
        current = self.now() if now is None else now
        matches = hmac.compare_digest(self.hash_secret(candidate), stored_hash)
        return matches and current <= expires_at
