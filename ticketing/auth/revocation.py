"""Registry of session tokens revoked before their natural expiry."""

from __future__ import annotations

import time
from threading import Lock
from typing import Callable

from ticketing.core.security import sha256_hex


class RevocationRegistry:
    """Thread-safe, TTL-aware set of revoked bearer tokens.

    Entries are keyed by token digest and dropped once the token's own expiry
    has passed, since an expired token is rejected anyway.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._lock = Lock()
        self._revoked: dict[str, int] = {}

    def revoke(self, token: str, expires_at: int) -> None:
        """Add ``token``; idempotent."""
        key = sha256_hex(token)
        with self._lock:
            self._purge_locked()
            self._revoked[key] = max(expires_at, self._revoked.get(key, 0))

    def is_revoked(self, token: str) -> bool:
        key = sha256_hex(token)
        with self._lock:
            expires_at = self._revoked.get(key)
            if expires_at is None:
                return False
            if expires_at < int(self._clock()):
                del self._revoked[key]
                return False
            return True

    def __len__(self) -> int:
        with self._lock:
            self._purge_locked()
            return len(self._revoked)

    def _purge_locked(self) -> None:
        now = int(self._clock())
        stale = [key for key, expires_at in self._revoked.items() if expires_at < now]
        for key in stale:
            del self._revoked[key]
