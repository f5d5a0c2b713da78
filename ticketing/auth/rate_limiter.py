"""Login brute-force protection backed by SQLite runtime state."""

from __future__ import annotations

import sqlite3
import time
from pathlib import Path
from threading import Lock
from typing import Callable

from ticketing.api.errors import ApiError, ApiErrorCode
from ticketing.core.migrations import apply_migrations


class LoginRateLimiter:
    """Rate limiter for login attempts keyed by (identifier, client ip)."""

    def __init__(
        self,
        *,
        database_path: Path,
        max_attempts: int,
        window_seconds: int,
        lock_seconds: int,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize limiter storage and policy parameters."""
        apply_migrations(database_path)
        self._connection = sqlite3.connect(str(database_path), check_same_thread=False)
        self._connection.row_factory = sqlite3.Row
        self._lock = Lock()
        self._clock = clock
        self._max_attempts = max(1, int(max_attempts))
        self._window_seconds = max(1, int(window_seconds))
        self._lock_seconds = max(1, int(lock_seconds))

    @staticmethod
    def _key(identifier: str, client_ip: str) -> tuple[str, str]:
        return identifier.strip().lower(), client_ip.strip() or "unknown"

    def _forget_locked(self, key: tuple[str, str]) -> None:
        self._connection.execute(
            "DELETE FROM auth_login_attempts WHERE identifier = ? AND client_ip = ?",
            key,
        )
        self._connection.commit()

    def assert_allowed(self, *, identifier: str, client_ip: str) -> None:
        """Raise 429 while the pair is locked out."""
        now = int(self._clock())
        key = self._key(identifier, client_ip)
        with self._lock:
            row = self._connection.execute(
                """
                SELECT first_failed_at, locked_until
                FROM auth_login_attempts
                WHERE identifier = ? AND client_ip = ?
                """,
                key,
            ).fetchone()
            if row is None:
                return

            locked_until = int(row["locked_until"] or 0)
            if locked_until > now:
                raise ApiError(
                    status_code=429,
                    error_code=ApiErrorCode.AUTH_RATE_LIMITED,
                    message=(
                        "Too many login attempts. "
                        f"Retry after {locked_until - now} seconds."
                    ),
                )

            first_failed_at = int(row["first_failed_at"] or 0)
            if locked_until or (
                first_failed_at and now - first_failed_at > self._window_seconds
            ):
                self._forget_locked(key)

    def record_success(self, *, identifier: str, client_ip: str) -> None:
        """Reset limiter state after successful login."""
        with self._lock:
            self._forget_locked(self._key(identifier, client_ip))

    def record_failure(self, *, identifier: str, client_ip: str) -> None:
        """Count a failed login and lock the pair once the threshold is hit."""
        now = int(self._clock())
        key = self._key(identifier, client_ip)
        with self._lock:
            row = self._connection.execute(
                """
                SELECT failed_attempts, first_failed_at
                FROM auth_login_attempts
                WHERE identifier = ? AND client_ip = ?
                """,
                key,
            ).fetchone()

            previous_first = int(row["first_failed_at"] or 0) if row else 0
            if row is None or (previous_first and now - previous_first > self._window_seconds):
                failed_attempts, first_failed_at = 1, now
            else:
                failed_attempts = int(row["failed_attempts"] or 0) + 1
                first_failed_at = previous_first or now

            locked_until = (
                now + self._lock_seconds if failed_attempts >= self._max_attempts else 0
            )
            self._connection.execute(
                """
                INSERT INTO auth_login_attempts(
                  identifier, client_ip, failed_attempts, first_failed_at,
                  last_failed_at, locked_until
                ) VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(identifier, client_ip) DO UPDATE SET
                  failed_attempts = excluded.failed_attempts,
                  first_failed_at = excluded.first_failed_at,
                  last_failed_at = excluded.last_failed_at,
                  locked_until = excluded.locked_until
                """,
                (*key, failed_attempts, first_failed_at, now, locked_until),
            )
            self._connection.commit()

    def close(self) -> None:
        """Close SQLite resources."""
        with self._lock:
            self._connection.close()
