from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

from ticketing.auth.revocation import RevocationRegistry
from tests.fakes import FrozenClock


def test_revoke_is_idempotent() -> None:
    clock = FrozenClock()
    registry = RevocationRegistry(clock=clock.timestamp)
    expires_at = int(clock.timestamp()) + 60

    registry.revoke("tok", expires_at)
    registry.revoke("tok", expires_at)

    assert registry.is_revoked("tok")
    assert len(registry) == 1


def test_entries_are_purged_once_token_expiry_passes() -> None:
    clock = FrozenClock()
    registry = RevocationRegistry(clock=clock.timestamp)
    registry.revoke("short", int(clock.timestamp()) + 10)
    registry.revoke("long", int(clock.timestamp()) + 1000)

    clock.advance(seconds=11)

    assert not registry.is_revoked("short")
    assert registry.is_revoked("long")
    assert len(registry) == 1


def test_concurrent_revocations_are_not_lost() -> None:
    registry = RevocationRegistry()
    tokens = [f"token-{i}" for i in range(500)]

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(lambda token: registry.revoke(token, 4_000_000_000), tokens))

    assert len(registry) == len(tokens)
    assert all(registry.is_revoked(token) for token in tokens)
