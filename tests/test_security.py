from __future__ import annotations

import pytest

from ticketing.core.security import (
    build_signed_token,
    decode_signed_token,
    hash_password,
    verify_password,
)


def test_password_hash_round_trip_and_salting() -> None:
    first = hash_password("Secret1!", rounds=1_000)
    second = hash_password("Secret1!", rounds=1_000)

    assert first != second
    assert first.startswith("pbkdf2_sha256$1000$")
    assert verify_password("Secret1!", first)
    assert not verify_password("secret1!", first)


@pytest.mark.parametrize(
    "stored",
    ["", "plaintext", "md5$1$abc$def", "pbkdf2_sha256$nope$abc$def", "pbkdf2_sha256$0$abc$def"],
)
def test_corrupt_or_foreign_hashes_never_match(stored: str) -> None:
    assert verify_password("anything", stored) is False


def test_signed_token_requires_expiry_claim() -> None:
    token = build_signed_token({"sub": "u1"}, "key")

    with pytest.raises(ValueError):
        decode_signed_token(token, "key", now=0)


def test_signed_token_expiry_boundary() -> None:
    token = build_signed_token({"sub": "u1", "exp": 100}, "key")

    assert decode_signed_token(token, "key", now=100)["sub"] == "u1"
    with pytest.raises(ValueError):
        decode_signed_token(token, "key", now=101)


def test_signed_token_rejects_wrong_key_and_bad_shape() -> None:
    token = build_signed_token({"sub": "u1", "exp": 100}, "key")

    with pytest.raises(ValueError):
        decode_signed_token(token, "other", now=0)
    with pytest.raises(ValueError):
        decode_signed_token(token + ".extra", "key", now=0)
