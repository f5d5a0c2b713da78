from __future__ import annotations

from ticketing.api.errors import ApiErrorCode, credential_error_payload, to_error_payload
from ticketing.auth.errors import (
    AlreadyVerifiedError,
    ConflictError,
    ExpiredSecretError,
    ForbiddenRoleError,
    InvalidCredentialsError,
    InvalidSecretError,
    InvalidTokenError,
    MissingTokenError,
    NotFoundError,
    RevokedTokenError,
    ServerError,
    UnauthorizedError,
    UserNotFoundError,
    ValidationError,
)


def test_to_error_payload_preserves_structured_detail() -> None:
    payload = to_error_payload(
        {"error_code": "AUTH_TOKEN_INVALID", "message": "Invalid"},
        401,
    )

    assert payload == {"error_code": "AUTH_TOKEN_INVALID", "message": "Invalid"}


def test_to_error_payload_normalizes_plain_string() -> None:
    payload = to_error_payload("boom", 500)

    assert payload == {"error_code": "HTTP_500", "message": "boom"}


def test_credential_errors_map_to_one_status_class_each() -> None:
    cases = [
        (ValidationError(), 400),
        (ExpiredSecretError(), 400),
        (AlreadyVerifiedError(), 400),
        (ConflictError(), 409),
        (NotFoundError(), 404),
        (UnauthorizedError(), 401),
        (ServerError(), 500),
    ]

    for exc, expected in cases:
        status_code, payload = credential_error_payload(exc)
        assert status_code == expected
        assert payload["message"] == exc.default_message


def test_credential_error_payload_carries_custom_code_and_message() -> None:
    status_code, payload = credential_error_payload(
        ConflictError("email already exists", error_code="EMAIL_TAKEN")
    )

    assert status_code == 409
    assert payload == {"error_code": "EMAIL_TAKEN", "message": "email already exists"}


def test_auth_error_codes_live_on_domain_error_types() -> None:
    cases = [
        (MissingTokenError(), 401, "AUTH_MISSING_TOKEN"),
        (InvalidTokenError(), 401, "AUTH_TOKEN_INVALID"),
        (RevokedTokenError(), 401, "AUTH_TOKEN_REVOKED"),
        (InvalidCredentialsError(), 401, "AUTH_INVALID_CREDENTIALS"),
        (ForbiddenRoleError(), 401, "AUTH_FORBIDDEN_ROLE"),
        (UserNotFoundError(), 404, "USER_NOT_FOUND"),
        (InvalidSecretError(), 404, "AUTH_SECRET_INVALID"),
    ]

    for exc, expected_status, expected_code in cases:
        status_code, payload = credential_error_payload(exc)
        assert (status_code, payload["error_code"]) == (expected_status, expected_code)

    transport_codes = {code.value for code in ApiErrorCode}
    assert transport_codes.isdisjoint(code for _, _, code in cases)
