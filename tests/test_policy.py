from __future__ import annotations

import pytest

from ticketing.auth.errors import UnauthorizedError
from ticketing.auth.models import Role, SessionClaims
from ticketing.auth.policy import AuthorizationPolicy, Operation


def _claims(user_id: str, role: Role) -> SessionClaims:
    return SessionClaims(
        user_id=user_id,
        username=user_id,
        email=f"{user_id}@x.com",
        role=role,
        jti="j",
        expires_at=4_000_000_000,
    )


def test_admin_only_operations_reject_other_roles() -> None:
    policy = AuthorizationPolicy()

    policy.require_role(Role.ADMIN, Operation.UPDATE_ROLE)
    for role in (Role.USER, Role.ORGANIZER, "bogus"):
        with pytest.raises(UnauthorizedError):
            policy.require_role(role, Operation.UPDATE_ROLE)


def test_allowed_roles_are_configurable_per_operation() -> None:
    policy = AuthorizationPolicy(
        {Operation.LIST_USERS: frozenset({Role.ADMIN, Role.ORGANIZER})}
    )

    policy.require_role(Role.ORGANIZER, Operation.LIST_USERS)
    with pytest.raises(UnauthorizedError):
        policy.require_role(Role.ORGANIZER, Operation.DELETE_USER)


def test_self_edit_rule_ignores_role() -> None:
    policy = AuthorizationPolicy()

    policy.require_self(_claims("u1", Role.USER), "u1")
    with pytest.raises(UnauthorizedError) as exc:
        policy.require_self(_claims("admin", Role.ADMIN), "u1")
    assert exc.value.error_code == "AUTH_NOT_OWNER"
