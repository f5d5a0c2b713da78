"""Role and ownership checks for credential operations."""

from __future__ import annotations

from enum import StrEnum
from typing import Mapping

from ticketing.auth.errors import ForbiddenRoleError, UnauthorizedError
from ticketing.auth.models import Role, SessionClaims


class Operation(StrEnum):
    """Operations gated by role."""

    LIST_USERS = "list_users"
    GET_USER = "get_user"
    UPDATE_ROLE = "update_role"
    DELETE_USER = "delete_user"
    UPDATE_PROFILE = "update_profile"
    CHANGE_PASSWORD = "change_password"
    REVERIFY = "reverify"


ALL_ROLES = frozenset(Role)

DEFAULT_ALLOWED_ROLES: dict[Operation, frozenset[Role]] = {
    Operation.LIST_USERS: frozenset({Role.ADMIN}),
    Operation.GET_USER: ALL_ROLES,
    Operation.UPDATE_ROLE: frozenset({Role.ADMIN}),
    Operation.DELETE_USER: frozenset({Role.ADMIN}),
    Operation.UPDATE_PROFILE: ALL_ROLES,
    Operation.CHANGE_PASSWORD: ALL_ROLES,
    Operation.REVERIFY: ALL_ROLES,
}


class AuthorizationPolicy:
    """Single table of allowed roles per operation, plus the self-edit rule."""

    def __init__(
        self, allowed_roles: Mapping[Operation, frozenset[Role]] | None = None
    ) -> None:
        self._allowed = dict(DEFAULT_ALLOWED_ROLES)
        if allowed_roles:
            self._allowed.update(allowed_roles)

    def allowed_roles(self, operation: Operation) -> frozenset[Role]:
        return self._allowed.get(operation, frozenset())

    def require_role(self, role: Role | str, operation: Operation) -> None:
        """Raise unless ``role`` may perform ``operation``. Unknown roles never pass."""
        try:
            resolved = Role(str(role))
        except ValueError as exc:
            raise ForbiddenRoleError() from exc
        if resolved not in self.allowed_roles(operation):
            raise ForbiddenRoleError()

    def require_self(self, caller: SessionClaims, target_user_id: str) -> None:
        """A caller may only edit their own record, whatever their role."""
        if caller.user_id != target_user_id:
            raise UnauthorizedError(
                "You can only edit your own user information",
                error_code="AUTH_NOT_OWNER",
            )
