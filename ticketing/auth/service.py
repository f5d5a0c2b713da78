"""Credential authority: registration, verification, sessions, passwords and roles."""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import timedelta

from ticketing.auth.errors import (
    AlreadyVerifiedError,
    ConflictError,
    CredentialError,
    DuplicateAccountError,
    ExpiredSecretError,
    InvalidCredentialsError,
    InvalidSecretError,
    MissingTokenError,
    NotificationError,
    RevokedTokenError,
    ServerError,
    UnauthorizedError,
    UserNotFoundError,
    ValidationError,
)
from ticketing.auth.models import (
    AuditEntry,
    AuditStatus,
    MIN_PASSWORD_LENGTH,
    IssuedSession,
    Role,
    SessionClaims,
    UserAccount,
)
from ticketing.auth.notifier import (
    EmailTemplate,
    Notifier,
    password_reset_email,
    verification_email,
    verified_email,
)
from ticketing.auth.policy import AuthorizationPolicy, Operation
from ticketing.auth.repository import CredentialStore
from ticketing.auth.revocation import RevocationRegistry
from ticketing.auth.secret_tokens import SecretTokenService
from ticketing.auth.tokens import TokenIssuer
from ticketing.core.config import AuthConfig
from ticketing.core.logging import redact_email
from ticketing.core.security import hash_password, verify_password
from ticketing.core.validators import is_email, looks_like_email

LOGGER = logging.getLogger(__name__)

# Compared against when the login identifier matches no account, so both
# failure paths pay for one PBKDF2 derivation.
_DUMMY_PASSWORD_HASH = hash_password(uuid.uuid4().hex)

_PROFILE_FIELDS = ("username", "firstname", "lastname", "email")


def _require_password_length(password: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
            error_code="AUTH_PASSWORD_TOO_SHORT",
        )


class CredentialAuthority:
    """Orchestrates the credential lifecycle over an async ``CredentialStore``.

    Every rule violation is raised as a ``CredentialError`` subclass; the API
    layer maps those 1:1 onto status classes.
    """

    def __init__(
        self,
        *,
        store: CredentialStore,
        notifier: Notifier,
        config: AuthConfig,
        public_base_url: str = "http://localhost:8000",
        secrets: SecretTokenService | None = None,
        tokens: TokenIssuer | None = None,
        revocations: RevocationRegistry | None = None,
        policy: AuthorizationPolicy | None = None,
    ) -> None:
        self._store = store
        self._notifier = notifier
        self._config = config
        self._public_base_url = public_base_url.rstrip("/")
        self.secrets = secrets or SecretTokenService()
        self.tokens = tokens or TokenIssuer(config)
        self.revocations = revocations or RevocationRegistry()
        self.policy = policy or AuthorizationPolicy()

    @property
    def verification_window(self) -> timedelta:
        return timedelta(seconds=self._config.verification_ttl_seconds)

    @property
    def reset_window(self) -> timedelta:
        return timedelta(seconds=self._config.password_reset_ttl_seconds)

    async def _notify(self, address: str, template: EmailTemplate) -> None:
        try:
            await self._notifier.send(address, template)
        except NotificationError as exc:
            raise ServerError("Could not send email") from exc

    async def _send_verification(self, address: str, secret: str) -> None:
        await self._notify(
            address,
            verification_email(
                self._public_base_url,
                secret,
                self._config.verification_ttl_seconds // 60,
            ),
        )

    @staticmethod
    async def _hash(password: str) -> str:
        return await asyncio.to_thread(hash_password, password)

    @staticmethod
    async def _matches(password: str, stored_hash: str) -> bool:
        return await asyncio.to_thread(verify_password, password, stored_hash)

    # ------------------------------------------------------------------ #
    # Registration and verification
    # ------------------------------------------------------------------ #

    async def register(
        self,
        username: str,
        firstname: str,
        lastname: str,
        email: str,
        password: str,
    ) -> UserAccount:
        """Create an unverified ``user`` account and send its verification secret."""
        if not username or not password:
            raise ValidationError("Username and password are required")
        _require_password_length(password)
        if not is_email(email):
            raise ValidationError("Invalid email")

        if await self._store.get_user_by_username(username) is not None:
            raise ConflictError("username already exists", error_code="USERNAME_TAKEN")
        if await self._store.get_user_by_email(email) is not None:
            raise ConflictError("email already exists", error_code="EMAIL_TAKEN")

        issued = self.secrets.issue(self.verification_window)
        user = UserAccount(
            user_id=uuid.uuid4().hex,
            username=username,
            firstname=firstname,
            lastname=lastname,
            email=email,
            password_hash=await self._hash(password),
            role=Role.USER,
            is_verified=False,
            verification=issued.record,
            created_at=self.secrets.now(),
        )
        try:
            await self._store.insert_user(user)
        except DuplicateAccountError as exc:
            # Lost a race against a concurrent registration; the store is authoritative.
            raise ConflictError(
                f"{exc.field} already exists", error_code=f"{exc.field.upper()}_TAKEN"
            ) from exc

        LOGGER.info("user_registered", extra={"user_id": user.user_id, "operation": "register"})
        try:
            await self._send_verification(email, issued.plaintext)
        except ServerError:
            # The plaintext is lost; drop its hash so reverify issues a fresh one.
            await self._store.set_verification(user.user_id, None)
            raise
        return user

    async def verify(self, secret: str) -> UserAccount:
        """Consume a verification secret. Wrong and expired secrets look the same."""
        if not secret:
            raise ValidationError("Verification token is required")

        secret_hash = self.secrets.hash_secret(secret)
        now = self.secrets.now()
        candidate = await self._store.find_by_verification_hash(secret_hash)
        if (
            candidate is None
            or candidate.verification is None
            or not self.secrets.verify(
                candidate.verification.secret_hash,
                secret,
                candidate.verification.expires_at,
                now,
            )
        ):
            raise InvalidSecretError()

        user = await self._store.consume_verification(secret_hash, now)
        if user is None:
            raise InvalidSecretError()

        LOGGER.info("user_verified", extra={"user_id": user.user_id, "operation": "verify"})
        await self._notify(user.email, verified_email(user.user_id))
        return user

    async def reverify(self, caller: SessionClaims) -> bool:
        """Restart the verification cycle for an unverified caller.

        A live secret keeps its value and only its window restarts. An expired
        or missing one is replaced by a fresh secret that is mailed out. Returns
        True when an email was sent.
        """
        self.policy.require_role(caller.role, Operation.REVERIFY)
        if not is_email(caller.email):
            raise ValidationError("Invalid email")
        user = await self._store.get_user(caller.user_id)
        if user is None:
            raise UserNotFoundError()
        if user.is_verified:
            raise AlreadyVerifiedError()

        outstanding = user.verification
        if outstanding is not None and self.secrets.now() <= outstanding.expires_at:
            record = self.secrets.extend(outstanding, self.verification_window)
            if await self._store.set_verification(user.user_id, record) is None:
                raise UserNotFoundError()
            LOGGER.info(
                "verification_window_extended",
                extra={"user_id": user.user_id, "operation": "reverify"},
            )
            return False

        issued = self.secrets.issue(self.verification_window)
        updated = await self._store.set_verification(user.user_id, issued.record)
        if updated is None:
            raise UserNotFoundError()
        LOGGER.info(
            "verification_reissued", extra={"user_id": user.user_id, "operation": "reverify"}
        )
        await self._send_verification(updated.email, issued.plaintext)
        return True

    # ------------------------------------------------------------------ #
    # Sessions
    # ------------------------------------------------------------------ #

    async def login(self, username_or_email: str, password: str) -> IssuedSession:
        """Check credentials and mint a bearer token.

        Unknown account and wrong password raise the same error.
        """
        if looks_like_email(username_or_email):
            user = await self._store.get_user_by_email(username_or_email)
        else:
            user = await self._store.get_user_by_username(username_or_email)

        stored_hash = user.password_hash if user is not None else _DUMMY_PASSWORD_HASH
        password_ok = await self._matches(password, stored_hash)
        if user is None or not password_ok:
            LOGGER.info("login_failed", extra={"operation": "login"})
            raise InvalidCredentialsError()

        session = self.tokens.mint(user)
        LOGGER.info("login_succeeded", extra={"user_id": user.user_id, "operation": "login"})
        return session

    def logout(self, token: str | None) -> bool:
        """Revoke ``token`` if it is a live session token. Always safe to repeat."""
        if not token:
            return False
        try:
            claims = self.tokens.decode(token)
        except UnauthorizedError:
            # Malformed or expired tokens are already rejected everywhere.
            return False
        self.revocations.revoke(token, claims.expires_at)
        LOGGER.info("logout", extra={"user_id": claims.user_id, "operation": "logout"})
        return True

    def authenticate(self, token: str | None) -> SessionClaims:
        """Resolve the caller behind a bearer token; revocation always wins."""
        if not token:
            raise MissingTokenError()
        claims = self.tokens.decode(token)
        if self.revocations.is_revoked(token):
            raise RevokedTokenError()
        return claims

    # ------------------------------------------------------------------ #
    # Passwords
    # ------------------------------------------------------------------ #

    async def forgot_password(self, email: str) -> None:
        """Store a fresh reset secret (superseding any prior one) and mail it."""
        user = await self._store.get_user_by_email(email)
        if user is None:
            raise UserNotFoundError()

        issued = self.secrets.issue(self.reset_window)
        if await self._store.set_password_reset(user.user_id, issued.record) is None:
            raise UserNotFoundError()
        LOGGER.info(
            "password_reset_requested",
            extra={"user_id": user.user_id, "operation": "forgot_password"},
        )
        await self._notify(
            user.email,
            password_reset_email(
                self._public_base_url,
                issued.plaintext,
                self._config.password_reset_ttl_seconds // 60,
            ),
        )

    async def reset_password(self, secret: str, new_password: str) -> UserAccount:
        """Replace the password using a reset secret, which is then cleared."""
        if not secret:
            raise ValidationError("Reset token is required")
        if not new_password:
            raise ValidationError("Password is required")
        _require_password_length(new_password)

        secret_hash = self.secrets.hash_secret(secret)
        now = self.secrets.now()
        user = await self._store.find_by_reset_hash(secret_hash)
        if user is None or user.password_reset is None:
            raise InvalidSecretError("User not found")
        if now > user.password_reset.expires_at:
            raise ExpiredSecretError()

        updated = await self._store.consume_password_reset(
            secret_hash, await self._hash(new_password), now
        )
        if updated is None:
            raise InvalidSecretError("User not found")
        LOGGER.info(
            "password_reset_completed",
            extra={"user_id": updated.user_id, "operation": "reset_password"},
        )
        return updated

    async def change_password(
        self,
        caller: SessionClaims,
        current_password: str,
        new_password: str,
        confirm_password: str,
    ) -> UserAccount:
        self.policy.require_role(caller.role, Operation.CHANGE_PASSWORD)
        if not current_password or not new_password or not confirm_password:
            raise ValidationError("All fields are required")
        user = await self._store.get_user(caller.user_id)
        if user is None:
            raise UserNotFoundError()
        if not await self._matches(current_password, user.password_hash):
            raise ValidationError(
                "Current password is incorrect", error_code="AUTH_CURRENT_PASSWORD_MISMATCH"
            )
        if new_password == current_password:
            raise ValidationError("New password must be different")
        if new_password != confirm_password:
            raise ValidationError("Passwords do not match")
        _require_password_length(new_password)

        updated = await self._store.update_password(user.user_id, await self._hash(new_password))
        if updated is None:
            raise UserNotFoundError()
        LOGGER.info(
            "password_changed", extra={"user_id": user.user_id, "operation": "change_password"}
        )
        return updated

    # ------------------------------------------------------------------ #
    # Account management
    # ------------------------------------------------------------------ #

    async def update_user_role(
        self, actor: SessionClaims, target_user_id: str, requested_role: str
    ) -> UserAccount:
        """Admin-only role change with a write-ahead audit entry.

        The audit entry is written as ``requested`` before the change and
        finalized as ``applied`` or ``failed``, so every accepted request leaves
        exactly one entry that states whether the change committed.
        """
        self.policy.require_role(actor.role, Operation.UPDATE_ROLE)
        if not target_user_id:
            raise ValidationError("User ID is required")
        if await self._store.get_user(target_user_id) is None:
            raise UserNotFoundError("This User does not exist")
        normalized = (requested_role or "").strip().lower()
        if not normalized:
            raise ValidationError("Role is required")
        try:
            role = Role(normalized)
        except ValueError as exc:
            raise ValidationError("Invalid role", error_code="INVALID_ROLE") from exc

        entry = AuditEntry(
            entry_id=uuid.uuid4().hex,
            action="Role Change Request",
            details=f'User ID: {target_user_id} requested a role change to "{role}"',
            user_id=target_user_id,
            actor_id=actor.user_id,
            created_at=self.secrets.now(),
        )
        await self._store.add_audit_entry(entry)
        LOGGER.info(
            "role_change_requested",
            extra={"user_id": target_user_id, "operation": "update_role"},
        )

        try:
            updated = await self._store.update_role(target_user_id, role)
        except CredentialError:
            await self._store.set_audit_status(entry.entry_id, AuditStatus.FAILED)
            raise
        if updated is None:
            await self._store.set_audit_status(entry.entry_id, AuditStatus.FAILED)
            raise UserNotFoundError("Error updating user role")

        await self._store.set_audit_status(entry.entry_id, AuditStatus.APPLIED)
        return updated

    async def update_profile(
        self, caller: SessionClaims, target_user_id: str, updates: dict[str, str | None]
    ) -> UserAccount:
        """Self-service edit of username, names and email."""
        self.policy.require_role(caller.role, Operation.UPDATE_PROFILE)
        if not target_user_id:
            raise ValidationError("User ID is required")
        if await self._store.get_user(target_user_id) is None:
            raise UserNotFoundError()
        self.policy.require_self(caller, target_user_id)

        fields = {
            key: value
            for key, value in updates.items()
            if key in _PROFILE_FIELDS and value is not None
        }
        if not fields:
            raise ValidationError("No updates provided")
        if "email" in fields and not is_email(fields["email"]):
            raise ValidationError("Invalid email")

        try:
            updated = await self._store.update_profile(target_user_id, fields)
        except DuplicateAccountError as exc:
            raise ConflictError(
                f"{exc.field} already exists", error_code=f"{exc.field.upper()}_TAKEN"
            ) from exc
        if updated is None:
            raise UserNotFoundError()
        LOGGER.info(
            "profile_updated", extra={"user_id": target_user_id, "operation": "update_profile"}
        )
        return updated

    async def delete_user(self, actor: SessionClaims, target_user_id: str) -> UserAccount:
        self.policy.require_role(actor.role, Operation.DELETE_USER)
        if not target_user_id:
            raise ValidationError("User ID is required")
        deleted = await self._store.delete_user(target_user_id)
        if deleted is None:
            raise UserNotFoundError()
        LOGGER.info("user_deleted", extra={"user_id": target_user_id, "operation": "delete_user"})
        return deleted

    async def list_users(self, actor: SessionClaims) -> list[UserAccount]:
        self.policy.require_role(actor.role, Operation.LIST_USERS)
        return await self._store.list_users()

    async def get_user(self, actor: SessionClaims, user_id: str) -> UserAccount:
        self.policy.require_role(actor.role, Operation.GET_USER)
        user = await self._store.get_user(user_id)
        if user is None:
            raise UserNotFoundError()
        return user

    async def bootstrap_admin_user(self) -> UserAccount | None:
        """Ensure the configured admin account exists. No-op without a password."""
        cfg = self._config
        if not cfg.admin_password:
            return None
        existing = await self._store.get_user_by_username(cfg.admin_username)
        if existing is None:
            existing = await self._store.get_user_by_email(cfg.admin_email)
        if existing is not None:
            return existing

        admin = UserAccount(
            user_id=uuid.uuid4().hex,
            username=cfg.admin_username,
            firstname="Admin",
            lastname="",
            email=cfg.admin_email,
            password_hash=await self._hash(cfg.admin_password),
            role=Role.ADMIN,
            is_verified=True,
            created_at=self.secrets.now(),
        )
        try:
            await self._store.insert_user(admin)
        except DuplicateAccountError:
            LOGGER.info("admin_bootstrap_skipped", extra={"operation": "bootstrap_admin"})
            return await self._store.get_user_by_username(cfg.admin_username)
        LOGGER.info(
            "admin_bootstrapped %s",
            redact_email(cfg.admin_email),
            extra={"user_id": admin.user_id, "operation": "bootstrap_admin"},
        )
        return admin
