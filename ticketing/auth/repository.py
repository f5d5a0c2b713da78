"""Credential store: user records and the role-change audit trail."""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Protocol

from pymongo import AsyncMongoClient, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from ticketing.auth.errors import DuplicateAccountError, ServerError
from ticketing.auth.models import AuditEntry, AuditStatus, Role, SecretRecord, UserAccount
from ticketing.core.config import StoreConfig
from ticketing.core.mongo_migrations import AUDIT_COLLECTION, USERS_COLLECTION

_UNIQUE_FIELDS = ("username", "email")


class CredentialStore(Protocol):
    """Async persistence contract used by the credential authority.

    Every mutating call returns the record as it is after the write, or
    ``None`` when the filter matched nothing. Inserts and profile updates raise
    ``DuplicateAccountError`` when the store rejects a unique key.
    """

    async def insert_user(self, user: UserAccount) -> None: ...
    async def get_user(self, user_id: str) -> UserAccount | None: ...
    async def get_user_by_email(self, email: str) -> UserAccount | None: ...
    async def get_user_by_username(self, username: str) -> UserAccount | None: ...
    async def find_by_verification_hash(self, secret_hash: str) -> UserAccount | None: ...
    async def find_by_reset_hash(self, secret_hash: str) -> UserAccount | None: ...
    async def list_users(self) -> list[UserAccount]: ...
    async def set_verification(
        self, user_id: str, record: SecretRecord | None
    ) -> UserAccount | None: ...
    async def consume_verification(
        self, secret_hash: str, now: datetime
    ) -> UserAccount | None: ...
    async def set_password_reset(
        self, user_id: str, record: SecretRecord
    ) -> UserAccount | None: ...
    async def consume_password_reset(
        self, secret_hash: str, password_hash: str, now: datetime
    ) -> UserAccount | None: ...
    async def update_password(
        self, user_id: str, password_hash: str
    ) -> UserAccount | None: ...
    async def update_role(self, user_id: str, role: Role) -> UserAccount | None: ...
    async def update_profile(
        self, user_id: str, fields: dict[str, str]
    ) -> UserAccount | None: ...
    async def delete_user(self, user_id: str) -> UserAccount | None: ...
    async def add_audit_entry(self, entry: AuditEntry) -> None: ...
    async def set_audit_status(self, entry_id: str, status: AuditStatus) -> None: ...


class InMemoryCredentialStore:
    """Process-local store used when no MongoDB URI is configured, and in tests.

    Unique keys are enforced at write time under a single ``asyncio.Lock``,
    mirroring the unique indexes of the Mongo collection.
    """

    def __init__(self) -> None:
        self._users: dict[str, UserAccount] = {}
        self._audit: dict[str, AuditEntry] = {}
        self._lock = asyncio.Lock()

    @property
    def audit_entries(self) -> list[AuditEntry]:
        return list(self._audit.values())

    def _clash(self, user_id: str, fields: dict[str, Any]) -> str | None:
        for field in _UNIQUE_FIELDS:
            value = fields.get(field)
            if value is None:
                continue
            for other in self._users.values():
                if other.user_id != user_id and getattr(other, field) == value:
                    return field
        return None

    def _replace(self, user_id: str, **changes: Any) -> UserAccount | None:
        current = self._users.get(user_id)
        if current is None:
            return None
        updated = current.model_copy(update=changes)
        self._users[user_id] = updated
        return updated

    async def insert_user(self, user: UserAccount) -> None:
        async with self._lock:
            if user.user_id in self._users:
                raise DuplicateAccountError("user_id")
            field = self._clash(user.user_id, user.model_dump())
            if field:
                raise DuplicateAccountError(field)
            self._users[user.user_id] = user

    async def get_user(self, user_id: str) -> UserAccount | None:
        return self._users.get(user_id)

    async def get_user_by_email(self, email: str) -> UserAccount | None:
        return next((u for u in self._users.values() if u.email == email), None)

    async def get_user_by_username(self, username: str) -> UserAccount | None:
        return next((u for u in self._users.values() if u.username == username), None)

    async def find_by_verification_hash(self, secret_hash: str) -> UserAccount | None:
        return next(
            (
                u
                for u in self._users.values()
                if u.verification is not None and u.verification.secret_hash == secret_hash
            ),
            None,
        )

    async def find_by_reset_hash(self, secret_hash: str) -> UserAccount | None:
        return next(
            (
                u
                for u in self._users.values()
                if u.password_reset is not None
                and u.password_reset.secret_hash == secret_hash
            ),
            None,
        )

    async def list_users(self) -> list[UserAccount]:
        return sorted(self._users.values(), key=lambda u: u.created_at)

    async def set_verification(
        self, user_id: str, record: SecretRecord | None
    ) -> UserAccount | None:
        async with self._lock:
            return self._replace(user_id, verification=record)

    async def consume_verification(
        self, secret_hash: str, now: datetime
    ) -> UserAccount | None:
        async with self._lock:
            user = await self.find_by_verification_hash(secret_hash)
            if user is None or user.verification is None or user.verification.expires_at < now:
                return None
            return self._replace(user.user_id, is_verified=True, verification=None)

    async def set_password_reset(
        self, user_id: str, record: SecretRecord
    ) -> UserAccount | None:
        async with self._lock:
            return self._replace(user_id, password_reset=record)

    async def consume_password_reset(
        self, secret_hash: str, password_hash: str, now: datetime
    ) -> UserAccount | None:
        async with self._lock:
            user = await self.find_by_reset_hash(secret_hash)
            if (
                user is None
                or user.password_reset is None
                or user.password_reset.expires_at < now
            ):
                return None
            return self._replace(
                user.user_id, password_hash=password_hash, password_reset=None
            )

    async def update_password(
        self, user_id: str, password_hash: str
    ) -> UserAccount | None:
        async with self._lock:
            return self._replace(user_id, password_hash=password_hash)

    async def update_role(self, user_id: str, role: Role) -> UserAccount | None:
        async with self._lock:
            return self._replace(user_id, role=role)

    async def update_profile(
        self, user_id: str, fields: dict[str, str]
    ) -> UserAccount | None:
        async with self._lock:
            if user_id not in self._users:
                return None
            field = self._clash(user_id, fields)
            if field:
                raise DuplicateAccountError(field)
            return self._replace(user_id, **fields)

    async def delete_user(self, user_id: str) -> UserAccount | None:
        async with self._lock:
            return self._users.pop(user_id, None)

    async def add_audit_entry(self, entry: AuditEntry) -> None:
        async with self._lock:
            self._audit[entry.entry_id] = entry

    async def set_audit_status(self, entry_id: str, status: AuditStatus) -> None:
        async with self._lock:
            entry = self._audit.get(entry_id)
            if entry is not None:
                self._audit[entry_id] = entry.model_copy(update={"status": status})


def _user_doc(user: UserAccount) -> dict[str, Any]:
    doc = user.model_dump()
    doc["role"] = str(user.role)
    return doc


def _secret_doc(record: SecretRecord) -> dict[str, Any]:
    return {"secret_hash": record.secret_hash, "expires_at": record.expires_at}


def _duplicate_field(exc: DuplicateKeyError) -> str:
    key_pattern = (exc.details or {}).get("keyPattern") or {}
    for field in key_pattern:
        return str(field)
    message = str(exc)
    return next((field for field in _UNIQUE_FIELDS if field in message), "key")


class MongoCredentialStore:
    """MongoDB-backed store. Unique indexes are created by migrations."""

    def __init__(self, client: AsyncMongoClient, db_name: str) -> None:
        db = client[db_name]
        self._client = client
        self._users = db[USERS_COLLECTION]
        self._audit = db[AUDIT_COLLECTION]

    @classmethod
    def from_config(cls, config: StoreConfig) -> "MongoCredentialStore":
        client: AsyncMongoClient = AsyncMongoClient(
            config.mongodb_uri, serverSelectionTimeoutMS=3000, tz_aware=True
        )
        return cls(client, config.mongodb_db)

    async def close(self) -> None:
        await self._client.close()

    async def _find_one(self, query: dict[str, Any]) -> UserAccount | None:
        try:
            doc = await self._users.find_one(query, {"_id": 0})
        except PyMongoError as exc:
            raise ServerError("Credential store unavailable") from exc
        return UserAccount.model_validate(doc) if doc else None

    async def _update_one(
        self, query: dict[str, Any], update: dict[str, Any]
    ) -> UserAccount | None:
        try:
            doc = await self._users.find_one_and_update(
                query,
                update,
                projection={"_id": 0},
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError as exc:
            raise DuplicateAccountError(_duplicate_field(exc)) from exc
        except PyMongoError as exc:
            raise ServerError("Credential store unavailable") from exc
        return UserAccount.model_validate(doc) if doc else None

    async def insert_user(self, user: UserAccount) -> None:
        try:
            await self._users.insert_one(_user_doc(user))
        except DuplicateKeyError as exc:
            raise DuplicateAccountError(_duplicate_field(exc)) from exc
        except PyMongoError as exc:
            raise ServerError("Credential store unavailable") from exc

    async def get_user(self, user_id: str) -> UserAccount | None:
        return await self._find_one({"user_id": user_id})

    async def get_user_by_email(self, email: str) -> UserAccount | None:
        return await self._find_one({"email": email})

    async def get_user_by_username(self, username: str) -> UserAccount | None:
        return await self._find_one({"username": username})

    async def find_by_verification_hash(self, secret_hash: str) -> UserAccount | None:
        return await self._find_one({"verification.secret_hash": secret_hash})

    async def find_by_reset_hash(self, secret_hash: str) -> UserAccount | None:
        return await self._find_one({"password_reset.secret_hash": secret_hash})

    async def list_users(self) -> list[UserAccount]:
        try:
            cursor = self._users.find({}, {"_id": 0}).sort("created_at", 1)
            return [UserAccount.model_validate(doc) async for doc in cursor]
        except PyMongoError as exc:
            raise ServerError("Credential store unavailable") from exc

    async def set_verification(
        self, user_id: str, record: SecretRecord | None
    ) -> UserAccount | None:
        return await self._update_one(
            {"user_id": user_id},
            {"$set": {"verification": _secret_doc(record) if record else None}},
        )

    async def consume_verification(
        self, secret_hash: str, now: datetime
    ) -> UserAccount | None:
        return await self._update_one(
            {
                "verification.secret_hash": secret_hash,
                "verification.expires_at": {"$gte": now},
            },
            {"$set": {"is_verified": True, "verification": None}},
        )

    async def set_password_reset(
        self, user_id: str, record: SecretRecord
    ) -> UserAccount | None:
        return await self._update_one(
            {"user_id": user_id}, {"$set": {"password_reset": _secret_doc(record)}}
        )

    async def consume_password_reset(
        self, secret_hash: str, password_hash: str, now: datetime
    ) -> UserAccount | None:
        return await self._update_one(
            {
                "password_reset.secret_hash": secret_hash,
                "password_reset.expires_at": {"$gte": now},
            },
            {"$set": {"password_hash": password_hash, "password_reset": None}},
        )

    async def update_password(
        self, user_id: str, password_hash: str
    ) -> UserAccount | None:
        return await self._update_one(
            {"user_id": user_id}, {"$set": {"password_hash": password_hash}}
        )

    async def update_role(self, user_id: str, role: Role) -> UserAccount | None:
        return await self._update_one({"user_id": user_id}, {"$set": {"role": str(role)}})

    async def update_profile(
        self, user_id: str, fields: dict[str, str]
    ) -> UserAccount | None:
        return await self._update_one({"user_id": user_id}, {"$set": dict(fields)})

    async def delete_user(self, user_id: str) -> UserAccount | None:
        try:
            doc = await self._users.find_one_and_delete(
                {"user_id": user_id}, projection={"_id": 0}
            )
        except PyMongoError as exc:
            raise ServerError("Credential store unavailable") from exc
        return UserAccount.model_validate(doc) if doc else None

    async def add_audit_entry(self, entry: AuditEntry) -> None:
        doc = entry.model_dump()
        doc["status"] = str(entry.status)
        try:
            await self._audit.insert_one(doc)
        except PyMongoError as exc:
            raise ServerError("Audit log unavailable") from exc

    async def set_audit_status(self, entry_id: str, status: AuditStatus) -> None:
        try:
            await self._audit.update_one(
                {"entry_id": entry_id}, {"$set": {"status": str(status)}}
            )
        except PyMongoError as exc:
            raise ServerError("Audit log unavailable") from exc


def create_credential_store(config: StoreConfig) -> CredentialStore:
    """Return the Mongo store when a URI is configured, else an in-memory one."""
    if config.mongodb_uri:
        return MongoCredentialStore.from_config(config)
    return InMemoryCredentialStore()
