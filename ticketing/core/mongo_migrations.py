"""Versioned MongoDB schema migrations for credential collections."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from pymongo import ASCENDING, AsyncMongoClient
from pymongo.errors import PyMongoError

from ticketing.core.config import StoreConfig
from ticketing.core.logging import CORRELATION_ID_CTX

LOGGER = logging.getLogger(__name__)

MigrationFn = Callable[[Any], Awaitable[None]]

USERS_COLLECTION = "users"
AUDIT_COLLECTION = "notifications"


async def _migration_20261001_01_user_unique_keys(db: Any) -> None:
    users = db[USERS_COLLECTION]
    await users.create_index("user_id", unique=True)
    await users.create_index("username", unique=True)
    await users.create_index("email", unique=True)


async def _migration_20261001_02_secret_lookups(db: Any) -> None:
    users = db[USERS_COLLECTION]
    await users.create_index("verification.secret_hash", sparse=True)
    await users.create_index("password_reset.secret_hash", sparse=True)


async def _migration_20261001_03_audit_log(db: Any) -> None:
    audit = db[AUDIT_COLLECTION]
    await audit.create_index("entry_id", unique=True)
    await audit.create_index([("user_id", ASCENDING), ("created_at", ASCENDING)])


MIGRATIONS: list[tuple[str, MigrationFn]] = [
    ("20261001_01_user_unique_keys", _migration_20261001_01_user_unique_keys),
    ("20261001_02_secret_lookups", _migration_20261001_02_secret_lookups),
    ("20261001_03_audit_log", _migration_20261001_03_audit_log),
]


async def apply_mongo_migrations(db: Any) -> list[str]:
    """Apply pending migrations against ``db`` and return the ids applied now."""
    migration_collection = db["schema_migrations"]
    await migration_collection.create_index("migration_id", unique=True)

    applied_now: list[str] = []
    for migration_id, migration_fn in MIGRATIONS:
        if await migration_collection.find_one({"migration_id": migration_id}):
            continue
        await migration_fn(db)
        await migration_collection.insert_one(
            {
                "migration_id": migration_id,
                "applied_at": datetime.now(timezone.utc),
                "correlation_id": CORRELATION_ID_CTX.get(),
            }
        )
        applied_now.append(migration_id)
    return applied_now


async def migrate_configured_store(config: StoreConfig) -> list[str]:
    """Apply migrations when a MongoDB URI is configured; no-op otherwise."""
    if not config.mongodb_uri:
        return []

    client: AsyncMongoClient = AsyncMongoClient(
        config.mongodb_uri, serverSelectionTimeoutMS=3000
    )
    try:
        await client.admin.command("ping")
        applied = await apply_mongo_migrations(client[config.mongodb_db])
    except PyMongoError:
        LOGGER.exception("mongo_migrations_failed")
        raise
    finally:
        await client.close()

    if applied:
        LOGGER.info("mongo_migrations_applied", extra={"operation": ",".join(applied)})
    return applied
