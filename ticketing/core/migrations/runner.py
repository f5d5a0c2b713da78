"""Versioned SQL migrations for the local SQLite state database."""

from __future__ import annotations

import sqlite3
import time
from contextlib import closing
from pathlib import Path

MIGRATIONS_DIR = Path(__file__).resolve().parent / "sql"


def apply_migrations(database_path: Path, migrations_dir: Path = MIGRATIONS_DIR) -> list[str]:
    """Apply pending ``*.sql`` files in name order and return the ids applied now."""
    database_path.parent.mkdir(parents=True, exist_ok=True)
    applied_now: list[str] = []
    with closing(sqlite3.connect(str(database_path))) as connection:
        connection.execute(
            """
            CREATE TABLE IF NOT EXISTS schema_migrations (
              migration_id TEXT PRIMARY KEY,
              applied_at INTEGER NOT NULL
            )
            """
        )
        known = {
            row[0]
            for row in connection.execute("SELECT migration_id FROM schema_migrations")
        }
        for migration_file in sorted(migrations_dir.glob("*.sql")):
            if migration_file.name in known:
                continue
            connection.executescript(migration_file.read_text(encoding="utf-8"))
            connection.execute(
                "INSERT INTO schema_migrations(migration_id, applied_at) VALUES (?, ?)",
                (migration_file.name, int(time.time())),
            )
            applied_now.append(migration_file.name)
        connection.commit()
    return applied_now
