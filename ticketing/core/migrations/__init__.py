"""SQLite migrations for runtime state tables."""

from ticketing.core.migrations.runner import apply_migrations

__all__ = ["apply_migrations"]
