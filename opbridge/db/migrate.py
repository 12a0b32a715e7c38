"""Additive SQLite migrations for the ``users`` table."""

from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import text
from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)

# Columns added after the first release of the users table.
USER_COLUMNS: dict[str, str] = {
    "avatar_url": "TEXT",
    "roles": "TEXT",
    "api_token": "TEXT",
    "last_sync": "TEXT",
}


def _column_names(engine: Engine, table: str) -> set[str]:
    with engine.connect() as conn:
        rows = conn.execute(text(f"PRAGMA table_info({table})")).mappings().all()
    return {row["name"] for row in rows}


def _add_column_sqlite(engine: Engine, table: str, col_def: str) -> None:
    with engine.begin() as conn:
        conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {col_def}"))


def _create_index_if_not_exists(engine: Engine, table: str, name: str, cols: Iterable[str], unique: bool = False) -> None:
    cols_sql = ", ".join(cols)
    unique_sql = "UNIQUE " if unique else ""
    with engine.begin() as conn:
        conn.execute(text(f"CREATE {unique_sql}INDEX IF NOT EXISTS {name} ON {table} ({cols_sql})"))


def run_migrations(engine: Engine) -> None:
    """Bring an existing SQLite ``users`` table up to the current columns."""

    if engine.dialect.name != "sqlite":
        return
    existing = _column_names(engine, "users")
    if not existing:
        # Table absent; Base.metadata.create_all builds the fresh schema.
        return
    for name, dtype in USER_COLUMNS.items():
        if name not in existing:
            logger.info("Adding users.%s column", name)
            _add_column_sqlite(engine, "users", f"{name} {dtype}")
    _create_index_if_not_exists(engine, "users", "ix_users_openproject_id_unique", ["openproject_id"], unique=True)
