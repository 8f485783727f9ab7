"""
Ordered schema migrations for the tracker store.

Each migration runs once. Applied versions are recorded in the
``schema_migrations`` table, and at startup every migration newer than the
highest recorded version is applied in order, each in its own transaction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Union

from sqlalchemy import inspect, text
from sqlalchemy.engine import Connection, Engine


logger = logging.getLogger(__name__)

# A step is either raw SQL or a function run on the migration's connection.
Step = Union[str, Callable[[Connection], None]]


@dataclass(frozen=True)
class Migration:
    version: int
    description: str
    statements: tuple[Step, ...]


def _add_resident_name(conn: Connection) -> None:
    # Stores written before version tracking may already have the column.
    columns = {c["name"] for c in inspect(conn).get_columns("rooms")}
    if "resident_name" in columns:
        logger.info("rooms.resident_name already present, skipping ALTER")
        return
    conn.execute(text("ALTER TABLE rooms ADD COLUMN resident_name TEXT"))


MIGRATIONS: tuple[Migration, ...] = (
    Migration(
        version=1,
        description="create rooms, linens and changes_log",
        statements=(
            """
            CREATE TABLE IF NOT EXISTS rooms (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                room_number TEXT NOT NULL UNIQUE,
                note TEXT
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS linens (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                room_id INTEGER NOT NULL REFERENCES rooms(id),
                last_changed TEXT NOT NULL,
                interval_days INTEGER NOT NULL,
                paused INTEGER NOT NULL DEFAULT 0
            )
            """,
            "CREATE UNIQUE INDEX IF NOT EXISTS ux_linens_room ON linens(room_id)",
            """
            CREATE TABLE IF NOT EXISTS changes_log (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                room_id INTEGER NOT NULL,
                changed_at TEXT NOT NULL,
                note TEXT
            )
            """,
        ),
    ),
    Migration(
        version=2,
        description="add rooms.resident_name",
        statements=(_add_resident_name,),
    ),
    Migration(
        version=3,
        description="index changes_log by room",
        statements=(
            "CREATE INDEX IF NOT EXISTS ix_changes_log_room ON changes_log(room_id)",
        ),
    ),
)

LATEST_VERSION = MIGRATIONS[-1].version


def _ensure_version_table(conn: Connection) -> None:
    conn.execute(
        text(
            """
            CREATE TABLE IF NOT EXISTS schema_migrations (
                version INTEGER PRIMARY KEY,
                description TEXT NOT NULL,
                applied_at TEXT NOT NULL
            )
            """
        )
    )


def current_version(engine: Engine) -> int:
    """Return the highest applied migration version (0 for a fresh store)."""
    with engine.begin() as conn:
        _ensure_version_table(conn)
        version = conn.execute(text("SELECT MAX(version) FROM schema_migrations")).scalar()
    return version or 0


def run_migrations(engine: Engine) -> list[int]:
    """Apply all pending migrations and return the versions applied."""
    applied: list[int] = []
    start = current_version(engine)
    for migration in MIGRATIONS:
        if migration.version <= start:
            continue
        logger.info("Applying migration %d: %s", migration.version, migration.description)
        with engine.begin() as conn:
            for step in migration.statements:
                if callable(step):
                    step(conn)
                else:
                    conn.execute(text(step))
            conn.execute(
                text(
                    "INSERT INTO schema_migrations(version, description, applied_at) "
                    "VALUES (:version, :description, :applied_at)"
                ),
                {
                    "version": migration.version,
                    "description": migration.description,
                    "applied_at": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
                },
            )
        applied.append(migration.version)
    return applied
