"""Schema versioning and ordered, idempotent migrations.

The on-disk version lives in a single-row ``schema_version`` table. Each
migration runs its statements and bumps the version inside one transaction,
so a failing step leaves neither a partial schema nor an advanced version.
"""

from __future__ import annotations

import sqlite3
import time
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from tuneout.storage.errors import SchemaError

if TYPE_CHECKING:
    import aiosqlite

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Migration:
    version: int
    description: str
    statements: tuple[str, ...]


MIGRATIONS: tuple[Migration, ...] = (
    Migration(
        version=1,
        description="station table",
        statements=(
            """
            CREATE TABLE station (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                station_uuid TEXT,
                name TEXT NOT NULL,
                url TEXT NOT NULL,
                homepage TEXT,
                favicon TEXT,
                tags TEXT,
                country_code TEXT
            )
            """,
            "CREATE UNIQUE INDEX idx_station_uuid ON station(station_uuid) WHERE station_uuid IS NOT NULL",
            "CREATE INDEX idx_station_name ON station(name)",
            "CREATE INDEX idx_station_url ON station(url)",
            "CREATE INDEX idx_station_tags ON station(tags)",
            "CREATE INDEX idx_station_country_code ON station(country_code)",
        ),
    ),
    Migration(
        version=2,
        description="collection table",
        statements=(
            """
            CREATE TABLE collection (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                icon TEXT
            )
            """,
            "CREATE UNIQUE INDEX idx_collection_name ON collection(name)",
        ),
    ),
    Migration(
        version=3,
        description="station_collection membership table",
        statements=(
            """
            CREATE TABLE station_collection (
                station_id INTEGER NOT NULL REFERENCES station(id) ON DELETE CASCADE,
                collection_id INTEGER NOT NULL REFERENCES collection(id) ON DELETE CASCADE,
                sort_order REAL NOT NULL DEFAULT 0,
                PRIMARY KEY (station_id, collection_id)
            )
            """,
            "CREATE INDEX idx_station_collection_order ON station_collection(collection_id, sort_order)",
        ),
    ),
    Migration(
        version=4,
        description="collection sort_order",
        statements=(
            "ALTER TABLE collection ADD COLUMN sort_order REAL",
            "UPDATE collection SET sort_order = rowid WHERE sort_order IS NULL",
            "CREATE INDEX idx_collection_sort_order ON collection(sort_order)",
        ),
    ),
)

LATEST_VERSION = MIGRATIONS[-1].version


class SchemaManager:
    """Reads the stored schema version and applies migrations."""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def current_version(self) -> int:
        try:
            await self._conn.execute(
                "CREATE TABLE IF NOT EXISTS schema_version (id INTEGER PRIMARY KEY, version INTEGER NOT NULL)"
            )
            await self._conn.execute("INSERT OR IGNORE INTO schema_version (id, version) VALUES (0, 0)")
            cur = await self._conn.execute("SELECT version FROM schema_version WHERE id = 0")
            row = await cur.fetchone()
        except sqlite3.Error as exc:
            msg = f"Cannot read schema version: {exc}"
            raise SchemaError(msg) from exc
        return int(row[0]) if row else 0

    async def migrate(self, target_version: int, statements: Sequence[str]) -> int:
        """Apply *statements* and record *target_version* if the store is older.

        Returns the version the store is at afterwards.
        """
        current = await self.current_version()
        if current >= target_version:
            return current

        started = time.monotonic()
        try:
            await self._conn.execute("BEGIN IMMEDIATE")
            for statement in statements:
                await self._conn.execute(statement)
            await self._conn.execute("UPDATE schema_version SET version = ? WHERE id = 0", (target_version,))
            await self._conn.execute("COMMIT")
        except sqlite3.Error as exc:
            if self._conn.in_transaction:
                await self._conn.execute("ROLLBACK")
            log.error("schema_migration_failed", version=target_version, error=str(exc))
            msg = f"Migration to schema version {target_version} failed: {exc}"
            raise SchemaError(msg) from exc

        log.info(
            "schema_migrated",
            version=target_version,
            elapsed_ms=round((time.monotonic() - started) * 1000, 2),
        )
        return target_version

    async def upgrade(self, migrations: Sequence[Migration] = MIGRATIONS) -> int:
        """Bring the store up to the newest known migration."""
        version = await self.current_version()
        latest = migrations[-1].version if migrations else 0
        if version > latest:
            msg = f"Store schema version {version} is newer than supported version {latest}"
            raise SchemaError(msg)

        for migration in migrations:
            version = await self.migrate(migration.version, migration.statements)
        return version
