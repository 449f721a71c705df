"""Async SQLite store underlying the Tune Out station library."""

from __future__ import annotations

import asyncio
import sqlite3
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import aiosqlite
import structlog

from tuneout.logging import SQL_LOGGER
from tuneout.storage.changes import ChangeBus, install_hooks
from tuneout.storage.errors import SchemaError
from tuneout.storage.models import Collection, Membership, Station
from tuneout.storage.schema import SchemaManager

log = structlog.get_logger(__name__)
sql_log = structlog.get_logger(SQL_LOGGER)

MEMORY = ":memory:"


class Database:
    """Async SQLite database wrapper: connection, migrations, transactions.

    A single instance is the only writer for its file. Mutations go through
    :meth:`transaction`, which serializes writers and publishes committed row
    changes on :attr:`changes`.
    """

    def __init__(self, path: Path | str, *, log_sql: bool = False) -> None:
        self.path = path
        self.log_sql = log_sql
        self.changes = ChangeBus()
        self.schema_version = 0
        self._conn: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()

    @property
    def conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            msg = "Database not connected. Call connect() first."
            raise RuntimeError(msg)
        return self._conn

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    async def connect(self) -> None:
        """Open the store, apply pending migrations and install change hooks.

        Raises :class:`SchemaError` when the file is unreadable or cannot be
        migrated; the connection is closed again in that case.
        """
        try:
            self._conn = await aiosqlite.connect(self.path, isolation_level=None)
        except sqlite3.Error as exc:
            msg = f"Cannot open store at {self.path}: {exc}"
            raise SchemaError(msg) from exc
        self._conn.row_factory = aiosqlite.Row

        try:
            if str(self.path) != MEMORY:
                await self._conn.execute("PRAGMA journal_mode=WAL")
            await self._conn.execute("PRAGMA foreign_keys=ON")
            if self.log_sql:
                await self._conn.set_trace_callback(_trace_sql)
            self.schema_version = await SchemaManager(self._conn).upgrade()
            await install_hooks(self._conn, self.changes)
        except sqlite3.Error as exc:
            await self.close()
            msg = f"Cannot open store at {self.path}: {exc}"
            raise SchemaError(msg) from exc
        except SchemaError:
            await self.close()
            raise

        log.info("database_opened", path=str(self.path), schema_version=self.schema_version)

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Run the enclosed statements as one write transaction.

        Commits on normal exit and publishes the buffered row changes; rolls
        back and drops them on any exception, including cancellation.
        """
        async with self._write_lock:
            conn = self.conn
            await conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
                await conn.execute("COMMIT")
            except BaseException:
                if conn.in_transaction:
                    await conn.execute("ROLLBACK")
                self.changes.discard()
                raise
            self.changes.commit()

    # -- row → model helpers --------------------------------------------------

    @staticmethod
    def row_to_station(row: aiosqlite.Row) -> Station:
        return Station(
            id=row["id"],
            station_uuid=row["station_uuid"],
            name=row["name"],
            url=row["url"],
            homepage=row["homepage"],
            favicon=row["favicon"],
            tags=row["tags"],
            country_code=row["country_code"],
        )

    @staticmethod
    def row_to_collection(row: aiosqlite.Row) -> Collection:
        return Collection(
            id=row["id"],
            name=row["name"],
            icon=row["icon"],
            sort_order=row["sort_order"] or 0.0,
        )

    @staticmethod
    def row_to_membership(row: aiosqlite.Row) -> Membership:
        return Membership(
            station_id=row["station_id"],
            collection_id=row["collection_id"],
            sort_order=row["sort_order"],
        )


def _trace_sql(statement: str) -> None:
    sql_log.debug("sql", statement=statement)
