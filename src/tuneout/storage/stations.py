"""Station repository: CRUD over stored stations, deduplicated by UUID."""

from __future__ import annotations

import sqlite3
from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from tuneout.storage.errors import DuplicateStationError

if TYPE_CHECKING:
    import aiosqlite

    from tuneout.storage.database import Database
    from tuneout.storage.models import Station

log = structlog.get_logger(__name__)

_COLUMNS = ("station_uuid", "name", "url", "homepage", "favicon", "tags", "country_code")


def _uuid_text(value: UUID | str | None) -> str | None:
    if value is None:
        return None
    return str(UUID(str(value)))


class StationRepository:
    """Reads and writes :class:`Station` rows."""

    def __init__(self, db: Database) -> None:
        self._db = db

    async def save(self, station: Station, *, unless_exists: bool = True) -> Station:
        """Store *station* and return the stored copy.

        With *unless_exists* an existing row carrying the same external UUID is
        returned unchanged. Otherwise the row is upserted by primary key; a
        UUID station without a local id updates the row that already holds
        that UUID. Stations without a UUID are never deduplicated.
        """
        uuid_text = _uuid_text(station.station_uuid)
        if unless_exists and uuid_text is not None:
            existing = await self.find_by_uuid(uuid_text)
            if existing is not None:
                return existing

        values = (
            uuid_text,
            station.name,
            station.url,
            station.homepage,
            station.favicon,
            station.tags,
            station.country_code,
        )
        try:
            async with self._db.transaction() as conn:
                station_id = station.id
                if station_id is None and uuid_text is not None:
                    cur = await conn.execute("SELECT id FROM station WHERE station_uuid = ?", (uuid_text,))
                    row = await cur.fetchone()
                    station_id = row["id"] if row else None
                row = await self._upsert(conn, station_id, values)
        except sqlite3.IntegrityError as exc:
            msg = f"Station UUID {uuid_text} is already stored under another id"
            raise DuplicateStationError(msg) from exc

        saved = self._db.row_to_station(row)
        log.debug("station_saved", station_id=saved.id, station_uuid=uuid_text)
        return saved

    @staticmethod
    async def _upsert(
        conn: aiosqlite.Connection,
        station_id: int | None,
        values: tuple[str | None, ...],
    ) -> aiosqlite.Row:
        if station_id is None:
            cur = await conn.execute(
                f"INSERT INTO station ({', '.join(_COLUMNS)}) VALUES (?, ?, ?, ?, ?, ?, ?) RETURNING *",
                values,
            )
        else:
            updates = ", ".join(f"{c} = excluded.{c}" for c in _COLUMNS)
            cur = await conn.execute(
                f"""
                INSERT INTO station (id, {', '.join(_COLUMNS)}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (id) DO UPDATE SET {updates}
                RETURNING *
                """,
                (station_id, *values),
            )
        row = await cur.fetchone()
        await cur.close()
        return row

    async def find(self, station_id: int) -> Station | None:
        cur = await self._db.conn.execute("SELECT * FROM station WHERE id = ?", (station_id,))
        row = await cur.fetchone()
        return self._db.row_to_station(row) if row else None

    async def find_by_uuid(self, station_uuid: UUID | str) -> Station | None:
        cur = await self._db.conn.execute(
            "SELECT * FROM station WHERE station_uuid = ?", (_uuid_text(station_uuid),)
        )
        row = await cur.fetchone()
        return self._db.row_to_station(row) if row else None

    async def list_stations(self) -> list[Station]:
        cur = await self._db.conn.execute("SELECT * FROM station ORDER BY name COLLATE NOCASE, id")
        rows = await cur.fetchall()
        return [self._db.row_to_station(r) for r in rows]

    async def delete(self, station: Station) -> bool:
        """Delete *station*; its memberships are removed by cascade."""
        if station.id is None:
            return False
        async with self._db.transaction() as conn:
            cur = await conn.execute("DELETE FROM station WHERE id = ?", (station.id,))
            deleted = cur.rowcount > 0
        if deleted:
            log.info("station_deleted", station_id=station.id)
        return deleted
