"""Collection repository: named collections and their ordered memberships.

Collections and members are displayed by sort key descending, so the most
recently added or moved item comes first. Only :meth:`shuffle_members` and
rebalancing renumber a whole sibling set; every other write touches one row.
"""

from __future__ import annotations

import random
import sqlite3
from typing import TYPE_CHECKING

import structlog

from tuneout.storage import ordering
from tuneout.storage.errors import (
    CollectionNameError,
    StandardCollectionError,
    UnknownCollectionError,
    UnknownStationError,
)
from tuneout.storage.models import (
    FAVORITES_COLLECTION_NAME,
    RECENTS_COLLECTION_NAME,
    STANDARD_COLLECTION_NAMES,
    Collection,
    Membership,
    Station,
)

if TYPE_CHECKING:
    import aiosqlite

    from tuneout.storage.database import Database

log = structlog.get_logger(__name__)

_STANDARD_PARAMS = (FAVORITES_COLLECTION_NAME, RECENTS_COLLECTION_NAME)
_ORDER = "ORDER BY c.sort_order DESC, c.id DESC"


class CollectionRepository:
    """Reads and writes :class:`Collection` and :class:`Membership` rows."""

    def __init__(self, db: Database, *, rebalance_epsilon: float = ordering.DEFAULT_REBALANCE_EPSILON) -> None:
        self._db = db
        self.rebalance_epsilon = rebalance_epsilon

    # -- collections ----------------------------------------------------------

    async def is_valid_collection_name(self, name: str, *, exclude_id: int | None = None) -> bool:
        """Return True if *name* can be used for a new or renamed collection."""
        name = name.strip()
        if not name or name in STANDARD_COLLECTION_NAMES:
            return False
        cur = await self._db.conn.execute(
            "SELECT id FROM collection WHERE name = ? AND id IS NOT ?", (name, exclude_id)
        )
        return await cur.fetchone() is None

    async def create_collection(
        self,
        name: str,
        sort_order: float | None = None,
        *,
        icon: str | None = None,
    ) -> Collection:
        """Create a custom collection.

        The default sort key is the current maximum (or 0 for an empty store).
        """
        name = name.strip()
        if not await self.is_valid_collection_name(name):
            msg = f"Invalid or duplicate collection name: {name!r}"
            raise CollectionNameError(msg)
        collection = await self._insert_collection(name, sort_order, icon)
        log.info("collection_created", collection_id=collection.id, name=name)
        return collection

    async def _insert_collection(self, name: str, sort_order: float | None, icon: str | None) -> Collection:
        try:
            async with self._db.transaction() as conn:
                if sort_order is None:
                    cur = await conn.execute("SELECT MAX(sort_order) FROM collection")
                    row = await cur.fetchone()
                    sort_order = row[0] if row and row[0] is not None else 0.0
                cur = await conn.execute(
                    "INSERT INTO collection (name, icon, sort_order) VALUES (?, ?, ?) RETURNING *",
                    (name, icon, sort_order),
                )
                row = await cur.fetchone()
                await cur.close()
        except sqlite3.IntegrityError as exc:
            msg = f"Collection name already in use: {name!r}"
            raise CollectionNameError(msg) from exc
        return self._db.row_to_collection(row)

    async def fetch_collection(self, collection_id: int) -> Collection | None:
        cur = await self._db.conn.execute("SELECT * FROM collection WHERE id = ?", (collection_id,))
        row = await cur.fetchone()
        return self._db.row_to_collection(row) if row else None

    async def fetch_collection_named(self, name: str, *, create: bool = False) -> Collection | None:
        """Look up a collection by its exact name, optionally creating it.

        Creation here bypasses name validation so the standard collections can
        be created under their reserved names.
        """
        cur = await self._db.conn.execute("SELECT * FROM collection WHERE name = ?", (name,))
        row = await cur.fetchone()
        if row:
            return self._db.row_to_collection(row)
        if not create:
            return None
        return await self._insert_collection(name, None, None)

    async def ensure_standard_collections(self) -> tuple[Collection, Collection]:
        recents = await self.fetch_collection_named(RECENTS_COLLECTION_NAME, create=True)
        favorites = await self.fetch_collection_named(FAVORITES_COLLECTION_NAME, create=True)
        assert favorites is not None and recents is not None  # noqa: S101
        return favorites, recents

    async def favorites(self) -> Collection:
        collection = await self.fetch_collection_named(FAVORITES_COLLECTION_NAME, create=True)
        assert collection is not None  # noqa: S101
        return collection

    async def recents(self) -> Collection:
        collection = await self.fetch_collection_named(RECENTS_COLLECTION_NAME, create=True)
        assert collection is not None  # noqa: S101
        return collection

    async def fetch_all_collections(self) -> list[Collection]:
        cur = await self._db.conn.execute(f"SELECT * FROM collection c {_ORDER}")
        return [self._db.row_to_collection(r) for r in await cur.fetchall()]

    async def fetch_collections(self, *, standard: bool) -> list[Collection]:
        op = "IN" if standard else "NOT IN"
        cur = await self._db.conn.execute(
            f"SELECT * FROM collection c WHERE c.name {op} (?, ?) {_ORDER}", _STANDARD_PARAMS
        )
        return [self._db.row_to_collection(r) for r in await cur.fetchall()]

    async def fetch_standard_collections(self) -> list[Collection]:
        return await self.fetch_collections(standard=True)

    async def fetch_custom_collections(self) -> list[Collection]:
        return await self.fetch_collections(standard=False)

    async def _stored_custom(
        self, conn: aiosqlite.Connection, collection: Collection, action: str
    ) -> Collection | None:
        """Load *collection*'s row, refusing standard ones by their stored name."""
        cur = await conn.execute("SELECT * FROM collection WHERE id = ?", (collection.id,))
        row = await cur.fetchone()
        if row is None:
            return None
        stored = self._db.row_to_collection(row)
        if stored.is_standard:
            msg = f"Standard collection {stored.display_name} cannot be {action}"
            raise StandardCollectionError(msg)
        return stored

    async def rename_collection(self, collection: Collection, name: str) -> Collection | None:
        """Rename a custom collection; returns None if it no longer exists."""
        if collection.is_standard:
            msg = f"Standard collection {collection.display_name} cannot be renamed"
            raise StandardCollectionError(msg)
        name = name.strip()
        if not await self.is_valid_collection_name(name, exclude_id=collection.id):
            msg = f"Invalid or duplicate collection name: {name!r}"
            raise CollectionNameError(msg)
        try:
            async with self._db.transaction() as conn:
                if await self._stored_custom(conn, collection, "renamed") is None:
                    return None
                cur = await conn.execute(
                    "UPDATE collection SET name = ? WHERE id = ? RETURNING *", (name, collection.id)
                )
                row = await cur.fetchone()
                await cur.close()
        except sqlite3.IntegrityError as exc:
            msg = f"Collection name already in use: {name!r}"
            raise CollectionNameError(msg) from exc
        if row is None:
            return None
        log.info("collection_renamed", collection_id=collection.id, name=name)
        return self._db.row_to_collection(row)

    async def remove_collection(self, collection: Collection) -> bool:
        """Delete a custom collection; its memberships are removed by cascade."""
        if collection.is_standard:
            msg = f"Standard collection {collection.display_name} cannot be removed"
            raise StandardCollectionError(msg)
        async with self._db.transaction() as conn:
            if await self._stored_custom(conn, collection, "removed") is None:
                return False
            cur = await conn.execute("DELETE FROM collection WHERE id = ?", (collection.id,))
            removed = cur.rowcount > 0
        if removed:
            log.info("collection_removed", collection_id=collection.id, name=collection.name)
        return removed

    async def move_collection(self, collection: Collection, target: int) -> float:
        """Move a custom collection to display index *target* among the custom collections."""
        if collection.is_standard:
            msg = f"Standard collection {collection.display_name} cannot be reordered"
            raise StandardCollectionError(msg)
        async with self._db.transaction() as conn:
            if await self._stored_custom(conn, collection, "reordered") is None:
                msg = f"Unknown collection id {collection.id}"
                raise UnknownCollectionError(msg)
            cur = await conn.execute(
                f"SELECT c.id, c.sort_order FROM collection c WHERE c.name NOT IN (?, ?) {_ORDER}",
                _STANDARD_PARAMS,
            )
            siblings = [(r["id"], r["sort_order"]) for r in await cur.fetchall()]
            key = await self._place(conn, "collection", "id = ?", siblings, collection.id, target, ())
        log.info("collection_moved", collection_id=collection.id, target=target, sort_order=key)
        return key

    # -- memberships ----------------------------------------------------------

    async def add_station(self, station: Station, collection: Collection) -> Membership:
        """Add *station* to *collection* at the head of its display order.

        Re-adding an existing member moves it to the head instead of creating
        a second membership row.
        """
        try:
            async with self._db.transaction() as conn:
                cur = await conn.execute(
                    "SELECT MAX(sort_order) FROM station_collection WHERE collection_id = ?",
                    (collection.id,),
                )
                row = await cur.fetchone()
                top = row[0] if row and row[0] is not None else 0.0
                cur = await conn.execute(
                    """
                    INSERT INTO station_collection (station_id, collection_id, sort_order)
                    VALUES (?, ?, ?)
                    ON CONFLICT (station_id, collection_id) DO UPDATE SET
                        sort_order = excluded.sort_order
                    RETURNING *
                    """,
                    (station.id, collection.id, top + 1.0),
                )
                row = await cur.fetchone()
                await cur.close()
        except sqlite3.IntegrityError as exc:
            raise await self._unknown_reference(station, collection) from exc
        membership = self._db.row_to_membership(row)
        log.debug(
            "station_added",
            station_id=station.id,
            collection_id=collection.id,
            sort_order=membership.sort_order,
        )
        return membership

    async def _unknown_reference(self, station: Station, collection: Collection) -> Exception:
        if station.id is None or not await self._exists("station", station.id):
            return UnknownStationError(f"Unknown station id {station.id}")
        return UnknownCollectionError(f"Unknown collection id {collection.id}")

    async def _exists(self, table: str, row_id: int) -> bool:
        cur = await self._db.conn.execute(f"SELECT 1 FROM {table} WHERE id = ?", (row_id,))  # noqa: S608
        return await cur.fetchone() is not None

    async def remove_station(self, station: Station, collection: Collection) -> bool:
        """Remove the membership; returns False if *station* was not a member."""
        async with self._db.transaction() as conn:
            cur = await conn.execute(
                "DELETE FROM station_collection WHERE station_id = ? AND collection_id = ?",
                (station.id, collection.id),
            )
            removed = cur.rowcount > 0
        if removed:
            log.debug("station_removed", station_id=station.id, collection_id=collection.id)
        return removed

    async def fetch_members(self, collection: Collection) -> list[tuple[Station, Membership]]:
        cur = await self._db.conn.execute(
            """
            SELECT s.*, m.station_id, m.collection_id, m.sort_order
            FROM station s
            JOIN station_collection m ON m.station_id = s.id
            WHERE m.collection_id = ?
            ORDER BY m.sort_order DESC, s.id DESC
            """,
            (collection.id,),
        )
        rows = await cur.fetchall()
        return [(self._db.row_to_station(r), self._db.row_to_membership(r)) for r in rows]

    async def is_member(self, station: Station, collection: Collection) -> bool:
        cur = await self._db.conn.execute(
            "SELECT 1 FROM station_collection WHERE station_id = ? AND collection_id = ?",
            (station.id, collection.id),
        )
        return await cur.fetchone() is not None

    async def fetch_collections_containing(self, station: Station) -> list[Collection]:
        cur = await self._db.conn.execute(
            f"""
            SELECT c.* FROM collection c
            JOIN station_collection m ON m.collection_id = c.id
            WHERE m.station_id = ?
            {_ORDER}
            """,
            (station.id,),
        )
        return [self._db.row_to_collection(r) for r in await cur.fetchall()]

    async def fetch_collection_counts(self, *, standard: bool | None = None) -> list[tuple[Collection, int]]:
        """Every matching collection with its member count, empty ones as 0.

        The left join yields one row with a NULL member for an empty
        collection; counting the member column rather than rows keeps that
        at zero.
        """
        where = ""
        params: tuple[str, ...] = ()
        if standard is not None:
            where = f"WHERE c.name {'IN' if standard else 'NOT IN'} (?, ?)"
            params = _STANDARD_PARAMS
        cur = await self._db.conn.execute(
            f"""
            SELECT c.*, COUNT(m.station_id) AS member_count
            FROM collection c
            LEFT JOIN station_collection m ON m.collection_id = c.id
            {where}
            GROUP BY c.id
            {_ORDER}
            """,
            params,
        )
        rows = await cur.fetchall()
        return [(self._db.row_to_collection(r), r["member_count"]) for r in rows]

    async def shuffle_members(self, collection: Collection, *, rng: random.Random | None = None) -> None:
        """Randomly permute member sort keys, assigning consecutive integers."""
        rng = rng or random.Random()
        async with self._db.transaction() as conn:
            cur = await conn.execute(
                "SELECT station_id FROM station_collection WHERE collection_id = ?", (collection.id,)
            )
            station_ids = [r["station_id"] for r in await cur.fetchall()]
            rng.shuffle(station_ids)
            await conn.executemany(
                "UPDATE station_collection SET sort_order = ? WHERE station_id = ? AND collection_id = ?",
                [(float(i + 1), sid, collection.id) for i, sid in enumerate(station_ids)],
            )
        log.info("collection_shuffled", collection_id=collection.id, members=len(station_ids))

    async def move_station(self, station: Station, collection: Collection, target: int) -> float:
        """Move a member to display index *target* (0 is the head).

        Returns the member's new sort key. Raises :class:`UnknownStationError`
        if *station* is not a member of *collection*.
        """
        async with self._db.transaction() as conn:
            cur = await conn.execute(
                """
                SELECT station_id, sort_order FROM station_collection
                WHERE collection_id = ?
                ORDER BY sort_order DESC, station_id DESC
                """,
                (collection.id,),
            )
            siblings = [(r["station_id"], r["sort_order"]) for r in await cur.fetchall()]
            if all(sid != station.id for sid, _ in siblings):
                msg = f"Station {station.id} is not a member of collection {collection.id}"
                raise UnknownStationError(msg)
            key = await self._place(
                conn,
                "station_collection",
                "station_id = ? AND collection_id = ?",
                siblings,
                station.id,
                target,
                (collection.id,),
            )
        log.debug("station_moved", station_id=station.id, collection_id=collection.id, target=target, sort_order=key)
        return key

    async def _place(
        self,
        conn: aiosqlite.Connection,
        table: str,
        match: str,
        siblings: list[tuple[int, float]],
        item_id: int | None,
        target: int,
        extra: tuple[int | None, ...],
    ) -> float:
        """Write the new key for *item_id*, renumbering siblings if gaps collapse."""
        others = [(sid, key) for sid, key in siblings if sid != item_id]
        keys = [key for _, key in others]
        if target in (0, len(others)):
            # Front and end step past the whole set, the moved item included.
            everything = [key for _, key in siblings]
            key = ordering.key_for_move(everything, 0 if target == 0 else len(everything))
        else:
            key = ordering.key_for_move(keys, target)
        new_keys = ordering.insert_key(keys, target, key)

        if not ordering.needs_rebalance(new_keys, self.rebalance_epsilon):
            await conn.execute(f"UPDATE {table} SET sort_order = ? WHERE {match}", (key, item_id, *extra))  # noqa: S608
            return key

        ids = [sid for sid, _ in others]
        ids.insert(target, item_id)
        rebalanced = ordering.rebalanced_keys(len(ids))
        await conn.executemany(
            f"UPDATE {table} SET sort_order = ? WHERE {match}",  # noqa: S608
            [(k, sid, *extra) for k, sid in zip(rebalanced, ids)],
        )
        log.info("sort_order_rebalanced", table=table, count=len(ids))
        return rebalanced[target]
