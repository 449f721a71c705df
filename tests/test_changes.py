"""Tests for change tracking (ChangeBus and the storage hooks)."""

from __future__ import annotations

import uuid
from pathlib import Path

import pytest

from tuneout.library import Library
from tuneout.storage.changes import ChangeBus
from tuneout.storage.errors import UnknownStationError
from tuneout.storage.models import Station


def _station(name: str) -> Station:
    return Station(name=name, url=f"http://stream.example/{name.lower()}", station_uuid=uuid.uuid4())


# ---------------------------------------------------------------------------
# ChangeBus on its own
# ---------------------------------------------------------------------------


def test_bus_starts_at_zero():
    bus = ChangeBus()
    assert bus.version == 0
    assert bus.recent_changes == []


def test_bus_commit_publishes_each_change():
    bus = ChangeBus()
    bus.record("insert", "station", 1)
    bus.record("update", "station", 1)

    assert bus.version == 0
    assert bus.commit() == 2
    assert bus.version == 2
    assert [(c.version, c.action, c.table, c.rowid) for c in bus.recent_changes] == [
        (1, "insert", "station", 1),
        (2, "update", "station", 1),
    ]


def test_bus_discard_drops_pending():
    bus = ChangeBus()
    bus.record("delete", "collection", 4)
    assert bus.discard() == 1
    assert bus.commit() == 0
    assert bus.version == 0


def test_bus_staleness():
    bus = ChangeBus()
    captured = bus.capture()
    assert bus.is_stale(captured) is False
    bus.record("insert", "collection", 1)
    bus.commit()
    assert bus.is_stale(captured) is True
    assert bus.is_stale(bus.capture()) is False


def test_bus_history_is_bounded():
    bus = ChangeBus(history_size=3)
    for rowid in range(5):
        bus.record("insert", "station", rowid)
    bus.commit()
    assert bus.version == 5
    assert [c.rowid for c in bus.recent_changes] == [2, 3, 4]


# ---------------------------------------------------------------------------
# Hooks on a live store
# ---------------------------------------------------------------------------


@pytest.mark.asyncio()
async def test_insert_bumps_version(library: Library):
    captured = library.changes.capture()

    jazz = await library.collections.create_collection("Jazz")

    assert library.changes.version == captured + 1
    assert library.changes.is_stale(captured) is True
    last = library.changes.recent_changes[-1]
    assert (last.action, last.table, last.rowid) == ("insert", "collection", jazz.id)


@pytest.mark.asyncio()
async def test_reads_do_not_bump_version(library: Library):
    await library.collections.create_collection("Jazz")
    captured = library.changes.capture()

    await library.collections.fetch_all_collections()
    await library.collections.fetch_collection_counts()
    await library.stations.list_stations()

    assert library.changes.is_stale(captured) is False


@pytest.mark.asyncio()
async def test_update_and_delete_are_tagged(library: Library):
    jazz = await library.collections.create_collection("Jazz")
    renamed = await library.collections.rename_collection(jazz, "Blues")
    await library.collections.remove_collection(renamed)

    tail = [(c.action, c.table, c.rowid) for c in library.changes.recent_changes[-2:]]
    assert tail == [("update", "collection", jazz.id), ("delete", "collection", jazz.id)]


@pytest.mark.asyncio()
async def test_rolled_back_write_does_not_bump_version(library: Library):
    favorites = await library.collections.favorites()
    captured = library.changes.capture()

    with pytest.raises(UnknownStationError):
        await library.collections.add_station(Station(id=999, name="Ghost", url="http://ghost"), favorites)

    assert library.changes.version == captured
    assert library.changes.is_stale(captured) is False


@pytest.mark.asyncio()
async def test_failed_move_does_not_bump_version(library: Library):
    jazz = await library.collections.create_collection("Jazz")
    station = await library.stations.save(_station("FIP"))
    await library.collections.add_station(station, jazz)
    captured = library.changes.capture()

    with pytest.raises(ValueError):
        await library.collections.move_station(station, jazz, 5)

    assert library.changes.version == captured


@pytest.mark.asyncio()
async def test_cascade_delete_is_reported(library: Library):
    favorites = await library.collections.favorites()
    station = await library.stations.save(_station("FIP"))
    await library.collections.add_station(station, favorites)
    captured = library.changes.capture()

    await library.stations.delete(station)

    assert library.changes.version > captured
    changed = {(c.action, c.table) for c in library.changes.recent_changes if c.version > captured}
    assert ("delete", "station") in changed


@pytest.mark.asyncio()
async def test_separate_libraries_have_separate_counters(tmp_path: Path):
    async with Library(tmp_path / "one.db") as one, Library(tmp_path / "two.db") as two:
        captured = two.changes.capture()

        await one.collections.create_collection("Jazz")

        assert two.changes.is_stale(captured) is False
        assert one.changes.version == two.changes.version + 1
