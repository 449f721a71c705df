"""Tests for the playback queue and controller."""

from __future__ import annotations

import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest

from tuneout.library import Library
from tuneout.playback import PlaybackController, PlaybackQueue, PlayerState, same_station
from tuneout.storage.errors import SchemaError
from tuneout.storage.models import Collection, Station


def _station(name: str, station_uuid: uuid.UUID | None = None, station_id: int | None = None) -> Station:
    return Station(
        id=station_id,
        name=name,
        url=f"http://stream.example/{name.lower()}",
        station_uuid=station_uuid,
    )


@pytest.fixture()
def engine() -> MagicMock:
    return MagicMock()


@pytest.fixture()
def controller(library: Library, engine: MagicMock) -> PlaybackController:
    return PlaybackController(library, engine)


async def _collection_of(library: Library, name: str, *station_names: str) -> tuple[Collection, dict[str, Station]]:
    """Create a collection displaying *station_names* in the given order."""
    collection = await library.collections.create_collection(name)
    stations: dict[str, Station] = {}
    for station_name in reversed(station_names):
        station = await library.stations.save(_station(station_name, uuid.uuid4()))
        await library.collections.add_station(station, collection)
        stations[station_name] = station
    return collection, stations


def _loaded_urls(engine: MagicMock) -> list[str]:
    return [c.args[0] for c in engine.load.call_args_list]


# ---------------------------------------------------------------------------
# same_station
# ---------------------------------------------------------------------------


def test_same_station_by_uuid():
    shared = uuid.uuid4()
    assert same_station(_station("A", shared, 1), _station("B", shared, 2)) is True
    assert same_station(_station("A", uuid.uuid4(), 1), _station("A", uuid.uuid4(), 1)) is False


def test_same_station_falls_back_to_id():
    assert same_station(_station("A", None, 7), _station("A", None, 7)) is True
    assert same_station(_station("A", None, 7), _station("A", None, 8)) is False
    assert same_station(_station("A"), _station("A")) is False


# ---------------------------------------------------------------------------
# PlaybackQueue
# ---------------------------------------------------------------------------


def test_queue_navigation():
    a, b, c = (_station(n, uuid.uuid4()) for n in "ABC")
    queue = PlaybackQueue()
    queue.reset(b, None, [a, b, c])

    assert len(queue) == 3
    assert queue.index_of_current() == 1
    assert queue.next_station() == c
    assert queue.previous_station() == a

    queue.advance(c)
    assert queue.can_go_next is False
    assert queue.can_go_previous is True


def test_queue_current_missing_from_snapshot():
    a, b = (_station(n, uuid.uuid4()) for n in "AB")
    queue = PlaybackQueue()
    queue.reset(_station("Elsewhere", uuid.uuid4()), None, [a, b])

    assert queue.index_of_current() is None
    assert queue.can_go_next is False
    assert queue.can_go_previous is False


def test_queue_snapshot_is_immutable_copy():
    members = [_station("A", uuid.uuid4())]
    queue = PlaybackQueue()
    queue.reset(members[0], None, members)
    members.append(_station("B", uuid.uuid4()))

    assert len(queue) == 1
    assert isinstance(queue.snapshot, tuple)


def test_queue_clear():
    a = _station("A", uuid.uuid4())
    queue = PlaybackQueue()
    queue.reset(a, None, [a])
    queue.clear()

    assert queue.current is None
    assert queue.snapshot == ()
    assert queue.index_of_current() is None


# ---------------------------------------------------------------------------
# PlaybackController
# ---------------------------------------------------------------------------


@pytest.mark.asyncio()
async def test_play_loads_and_records_recent(library: Library, controller: PlaybackController, engine: MagicMock):
    jazz, stations = await _collection_of(library, "Jazz", "A", "B", "C")

    assert await controller.play(stations["B"], jazz) is True

    engine.load.assert_called_once_with(stations["B"].url)
    engine.play.assert_called_once()
    assert controller.state is PlayerState.PLAYING
    assert controller.now_playing == stations["B"]
    assert controller.active_collection == jazz
    recents = await library.collections.recents()
    assert await library.collections.is_member(stations["B"], recents) is True


@pytest.mark.asyncio()
async def test_snapshot_survives_live_reorder(library: Library, controller: PlaybackController, engine: MagicMock):
    jazz, stations = await _collection_of(library, "Jazz", "A", "B", "C")
    await controller.play(stations["B"], jazz)

    # Live order becomes C, A, B; the queue still follows A, B, C.
    await library.collections.move_station(stations["C"], jazz, 0)

    assert await controller.next() is True
    assert controller.now_playing == stations["C"]
    assert _loaded_urls(engine)[-1] == stations["C"].url
    assert controller.can_go_next is False


@pytest.mark.asyncio()
async def test_previous_and_bounds(library: Library, controller: PlaybackController, engine: MagicMock):
    jazz, stations = await _collection_of(library, "Jazz", "A", "B", "C")
    await controller.play(stations["B"], jazz)

    assert controller.can_go_previous is True
    assert await controller.previous() is True
    assert controller.now_playing == stations["A"]
    assert controller.can_go_previous is False

    engine.reset_mock()
    assert await controller.previous() is False
    engine.load.assert_not_called()


@pytest.mark.asyncio()
async def test_navigation_records_recents_without_resnapshot(
    library: Library, controller: PlaybackController, engine: MagicMock
):
    jazz, stations = await _collection_of(library, "Jazz", "A", "B", "C")
    await controller.play(stations["A"], jazz)
    await controller.next()
    await controller.next()

    recents = await library.collections.recents()
    recent_names = [s.name for s, _ in await library.collections.fetch_members(recents)]
    assert recent_names == ["C", "B", "A"]
    assert [s.name for s in controller.queue.snapshot] == ["A", "B", "C"]
    assert _loaded_urls(engine) == [stations[n].url for n in "ABC"]


@pytest.mark.asyncio()
async def test_play_without_collection_uses_recents(
    library: Library, controller: PlaybackController, engine: MagicMock
):
    x = await library.stations.save(_station("X", uuid.uuid4()))
    y = await library.stations.save(_station("Y", uuid.uuid4()))
    await controller.play(x)
    await controller.play(y)

    recents = await library.collections.recents()
    assert controller.active_collection == recents
    assert [s.name for s in controller.queue.snapshot] == ["Y", "X"]

    assert await controller.next() is True
    assert controller.now_playing == x
    # Playing X moved it to the head of the live recents, not of the snapshot.
    assert controller.can_go_next is False
    assert controller.can_go_previous is True


@pytest.mark.asyncio()
async def test_play_unsaved_station_stores_it(library: Library, controller: PlaybackController):
    fresh = _station("Fresh", uuid.uuid4())

    await controller.play(fresh)

    stored = await library.stations.find_by_uuid(fresh.station_uuid)
    assert stored is not None
    assert controller.now_playing == stored
    assert controller.queue.index_of_current() == 0


@pytest.mark.asyncio()
async def test_play_none_restarts_current(library: Library, controller: PlaybackController, engine: MagicMock):
    jazz, stations = await _collection_of(library, "Jazz", "A", "B")
    await controller.play(stations["A"], jazz)
    snapshot = controller.queue.snapshot
    controller.pause()
    assert controller.state is PlayerState.PAUSED

    assert await controller.play() is True

    assert controller.state is PlayerState.PLAYING
    assert controller.queue.snapshot is snapshot
    assert _loaded_urls(engine) == [stations["A"].url, stations["A"].url]


@pytest.mark.asyncio()
async def test_play_none_without_current(controller: PlaybackController, engine: MagicMock):
    assert await controller.play() is False
    engine.load.assert_not_called()
    assert controller.state is PlayerState.STOPPED


@pytest.mark.asyncio()
async def test_stop(library: Library, controller: PlaybackController, engine: MagicMock):
    x = await library.stations.save(_station("X", uuid.uuid4()))
    await controller.play(x)
    controller.stop()

    engine.stop.assert_called_once()
    assert controller.state is PlayerState.STOPPED


@pytest.mark.asyncio()
async def test_station_without_uuid_matched_by_id(library: Library, controller: PlaybackController):
    jazz = await library.collections.create_collection("Jazz")
    first = await library.stations.save(_station("Local One"))
    second = await library.stations.save(_station("Local Two"))
    await library.collections.add_station(second, jazz)
    await library.collections.add_station(first, jazz)

    await controller.play(first, jazz)

    assert controller.queue.index_of_current() == 0
    assert await controller.next() is True
    assert controller.now_playing.id == second.id


@pytest.mark.asyncio()
async def test_library_failure_does_not_stop_playback(
    library: Library, controller: PlaybackController, engine: MagicMock
):
    x = await library.stations.save(_station("X", uuid.uuid4()))
    library.collections.add_station = AsyncMock(side_effect=SchemaError("disk I/O error"))

    assert await controller.play(x) is True

    engine.load.assert_called_once_with(x.url)
    assert controller.state is PlayerState.PLAYING
    assert controller.now_playing == x


@pytest.mark.asyncio()
async def test_snapshot_failure_plays_with_empty_queue(
    library: Library, controller: PlaybackController, engine: MagicMock
):
    jazz, stations = await _collection_of(library, "Jazz", "A", "B")
    library.collections.fetch_members = AsyncMock(side_effect=SchemaError("disk I/O error"))

    assert await controller.play(stations["A"], jazz) is True

    engine.play.assert_called_once()
    assert len(controller.queue) == 0
    assert controller.can_go_next is False
