"""Playback controller: drives an audio engine from the library."""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING, Protocol

import structlog

from tuneout.playback.queue import PlaybackQueue
from tuneout.storage.errors import LibraryError

if TYPE_CHECKING:
    from tuneout.library import Library
    from tuneout.storage.models import Collection, Station

log = structlog.get_logger(__name__)


class AudioEngine(Protocol):
    """Minimal capability the controller needs from a player backend."""

    def load(self, url: str) -> None: ...

    def play(self) -> None: ...

    def pause(self) -> None: ...

    def stop(self) -> None: ...


class PlayerState(StrEnum):
    STOPPED = "stopped"
    PLAYING = "playing"
    PAUSED = "paused"


class PlaybackController:
    """Plays stations, keeps recents up to date and navigates a queue snapshot.

    Library writes made on the side of playback (recording a recent station,
    reading the queue) are best effort: failures are logged and playback
    continues.
    """

    def __init__(self, library: Library, engine: AudioEngine) -> None:
        self._library = library
        self._engine = engine
        self.queue = PlaybackQueue()
        self.state = PlayerState.STOPPED

    @property
    def now_playing(self) -> Station | None:
        return self.queue.current

    @property
    def active_collection(self) -> Collection | None:
        return self.queue.collection

    @property
    def can_go_next(self) -> bool:
        return self.queue.can_go_next

    @property
    def can_go_previous(self) -> bool:
        return self.queue.can_go_previous

    async def play(self, station: Station | None = None, from_collection: Collection | None = None) -> bool:
        """Play *station* launched from *from_collection* (recents when None).

        Without a station the current one is restarted and the queue snapshot
        is kept. Returns False if there is nothing to play.
        """
        if station is None:
            if self.queue.current is None:
                log.warning("no_current_station")
                return False
            await self._start(self.queue.current)
            return True

        stored = await self._record_recent(station)
        active = from_collection or await self._recents()
        members: list[Station] = []
        if active is not None:
            try:
                members = [s for s, _ in await self._library.collections.fetch_members(active)]
            except LibraryError as exc:
                log.warning("queue_snapshot_failed", collection_id=active.id, error=str(exc))
        self.queue.reset(stored, active, members)
        log.info(
            "queue_started",
            station=stored.name,
            collection=active.name if active else None,
            size=len(members),
        )
        self._start_engine(stored)
        return True

    async def next(self) -> bool:
        return await self._step(self.queue.next_station(), "next")

    async def previous(self) -> bool:
        return await self._step(self.queue.previous_station(), "previous")

    async def _step(self, station: Station | None, direction: str) -> bool:
        if station is None:
            log.info("queue_end", direction=direction)
            return False
        await self._start(station)
        return True

    def pause(self) -> None:
        log.info("pause")
        self._engine.pause()
        self.state = PlayerState.PAUSED

    def stop(self) -> None:
        log.info("stop")
        self._engine.stop()
        self.state = PlayerState.STOPPED

    async def _start(self, station: Station) -> None:
        stored = await self._record_recent(station)
        self.queue.advance(stored)
        self._start_engine(stored)

    def _start_engine(self, station: Station) -> None:
        log.info("play", station=station.name, url=station.url)
        self._engine.load(station.url)
        self._engine.play()
        self.state = PlayerState.PLAYING

    async def _recents(self) -> Collection | None:
        try:
            return await self._library.collections.recents()
        except LibraryError as exc:
            log.warning("recents_unavailable", error=str(exc))
            return None

    async def _record_recent(self, station: Station) -> Station:
        try:
            stored = await self._library.stations.save(station)
            recents = await self._library.collections.recents()
            await self._library.collections.add_station(stored, recents)
        except LibraryError as exc:
            log.warning("record_recent_failed", station=station.name, error=str(exc))
            return station
        return stored
