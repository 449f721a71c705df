"""Snapshot-isolated playback queue.

The queue copies a collection's member list when playback starts from it and
navigates that copy. Playing a station reorders the live recents collection,
so navigating a live query would shift indexes mid-traversal.
"""

from __future__ import annotations

from collections.abc import Iterable

from tuneout.storage.models import Collection, Station


def same_station(a: Station, b: Station) -> bool:
    """Match by external UUID, or by local id for stations without one."""
    if a.station_uuid is not None and b.station_uuid is not None:
        return a.station_uuid == b.station_uuid
    return a.id is not None and a.id == b.id


class PlaybackQueue:
    """Current station, the collection it was launched from, and a frozen member list."""

    def __init__(self) -> None:
        self.current: Station | None = None
        self.collection: Collection | None = None
        self.snapshot: tuple[Station, ...] = ()

    def reset(self, station: Station, collection: Collection | None, members: Iterable[Station]) -> None:
        """Start a new session; the previous snapshot is discarded."""
        self.current = station
        self.collection = collection
        self.snapshot = tuple(members)

    def clear(self) -> None:
        self.current = None
        self.collection = None
        self.snapshot = ()

    def index_of_current(self) -> int | None:
        if self.current is None:
            return None
        for index, station in enumerate(self.snapshot):
            if same_station(station, self.current):
                return index
        return None

    def _adjacent(self, step: int) -> Station | None:
        index = self.index_of_current()
        if index is None:
            return None
        target = index + step
        if 0 <= target < len(self.snapshot):
            return self.snapshot[target]
        return None

    def next_station(self) -> Station | None:
        return self._adjacent(1)

    def previous_station(self) -> Station | None:
        return self._adjacent(-1)

    @property
    def can_go_next(self) -> bool:
        return self.next_station() is not None

    @property
    def can_go_previous(self) -> bool:
        return self.previous_station() is not None

    def advance(self, station: Station) -> None:
        """Move the current pointer without touching the snapshot."""
        self.current = station

    def __len__(self) -> int:
        return len(self.snapshot)
