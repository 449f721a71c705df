"""Per-store change tracking for advisory staleness checks.

Row mutations are reported by temporary SQLite triggers that call a SQL
function registered on the connection. Changes are held until the enclosing
transaction commits; each committed row change bumps :attr:`ChangeBus.version`
by one. Readers capture the version when they query and re-run the query once
:meth:`ChangeBus.is_stale` reports a newer value.
"""

from __future__ import annotations

from collections import deque
from typing import TYPE_CHECKING

import structlog

from tuneout.storage.models import Change, ChangeAction

if TYPE_CHECKING:
    import aiosqlite

log = structlog.get_logger(__name__)

HOOK_FUNCTION = "tuneout_row_changed"
TRACKED_TABLES = ("station", "collection", "station_collection")

_HISTORY_SIZE = 256
_ACTIONS: tuple[tuple[ChangeAction, str, str], ...] = (
    ("insert", "INSERT", "NEW"),
    ("update", "UPDATE", "NEW"),
    ("delete", "DELETE", "OLD"),
)


class ChangeBus:
    """Monotonic mutation counter owned by a single store instance."""

    def __init__(self, history_size: int = _HISTORY_SIZE) -> None:
        self._version = 0
        self._pending: list[tuple[ChangeAction, str, int]] = []
        self._history: deque[Change] = deque(maxlen=history_size)

    @property
    def version(self) -> int:
        return self._version

    @property
    def recent_changes(self) -> list[Change]:
        return list(self._history)

    def capture(self) -> int:
        """Return the current version for a later :meth:`is_stale` check."""
        return self._version

    def is_stale(self, captured: int) -> bool:
        return self._version != captured

    # -- hook side ------------------------------------------------------------

    def record(self, action: str, table: str, rowid: int) -> None:
        """Buffer a row change reported by the storage hook."""
        self._pending.append((action, table, rowid))  # type: ignore[arg-type]

    def commit(self) -> int:
        """Publish buffered changes; return how many were published."""
        pending, self._pending = self._pending, []
        for action, table, rowid in pending:
            self._version += 1
            self._history.append(Change(version=self._version, action=action, table=table, rowid=rowid))
        if pending:
            log.debug("changes_committed", count=len(pending), version=self._version)
        return len(pending)

    def discard(self) -> int:
        """Drop buffered changes after a rollback."""
        dropped = len(self._pending)
        self._pending = []
        return dropped


def _trigger_sql(table: str, action: ChangeAction, event: str, ref: str) -> str:
    return (
        f"CREATE TEMP TRIGGER IF NOT EXISTS {table}_{action}_hook "
        f"AFTER {event} ON {table} "
        f"BEGIN SELECT {HOOK_FUNCTION}('{action}', '{table}', {ref}.rowid); END"
    )


async def install_hooks(conn: aiosqlite.Connection, bus: ChangeBus) -> None:
    """Register the row-change function and per-table triggers on *conn*."""
    await conn.create_function(HOOK_FUNCTION, 3, bus.record)
    for table in TRACKED_TABLES:
        for action, event, ref in _ACTIONS:
            await conn.execute(_trigger_sql(table, action, event, ref))
