"""The station library: one store with its station and collection repositories."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from tuneout.storage.collections import CollectionRepository
from tuneout.storage.database import Database
from tuneout.storage.ordering import DEFAULT_REBALANCE_EPSILON
from tuneout.storage.stations import StationRepository

if TYPE_CHECKING:
    from tuneout.config import AppConfig
    from tuneout.storage.changes import ChangeBus

log = structlog.get_logger(__name__)


class Library:
    """Entry point for everything that reads or writes the local library.

    Use as an async context manager::

        async with Library(path) as library:
            jazz = await library.collections.create_collection("Jazz")
    """

    def __init__(
        self,
        path: Path | str,
        *,
        rebalance_epsilon: float = DEFAULT_REBALANCE_EPSILON,
        log_sql: bool = False,
    ) -> None:
        self.db = Database(path, log_sql=log_sql)
        self.stations = StationRepository(self.db)
        self.collections = CollectionRepository(self.db, rebalance_epsilon=rebalance_epsilon)

    @classmethod
    def from_config(cls, config: AppConfig) -> Library:
        return cls(
            config.database_path,
            rebalance_epsilon=config.library.rebalance_epsilon,
            log_sql=config.library.log_sql,
        )

    @property
    def changes(self) -> ChangeBus:
        return self.db.changes

    async def open(self) -> None:
        """Connect, migrate and make sure favorites and recents exist."""
        await self.db.connect()
        try:
            await self.collections.ensure_standard_collections()
        except Exception:
            await self.db.close()
            raise
        log.debug("library_opened", path=str(self.db.path))

    async def close(self) -> None:
        await self.db.close()

    async def __aenter__(self) -> Library:
        await self.open()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()
