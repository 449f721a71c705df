"""Pydantic models for the Tune Out storage layer.

Every model is frozen: callers receive value copies of stored rows and never
hold live references into the store.
"""

from __future__ import annotations

from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict

ChangeAction = Literal["insert", "update", "delete"]

FAVORITES_COLLECTION_NAME = "_favorites"
RECENTS_COLLECTION_NAME = "_recents"
STANDARD_COLLECTION_NAMES = frozenset({FAVORITES_COLLECTION_NAME, RECENTS_COLLECTION_NAME})


class Station(BaseModel):
    """A radio stream descriptor stored locally."""

    model_config = ConfigDict(frozen=True)

    id: int | None = None
    station_uuid: UUID | None = None
    name: str
    url: str
    homepage: str | None = None
    favicon: str | None = None
    tags: str | None = None
    country_code: str | None = None

    @property
    def tag_list(self) -> list[str]:
        if not self.tags:
            return []
        return [t.strip() for t in self.tags.split(",") if t.strip()]


class Collection(BaseModel):
    """A named, ordered container of stations."""

    model_config = ConfigDict(frozen=True)

    id: int | None = None
    name: str
    icon: str | None = None
    sort_order: float = 0.0

    @property
    def is_standard(self) -> bool:
        return self.name in STANDARD_COLLECTION_NAMES

    @property
    def display_name(self) -> str:
        if self.name == FAVORITES_COLLECTION_NAME:
            return "Favorites"
        if self.name == RECENTS_COLLECTION_NAME:
            return "Recents"
        return self.name


class Membership(BaseModel):
    """Link between one station and one collection, carrying its position."""

    model_config = ConfigDict(frozen=True)

    station_id: int
    collection_id: int
    sort_order: float


class Change(BaseModel):
    """A single committed row mutation."""

    model_config = ConfigDict(frozen=True)

    version: int
    action: ChangeAction
    table: str
    rowid: int
