"""Tune Out storage layer: async SQLite store for stations and collections."""

from tuneout.storage.changes import ChangeBus
from tuneout.storage.collections import CollectionRepository
from tuneout.storage.database import Database
from tuneout.storage.errors import (
    CollectionNameError,
    ConstraintError,
    DuplicateStationError,
    LibraryError,
    SchemaError,
    StandardCollectionError,
    UnknownCollectionError,
    UnknownStationError,
)
from tuneout.storage.models import (
    FAVORITES_COLLECTION_NAME,
    RECENTS_COLLECTION_NAME,
    Change,
    Collection,
    Membership,
    Station,
)
from tuneout.storage.schema import SchemaManager
from tuneout.storage.stations import StationRepository

__all__ = [
    "FAVORITES_COLLECTION_NAME",
    "RECENTS_COLLECTION_NAME",
    "Change",
    "ChangeBus",
    "Collection",
    "CollectionNameError",
    "CollectionRepository",
    "ConstraintError",
    "Database",
    "DuplicateStationError",
    "LibraryError",
    "Membership",
    "SchemaError",
    "SchemaManager",
    "StandardCollectionError",
    "Station",
    "StationRepository",
    "UnknownCollectionError",
    "UnknownStationError",
]
