"""Exceptions raised by the Tune Out storage layer."""

from __future__ import annotations


class LibraryError(Exception):
    """Base class for all station library failures."""


class SchemaError(LibraryError):
    """The store cannot be opened or migrated. Fatal at startup."""


class ConstraintError(LibraryError):
    """A write was rejected because it would violate a library invariant."""


class CollectionNameError(ConstraintError):
    """Collection name is empty, reserved, or already in use."""


class StandardCollectionError(ConstraintError):
    """Favorites and recents cannot be renamed or removed."""


class UnknownStationError(ConstraintError):
    """The referenced station id does not exist in the store."""


class UnknownCollectionError(ConstraintError):
    """The referenced collection id does not exist in the store."""


class DuplicateStationError(ConstraintError):
    """Another stored station already carries this external UUID."""
