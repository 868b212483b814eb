from __future__ import annotations


class SaveError(Exception):
    """Base error for the save/restore subsystem."""


class SaveNotFound(SaveError):
    """Raised when no save exists for the requested timestamp."""


class CorruptSaveError(SaveError):
    """Raised when a stored record cannot be decoded."""


class MissingItemDefinition(SaveError):
    """Raised when a record references an item name the catalog no longer has."""


class MissingEntity(SaveError):
    """Raised when an expected singleton entity (player, container, market) is absent."""
