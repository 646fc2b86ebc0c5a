# exceptions.py
# Description: Closed error taxonomy for the Notaro storage and sync core.
#
"""
exceptions.py
-------------

Every failure surfaced by the Notaro core is a subclass of `NotaroError` and
carries a machine-readable `kind` so bindings can translate errors without
matching on message text.

Storage-level `sqlite3.Error`s are wrapped into `StorageFault` by the engine,
chained with ``raise ... from`` so the driver error stays available as
``__cause__``.
"""
# Imports
from enum import Enum
from typing import Any, Optional
#
########################################################################################################################
#
# Classes:


class ErrorKind(str, Enum):
    STORAGE = "storage"
    SERIALIZATION = "serialization"
    IO = "io"
    NOT_FOUND = "not_found"
    NOT_INITIALIZED = "not_initialized"
    STORE_UNUSABLE = "store_unusable"


class NotaroError(Exception):
    """Base exception for all Notaro core errors."""
    kind: ErrorKind = ErrorKind.STORAGE


class StorageFault(NotaroError):
    """Underlying storage engine failure (query, constraint or connection error)."""
    kind = ErrorKind.STORAGE


class SchemaError(StorageFault):
    """Schema version registry unreadable, or the store is newer than this code."""
    pass


class SerializationFault(NotaroError):
    """Malformed timestamp, row or wire payload encountered while decoding."""
    kind = ErrorKind.SERIALIZATION


class IoFault(NotaroError):
    """Filesystem-level failure, e.g. creating the app data directory."""
    kind = ErrorKind.IO


class NotFound(NotaroError):
    """
    An operation referenced a record that does not exist.

    Attributes:
        entity (Optional[str]): The type of entity looked up (e.g., "notes").
        entity_id (Any): The identifier that was not found.
    """
    kind = ErrorKind.NOT_FOUND

    def __init__(self, message: str = "Record not found.", entity: Optional[str] = None, entity_id: Any = None):
        super().__init__(message)
        self.entity = entity
        self.entity_id = entity_id

    def __str__(self):
        base = super().__str__()
        details = []
        if self.entity:
            details.append(f"Entity: {self.entity}")
        if self.entity_id:
            details.append(f"ID: {self.entity_id}")
        return f"{base} ({', '.join(details)})" if details else base


class NotInitialized(NotaroError):
    """The notes service was used before a database handle was opened."""
    kind = ErrorKind.NOT_INITIALIZED


class StoreUnusable(NotaroError):
    """
    The engine's connection was left in an unknown state by a failure that
    escaped while its lock was held. The handle must be discarded; retrying
    on it is never safe.
    """
    kind = ErrorKind.STORE_UNUSABLE

#
# End of exceptions.py
#######################################################################################################################
