"""
Notaro core

Local-first notes store: an embedded SQLite engine with version-stamped records,
tombstone deletes, and last-write-wins replication between devices.
"""

from .config import NotaroConfig, configure_logging, get_config, load_notaro_config
from .exceptions import (
    ErrorKind,
    IoFault,
    NotaroError,
    NotFound,
    NotInitialized,
    SchemaError,
    SerializationFault,
    StorageFault,
    StoreUnusable,
)
from .Notes.note_models import FontFamily, Note, ThemeMode, UserSettings
from .DB_Management.Notaro_DB import MergeResult, NotaroDB
from .Notes.Notes_Library import NotesService
from .Sync.sync_messages import (
    Ack,
    PullRequest,
    PullResponse,
    PushUpdates,
    SyncMessage,
    dump_sync_message,
    parse_sync_message,
)
from .Sync.Sync_Library import PeerWatermarks, SyncProtocolHandler, SyncSession

__version__ = "0.1.0"
__all__ = [
    "NotaroConfig",
    "configure_logging",
    "get_config",
    "load_notaro_config",
    "ErrorKind",
    "IoFault",
    "NotaroError",
    "NotFound",
    "NotInitialized",
    "SchemaError",
    "SerializationFault",
    "StorageFault",
    "StoreUnusable",
    "FontFamily",
    "Note",
    "ThemeMode",
    "UserSettings",
    "MergeResult",
    "NotaroDB",
    "NotesService",
    "Ack",
    "PullRequest",
    "PullResponse",
    "PushUpdates",
    "SyncMessage",
    "dump_sync_message",
    "parse_sync_message",
    "PeerWatermarks",
    "SyncProtocolHandler",
    "SyncSession",
]
