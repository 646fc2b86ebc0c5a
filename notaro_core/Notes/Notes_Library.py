# Notes_Library.py
# Description: Service handle that the application layer holds to reach one notes store.
#
# Imports
import threading
from pathlib import Path
from typing import Any, List, Optional, Union
#
# Third-Party Libraries
from loguru import logger
#
# Local Imports
from notaro_core.DB_Management.db_path_utils import DatabasePaths
from notaro_core.DB_Management.Notaro_DB import MergeResult, NotaroDB, NoteLike
from notaro_core.exceptions import NotInitialized
from notaro_core.Notes.note_models import Note, UserSettings
#
#######################################################################################################################
#
# Classes:


class NotesService:
    """
    Explicit handle around one `NotaroDB`, threaded through application state.

    A service starts uninitialized unless an engine is passed in. `init_db`
    opens ``<app_doc_dir>/notaro.db`` (or the configured default location);
    every other method raises `NotInitialized` until then.
    """

    def __init__(self, db: Optional[NotaroDB] = None):
        self._db = db
        self._lock = threading.Lock()

    @classmethod
    def open(cls, app_doc_dir: Optional[Union[str, Path]] = None) -> "NotesService":
        service = cls()
        service.init_db(app_doc_dir)
        return service

    def __enter__(self) -> "NotesService":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.close()
        return False

    @property
    def is_initialized(self) -> bool:
        return self._db is not None

    def init_db(self, app_doc_dir: Optional[Union[str, Path]] = None) -> Path:
        """
        Open the notes database, creating its directory if needed. Calling it
        again replaces (and closes) the previously opened store.

        Returns:
            The path of the opened database file.

        Raises:
            IoFault: If the directory cannot be created.
            StorageFault: If the database cannot be opened or migrated.
        """
        db_path = DatabasePaths.get_notes_db_path(app_doc_dir)
        new_db = NotaroDB(db_path)
        with self._lock:
            previous, self._db = self._db, new_db
        if previous is not None:
            logger.info(f"Replacing previously opened notes store {previous.db_path_str}.")
            previous.close()
        logger.info(f"Notes store ready at {db_path}")
        return db_path

    def _get_db(self) -> NotaroDB:
        db = self._db
        if db is None:
            raise NotInitialized("Database not initialized; call init_db first.")
        return db

    def close(self) -> None:
        with self._lock:
            db, self._db = self._db, None
        if db is not None:
            db.close()
            logger.info("NotesService closed its notes store.")

    # --- Notes ---
    def create_note(self, title: str, content: str, folder: Optional[str] = None) -> Note:
        return self._get_db().create(title, content, folder)

    def list_notes(self) -> List[Note]:
        """All notes, trash included, pinned first then most recently updated."""
        return self._get_db().list()

    def get_note(self, note_id: str) -> Note:
        return self._get_db().get(note_id)

    def update_note(
        self,
        note_id: str,
        title: str,
        content: str,
        folder: Optional[str],
        is_pinned: bool,
    ) -> Note:
        """
        Overwrite title, content, folder and pin state. Every field is required:
        pass the current `folder`/`is_pinned` to keep them.
        """
        return self._get_db().update(note_id, title, content, folder, is_pinned)

    def delete_note(self, note_id: str) -> None:
        """Move an active note to the trash, or purge a note already in the trash."""
        self._get_db().delete(note_id)

    def restore_note(self, note_id: str) -> None:
        self._get_db().restore(note_id)

    def list_active_notes(
        self,
        folder: Optional[str] = None,
        pinned_only: bool = False,
        query: Optional[str] = None,
    ) -> List[Note]:
        """
        Notes outside the trash, optionally narrowed to one folder, to pinned
        notes, and to notes whose title or content contains `query`
        (case-insensitive; an empty query matches everything).
        """
        notes = [note for note in self.list_notes() if not note.is_deleted]
        if folder is not None:
            notes = [note for note in notes if note.folder == folder]
        if pinned_only:
            notes = [note for note in notes if note.is_pinned]
        return self._filter_by_query(notes, query)

    def list_trash(self, query: Optional[str] = None) -> List[Note]:
        return self._filter_by_query([note for note in self.list_notes() if note.is_deleted], query)

    @staticmethod
    def _filter_by_query(notes: List[Note], query: Optional[str]) -> List[Note]:
        if not query:
            return notes
        needle = query.lower()
        return [note for note in notes if needle in note.title.lower() or needle in note.content.lower()]

    def list_folders(self) -> List[str]:
        """Sorted, distinct, non-blank folder names used by active notes."""
        folders = {
            note.folder
            for note in self.list_notes()
            if not note.is_deleted and note.folder and note.folder.strip()
        }
        return sorted(folders)

    # --- Settings ---
    def get_settings(self) -> UserSettings:
        return self._get_db().get_settings()

    def update_settings(self, settings: Optional[UserSettings] = None, **overrides: Any) -> UserSettings:
        """
        Store new settings and return what was stored.

        Either pass a complete `UserSettings`, or keyword overrides that are
        merged into the current settings in a single transaction:

            service.update_settings(theme_mode="dark", font_size=16)

        Raises:
            SerializationFault: If an override names an unknown field or has an invalid value.
        """
        db = self._get_db()
        if settings is not None and overrides:
            raise ValueError("Pass either a UserSettings instance or keyword overrides, not both.")
        if settings is None:
            return db.patch_settings(overrides)
        db.update_settings(settings)
        return settings

    # --- Sync ---
    def changes_since(self, version: int) -> List[Note]:
        return self._get_db().changes_since(version)

    def merge_changes(self, changes: List[NoteLike]) -> MergeResult:
        return self._get_db().merge(changes)

    def current_version(self) -> int:
        return self._get_db().current_version()

    @property
    def db(self) -> NotaroDB:
        """The underlying engine, for sync sessions and handlers."""
        return self._get_db()

#
# End of Notes_Library.py
#######################################################################################################################
