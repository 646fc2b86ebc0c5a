# Notaro_DB.py
# Description: SQLite storage and replication engine for notes and user settings.
#
from __future__ import annotations

"""
Notaro_DB.py
------------

The embedded store behind the notes application. One `NotaroDB` instance owns
one SQLite connection and is the only writer of its database file.

This library provides:
- Schema management with a version registry and additive, idempotent migrations.
- A single connection guarded by one lock; every operation holds the lock for
  its whole duration and releases it on every exit path.
- CRUD for notes with version stamping: every local mutation bumps `version`
  by exactly one.
- Two-stage deletion: the first delete leaves a tombstone that replicates, a
  second delete removes the row for good.
- Delta extraction (`changes_since`) and an all-or-nothing last-write-wins
  merge (`merge`) for replicating between devices.
- A lazily-created singleton row of user settings.

Equal-version conflicts are resolved in favour of the local row. Two replicas
that both edit the same base record to the same version keep their own edits;
merges between them are no-ops in both directions.
"""
# Imports
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Iterator, List, Mapping, Optional, Union
#
# Third-Party Libraries
from loguru import logger
from pydantic import ValidationError
#
# Local Imports
from notaro_core.config import NotaroConfig, get_config
from notaro_core.DB_Management.db_path_utils import MEMORY_DB, DatabasePaths
from notaro_core.exceptions import (
    NotaroError,
    NotFound,
    SchemaError,
    SerializationFault,
    StorageFault,
    StoreUnusable,
)
from notaro_core.Logging.log_context import log_context, new_sync_id
from notaro_core.Notes.note_models import (
    MAX_VERSION,
    Note,
    UserSettings,
    format_timestamp,
    parse_timestamp,
    utc_now,
)
#
########################################################################################################################
#
# Classes:

NoteLike = Union[Note, Mapping[str, Any]]


@dataclass
class MergeResult:
    """Summary of one merged batch."""
    inserted: int = 0
    updated: int = 0
    skipped: int = 0

    @property
    def total(self) -> int:
        return self.inserted + self.updated + self.skipped


class NotaroDB:
    """
    Manages the SQLite connection and all mutation paths for one notes store.

    Attributes:
        db_path (Path): Absolute path to the database file, or Path(":memory:").
        is_memory_db (bool): True if the database is in-memory.
        db_path_str (str): String form of the path passed to sqlite3.
        config (NotaroConfig): Settings used for connection pragmas.
    """
    _CURRENT_SCHEMA_VERSION = 2
    _SCHEMA_NAME = "notaro_notes_schema"
    _SETTINGS_ROW_ID = 1

    _NOTE_COLUMNS = (
        "id", "title", "content", "folder", "is_pinned",
        "created_at", "updated_at", "version", "is_deleted",
    )
    _SELECT_NOTES = f"SELECT {', '.join(_NOTE_COLUMNS)} FROM notes"
    _INSERT_NOTE = (
        f"INSERT INTO notes ({', '.join(_NOTE_COLUMNS)}) "
        f"VALUES ({', '.join('?' for _ in _NOTE_COLUMNS)})"
    )
    _OVERWRITE_NOTE = (
        "UPDATE notes SET title = ?, content = ?, folder = ?, is_pinned = ?, "
        "created_at = ?, updated_at = ?, version = ?, is_deleted = ? WHERE id = ?"
    )

    _SCHEMA_V1_STATEMENTS = (
        """
        CREATE TABLE IF NOT EXISTS db_schema_version(
            schema_name TEXT PRIMARY KEY NOT NULL,
            version     INTEGER NOT NULL
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS notes(
            id         TEXT PRIMARY KEY,
            title      TEXT NOT NULL,
            content    TEXT NOT NULL,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            version    INTEGER NOT NULL,
            is_deleted BOOLEAN NOT NULL DEFAULT 0
        )
        """,
    )

    # v2 columns are optional so rows written by v1 stay valid.
    _V2_NOTE_COLUMNS = (
        ("folder", "TEXT"),
        ("is_pinned", "BOOLEAN NOT NULL DEFAULT 0"),
    )
    _SCHEMA_V2_STATEMENTS = (
        """
        CREATE TABLE IF NOT EXISTS user_settings(
            id          INTEGER PRIMARY KEY CHECK (id = 1),
            theme_mode  TEXT NOT NULL,
            accent_hue  INTEGER NOT NULL,
            font_family TEXT NOT NULL,
            font_size   INTEGER NOT NULL
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_notes_version ON notes(version)",
        "CREATE INDEX IF NOT EXISTS idx_notes_listing ON notes(is_pinned DESC, updated_at DESC)",
    )

    def __init__(self, db_path: Union[str, Path], *, config: Optional[NotaroConfig] = None):
        """
        Opens the database and brings its schema up to date.

        Args:
            db_path: Path to the SQLite database file, or ":memory:" for an
                     ephemeral store.
            config: Connection settings; defaults to the process configuration.

        Raises:
            IoFault: If the database directory cannot be created.
            StorageFault: If the connection cannot be opened or the schema
                          cannot be created or migrated (`SchemaError`).
        """
        if isinstance(db_path, Path):
            self.is_memory_db = False
            self.db_path = db_path.expanduser().resolve()
        else:
            self.is_memory_db = DatabasePaths.is_memory(db_path)
            self.db_path = Path(MEMORY_DB) if self.is_memory_db else Path(db_path).expanduser().resolve()
        self.db_path_str = MEMORY_DB if self.is_memory_db else str(self.db_path)
        self.config = config or get_config()

        if not self.is_memory_db:
            DatabasePaths.ensure_directory(self.db_path.parent)

        logger.info(f"Initializing NotaroDB for path: {self.db_path_str}")
        self._lock = threading.Lock()
        self._poisoned = False
        self._conn: Optional[sqlite3.Connection] = None
        try:
            self._conn = self._open_connection()
            self._initialize_schema()
            logger.debug(f"NotaroDB initialization completed successfully for {self.db_path_str}")
        except NotaroError as e:
            logger.critical(f"FATAL: DB initialization failed for {self.db_path_str}: {e}")
            self._close_quietly()
            raise
        except sqlite3.Error as e:
            logger.critical(f"FATAL: DB initialization failed for {self.db_path_str}: {e}")
            self._close_quietly()
            raise StorageFault(f"Database initialization failed: {e}") from e

    def __repr__(self) -> str:
        return f"NotaroDB(db_path={self.db_path_str!r})"

    def __enter__(self) -> "NotaroDB":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.close()
        return False

    # --- Connection Management ---
    def _open_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            self.db_path_str,
            check_same_thread=False,
            isolation_level=None,
            timeout=self.config.busy_timeout_ms / 1000.0,
        )
        conn.row_factory = sqlite3.Row
        if self.is_memory_db:
            return conn
        try:
            mode_row = conn.execute(f"PRAGMA journal_mode = {self.config.journal_mode}").fetchone()
            conn.execute(f"PRAGMA busy_timeout = {int(self.config.busy_timeout_ms)}")
        except sqlite3.Error:
            conn.close()
            raise
        logger.debug(f"Opened SQLite connection to {self.db_path_str} (journal_mode={mode_row[0]})")
        return conn

    def _close_quietly(self) -> None:
        if self._conn is None:
            return
        try:
            self._conn.close()
        except sqlite3.Error as e:
            logger.warning(f"Error while closing connection to {self.db_path_str}: {e}")
        finally:
            self._conn = None

    def close(self) -> None:
        """
        Closes the connection. Safe to call more than once.

        For file-backed WAL databases a TRUNCATE checkpoint is attempted first so
        the main database file holds every committed change.
        """
        with self._lock:
            conn = self._conn
            if conn is None:
                return
            if not self.is_memory_db and not conn.in_transaction:
                try:
                    mode_row = conn.execute("PRAGMA journal_mode;").fetchone()
                    if mode_row and str(mode_row[0]).lower() == "wal":
                        conn.execute("PRAGMA wal_checkpoint(TRUNCATE);")
                        logger.debug(f"WAL checkpoint TRUNCATE executed for {self.db_path_str}.")
                except sqlite3.Error as cp_err:
                    logger.warning(f"WAL checkpoint failed for {self.db_path_str}: {cp_err}")
            self._close_quietly()
            logger.debug(f"Closed NotaroDB connection to {self.db_path_str}.")

    @property
    def is_usable(self) -> bool:
        return self._conn is not None and not self._poisoned

    def _poison(self, error: BaseException) -> None:
        self._poisoned = True
        logger.critical(
            f"NotaroDB for {self.db_path_str} is unusable after an unexpected "
            f"{type(error).__name__} while the connection lock was held: {error}"
        )

    @contextmanager
    def _locked_connection(self) -> Iterator[sqlite3.Connection]:
        """
        Holds the engine lock for the duration of the block and yields the connection.

        sqlite3 errors leave the block as `StorageFault`. Any other non-domain
        exception marks the engine unusable before propagating.
        """
        with self._lock:
            if self._poisoned:
                raise StoreUnusable(f"Store at {self.db_path_str} is unusable; reopen it.")
            if self._conn is None:
                raise StorageFault(f"Database connection to {self.db_path_str} is closed.")
            try:
                yield self._conn
            except NotaroError:
                raise
            except sqlite3.Error as e:
                logger.error(f"Query execution failed on {self.db_path_str}: {e}")
                raise StorageFault(f"Query execution failed: {e}") from e
            except OverflowError as e:
                logger.error(f"Value out of SQLite integer range on {self.db_path_str}: {e}")
                raise StorageFault(f"Value out of storage range: {e}") from e
            except BaseException as e:
                self._poison(e)
                raise

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Runs the block inside BEGIN/COMMIT, rolling back on any exception."""
        with self._locked_connection() as conn:
            conn.execute("BEGIN")
            try:
                yield conn
            except BaseException as exc:
                logger.debug(f"Transaction failed, rolling back: {type(exc).__name__} - {exc}")
                self._rollback(conn)
                raise
            try:
                conn.commit()
            except sqlite3.Error as commit_err:
                logger.error(f"Commit FAILED on {self.db_path_str}, attempting rollback: {commit_err}")
                self._rollback(conn)
                raise

    def _rollback(self, conn: sqlite3.Connection) -> None:
        try:
            conn.rollback()
        except sqlite3.Error as rb_err:
            logger.critical(f"Rollback FAILED on {self.db_path_str}: {rb_err}")
            self._poisoned = True

    # --- Schema Initialization and Migration ---
    def _get_db_version(self, conn: sqlite3.Connection) -> int:
        """
        Returns the schema version recorded for `_SCHEMA_NAME`, or 0 for a fresh
        or pre-registry store.
        """
        registry = conn.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name = 'db_schema_version'"
        ).fetchone()
        if registry is None:
            return 0
        row = conn.execute(
            "SELECT version FROM db_schema_version WHERE schema_name = ? LIMIT 1",
            (self._SCHEMA_NAME,),
        ).fetchone()
        return int(row["version"]) if row else 0

    def _set_db_version(self, conn: sqlite3.Connection, version: int) -> None:
        conn.execute(
            "INSERT INTO db_schema_version (schema_name, version) VALUES (?, ?) "
            "ON CONFLICT(schema_name) DO UPDATE SET version = excluded.version",
            (self._SCHEMA_NAME, version),
        )

    def _apply_schema_v1(self, conn: sqlite3.Connection) -> None:
        for statement in self._SCHEMA_V1_STATEMENTS:
            conn.execute(statement)
        self._set_db_version(conn, 1)
        logger.info(f"Applied schema v1 to {self.db_path_str}.")

    def _migrate_from_v1_to_v2(self, conn: sqlite3.Connection) -> None:
        existing = {row["name"] for row in conn.execute("PRAGMA table_info(notes)")}
        for column, declaration in self._V2_NOTE_COLUMNS:
            if column not in existing:
                conn.execute(f"ALTER TABLE notes ADD COLUMN {column} {declaration}")
                logger.debug(f"Added column notes.{column}")
        for statement in self._SCHEMA_V2_STATEMENTS:
            conn.execute(statement)
        self._set_db_version(conn, 2)
        logger.info(f"Migrated {self.db_path_str} from schema v1 to v2.")

    def _initialize_schema(self) -> None:
        with self._transaction() as conn:
            current = self._get_db_version(conn)
            if current > self._CURRENT_SCHEMA_VERSION:
                raise SchemaError(
                    f"Database schema '{self._SCHEMA_NAME}' is at version {current}, "
                    f"newer than supported version {self._CURRENT_SCHEMA_VERSION}."
                )
            if current == self._CURRENT_SCHEMA_VERSION:
                logger.debug(f"Schema already at v{current} for {self.db_path_str}.")
                return
            if current < 1:
                self._apply_schema_v1(conn)
            if current < 2:
                self._migrate_from_v1_to_v2(conn)

    def get_schema_version(self) -> int:
        with self._locked_connection() as conn:
            return self._get_db_version(conn)

    # --- Row Conversion ---
    def _row_to_note(self, row: sqlite3.Row) -> Note:
        try:
            return Note(
                id=row["id"],
                title=row["title"],
                content=row["content"],
                folder=row["folder"],
                is_pinned=bool(row["is_pinned"]),
                created_at=parse_timestamp(row["created_at"]),
                updated_at=parse_timestamp(row["updated_at"]),
                version=row["version"],
                is_deleted=bool(row["is_deleted"]),
            )
        except ValidationError as e:
            raise SerializationFault(f"Stored note {row['id']!r} is malformed: {e}") from e

    @staticmethod
    def _note_params(note: Note) -> tuple:
        return (
            note.id,
            note.title,
            note.content,
            note.folder,
            note.is_pinned,
            format_timestamp(note.created_at),
            format_timestamp(note.updated_at),
            note.version,
            note.is_deleted,
        )

    @staticmethod
    def _row_to_settings(row: sqlite3.Row) -> UserSettings:
        try:
            return UserSettings(
                theme_mode=row["theme_mode"],
                accent_hue=row["accent_hue"],
                font_family=row["font_family"],
                font_size=row["font_size"],
            )
        except ValidationError as e:
            raise SerializationFault(f"Stored user settings are malformed: {e}") from e

    @staticmethod
    def _not_found(note_id: str) -> NotFound:
        return NotFound(f"Note '{note_id}' not found.", entity="notes", entity_id=note_id)

    # --- Note CRUD ---
    def create(self, title: str, content: str, folder: Optional[str] = None) -> Note:
        """Creates and persists a new active note at version 1."""
        note = Note.new(title, content, folder)
        with self._transaction() as conn:
            conn.execute(self._INSERT_NOTE, self._note_params(note))
        logger.info(f"Created note '{note.title}' with ID: {note.id}.")
        return note

    def list(self) -> List[Note]:
        """
        Returns every note, tombstones included, pinned first and then most
        recently updated first.
        """
        with self._locked_connection() as conn:
            rows = conn.execute(
                f"{self._SELECT_NOTES} ORDER BY is_pinned DESC, updated_at DESC, id ASC"
            ).fetchall()
            return [self._row_to_note(row) for row in rows]

    def get(self, note_id: str) -> Note:
        with self._locked_connection() as conn:
            row = conn.execute(f"{self._SELECT_NOTES} WHERE id = ?", (note_id,)).fetchone()
            if row is None:
                raise self._not_found(note_id)
            return self._row_to_note(row)

    def update(self, note_id: str, title: str, content: str, folder: Optional[str], is_pinned: bool) -> Note:
        """
        Overwrites the mutable fields of a note and bumps its version by one.

        Tombstoned notes may be updated; they stay tombstoned.

        Raises:
            NotFound: If no note has this id.
        """
        now = format_timestamp(utc_now())
        with self._transaction() as conn:
            cursor = conn.execute(
                "UPDATE notes SET title = ?, content = ?, folder = ?, is_pinned = ?, "
                "updated_at = ?, version = version + 1 WHERE id = ?",
                (title, content, folder, bool(is_pinned), now, note_id),
            )
            if cursor.rowcount == 0:
                raise self._not_found(note_id)
            row = conn.execute(f"{self._SELECT_NOTES} WHERE id = ?", (note_id,)).fetchone()
            note = self._row_to_note(row)
        logger.info(f"Updated note ID {note_id} to version {note.version}.")
        return note

    def delete(self, note_id: str) -> None:
        """
        Two-stage delete. An active note becomes a tombstone (version bumped so
        the deletion replicates); a tombstone is removed permanently.

        Raises:
            NotFound: If no note has this id.
        """
        now = format_timestamp(utc_now())
        with self._transaction() as conn:
            row = conn.execute("SELECT is_deleted, version FROM notes WHERE id = ?", (note_id,)).fetchone()
            if row is None:
                raise self._not_found(note_id)
            if row["is_deleted"]:
                conn.execute("DELETE FROM notes WHERE id = ?", (note_id,))
                logger.info(f"Permanently deleted tombstoned note ID {note_id} (was v{row['version']}).")
                return
            conn.execute(
                "UPDATE notes SET is_deleted = 1, updated_at = ?, version = version + 1 WHERE id = ?",
                (now, note_id),
            )
        logger.info(f"Soft-deleted note ID {note_id} (was v{row['version']}), new version {row['version'] + 1}.")

    def restore(self, note_id: str) -> None:
        """
        Clears the tombstone flag and bumps the version. Restoring an active
        note still bumps its version.

        Raises:
            NotFound: If no note has this id.
        """
        now = format_timestamp(utc_now())
        with self._transaction() as conn:
            cursor = conn.execute(
                "UPDATE notes SET is_deleted = 0, updated_at = ?, version = version + 1 WHERE id = ?",
                (now, note_id),
            )
            if cursor.rowcount == 0:
                raise self._not_found(note_id)
        logger.info(f"Restored note ID {note_id}.")

    # --- User Settings ---
    def get_settings(self) -> UserSettings:
        """Returns the stored settings, persisting the defaults on first read."""
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT theme_mode, accent_hue, font_family, font_size FROM user_settings WHERE id = ?",
                (self._SETTINGS_ROW_ID,),
            ).fetchone()
            if row is not None:
                return self._row_to_settings(row)
            defaults = UserSettings()
            self._write_settings(conn, defaults)
        logger.info("Initialised default user settings.")
        return defaults

    def update_settings(self, settings: Union[UserSettings, Mapping[str, Any]]) -> None:
        """Unconditionally overwrites the settings row."""
        if not isinstance(settings, UserSettings):
            try:
                settings = UserSettings.model_validate(settings)
            except ValidationError as e:
                raise SerializationFault(f"Invalid user settings: {e}") from e
        with self._transaction() as conn:
            self._write_settings(conn, settings)
        logger.info(f"Updated user settings: {settings.model_dump(mode='json')}")

    def patch_settings(self, overrides: Mapping[str, Any]) -> UserSettings:
        """
        Applies `overrides` on top of the stored settings (or the defaults) and
        stores the result. Read and write happen in one transaction, so
        concurrent patches touching different fields all survive.

        Raises:
            SerializationFault: If an override names an unknown field or the
                                merged settings are invalid. Nothing is written.
        """
        unknown = set(overrides) - set(UserSettings.model_fields)
        if unknown:
            raise SerializationFault(f"Unknown settings field(s): {', '.join(sorted(unknown))}")
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT theme_mode, accent_hue, font_family, font_size FROM user_settings WHERE id = ?",
                (self._SETTINGS_ROW_ID,),
            ).fetchone()
            current = self._row_to_settings(row) if row is not None else UserSettings()
            try:
                patched = UserSettings.model_validate({**current.model_dump(), **overrides})
            except ValidationError as e:
                raise SerializationFault(f"Invalid user settings: {e}") from e
            self._write_settings(conn, patched)
        logger.info(f"Patched user settings fields: {sorted(overrides)}")
        return patched

    def _write_settings(self, conn: sqlite3.Connection, settings: UserSettings) -> None:
        conn.execute(
            "INSERT INTO user_settings (id, theme_mode, accent_hue, font_family, font_size) "
            "VALUES (?, ?, ?, ?, ?) "
            "ON CONFLICT(id) DO UPDATE SET theme_mode = excluded.theme_mode, "
            "accent_hue = excluded.accent_hue, font_family = excluded.font_family, "
            "font_size = excluded.font_size",
            (
                self._SETTINGS_ROW_ID,
                settings.theme_mode.value,
                settings.accent_hue,
                settings.font_family.value,
                settings.font_size,
            ),
        )

    # --- Sync ---
    def changes_since(self, version: int) -> List[Note]:
        """
        Returns every note, tombstones included, whose version is greater than `version`.

        Raises:
            SerializationFault: If `version` is not an integer within the storable range.
        """
        since = self._checked_version(version)
        with self._locked_connection() as conn:
            rows = conn.execute(
                f"{self._SELECT_NOTES} WHERE version > ? ORDER BY version ASC, id ASC",
                (since,),
            ).fetchall()
            changes = [self._row_to_note(row) for row in rows]
        logger.debug(f"changes_since({version}) -> {len(changes)} record(s)")
        return changes

    @staticmethod
    def _checked_version(version: int) -> int:
        if isinstance(version, bool) or not isinstance(version, int):
            raise SerializationFault(f"Version must be an integer, got {type(version).__name__}")
        if not -MAX_VERSION - 1 <= version <= MAX_VERSION:
            raise SerializationFault(f"Version {version} is outside the storable range")
        return version

    def current_version(self) -> int:
        """Highest version stored locally, or 0 for an empty store."""
        with self._locked_connection() as conn:
            row = conn.execute("SELECT COALESCE(MAX(version), 0) AS max_version FROM notes").fetchone()
            return int(row["max_version"])

    @staticmethod
    def _coerce_batch(batch: Iterable[NoteLike]) -> List[Note]:
        notes: List[Note] = []
        for index, item in enumerate(batch):
            if isinstance(item, Note):
                if not 1 <= item.version <= MAX_VERSION:
                    raise SerializationFault(
                        f"Note {item.id!r} at batch index {index} has out-of-range version {item.version}"
                    )
                notes.append(item)
            elif isinstance(item, Mapping):
                try:
                    notes.append(Note.model_validate(item))
                except ValidationError as e:
                    raise SerializationFault(f"Invalid note at batch index {index}: {e}") from e
            else:
                raise SerializationFault(
                    f"Unsupported item at batch index {index}: {type(item).__name__}"
                )
        return notes

    def merge(self, batch: Iterable[NoteLike]) -> MergeResult:
        """
        Applies a batch of remote notes in one transaction, last-write-wins by version.

        For each incoming note, in order: unknown ids are inserted verbatim; a
        strictly higher incoming version overwrites every local field, including
        `created_at`; an equal or lower version is discarded.

        Raises:
            SerializationFault: If a batch item is not a valid note. Nothing is written.
            StorageFault: If storage fails mid-batch. The whole batch is rolled back.
        """
        incoming = self._coerce_batch(batch)
        result = MergeResult()
        if not incoming:
            logger.debug("merge called with an empty batch.")
            return result

        with log_context(sync_batch=new_sync_id(), batch_size=len(incoming)) as log:
            with self._transaction() as conn:
                for note in incoming:
                    row = conn.execute("SELECT version FROM notes WHERE id = ?", (note.id,)).fetchone()
                    if row is None:
                        conn.execute(self._INSERT_NOTE, self._note_params(note))
                        result.inserted += 1
                        log.debug(f"Inserted remote note {note.id} at v{note.version}.")
                    elif note.version > row["version"]:
                        params = self._note_params(note)
                        conn.execute(self._OVERWRITE_NOTE, params[1:] + params[:1])
                        result.updated += 1
                        log.debug(f"Remote note {note.id} v{note.version} replaced local v{row['version']}.")
                    else:
                        result.skipped += 1
                        log.debug(f"Discarded remote note {note.id} v{note.version}; local is v{row['version']}.")
            log.info(
                f"Merged batch: inserted={result.inserted}, updated={result.updated}, skipped={result.skipped}"
            )
        return result

#
# End of Notaro_DB.py
#######################################################################################################################
