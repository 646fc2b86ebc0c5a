# db_path_utils.py
"""
Centralized database path management utilities.
Ensures consistent database file locations for the notes store.
"""

from pathlib import Path
from typing import Optional, Union
from loguru import logger

from notaro_core.config import get_config
from notaro_core.exceptions import IoFault


MEMORY_DB = ":memory:"


class DatabasePaths:
    """Centralized database path management."""

    NOTES_DB_NAME = "notaro.db"

    @staticmethod
    def is_memory(db_path: Union[str, Path]) -> bool:
        return isinstance(db_path, str) and db_path == MEMORY_DB

    @staticmethod
    def ensure_directory(directory: Union[str, Path]) -> Path:
        """
        Create `directory` (and parents) if missing.

        Raises:
            IoFault: If the directory cannot be created.
        """
        path = Path(directory).expanduser()
        try:
            path.mkdir(parents=True, exist_ok=True)
            logger.debug(f"Ensured directory exists: {path}")
        except OSError as e:
            logger.error(f"Failed to create directory {path}: {e}")
            raise IoFault(f"Failed to create directory {path}: {e}") from e
        return path

    @staticmethod
    def get_app_data_dir(app_doc_dir: Optional[Union[str, Path]] = None) -> Path:
        """
        Resolve the directory that holds the notes database.

        Args:
            app_doc_dir: Explicit application documents directory supplied by a
                         binding layer. Falls back to the configured ``app_data_dir``.
        """
        base = Path(app_doc_dir).expanduser() if app_doc_dir else get_config().app_data_dir
        return DatabasePaths.ensure_directory(base)

    @staticmethod
    def get_notes_db_path(app_doc_dir: Optional[Union[str, Path]] = None) -> Path:
        """Get the path to the notes database, creating its directory."""
        if app_doc_dir:
            file_name = DatabasePaths.NOTES_DB_NAME
        else:
            file_name = get_config().db_file_name
        return DatabasePaths.get_app_data_dir(app_doc_dir) / file_name
