# config.py
# Description: Configuration loading and logging setup for the Notaro core.
#
# Imports
import configparser
import os
import sys
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional, Union
#
# 3rd-party Libraries
from dotenv import load_dotenv
from loguru import logger
#
########################################################################################################################
#
# Functions:

# --- Defaults ---
DEFAULT_APP_DATA_DIR = Path.home() / ".notaro"
DEFAULT_DB_FILE_NAME = "notaro.db"
DEFAULT_BUSY_TIMEOUT_MS = 5000
DEFAULT_JOURNAL_MODE = "WAL"
DEFAULT_LOG_LEVEL = "INFO"

_VALID_JOURNAL_MODES = {"DELETE", "TRUNCATE", "PERSIST", "MEMORY", "WAL", "OFF"}

# --- Environment variable names ---
ENV_CONFIG_FILE = "NOTARO_CONFIG_FILE"
ENV_APP_DATA_DIR = "NOTARO_APP_DATA_DIR"
ENV_DB_FILE_NAME = "NOTARO_DB_FILE_NAME"
ENV_BUSY_TIMEOUT_MS = "NOTARO_BUSY_TIMEOUT_MS"
ENV_JOURNAL_MODE = "NOTARO_JOURNAL_MODE"
ENV_LOG_LEVEL = "NOTARO_LOG_LEVEL"
ENV_LOG_FILE = "NOTARO_LOG_FILE"


@dataclass(frozen=True)
class NotaroConfig:
    """Resolved configuration for one process."""
    app_data_dir: Path = DEFAULT_APP_DATA_DIR
    db_file_name: str = DEFAULT_DB_FILE_NAME
    busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS
    journal_mode: str = DEFAULT_JOURNAL_MODE
    log_level: str = DEFAULT_LOG_LEVEL
    log_file: Optional[Path] = None

    @property
    def db_path(self) -> Path:
        return self.app_data_dir / self.db_file_name


def _load_env_files(search_dirs: list[Path]) -> bool:
    """
    Load .env/.ENV files from the given directories without overriding
    variables already present in the process environment.
    """
    loaded_any = False
    for directory in search_dirs:
        for name in (".env", ".ENV"):
            candidate = directory / name
            if candidate.is_file():
                logger.debug(f"Loading environment variables from: {candidate}")
                load_dotenv(dotenv_path=str(candidate), override=False)
                loaded_any = True
    if not loaded_any:
        logger.debug("No .env file found; relying on process environment")
    return loaded_any


def _read_ini(config_path: Optional[Path]) -> configparser.ConfigParser:
    parser = configparser.ConfigParser()
    if config_path is None:
        return parser
    if not config_path.is_file():
        logger.warning(f"Config file not found at {config_path}; using defaults and environment")
        return parser
    try:
        parser.read(config_path, encoding="utf-8")
    except configparser.Error as e:
        logger.error(f"Error parsing config file {config_path}: {e}")
        raise
    logger.debug(f"Loaded config sections from {config_path}: {parser.sections()}")
    return parser


def _as_int(raw: Any, name: str, default: int) -> int:
    if raw is None or str(raw).strip() == "":
        return default
    try:
        return int(str(raw).strip())
    except ValueError:
        logger.warning(f"Invalid integer for {name}: {raw!r}; falling back to {default}")
        return default


def load_notaro_config(config_path: Optional[Union[str, Path]] = None) -> NotaroConfig:
    """
    Build a `NotaroConfig` from, in increasing precedence:

    1. built-in defaults;
    2. an INI file (``[Database]`` and ``[Logging]`` sections), taken from
       `config_path` or the ``NOTARO_CONFIG_FILE`` environment variable;
    3. ``NOTARO_*`` environment variables, after loading any ``.env`` file
       found in the working directory or next to the INI file.
    """
    search_dirs = [Path.cwd()]
    if config_path is None and os.getenv(ENV_CONFIG_FILE):
        config_path = os.environ[ENV_CONFIG_FILE]
    ini_path = Path(config_path).expanduser() if config_path else None
    if ini_path is not None and ini_path.parent not in search_dirs:
        search_dirs.append(ini_path.parent)
    _load_env_files(search_dirs)

    # .env may have introduced NOTARO_CONFIG_FILE
    if ini_path is None and os.getenv(ENV_CONFIG_FILE):
        ini_path = Path(os.environ[ENV_CONFIG_FILE]).expanduser()

    parser = _read_ini(ini_path)

    app_data_dir = os.getenv(ENV_APP_DATA_DIR) or parser.get("Database", "app_data_dir", fallback=None)
    db_file_name = os.getenv(ENV_DB_FILE_NAME) or parser.get("Database", "db_file_name", fallback=None)
    busy_timeout = os.getenv(ENV_BUSY_TIMEOUT_MS) or parser.get("Database", "busy_timeout_ms", fallback=None)
    journal_mode = os.getenv(ENV_JOURNAL_MODE) or parser.get("Database", "journal_mode", fallback=None)
    log_level = os.getenv(ENV_LOG_LEVEL) or parser.get("Logging", "log_level", fallback=None)
    log_file = os.getenv(ENV_LOG_FILE) or parser.get("Logging", "log_file", fallback=None)

    journal_mode = (journal_mode or DEFAULT_JOURNAL_MODE).strip().upper()
    if journal_mode not in _VALID_JOURNAL_MODES:
        logger.warning(f"Unsupported journal_mode {journal_mode!r}; using {DEFAULT_JOURNAL_MODE}")
        journal_mode = DEFAULT_JOURNAL_MODE

    config = NotaroConfig(
        app_data_dir=Path(app_data_dir).expanduser() if app_data_dir else DEFAULT_APP_DATA_DIR,
        db_file_name=(db_file_name or DEFAULT_DB_FILE_NAME).strip(),
        busy_timeout_ms=_as_int(busy_timeout, "busy_timeout_ms", DEFAULT_BUSY_TIMEOUT_MS),
        journal_mode=journal_mode,
        log_level=(log_level or DEFAULT_LOG_LEVEL).strip().upper(),
        log_file=Path(log_file).expanduser() if log_file else None,
    )
    logger.debug(f"Resolved Notaro config: {config}")
    return config


@lru_cache
def get_config() -> NotaroConfig:
    """Return the cached process-wide configuration."""
    return load_notaro_config()


def configure_logging(level: Optional[str] = None, sink: Any = None) -> int:
    """
    Replace loguru's default handler with a single sink at the configured level.

    Args:
        level: Log level name; defaults to the configured ``log_level``.
        sink: Any loguru sink; defaults to the configured ``log_file`` or stderr.

    Returns:
        The loguru handler id, so callers (and tests) can remove it again.
    """
    config = get_config()
    if sink is None:
        sink = str(config.log_file) if config.log_file else sys.stderr
    logger.remove()
    return logger.add(
        sink,
        level=(level or config.log_level).upper(),
        format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message} | {extra}",
        enqueue=False,
    )

#
# End of config.py
#######################################################################################################################
