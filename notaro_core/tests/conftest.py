"""
Notaro core test configuration and fixtures.

Provides in-memory and file-backed stores, a two-device pair for sync tests,
and a factory for building remote notes with explicit versions and timestamps.
"""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Generator, Tuple
import uuid

import pytest

from notaro_core import config as notaro_config
from notaro_core.DB_Management.Notaro_DB import NotaroDB
from notaro_core.Notes.note_models import Note

# =====================================================================
# Test Markers
# =====================================================================

def pytest_configure(config):
    """Register custom markers for test categorization."""
    config.addinivalue_line("markers", "unit: Unit tests with minimal mocking")
    config.addinivalue_line("markers", "integration: Integration tests with real components")
    config.addinivalue_line("markers", "property: Property-based tests")
    config.addinivalue_line("markers", "concurrent: Tests for concurrent operations")

# =====================================================================
# Environment Configuration
# =====================================================================

_NOTARO_ENV_VARS = (
    notaro_config.ENV_CONFIG_FILE,
    notaro_config.ENV_APP_DATA_DIR,
    notaro_config.ENV_DB_FILE_NAME,
    notaro_config.ENV_BUSY_TIMEOUT_MS,
    notaro_config.ENV_JOURNAL_MODE,
    notaro_config.ENV_LOG_LEVEL,
    notaro_config.ENV_LOG_FILE,
)


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, tmp_path) -> Generator[Path, None, None]:
    """
    Clear NOTARO_* variables (restoring them afterwards, even if a test loads a
    .env file) and point the default data directory into tmp_path.
    """
    for name in _NOTARO_ENV_VARS:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    app_data_dir = tmp_path / "app_data"
    monkeypatch.setenv(notaro_config.ENV_APP_DATA_DIR, str(app_data_dir))
    notaro_config.get_config.cache_clear()
    yield app_data_dir
    notaro_config.get_config.cache_clear()

# =====================================================================
# Database Fixtures
# =====================================================================

@pytest.fixture
def mem_db() -> Generator[NotaroDB, None, None]:
    db = NotaroDB(":memory:")
    yield db
    db.close()


@pytest.fixture
def file_db(tmp_path) -> Generator[NotaroDB, None, None]:
    db = NotaroDB(tmp_path / "store" / "notaro.db")
    yield db
    db.close()


@pytest.fixture
def device_pair() -> Generator[Tuple[NotaroDB, NotaroDB], None, None]:
    """Two independent replicas, "device A" and "device B"."""
    device_a = NotaroDB(":memory:")
    device_b = NotaroDB(":memory:")
    yield device_a, device_b
    device_a.close()
    device_b.close()

# =====================================================================
# Data Fixtures
# =====================================================================

BASE_TIME = datetime(2024, 5, 1, 12, 0, 0, 123456, tzinfo=timezone.utc)


@pytest.fixture
def make_note() -> Callable[..., Note]:
    """Build a note as a remote replica would send it."""
    counter = {"n": 0}

    def _factory(**overrides: Any) -> Note:
        counter["n"] += 1
        stamp = BASE_TIME + timedelta(minutes=counter["n"])
        fields = {
            "id": str(uuid.uuid4()),
            "title": f"Remote note {counter['n']}",
            "content": "from another device",
            "folder": None,
            "is_pinned": False,
            "created_at": stamp,
            "updated_at": stamp,
            "version": 1,
            "is_deleted": False,
        }
        fields.update(overrides)
        return Note(**fields)

    return _factory
