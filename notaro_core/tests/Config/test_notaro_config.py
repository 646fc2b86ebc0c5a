"""
Tests for configuration loading and logging setup.
"""

from pathlib import Path

import pytest
from loguru import logger

from notaro_core import config as notaro_config
from notaro_core.config import NotaroConfig, configure_logging, get_config, load_notaro_config

_INI = """
[Database]
app_data_dir = {data_dir}
db_file_name = from_ini.db
busy_timeout_ms = 1500
journal_mode = delete

[Logging]
log_level = debug
"""


@pytest.fixture
def no_app_dir_env(monkeypatch, tmp_path):
    monkeypatch.delenv(notaro_config.ENV_APP_DATA_DIR, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.mark.unit
def test_defaults_without_env_or_ini(no_app_dir_env):
    config = load_notaro_config()
    assert config == NotaroConfig()
    assert config.app_data_dir == Path.home() / ".notaro"
    assert config.db_path == config.app_data_dir / "notaro.db"
    assert config.busy_timeout_ms == 5000
    assert config.journal_mode == "WAL"
    assert config.log_level == "INFO"
    assert config.log_file is None


@pytest.mark.unit
def test_ini_values_are_read(no_app_dir_env, tmp_path):
    ini = tmp_path / "notaro.ini"
    ini.write_text(_INI.format(data_dir=tmp_path / "ini_data"))

    config = load_notaro_config(ini)

    assert config.app_data_dir == tmp_path / "ini_data"
    assert config.db_file_name == "from_ini.db"
    assert config.busy_timeout_ms == 1500
    assert config.journal_mode == "DELETE"
    assert config.log_level == "DEBUG"


@pytest.mark.unit
def test_environment_overrides_ini(no_app_dir_env, tmp_path, monkeypatch):
    ini = tmp_path / "notaro.ini"
    ini.write_text(_INI.format(data_dir=tmp_path / "ini_data"))
    monkeypatch.setenv(notaro_config.ENV_DB_FILE_NAME, "from_env.db")
    monkeypatch.setenv(notaro_config.ENV_JOURNAL_MODE, "truncate")
    monkeypatch.setenv(notaro_config.ENV_LOG_FILE, str(tmp_path / "notaro.log"))

    config = load_notaro_config(ini)

    assert config.db_file_name == "from_env.db"
    assert config.journal_mode == "TRUNCATE"
    assert config.busy_timeout_ms == 1500
    assert config.log_file == tmp_path / "notaro.log"


@pytest.mark.unit
def test_config_file_from_environment(no_app_dir_env, tmp_path, monkeypatch):
    ini = tmp_path / "elsewhere.ini"
    ini.write_text(_INI.format(data_dir=tmp_path / "ini_data"))
    monkeypatch.setenv(notaro_config.ENV_CONFIG_FILE, str(ini))

    assert load_notaro_config().db_file_name == "from_ini.db"


@pytest.mark.unit
def test_dotenv_file_in_working_directory(no_app_dir_env, tmp_path):
    (tmp_path / ".env").write_text("NOTARO_DB_FILE_NAME=dotenv.db\nNOTARO_BUSY_TIMEOUT_MS=250\n")

    config = load_notaro_config()

    assert config.db_file_name == "dotenv.db"
    assert config.busy_timeout_ms == 250


@pytest.mark.unit
def test_invalid_values_fall_back_to_defaults(no_app_dir_env, monkeypatch):
    monkeypatch.setenv(notaro_config.ENV_BUSY_TIMEOUT_MS, "soon")
    monkeypatch.setenv(notaro_config.ENV_JOURNAL_MODE, "sideways")

    config = load_notaro_config()

    assert config.busy_timeout_ms == 5000
    assert config.journal_mode == "WAL"


@pytest.mark.unit
def test_missing_ini_is_tolerated(no_app_dir_env, tmp_path):
    assert load_notaro_config(tmp_path / "absent.ini") == NotaroConfig()


@pytest.mark.unit
def test_get_config_is_cached(isolated_config):
    first = get_config()
    assert get_config() is first
    assert first.app_data_dir == isolated_config

    get_config.cache_clear()
    assert get_config() is not first


@pytest.mark.unit
def test_configure_logging_installs_single_sink():
    messages = []
    handler_id = configure_logging(level="warning", sink=messages.append)
    try:
        logger.info("quiet")
        logger.warning("loud")
    finally:
        logger.remove(handler_id)

    assert len(messages) == 1
    assert "loud" in messages[0]
