"""
Configuration Tests

Run with: pytest tests/test_config.py -v
"""

import os

import pytest

from db_async.config import DatabaseConfig


ENV_VARS = (
    "DB_ASYNC_BUSY_TIMEOUT",
    "DB_ASYNC_DEFAULT_PAGECAP",
    "DB_ASYNC_COUNT_FALLBACK",
    "DB_ASYNC_LOG_LEVEL",
    "DB_ASYNC_LOG_FORMAT",
    "DB_ASYNC_LOG_FILE",
)


@pytest.fixture
def clean_env(monkeypatch):
    """Environment without any DB_ASYNC_* variable."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    yield monkeypatch
    # load_dotenv writes straight into os.environ
    for name in ENV_VARS:
        os.environ.pop(name, None)


class TestDatabaseConfig:
    """Tests for DatabaseConfig.from_env."""

    def test_defaults(self, clean_env):
        config = DatabaseConfig.from_env()

        assert config == DatabaseConfig()
        assert config.busy_timeout == 5.0
        assert config.default_pagecap == 10
        assert config.count_fallback_condition == "tile_data IS NOT NULL"
        assert config.log_file is None

    def test_environment_overrides(self, clean_env):
        clean_env.setenv("DB_ASYNC_BUSY_TIMEOUT", "0.5")
        clean_env.setenv("DB_ASYNC_DEFAULT_PAGECAP", "25")
        clean_env.setenv("DB_ASYNC_COUNT_FALLBACK", "deleted = 0")
        clean_env.setenv("DB_ASYNC_LOG_LEVEL", "DEBUG")
        clean_env.setenv("DB_ASYNC_LOG_FORMAT", "json")
        clean_env.setenv("DB_ASYNC_LOG_FILE", "/tmp/db.log")

        config = DatabaseConfig.from_env()

        assert config.busy_timeout == 0.5
        assert config.default_pagecap == 25
        assert config.count_fallback_condition == "deleted = 0"
        assert config.log_level == "DEBUG"
        assert config.log_format == "json"
        assert config.log_file == "/tmp/db.log"

    def test_empty_log_file_means_console_only(self, clean_env):
        clean_env.setenv("DB_ASYNC_LOG_FILE", "")

        assert DatabaseConfig.from_env().log_file is None

    def test_dotenv_file_is_loaded(self, clean_env, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("DB_ASYNC_DEFAULT_PAGECAP=7\nDB_ASYNC_LOG_FORMAT=json\n")

        config = DatabaseConfig.from_env(str(env_file))

        assert config.default_pagecap == 7
        assert config.log_format == "json"

    def test_environment_wins_over_dotenv(self, clean_env, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("DB_ASYNC_DEFAULT_PAGECAP=7\n")
        clean_env.setenv("DB_ASYNC_DEFAULT_PAGECAP", "3")

        assert DatabaseConfig.from_env(str(env_file)).default_pagecap == 3

    def test_bad_number_raises(self, clean_env):
        clean_env.setenv("DB_ASYNC_DEFAULT_PAGECAP", "many")

        with pytest.raises(ValueError):
            DatabaseConfig.from_env()
