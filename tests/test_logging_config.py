"""
Logging Configuration Tests

Run with: pytest tests/test_logging_config.py -v
"""

import json
import logging
import logging.handlers
import sys

import pytest

from db_async.config import DatabaseConfig
from db_async.logging_config import ColorFormatter, JSONFormatter, setup_logging


def _record(msg="SELECT done", level=logging.DEBUG, **extra):
    record = logging.LogRecord("db_async.driver", level, __file__, 10, msg, (), None)
    for name, value in extra.items():
        setattr(record, name, value)
    return record


@pytest.fixture
def restore_root_logger():
    """Put the root logger back the way pytest configured it."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


class TestJSONFormatter:
    def test_basic_fields(self):
        data = json.loads(JSONFormatter().format(_record()))

        assert data["level"] == "DEBUG"
        assert data["logger"] == "db_async.driver"
        assert data["message"] == "SELECT done"
        assert data["timestamp"].endswith("Z")
        assert "sql" not in data

    def test_statement_fields(self):
        record = _record(sql="SELECT 1", database=":memory:", elapsed_ms=0.25)

        data = json.loads(JSONFormatter().format(record))

        assert data["sql"] == "SELECT 1"
        assert data["database"] == ":memory:"
        assert data["elapsed_ms"] == 0.25

    def test_exception_info(self):
        try:
            raise ValueError("boom")
        except ValueError:
            record = logging.LogRecord(
                "db_async", logging.ERROR, __file__, 1, "failed", (), sys.exc_info()
            )

        data = json.loads(JSONFormatter().format(record))

        assert "ValueError: boom" in data["exception"]


class TestColorFormatter:
    def test_colors_level_without_touching_record(self):
        record = _record(level=logging.ERROR)

        output = ColorFormatter("%(levelname)s %(message)s").format(record)

        assert output.startswith("\033[31mERROR\033[0m")
        assert record.levelname == "ERROR"


class TestSetupLogging:
    def test_console_handler_and_level(self, restore_root_logger):
        root = setup_logging(log_level="WARNING")

        assert root.level == logging.WARNING
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, ColorFormatter)
        assert logging.getLogger("aiosqlite").level == logging.WARNING

    def test_json_file_logging(self, restore_root_logger, tmp_path):
        log_file = tmp_path / "logs" / "db.log"

        root = setup_logging(log_level="INFO", log_file=str(log_file), log_format="json")
        logging.getLogger("db_async.test").info("hello")
        for handler in root.handlers:
            handler.flush()

        file_handlers = [
            h for h in root.handlers if isinstance(h, logging.handlers.RotatingFileHandler)
        ]
        assert len(file_handlers) == 1
        messages = [json.loads(line)["message"] for line in log_file.read_text().splitlines()]
        assert "hello" in messages

    def test_values_come_from_config(self, restore_root_logger, tmp_path):
        config = DatabaseConfig(log_level="ERROR", log_format="json", log_file=str(tmp_path / "c.log"))

        root = setup_logging(config=config)

        assert root.level == logging.ERROR
        assert all(isinstance(h.formatter, JSONFormatter) for h in root.handlers)
        assert len(root.handlers) == 2

    def test_colors_can_be_disabled(self, restore_root_logger):
        root = setup_logging(log_format="text", enable_colors=False)

        assert not isinstance(root.handlers[0].formatter, ColorFormatter)

    def test_exported_from_package(self):
        import db_async

        assert db_async.setup_logging is setup_logging
