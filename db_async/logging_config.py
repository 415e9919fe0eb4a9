"""
Logging configuration for applications using db_async.

Supports:
- File logging with rotation
- JSON format for log aggregation tools
- Console output with colors
- Statement-specific logging fields (sql, database, elapsed_ms)

Usage:
    from db_async.logging_config import setup_logging

    setup_logging(
        log_level="DEBUG",
        log_file="/var/log/myapp/db.log",
        log_format="json"
    )

    # Or take everything from DB_ASYNC_LOG_* settings
    setup_logging(config=DatabaseConfig.from_env())
"""
import logging
import logging.handlers
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from db_async.config import DatabaseConfig


STATEMENT_FIELDS = ("sql", "database", "elapsed_ms")


class JSONFormatter(logging.Formatter):
    """JSON log formatter for log aggregation tools (ELK, Datadog, etc.)."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Driver statement fields
        for name in STATEMENT_FIELDS:
            if hasattr(record, name):
                log_data[name] = getattr(record, name)

        return json.dumps(log_data)


class ColorFormatter(logging.Formatter):
    """Colored console formatter for development/debugging."""

    COLORS = {
        "DEBUG": "\033[36m",     # Cyan
        "INFO": "\033[32m",      # Green
        "WARNING": "\033[33m",   # Yellow
        "ERROR": "\033[31m",     # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        # Color a copy so file handlers sharing the record stay plain
        record = logging.makeLogRecord(record.__dict__)
        color = self.COLORS.get(record.levelname, "")
        record.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(record)


def setup_logging(
    log_level: Optional[str] = None,
    log_file: Optional[str] = None,
    log_format: Optional[str] = None,
    max_bytes: int = 10_000_000,  # 10MB
    backup_count: int = 5,
    enable_colors: bool = True,
    config: Optional[DatabaseConfig] = None,
) -> logging.Logger:
    """
    Configure logging for db_async and the application around it.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path to log file. None for console-only.
        log_format: "text" for human-readable, "json" for machine-parseable
        max_bytes: Maximum log file size before rotation (default 10MB)
        backup_count: Number of backup files to keep (default 5)
        enable_colors: Enable colored console output (ignored for JSON)
        config: Supplies level, file and format when they are not given

    Returns:
        Configured root logger

    Example:
        # Development (console with colors, every statement traced)
        setup_logging(log_level="DEBUG", enable_colors=True)

        # Production (JSON to file)
        setup_logging(
            log_level="INFO",
            log_file="/var/log/myapp/db.log",
            log_format="json"
        )
    """
    config = config or DatabaseConfig()
    log_level = log_level or config.log_level
    log_file = log_file or config.log_file
    log_format = log_format or config.log_format

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # Clear any existing handlers to avoid duplicates
    root_logger.handlers.clear()

    # Create formatters
    if log_format == "json":
        formatter = JSONFormatter()
        console_formatter = formatter
    else:
        text_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        date_format = "%Y-%m-%d %H:%M:%S"
        formatter = logging.Formatter(text_format, datefmt=date_format)

        if enable_colors:
            console_formatter = ColorFormatter(text_format, datefmt=date_format)
        else:
            console_formatter = formatter

    # Console handler (always enabled)
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(console_formatter)
    root_logger.addHandler(console_handler)

    # File handler (if log_file specified)
    if log_file:
        log_path = Path(log_file)

        # Create log directory if it doesn't exist
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
        except PermissionError:
            root_logger.warning(
                f"Cannot create log directory {log_path.parent}. "
                "File logging disabled."
            )
        else:
            file_handler = logging.handlers.RotatingFileHandler(
                log_file,
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            )
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)
            root_logger.info(f"File logging enabled: {log_file}")

    # aiosqlite logs every queued call at DEBUG
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    return root_logger
