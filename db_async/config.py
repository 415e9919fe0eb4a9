"""
Database Configuration

Loads db_async settings from environment variables, optionally seeded from a
dotenv file.

Usage:
    from db_async.config import DatabaseConfig

    config = DatabaseConfig.from_env(".env")
    db = Database(config)
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


@dataclass
class DatabaseConfig:
    """db_async configuration."""

    # Driver
    busy_timeout: float = 5.0  # seconds SQLite waits on a locked database

    # Query helper
    default_pagecap: int = 10
    count_fallback_condition: str = "tile_data IS NOT NULL"

    # Logging
    log_level: str = "INFO"
    log_format: str = "text"
    log_file: Optional[str] = None

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "DatabaseConfig":
        """
        Load configuration from environment variables.

        Args:
            env_file: Optional dotenv file loaded first. Variables already
                present in the environment take precedence over the file.
        """
        if env_file:
            load_dotenv(env_file)

        return cls(
            busy_timeout=float(os.environ.get("DB_ASYNC_BUSY_TIMEOUT", "5.0")),
            default_pagecap=int(os.environ.get("DB_ASYNC_DEFAULT_PAGECAP", "10")),
            count_fallback_condition=os.environ.get(
                "DB_ASYNC_COUNT_FALLBACK", "tile_data IS NOT NULL"
            ),
            log_level=os.environ.get("DB_ASYNC_LOG_LEVEL", "INFO"),
            log_format=os.environ.get("DB_ASYNC_LOG_FORMAT", "text"),
            log_file=os.environ.get("DB_ASYNC_LOG_FILE") or None,
        )


# Global config instance
config = DatabaseConfig.from_env()
