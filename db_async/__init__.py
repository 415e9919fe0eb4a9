"""
db_async - awaitable SQLite access.

Wraps a callback SQLite driver so that opening, querying, prepared statements
and transactions read as linear ``await`` code.

Available Modules:
    - database: Database and Statement handles
    - query: List-view query builder (keyword search + pagination)
    - memory: Fire-and-forget in-memory database helper
    - driver: Callback driver on top of aiosqlite
    - config: Environment configuration
    - logging_config: Logging setup

Usage:
    from db_async import Database, DatabaseConfig, setup_logging

    setup_logging(config=DatabaseConfig.from_env(".env"))

    async with await Database.connect("app.db") as db:
        await db.exec("CREATE TABLE IF NOT EXISTS items (_id INTEGER PRIMARY KEY, name TEXT)")
        await db.run("INSERT INTO items (name) VALUES (?)", "widget")
        result = await db.query({"key": "wid", "page": "1"}, "items", ["name"])
"""

from db_async.config import DatabaseConfig
from db_async.database import Database, RunResult, Statement
from db_async.driver import OPEN_CREATE, OPEN_READONLY, OPEN_READWRITE
from db_async.errors import (
    AlreadyOpenError,
    DatabaseError,
    DriverError,
    InvalidArgumentError,
    NotOpenError,
)
from db_async.logging_config import setup_logging
from db_async.memory import DatabaseMemory
from db_async.query import QueryOptions, QueryResult, build_query

__all__ = [
    "Database",
    "Statement",
    "RunResult",
    "DatabaseMemory",
    "QueryOptions",
    "QueryResult",
    "build_query",
    "DatabaseConfig",
    "setup_logging",
    "DatabaseError",
    "InvalidArgumentError",
    "AlreadyOpenError",
    "NotOpenError",
    "DriverError",
    "OPEN_READONLY",
    "OPEN_READWRITE",
    "OPEN_CREATE",
]
