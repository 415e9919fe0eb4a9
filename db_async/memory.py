"""
In-memory database helper.

A reduced handle for ephemeral and shared-cache memory databases. Table
writes are fire-and-forget: they report success or failure to the log only.
Only ``open`` and ``query`` surface errors to the caller.

Usage:
    from db_async.memory import DatabaseMemory

    memory = await DatabaseMemory.create_shared_memory_database("cache")
    memory.create_table("tiles", ["_id INTEGER PRIMARY KEY", "name TEXT"])
    memory.insert("tiles", ["name"], ["a"])
    rows = await memory.query("SELECT * FROM tiles")
    memory.close()
"""

import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from db_async import driver
from db_async.config import DatabaseConfig, config as default_config
from db_async.database import completion_callback
from db_async.errors import NotOpenError

logger = logging.getLogger(__name__)


def _report(success: str, failure: str) -> driver.Callback:
    """Driver callback that only logs the outcome."""

    def callback(err: Optional[Exception], *_: Any) -> None:
        if err is not None:
            logger.error(f"{failure}: {err}")
        else:
            logger.info(success)

    return callback


def _bindings(params: driver.Params) -> driver.Params:
    # A mapping binds named parameters and is passed through whole
    if isinstance(params, Mapping):
        return dict(params)
    return tuple(params)


class DatabaseMemory:
    """Fire-and-forget handle on a memory database."""

    def __init__(self, config: Optional[DatabaseConfig] = None):
        self.config = config or default_config
        self.database_name: Optional[str] = None
        self._connection: Optional[driver.Connection] = None

    @property
    def is_open(self) -> bool:
        return self._connection is not None

    @classmethod
    async def open(
        cls,
        database_name: str = ":memory:",
        config: Optional[DatabaseConfig] = None,
    ) -> "DatabaseMemory":
        """Open ``database_name``; errors are logged and raised."""
        manager = cls(config)
        future = asyncio.get_running_loop().create_future()
        connection = driver.Connection(
            database_name,
            driver.DEFAULT_MODE,
            completion_callback(future),
            timeout=manager.config.busy_timeout,
        )
        try:
            await future
        except Exception as e:
            logger.error(f"Failed to connect to the database {database_name}: {e}")
            raise

        manager._connection = connection
        manager.database_name = database_name
        logger.info(f"Connected to the database {database_name}.")
        return manager

    @classmethod
    async def create_shared_memory_database(
        cls,
        database_name: str,
        config: Optional[DatabaseConfig] = None,
    ) -> "DatabaseMemory":
        """Open a named memory database shared by every connection in the process."""
        return await cls.open(f"file:{database_name}?mode=memory&cache=shared", config)

    def _require_open(self) -> Optional[driver.Connection]:
        if self._connection is None:
            logger.error("Database is not open.")
        return self._connection

    def create_table(self, table_name: str, columns: Sequence[str]) -> None:
        connection = self._require_open()
        if connection is None:
            return
        query = f"CREATE TABLE IF NOT EXISTS {table_name} ({', '.join(columns)})"
        connection.run(
            query,
            (),
            _report(f"Table {table_name} created successfully.", "Failed to create table"),
        )

    def insert(self, table_name: str, columns: Sequence[str], values: Sequence[Any]) -> None:
        connection = self._require_open()
        if connection is None:
            return
        placeholders = ", ".join("?" for _ in columns)
        query = f"INSERT INTO {table_name} ({', '.join(columns)}) VALUES ({placeholders})"
        connection.run(
            query,
            tuple(values),
            _report(f"Data inserted into {table_name} successfully.", "Failed to insert data"),
        )

    def update(
        self,
        table_name: str,
        set_clause: str,
        where_clause: str,
        params: driver.Params = (),
    ) -> None:
        connection = self._require_open()
        if connection is None:
            return
        query = f"UPDATE {table_name} SET {set_clause} WHERE {where_clause}"
        connection.run(
            query,
            _bindings(params),
            _report(f"Data in {table_name} updated successfully.", "Failed to update data"),
        )

    def delete(self, table_name: str, where_clause: str, params: driver.Params = ()) -> None:
        connection = self._require_open()
        if connection is None:
            return
        query = f"DELETE FROM {table_name} WHERE {where_clause}"
        connection.run(
            query,
            _bindings(params),
            _report(f"Data from {table_name} deleted successfully.", "Failed to delete data"),
        )

    async def query(self, query: str, params: driver.Params = ()) -> List[Dict[str, Any]]:
        """Return every row of ``query``; runs after all writes issued before it."""
        connection = self._require_open()
        if connection is None:
            raise NotOpenError("Database is not open.")

        future = asyncio.get_running_loop().create_future()
        connection.all(query, _bindings(params), completion_callback(future))
        try:
            return await future
        except Exception as e:
            logger.error(f"Failed to query data: {e}")
            raise

    def close(self) -> Optional[asyncio.Future]:
        """
        Close the database without waiting for the driver.

        The handle is cleared at once; work issued earlier still runs first.

        Returns:
            Future resolving to True once closed (False on failure), or None
            when the database was not open
        """
        connection = self._require_open()
        if connection is None:
            return None

        closed = asyncio.get_running_loop().create_future()

        def callback(err: Optional[Exception]) -> None:
            if err is not None:
                logger.error(f"Failed to close the database: {err}")
            else:
                logger.info("Database connection closed.")
            if not closed.done():
                closed.set_result(err is None)

        connection.close(callback)
        self._connection = None
        return closed
