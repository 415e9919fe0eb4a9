"""
Async Database Layer

Awaitable interface to the callback SQLite driver. Each driver callback
settles exactly one future, so callers write linear ``await`` code.

Usage:
    from db_async import Database

    db = await Database.connect("data/app.db")

    # Statements
    result = await db.run("INSERT INTO items (name) VALUES (?)", "widget")
    row = await db.get("SELECT * FROM items WHERE _id = ?", result.last_id)
    rows = await db.all("SELECT * FROM items")

    # All-or-nothing
    async def rename(tx):
        await tx.run("UPDATE items SET name = ? WHERE _id = ?", "gadget", 1)

    await db.transaction(rename)

    await db.close()
"""

import asyncio
import inspect
import logging
import math
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Union

from db_async import driver
from db_async.config import DatabaseConfig, config as default_config
from db_async.errors import AlreadyOpenError, InvalidArgumentError, NotOpenError
from db_async.query import QueryOptions, QueryResult, build_query

logger = logging.getLogger(__name__)

Row = Dict[str, Any]
Options = Union[QueryOptions, Mapping[str, Any], None]


@dataclass(frozen=True)
class RunResult:
    """Outcome of a run."""

    last_id: int  # Row id of the most recent insert
    changes: int  # Rows modified by the statement


# =============================================================================
# Callback adaptation
# =============================================================================


def bind_params(params: Sequence[Any]) -> driver.Params:
    """
    Turn positional arguments into one explicit binding set.

    A single list, tuple or dict argument is the binding set itself (a dict
    binds named parameters); anything else binds positionally.
    """
    if len(params) == 1 and isinstance(params[0], (list, tuple, dict)):
        return params[0]
    return tuple(params)


def completion_callback(
    future: asyncio.Future,
    transform: Optional[Callable[..., Any]] = None,
) -> driver.Callback:
    """Driver callback that settles ``future`` once from ``(err, *values)``."""

    def callback(err: Optional[Exception], *values: Any) -> None:
        if future.done():
            return
        if err is not None:
            future.set_exception(err)
        elif transform is not None:
            future.set_result(transform(*values))
        else:
            future.set_result(values[0] if values else None)

    return callback


def run_callback(future: asyncio.Future) -> driver.Callback:
    """Completion for run: capture the run context the driver hands back."""

    def callback(err: Optional[Exception], context: Optional[driver.RunContext] = None) -> None:
        if future.done():
            return
        if err is not None:
            future.set_exception(err)
        else:
            future.set_result(RunResult(last_id=context.last_id, changes=context.changes))

    return callback


def row_callback(future: asyncio.Future, row_fn: Callable[[Row], Any]) -> driver.Callback:
    """Per-row driver callback; an error in ``row_fn`` fails the future."""

    def callback(err: Optional[Exception], row: Optional[Row] = None) -> None:
        if future.done() or err is not None:
            return
        try:
            result = row_fn(row)
        except Exception as e:
            future.set_exception(e)
            return
        if inspect.isawaitable(result):
            if inspect.iscoroutine(result):
                result.close()
            future.set_exception(
                InvalidArgumentError("each: row function returned an awaitable")
            )

    return callback


def split_row_fn(owner: str, params: Sequence[Any]):
    """Separate the trailing row function of an ``each`` call."""
    if not params or not callable(params[-1]):
        raise InvalidArgumentError(f"{owner}.each: last arg is not a function")
    if inspect.iscoroutinefunction(params[-1]):
        raise InvalidArgumentError(f"{owner}.each: row function must not be async")
    return params[:-1], params[-1]


async def _call(fn: Callable[..., Any], *args: Any) -> Any:
    result = fn(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


def _future() -> asyncio.Future:
    return asyncio.get_running_loop().create_future()


# =============================================================================
# Database
# =============================================================================


class Database:
    """
    Async handle on one SQLite connection.

    Owns at most one driver connection, attached by a successful open and
    cleared by a successful close. Statements prepared from it are not
    tracked: finalize them before closing.
    """

    OPEN_READONLY = driver.OPEN_READONLY
    OPEN_READWRITE = driver.OPEN_READWRITE
    OPEN_CREATE = driver.OPEN_CREATE

    def __init__(self, config: Optional[DatabaseConfig] = None):
        self.config = config or default_config
        self.filename: Optional[str] = None
        self._connection: Optional[driver.Connection] = None
        self._opening = False
        self._closing = False

    @classmethod
    async def connect(
        cls,
        filename: str,
        mode: Optional[int] = None,
        config: Optional[DatabaseConfig] = None,
    ) -> "Database":
        """Create a handle and open ``filename`` with it."""
        return await cls(config).open(filename, mode)

    @property
    def is_open(self) -> bool:
        """Check if the handle owns a connection."""
        return self._connection is not None

    async def __aenter__(self) -> "Database":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._connection is not None:
            await self.close()

    def _require_open(self, operation: str) -> driver.Connection:
        if self._connection is None:
            raise NotOpenError(f"Database.{operation}: database is not open")
        return self._connection

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def open(self, filename: str, mode: Optional[int] = None) -> "Database":
        """
        Open the database file.

        Args:
            filename: Database path, ``:memory:`` or a ``file:`` URI
            mode: Open flags, defaults to OPEN_READWRITE | OPEN_CREATE

        Returns:
            This handle

        Raises:
            InvalidArgumentError: mode is not an integer bitmask
            AlreadyOpenError: the handle is open or being opened
            sqlite3.Error: the driver could not open the file
        """
        if mode is None:
            mode = driver.DEFAULT_MODE
        elif isinstance(mode, bool) or not isinstance(mode, int):
            raise InvalidArgumentError("Database.open: mode is not a number")

        if self._connection is not None or self._opening:
            raise AlreadyOpenError("Database.open: database is already open")

        future = _future()
        self._opening = True
        try:
            connection = driver.Connection(
                filename, mode, completion_callback(future), timeout=self.config.busy_timeout
            )
            try:
                await future
            except asyncio.CancelledError:
                # The open job still runs; release whatever it opens
                connection.close()
                raise
        finally:
            self._opening = False

        self._connection = connection
        self.filename = filename
        logger.info(f"Opened database: {filename}")
        return self

    async def close(self, fn: Optional[Callable[["Database"], Any]] = None) -> Any:
        """
        Close the connection.

        With ``fn``, run ``fn(self)`` first and close whether or not it
        fails. The result of ``fn`` is returned and its error re-raised.
        Without ``fn``, return this handle. If the driver fails to close,
        the connection stays attached so the close can be retried.
        """
        connection = self._require_open("close")

        if fn is not None:
            try:
                return await _call(fn, self)
            finally:
                await self.close()

        if self._closing:
            raise NotOpenError("Database.close: database is not open")

        future = _future()
        self._closing = True
        try:
            connection.close(completion_callback(future))
            await future
        finally:
            self._closing = False

        self._connection = None
        logger.info(f"Database connection closed: {self.filename}")
        return self

    # =========================================================================
    # Statements
    # =========================================================================

    async def run(self, sql: str, *params: Any) -> RunResult:
        """
        Execute one statement.

        Returns:
            RunResult with the last inserted row id and the changed row count
        """
        connection = self._require_open("run")
        future = _future()
        connection.run(sql, bind_params(params), run_callback(future))
        return await future

    async def get(self, sql: str, *params: Any) -> Optional[Row]:
        """Return the first row of a query, or None when nothing matched."""
        connection = self._require_open("get")
        future = _future()
        connection.get(sql, bind_params(params), completion_callback(future))
        return await future

    async def all(self, sql: str, *params: Any) -> List[Row]:
        """Return every row of a query."""
        connection = self._require_open("all")
        future = _future()
        connection.all(sql, bind_params(params), completion_callback(future))
        return await future

    def each(self, sql: str, *params: Any) -> Awaitable[int]:
        """
        Call a row function for every row of a query.

        The last positional argument is the row function. Its absence raises
        InvalidArgumentError here, before anything is awaited.

        Returns:
            Awaitable resolving to the number of rows iterated
        """
        params, row_fn = split_row_fn("Database", params)
        return self._each(sql, params, row_fn)

    async def _each(self, sql: str, params: Sequence[Any], row_fn: Callable[[Row], Any]) -> int:
        connection = self._require_open("each")
        future = _future()
        connection.each(
            sql, bind_params(params), row_callback(future, row_fn), completion_callback(future)
        )
        return await future

    async def exec(self, sql: str) -> "Database":
        """Run a script of one or more statements."""
        connection = self._require_open("exec")
        future = _future()
        connection.exec(sql, completion_callback(future, lambda: self))
        return await future

    async def prepare(self, sql: str, *params: Any) -> "Statement":
        """Compile ``sql`` into a Statement, binding ``params`` if given."""
        connection = self._require_open("prepare")
        future = _future()
        statement = connection.prepare(sql, bind_params(params), completion_callback(future))
        await future
        return Statement(statement)

    async def transaction(self, fn: Callable[["Database"], Any]) -> Any:
        """
        Run ``fn(self)`` inside BEGIN TRANSACTION / END TRANSACTION.

        On any error from ``fn`` or from the commit, ROLLBACK TRANSACTION is
        issued and the original error re-raised. Cancellation rolls back the
        same way. A failed rollback is logged and noted on that error; it
        never replaces it.
        """
        try:
            await self.exec("BEGIN TRANSACTION")
        except asyncio.CancelledError as e:
            # BEGIN is already queued and runs regardless
            await self._rollback(e)
            raise
        try:
            result = await _call(fn, self)
            await self.exec("END TRANSACTION")
        except BaseException as e:
            await self._rollback(e)
            raise
        return result

    async def _rollback(self, error: BaseException) -> None:
        try:
            await self.exec("ROLLBACK TRANSACTION")
        except Exception as rollback_error:
            logger.error(f"Rollback failed after {error!r}: {rollback_error}")
            error.add_note(f"ROLLBACK TRANSACTION failed: {rollback_error!r}")

    # =========================================================================
    # List queries and CRUD helpers
    # =========================================================================

    async def query(self, options: Options, table: str, keys: Sequence[str]) -> QueryResult:
        """List query selecting every column."""
        return await self.query_with_select(options, table, keys, "*")

    async def query_with_select(
        self,
        options: Options,
        table: str,
        keys: Sequence[str],
        select: str,
    ) -> QueryResult:
        """
        List query with keyword search and optional pagination.

        Args:
            options: key / condition / page / pagecap
            table: Table to query
            keys: Columns searched for ``options.key``
            select: Projection

        Returns:
            QueryResult; allcount, page, pagecap and pagecount are set when a
            page was requested
        """
        self._require_open("query")
        plan = build_query(options, table, keys, select, config=self.config)

        result = QueryResult()
        if plan.count_sql is not None:
            counted = await self.get(plan.count_sql)
            result.allcount = counted["count"] if counted else 0
            result.page = plan.page
            result.pagecap = plan.pagecap
            result.pagecount = math.ceil(result.allcount / plan.pagecap)

        result.rows = await self.all(plan.sql)
        return result

    async def delete(self, ids: str, table: str) -> int:
        """
        Delete rows by ``_id``.

        Args:
            ids: Comma-separated ids, bound as text parameters
            table: Table to delete from

        Returns:
            Number of rows deleted
        """
        self._require_open("delete")
        values = [value.strip() for value in ids.split(",")]
        placeholders = ", ".join("?" for _ in values)
        result = await self.run(f"DELETE FROM {table} WHERE _id IN ({placeholders})", values)
        return result.changes


# =============================================================================
# Statement
# =============================================================================


class Statement:
    """Async handle on one prepared driver statement."""

    def __init__(self, statement: driver.Statement):
        if not isinstance(statement, driver.Statement):
            raise InvalidArgumentError("Statement: 'statement' is not a statement instance")
        self._statement = statement

    @property
    def sql(self) -> str:
        return self._statement.sql

    async def bind(self, *params: Any) -> "Statement":
        future = _future()
        self._statement.bind(bind_params(params), completion_callback(future, lambda: self))
        return await future

    async def reset(self) -> "Statement":
        future = _future()
        self._statement.reset(completion_callback(future, lambda: self))
        return await future

    async def finalize(self) -> None:
        """Release the statement; it must not be used afterwards."""
        future = _future()
        self._statement.finalize(completion_callback(future))
        await future

    async def run(self, *params: Any) -> RunResult:
        future = _future()
        self._statement.run(bind_params(params), run_callback(future))
        return await future

    async def get(self, *params: Any) -> Optional[Row]:
        """Next row of the statement, or None once exhausted."""
        future = _future()
        self._statement.get(bind_params(params), completion_callback(future))
        return await future

    async def all(self, *params: Any) -> List[Row]:
        future = _future()
        self._statement.all(bind_params(params), completion_callback(future))
        return await future

    def each(self, *params: Any) -> Awaitable[int]:
        params, row_fn = split_row_fn("Statement", params)
        return self._each(params, row_fn)

    async def _each(self, params: Sequence[Any], row_fn: Callable[[Row], Any]) -> int:
        future = _future()
        self._statement.each(
            bind_params(params), row_callback(future, row_fn), completion_callback(future)
        )
        return await future
