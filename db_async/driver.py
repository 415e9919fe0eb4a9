"""
Callback SQLite Driver

Callback-style access to SQLite built on aiosqlite. Every operation is queued
on its connection, runs in submission order, and completes by calling
``callback(err, *values)`` on the event loop thread. ``err`` is ``None`` on
success; otherwise it is the original ``sqlite3.Error``.

Usage:
    from db_async import driver

    def on_open(err):
        ...

    def on_run(err, context):
        print(context.last_id, context.changes)

    conn = driver.Connection("app.db", driver.DEFAULT_MODE, on_open)
    conn.run("INSERT INTO items (name) VALUES (?)", ("widget",), on_run)
    conn.close(lambda err: None)
"""

import asyncio
import logging
import sqlite3
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence, Tuple, Union
from urllib.request import pathname2url

import aiosqlite

logger = logging.getLogger(__name__)

# Open flags, same values as SQLITE_OPEN_*
OPEN_READONLY = 0x00000001
OPEN_READWRITE = 0x00000002
OPEN_CREATE = 0x00000004
DEFAULT_MODE = OPEN_READWRITE | OPEN_CREATE

Params = Union[Sequence[Any], Dict[str, Any]]
Callback = Callable[..., None]
Work = Callable[[], Awaitable[Tuple[Any, ...]]]

_STOP = object()


@dataclass(frozen=True)
class RunContext:
    """State SQLite reports once a statement has been run."""

    last_id: int  # last_insert_rowid() of the connection
    changes: int  # rows modified by the statement


def resolve_target(filename: str, mode: int) -> Tuple[str, bool]:
    """
    Map a filename and open flags to an sqlite3 target.

    Returns:
        (database, uri) arguments for ``sqlite3.connect``
    """
    if mode & OPEN_READWRITE:
        access = "rwc" if mode & OPEN_CREATE else "rw"
    elif mode & OPEN_READONLY:
        access = "ro"
    else:
        raise sqlite3.ProgrammingError(f"Invalid open mode: {mode:#x}")

    # Anonymous databases ignore the access mode
    if filename in ("", ":memory:"):
        return filename, False

    if filename.startswith("file:"):
        if "mode=" in filename.partition("?")[2]:
            return filename, True
        separator = "&" if "?" in filename else "?"
        return f"{filename}{separator}mode={access}", True

    return f"file:{pathname2url(filename)}?mode={access}", True


def _row(row: Optional[sqlite3.Row]) -> Optional[Dict[str, Any]]:
    return dict(row) if row is not None else None


class Connection:
    """
    One SQLite connection driven by callbacks.

    A worker task drains the job queue, so operations on a connection never
    overlap and finish in the order they were submitted. Must be created
    while an event loop is running.
    """

    def __init__(
        self,
        filename: str,
        mode: int = DEFAULT_MODE,
        callback: Optional[Callback] = None,
        *,
        timeout: float = 5.0,
    ):
        self.filename = filename
        self.mode = mode
        self.timeout = timeout
        self.open = False

        self._db: Optional[aiosqlite.Connection] = None
        self._closing = False
        self._loop = asyncio.get_running_loop()
        self._jobs: asyncio.Queue = asyncio.Queue()
        self._worker = self._loop.create_task(
            self._drain(), name=f"db-async:{filename}"
        )

        self._submit("open", self._open, callback)

    # =========================================================================
    # Job queue
    # =========================================================================

    async def _drain(self) -> None:
        while True:
            job = await self._jobs.get()
            if job is _STOP:
                break
            await job()

    def _submit(
        self,
        label: str,
        work: Work,
        callback: Optional[Callback],
        sql: Optional[str] = None,
    ) -> None:
        """Queue ``work`` and report its outcome to ``callback``."""
        if self._closing:
            error = sqlite3.ProgrammingError("Cannot operate on a closed database.")
            self._loop.call_soon(self._notify, callback, error)
            return

        async def job() -> None:
            started = time.perf_counter()
            try:
                values = await work()
            except Exception as e:
                error, values = e, ()
            else:
                error = None

            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.debug(
                f"{label} {'failed' if error else 'done'} in {elapsed_ms:.1f}ms",
                extra={"sql": sql, "database": self.filename, "elapsed_ms": elapsed_ms},
            )
            self._notify(callback, error, *values)

        self._jobs.put_nowait(job)

    def _notify(self, callback: Optional[Callback], err: Optional[Exception], *values) -> None:
        if callback is None:
            if err is not None:
                logger.error(f"Unhandled driver error on {self.filename}: {err}")
            return
        try:
            callback(err, *values)
        except Exception:
            logger.exception(f"Callback raised on {self.filename}")

    def _connection(self) -> aiosqlite.Connection:
        if self._db is None:
            raise sqlite3.ProgrammingError("Database is not open.")
        return self._db

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def _open(self) -> Tuple[Any, ...]:
        try:
            database, uri = resolve_target(self.filename, self.mode)
            # autocommit=True: only explicit BEGIN/END open and close
            # transactions, and executescript never commits on its own
            db = await aiosqlite.connect(
                database, uri=uri, timeout=self.timeout, autocommit=True
            )
        except Exception:
            self._closing = True
            self._jobs.put_nowait(_STOP)
            raise

        db.row_factory = aiosqlite.Row
        self._db = db
        self.open = True
        return ()

    def close(self, callback: Optional[Callback] = None) -> None:
        """Close the connection once every queued operation has run."""

        async def work() -> Tuple[Any, ...]:
            db = self._connection()
            try:
                await db.close()
            except Exception:
                self._closing = False
                raise
            self._db = None
            self.open = False
            self._jobs.put_nowait(_STOP)
            return ()

        self._submit("close", work, callback)
        self._closing = True

    # =========================================================================
    # Statements
    # =========================================================================

    def run(self, sql: str, params: Params = (), callback: Optional[Callback] = None) -> None:
        """Run one statement; callback(err, RunContext)."""

        async def work() -> Tuple[Any, ...]:
            cursor = await self._connection().execute(sql, params)
            try:
                return (RunContext(cursor.lastrowid or 0, max(cursor.rowcount, 0)),)
            finally:
                await cursor.close()

        self._submit("run", work, callback, sql)

    def get(self, sql: str, params: Params = (), callback: Optional[Callback] = None) -> None:
        """Fetch the first row; callback(err, row or None)."""

        async def work() -> Tuple[Any, ...]:
            cursor = await self._connection().execute(sql, params)
            try:
                return (_row(await cursor.fetchone()),)
            finally:
                await cursor.close()

        self._submit("get", work, callback, sql)

    def all(self, sql: str, params: Params = (), callback: Optional[Callback] = None) -> None:
        """Fetch every row; callback(err, rows)."""

        async def work() -> Tuple[Any, ...]:
            cursor = await self._connection().execute(sql, params)
            try:
                return ([dict(row) for row in await cursor.fetchall()],)
            finally:
                await cursor.close()

        self._submit("all", work, callback, sql)

    def each(
        self,
        sql: str,
        params: Params,
        row_callback: Callback,
        callback: Optional[Callback] = None,
    ) -> None:
        """Call row_callback(None, row) per row, then callback(err, count)."""

        async def work() -> Tuple[Any, ...]:
            cursor = await self._connection().execute(sql, params)
            count = 0
            try:
                async for row in cursor:
                    count += 1
                    self._notify(row_callback, None, dict(row))
            finally:
                await cursor.close()
            return (count,)

        self._submit("each", work, callback, sql)

    def exec(self, sql: str, callback: Optional[Callback] = None) -> None:
        """Run a script of one or more statements; callback(err)."""

        async def work() -> Tuple[Any, ...]:
            cursor = await self._connection().executescript(sql)
            await cursor.close()
            return ()

        self._submit("exec", work, callback, sql)

    def prepare(
        self,
        sql: str,
        params: Params = (),
        callback: Optional[Callback] = None,
    ) -> "Statement":
        """Compile ``sql``; callback(err) once the statement is usable."""
        statement = Statement(self, sql, params)
        self._submit("prepare", statement._compile, callback, sql)
        return statement


class Statement:
    """
    Prepared statement bound to a Connection.

    sqlite3 keeps its own cache of compiled statements; this object holds the
    SQL text, the bound parameters and the cursor ``get`` steps through.
    """

    def __init__(self, connection: Connection, sql: str, params: Params = ()):
        self.connection = connection
        self.sql = sql
        self.finalized = False
        self._params: Params = params
        self._cursor: Optional[aiosqlite.Cursor] = None

    def _check(self) -> aiosqlite.Connection:
        if self.finalized:
            raise sqlite3.ProgrammingError("Statement is already finalized.")
        return self.connection._connection()

    async def _discard_cursor(self) -> None:
        if self._cursor is not None:
            cursor, self._cursor = self._cursor, None
            await cursor.close()

    async def _rebind(self, params: Params) -> None:
        if params:
            self._params = params
            await self._discard_cursor()

    async def _compile(self) -> Tuple[Any, ...]:
        try:
            cursor = await self._check().execute(f"EXPLAIN {self.sql}", self._params)
        except sqlite3.ProgrammingError as e:
            # Compiled fine, parameters simply are not bound yet
            if self._params or not str(e).startswith("Incorrect number of bindings"):
                raise
        else:
            await cursor.close()
        return ()

    def _submit(self, label: str, work: Work, callback: Optional[Callback]) -> None:
        self.connection._submit(f"statement.{label}", work, callback, self.sql)

    def bind(self, params: Params = (), callback: Optional[Callback] = None) -> None:
        async def work() -> Tuple[Any, ...]:
            self._check()
            await self._discard_cursor()
            self._params = params
            return ()

        self._submit("bind", work, callback)

    def reset(self, callback: Optional[Callback] = None) -> None:
        async def work() -> Tuple[Any, ...]:
            self._check()
            await self._discard_cursor()
            return ()

        self._submit("reset", work, callback)

    def finalize(self, callback: Optional[Callback] = None) -> None:
        async def work() -> Tuple[Any, ...]:
            self._check()
            await self._discard_cursor()
            self.finalized = True
            return ()

        self._submit("finalize", work, callback)

    def run(self, params: Params = (), callback: Optional[Callback] = None) -> None:
        async def work() -> Tuple[Any, ...]:
            db = self._check()
            await self._rebind(params)
            await self._discard_cursor()
            cursor = await db.execute(self.sql, self._params)
            try:
                return (RunContext(cursor.lastrowid or 0, max(cursor.rowcount, 0)),)
            finally:
                await cursor.close()

        self._submit("run", work, callback)

    def get(self, params: Params = (), callback: Optional[Callback] = None) -> None:
        """Step one row; later calls continue from it until reset."""

        async def work() -> Tuple[Any, ...]:
            db = self._check()
            await self._rebind(params)
            if self._cursor is None:
                self._cursor = await db.execute(self.sql, self._params)
            return (_row(await self._cursor.fetchone()),)

        self._submit("get", work, callback)

    def all(self, params: Params = (), callback: Optional[Callback] = None) -> None:
        async def work() -> Tuple[Any, ...]:
            db = self._check()
            await self._rebind(params)
            await self._discard_cursor()
            cursor = await db.execute(self.sql, self._params)
            try:
                return ([dict(row) for row in await cursor.fetchall()],)
            finally:
                await cursor.close()

        self._submit("all", work, callback)

    def each(
        self,
        params: Params,
        row_callback: Callback,
        callback: Optional[Callback] = None,
    ) -> None:
        async def work() -> Tuple[Any, ...]:
            db = self._check()
            await self._rebind(params)
            await self._discard_cursor()
            cursor = await db.execute(self.sql, self._params)
            count = 0
            try:
                async for row in cursor:
                    count += 1
                    self.connection._notify(row_callback, None, dict(row))
            finally:
                await cursor.close()
            return (count,)

        self._submit("each", work, callback)
