"""
Pytest configuration and shared fixtures.

This file is automatically loaded by pytest.
"""

import asyncio

import pytest

from db_async import driver
from db_async.database import Database


ITEMS_SCHEMA = """
    CREATE TABLE items (
        _id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL UNIQUE,
        value REAL
    )
"""


class FakeConnection:
    """
    Stand-in driver connection that records the SQL it is given.

    Replies on the next loop iteration, like the real driver. Set
    ``fail_on[sql]`` to make a statement report an error.
    """

    instances = []

    def __init__(self, filename, mode=driver.DEFAULT_MODE, callback=None, *, timeout=5.0):
        self.filename = filename
        self.mode = mode
        self.timeout = timeout
        self.statements = []
        self.fail_on = {}
        self.close_error = None
        self.closed = False
        self._loop = asyncio.get_running_loop()
        FakeConnection.instances.append(self)
        self._reply(callback, None)

    def _reply(self, callback, err, *values):
        if callback is None:
            return
        self._loop.call_soon(callback, err, *values)

    def exec(self, sql, callback):
        self.statements.append(sql)
        self._reply(callback, self.fail_on.get(sql))

    def run(self, sql, params, callback):
        self.statements.append(sql)
        self._reply(callback, self.fail_on.get(sql), driver.RunContext(7, 1))

    def get(self, sql, params, callback):
        self.statements.append(sql)
        self._reply(callback, self.fail_on.get(sql), {"count": 0})

    def all(self, sql, params, callback):
        self.statements.append(sql)
        self._reply(callback, self.fail_on.get(sql), [])

    def close(self, callback=None):
        self.closed = self.close_error is None
        self._reply(callback, self.close_error)


@pytest.fixture
def fake_driver(monkeypatch):
    """Replace the driver connection with FakeConnection."""
    FakeConnection.instances = []
    monkeypatch.setattr(driver, "Connection", FakeConnection)
    return FakeConnection


@pytest.fixture
def temp_db_path(tmp_path):
    """Create temporary database path for testing."""
    return str(tmp_path / "test.db")


@pytest.fixture
async def db(temp_db_path):
    """Open database with an empty items table."""
    database = await Database.connect(temp_db_path)
    await database.exec(ITEMS_SCHEMA)

    yield database

    if database.is_open:
        await database.close()


@pytest.fixture
async def db_with_data(db):
    """Items table holding alpha, beta and gamma."""
    for name, value in [("alpha", 1.0), ("beta", 2.0), ("gamma", 3.0)]:
        await db.run("INSERT INTO items (name, value) VALUES (?, ?)", name, value)
    return db
