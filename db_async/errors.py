"""
Database error types.

Errors raised by the adaptation layer itself. Errors coming from SQLite are
never wrapped: they reach the caller as the original ``sqlite3.Error``
instances, which ``DriverError`` names for ``except`` clauses.
"""

import sqlite3


DriverError = sqlite3.Error


class DatabaseError(Exception):
    """Base database error."""
    pass


class InvalidArgumentError(DatabaseError, TypeError):
    """An argument has the wrong type or shape (open mode, row function, page)."""
    pass


class AlreadyOpenError(DatabaseError):
    """The handle already owns a connection."""
    pass


class NotOpenError(DatabaseError):
    """The handle has no open connection."""
    pass
