"""SQLite connection and initialization utilities."""

import logging
import sqlite3
from pathlib import Path

from .schema import get_init_schema
from ..core.exceptions import StorageError

logger = logging.getLogger(__name__)


class DatabaseConnection:
    """Own the single SQLite connection behind the durable key-value store.

    The storage layer runs on one event loop, so one connection is enough.
    Every statement runs in autocommit mode.
    """

    __slots__ = ("db_path", "_connection", "_initialized")

    def __init__(self, db_path="./cyberguard.db"):
        self.db_path = Path(db_path)
        self._connection = None
        self._initialized = False

    def initialize(self):
        """Create tables if needed. Safe to call more than once."""
        if self._initialized:
            return

        try:
            if str(self.db_path) != ":memory:":
                self.db_path.parent.mkdir(parents=True, exist_ok=True)

            conn = self._get_connection()
            for statement in get_init_schema():
                conn.execute(statement)
            self._initialized = True
            logger.debug("Durable store ready at %s", self.db_path)

        except (sqlite3.Error, OSError) as e:
            raise StorageError(f"Failed to initialize database: {e}")

    def _get_connection(self):
        if self._connection is None:
            self._connection = sqlite3.connect(str(self.db_path), isolation_level=None)
            self._connection.row_factory = sqlite3.Row
        return self._connection

    def execute(self, query, params=()):
        """Execute a single SQL statement and return the affected row count."""
        try:
            cursor = self._get_connection().execute(query, params)
            try:
                return cursor.rowcount
            finally:
                cursor.close()
        except sqlite3.Error as e:
            raise StorageError(f"Query failed: {e}")

    def fetch_one(self, query, params=()):
        """Fetch a single row as a dict or None."""
        try:
            cursor = self._get_connection().execute(query, params)
            try:
                row = cursor.fetchone()
                return dict(row) if row else None
            finally:
                cursor.close()
        except sqlite3.Error as e:
            raise StorageError(f"Query failed: {e}")

    def fetch_all(self, query, params=()):
        """Fetch all rows as a list of dicts."""
        try:
            cursor = self._get_connection().execute(query, params)
            try:
                return [dict(row) for row in cursor.fetchall()]
            finally:
                cursor.close()
        except sqlite3.Error as e:
            raise StorageError(f"Query failed: {e}")

    def close(self):
        if self._connection is not None:
            self._connection.close()
            self._connection = None
            self._initialized = False
