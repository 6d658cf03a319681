"""
Database module for netmon - async SQLite connection wrapper.
"""

import logging
from typing import Optional

import aiosqlite

from netmon.errors import StorageError
from .schema import SCHEMA_SQL

logger = logging.getLogger(__name__)


class Database:
    """Async SQLite connection with schema bootstrap."""

    def __init__(self, db_path: str):
        """
        Initialize the database.

        Args:
            db_path: Path to the SQLite database file, or ':memory:'.
        """
        self.db_path = db_path
        self.connection: Optional[aiosqlite.Connection] = None

    async def __aenter__(self) -> "Database":
        """Enter async context manager."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Exit async context manager."""
        await self.close()

    async def initialize(self):
        """
        Initialize the database connection and create tables.
        """
        self.connection = await aiosqlite.connect(self.db_path)
        await self.connection.execute("PRAGMA foreign_keys = ON")
        await self.connection.executescript(SCHEMA_SQL)
        await self.connection.commit()
        logger.debug(f"Database initialized at {self.db_path}")

    async def close(self):
        if self.connection:
            await self.connection.close()
            self.connection = None

    def _require_connection(self) -> aiosqlite.Connection:
        if not self.connection:
            raise StorageError("Database not initialized. Call initialize() first.")
        return self.connection

    async def execute(self, query: str, parameters: tuple = ()) -> aiosqlite.Cursor:
        """
        Execute a query on the database.
        """
        return await self._require_connection().execute(query, parameters)

    async def executemany(self, query: str, parameters: list) -> None:
        await self._require_connection().executemany(query, parameters)

    async def fetchone(self, query: str, parameters: tuple = ()):
        async with self._require_connection().execute(query, parameters) as cursor:
            return await cursor.fetchone()

    async def fetchall(self, query: str, parameters: tuple = ()):
        async with self._require_connection().execute(query, parameters) as cursor:
            return await cursor.fetchall()

    async def commit(self) -> None:
        await self._require_connection().commit()
