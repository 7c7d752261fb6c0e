"""SQLite row source using aiosqlite."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any

import aiosqlite

from ..exceptions import DatabaseConnectionError, QueryError
from .base import RowSource

logger = logging.getLogger(__name__)


def parse_sqlite_url(url: str) -> str:
    """Extract the database path from a SQLite URL.

    Examples:
        >>> parse_sqlite_url("sqlite:///var/lib/app/settings.db")
        '/var/lib/app/settings.db'
        >>> parse_sqlite_url("sqlite://settings.db")
        'settings.db'
    """
    if url.startswith("sqlite://"):
        # sqlite:///abs/path keeps its leading slash, sqlite://rel/path does not
        return url[len("sqlite://"):]
    return url


class SQLiteRowSource(RowSource):
    """Row source backed by a single aiosqlite connection.

    SQLite has no schemas in the server sense. Schema-qualified settings
    tables are supported by attaching extra database files under the schema
    name.

    Examples:
        >>> source = SQLiteRowSource("app.db", attach={"cfg": "config.db"})
    """

    dialect = "sqlite"

    def __init__(self, database: str | Path, attach: dict[str, str | Path] | None = None):
        """Initialize SQLite row source.

        Args:
            database: Path to database file or ":memory:"
            attach: Optional mapping of schema name to database file
        """
        self.database = str(database)
        self.attach = {name: str(path) for name, path in (attach or {}).items()}
        self._connection: aiosqlite.Connection | None = None
        self._open_lock = asyncio.Lock()

    @property
    def is_open(self) -> bool:
        return self._connection is not None

    async def open(self) -> None:
        async with self._open_lock:
            if self._connection is not None:
                return
            try:
                connection = await aiosqlite.connect(self.database)
            except Exception as e:
                raise DatabaseConnectionError(
                    f"Failed to open SQLite database {self.database}: {e}"
                ) from e
            try:
                for schema, path in self.attach.items():
                    await connection.execute(
                        f"ATTACH DATABASE ? AS {self.quote_identifier(schema)}", (path,)
                    )
            except Exception as e:
                await connection.close()
                raise DatabaseConnectionError(
                    f"Failed to attach settings schema to {self.database}: {e}"
                ) from e
            self._connection = connection
            logger.info(f"Opened SQLite settings database: {self.database}")

    async def close(self) -> None:
        connection, self._connection = self._connection, None
        if connection is None:
            return
        await connection.close()
        logger.info(f"Closed SQLite settings database: {self.database}")

    async def fetch_pairs(self, query: str) -> list[tuple[Any, Any]]:
        if self._connection is None:
            raise QueryError("SQLite row source is not open", query)
        try:
            async with self._connection.execute(query) as cursor:
                rows = await cursor.fetchall()
        except Exception as e:
            raise QueryError(f"Query failed: {e}", query) from e
        return [(row[0], row[1]) for row in rows]
