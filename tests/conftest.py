"""Test configuration and fixtures for dbconfig tests."""

import asyncio
import threading
from typing import Any

import aiosqlite
import pytest

from dbconfig.backends import RowSource
from dbconfig.exceptions import DatabaseConnectionError, QueryError
from dbconfig.source import DatabaseConfigurationSource
from dbconfig.watcher import ManualWatcher


class FakeRowSource(RowSource):
    """In-memory row source with failure injection and call counters."""

    dialect = "fake"

    def __init__(self, rows=None):
        self.rows: list[tuple[Any, Any]] = list(rows or [])
        self.fail_fetch = False
        self.fail_open = False
        self.open_delay = 0.0
        self.fetch_delay = 0.0
        self.open_count = 0
        self.close_count = 0
        self.queries: list[str] = []
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    async def open(self) -> None:
        self.open_count += 1
        if self.open_delay:
            await asyncio.sleep(self.open_delay)
        if self.fail_open:
            raise DatabaseConnectionError("connection refused")
        self._open = True

    async def close(self) -> None:
        self.close_count += 1
        self._open = False

    async def fetch_pairs(self, query: str):
        self.queries.append(query)
        # Snapshot the rows before any delay, like a query reading committed data
        rows = list(self.rows)
        if self.fetch_delay:
            await asyncio.sleep(self.fetch_delay)
        if self.fail_fetch:
            raise QueryError("no such table: Settings", query)
        return rows


@pytest.fixture(autouse=True)
def reset_active_provider():
    """Clear the process-wide reload target between tests."""
    DatabaseConfigurationSource._active_provider = None
    yield
    DatabaseConfigurationSource._active_provider = None


@pytest.fixture
def fake_rows():
    """Row source preloaded with a small Site section."""
    return FakeRowSource([("Site:Name", "example.com"), ("Site:Port", "8080")])


@pytest.fixture
def manual_watcher():
    """Watcher that ticks only when the test says so."""
    watcher = ManualWatcher()
    yield watcher
    watcher.dispose()


@pytest.fixture
def settle():
    """Wait until a provider has no chain-triggered loads in flight."""

    async def _settle(provider):
        while provider._pending:
            await asyncio.gather(*list(provider._pending), return_exceptions=True)

    return _settle


async def _create_settings_table(path, table="Settings", key="Key", value="Value", rows=()):
    async with aiosqlite.connect(path) as db:
        await db.execute(f'CREATE TABLE "{table}" ("{key}" TEXT, "{value}" TEXT)')
        await db.executemany(f'INSERT INTO "{table}" VALUES (?, ?)', list(rows))
        await db.commit()


@pytest.fixture
async def settings_db(tmp_path):
    """Create a SQLite database with a default Settings table."""
    path = tmp_path / "settings.db"
    await _create_settings_table(
        path, rows=[("Site:Name", "example.com"), ("Site:Port", "8080")]
    )
    return path


@pytest.fixture
async def cfg_schema_db(tmp_path):
    """Create a database file to attach as schema "cfg" with a Configurations table."""
    path = tmp_path / "cfg.db"
    await _create_settings_table(
        path,
        table="Configurations",
        key="K",
        value="V",
        rows=[("Site:Name", "example.com"), ("Site:Port", "8080")],
    )
    return path


@pytest.fixture
def set_value():
    """Upsert a value in a SQLite settings table."""

    async def _set_value(path, key, value, table="Settings"):
        async with aiosqlite.connect(path) as db:
            await db.execute(f'DELETE FROM "{table}" WHERE "Key" = ?', (key,))
            await db.execute(f'INSERT INTO "{table}" VALUES (?, ?)', (key, value))
            await db.commit()

    return _set_value


@pytest.fixture
def make_rows():
    """Factory for additional in-memory row sources."""
    return FakeRowSource


@pytest.fixture
def thread_count_settle():
    """Wait for exiting driver threads so thread counts can be compared."""

    async def _settle(limit, attempts=200):
        for _ in range(attempts):
            if threading.active_count() <= limit:
                return
            await asyncio.sleep(0.01)

    return _settle
