"""Configuration provider that loads settings from a database table."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Optional

from .query import build_select_query
from .schema import KEY_DELIMITER
from .watcher import ChangeNotification, ChangeRegistration, on_change

if TYPE_CHECKING:
    from .source import DatabaseConfigurationSource

logger = logging.getLogger(__name__)

_EMPTY: Mapping[str, Optional[str]] = MappingProxyType({})


class DatabaseConfigurationProvider:
    """Holds the current settings snapshot and keeps it fresh.

    The snapshot is an immutable mapping that is swapped wholesale on every
    successful load, so readers always see one complete load.

    Loading is fail-open: when the database is unreachable or the query is
    wrong, the error is recorded in ``last_error`` and logged, and the previous
    snapshot stays in place. On a sustained outage settings stop updating but
    never disappear.

    When the source carries a watcher, every notification it fires schedules a
    load and the provider immediately asks the watcher for the next one. This
    continues until ``close()``.
    """

    def __init__(self, source: DatabaseConfigurationSource):
        """Initialize provider.

        Must be called with a running event loop when the source has a
        periodic watcher, since arming it starts the watcher's timer task.

        Args:
            source: Descriptor with the row source, table layout and watcher
        """
        self._source = source
        self._data: Mapping[str, Optional[str]] = _EMPTY
        self._reload_token = ChangeNotification()
        self._pending: set[asyncio.Task] = set()
        self._closed = False
        self._change_registration: Optional[ChangeRegistration] = None

        self.last_error: Optional[BaseException] = None
        self.last_loaded_at: Optional[datetime] = None
        self.load_count = 0
        self.failure_count = 0

        if source.watcher is not None:
            self._change_registration = on_change(source.watcher.watch, self._on_watcher_change)

    @property
    def source(self) -> DatabaseConfigurationSource:
        return self._source

    @property
    def data(self) -> Mapping[str, Optional[str]]:
        """The current snapshot (read-only)."""
        return self._data

    @property
    def closed(self) -> bool:
        return self._closed

    def get(self, key: str, default: Any = None) -> Any:
        """Get a value from the current snapshot."""
        return self._data.get(key, default)

    def get_child_keys(self, earlier_keys: Iterable[str], parent_path: Optional[str]) -> list[str]:
        """Return the immediate child key segments below ``parent_path``.

        Args:
            earlier_keys: Child keys already produced by other providers
            parent_path: Colon-delimited parent path; None for the root

        Returns:
            Sorted list of child segments merged with ``earlier_keys``
        """
        prefix = f"{parent_path}{KEY_DELIMITER}" if parent_path else ""
        children = list(earlier_keys)
        for key in self._data:
            if prefix and not key.startswith(prefix):
                continue
            children.append(key[len(prefix):].split(KEY_DELIMITER, 1)[0])
        return sorted(children)

    def get_reload_token(self) -> ChangeNotification:
        """Return a notification that fires after the next successful load."""
        return self._reload_token

    def _query(self) -> str:
        source = self._source
        return build_select_query(
            source.table,
            source.key_column,
            source.value_column,
            schema=source.schema,
            quote=source.row_source.quote_identifier,
        )

    async def _fetch(self) -> dict[str, Optional[str]]:
        row_source = self._source.row_source
        if not row_source.is_open:
            await row_source.open()

        rows = await row_source.fetch_pairs(self._query())

        # Built privately and published in one assignment
        data: dict[str, Optional[str]] = {}
        for key, value in rows:
            if key is None:
                logger.warning(f"Skipping settings row with NULL key in {self._source.table}")
                continue
            data[str(key)] = None if value is None else str(value)
        return data

    async def _try_load(self) -> Optional[Exception]:
        """Fetch and publish a new snapshot.

        Returns:
            The error that prevented the load, or None on success
        """
        try:
            data = await self._fetch()
        except Exception as e:
            return e

        self._data = MappingProxyType(data)
        self.load_count += 1
        self.last_loaded_at = datetime.now(timezone.utc)
        logger.debug(f"Loaded {len(data)} settings from {self._source.table}")

        token, self._reload_token = self._reload_token, ChangeNotification()
        token.fire()
        return None

    async def load(self) -> None:
        """Load settings from the database, keeping the old snapshot on failure."""
        if self._closed:
            logger.warning("Ignoring load on a closed configuration provider")
            return
        await self._schedule_load()

    def _schedule_load(self) -> asyncio.Task:
        # Every in-flight load is tracked so close() can wait for it
        task = asyncio.get_running_loop().create_task(self._load())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _load(self) -> None:
        error = await self._try_load()
        if error is not None:
            self.last_error = error
            self.failure_count += 1
            logger.warning(
                f"Failed to load settings from {self._source.table}, keeping previous values: {error}"
            )

    async def reload(self) -> None:
        """Reload settings now. Safe to call at any time and concurrently."""
        await self.load()

    def _on_watcher_change(self) -> None:
        if self._closed:
            return
        self._schedule_load()

    async def close(self) -> None:
        """Stop watching, let in-flight loads finish, and close the connection.

        Loads already running when ``close()`` is called, whether started by
        the watcher or by a caller, may still publish. The row source is
        closed only after they finish.
        """
        if self._closed:
            return
        self._closed = True

        if self._change_registration is not None:
            self._change_registration.dispose()
            self._change_registration = None

        watcher = self._source.watcher
        if watcher is not None:
            await watcher.aclose()

        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

        row_source = self._source.row_source
        if row_source.is_open:
            try:
                await row_source.close()
            except Exception as e:
                logger.warning(f"Error closing settings row source {row_source!r}: {e}")

        logger.info(f"Configuration provider for {self._source.table} closed")

    async def __aenter__(self) -> DatabaseConfigurationProvider:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def __repr__(self) -> str:
        return (
            f"DatabaseConfigurationProvider(table='{self._source.table}', "
            f"keys={len(self._data)}, loads={self.load_count})"
        )
