"""Database configuration source descriptor."""

from __future__ import annotations

import logging
from typing import ClassVar, Optional

from .backends import RowSource
from .exceptions import ConfigurationError
from .options import DatabaseConfigurationOptions
from .provider import DatabaseConfigurationProvider
from .watcher import ChangeWatcher

logger = logging.getLogger(__name__)


class DatabaseConfigurationSource:
    """Describes where settings live and builds the provider that loads them.

    Each descriptor builds exactly one provider. The most recently built
    provider of any descriptor is also kept in a process-wide slot so that
    ``DatabaseConfigurationSource.reload()`` can refresh settings without a
    reference to the provider.

    Only a single active instance is reachable that way: building a second
    source gives an independent provider, but the process-wide reload then
    targets the new one and no longer reaches the first. Hold on to the
    provider (or use ``ConfigurationManager.reload``) when running several
    database sources side by side.
    """

    _active_provider: ClassVar[Optional[DatabaseConfigurationProvider]] = None

    def __init__(
        self,
        row_source: RowSource,
        *,
        schema: str = "",
        table: str = "Settings",
        key_column: str = "Key",
        value_column: str = "Value",
        watcher: Optional[ChangeWatcher] = None,
    ):
        """Initialize database configuration source.

        Args:
            row_source: Connection to the database holding the settings table
            schema: Schema holding the settings table; empty means unqualified
            table: Settings table name
            key_column: Column holding configuration keys
            value_column: Column holding configuration values
            watcher: Optional watcher that triggers automatic reloads

        Raises:
            ConfigurationError: If the row source or an identifier is missing
        """
        if row_source is None:
            raise ConfigurationError("A row source is required for database configuration")
        for label, value in (("table", table), ("key column", key_column), ("value column", value_column)):
            if not value or not value.strip():
                raise ConfigurationError(f"Database configuration {label} must not be empty")

        self.row_source = row_source
        self.schema = schema or ""
        self.table = table
        self.key_column = key_column
        self.value_column = value_column
        self.watcher = watcher
        self._provider: Optional[DatabaseConfigurationProvider] = None

    @classmethod
    def from_options(
        cls, row_source: RowSource, options: DatabaseConfigurationOptions
    ) -> DatabaseConfigurationSource:
        """Create a source from options, adding a periodic watcher if auto-reload is on."""
        return cls(
            row_source,
            schema=options.schema,
            table=options.table,
            key_column=options.key_column,
            value_column=options.value_column,
            watcher=options.create_watcher(),
        )

    @property
    def qualified_table(self) -> str:
        return f"{self.schema}.{self.table}" if self.schema.strip() else self.table

    def build(self) -> DatabaseConfigurationProvider:
        """Build the provider for this source and make it the reload target.

        Building again returns the same provider.
        """
        if self._provider is None:
            self._provider = DatabaseConfigurationProvider(self)
            logger.info(f"Built configuration provider for {self.qualified_table}")

        DatabaseConfigurationSource._active_provider = self._provider
        return self._provider

    @classmethod
    def active_provider(cls) -> Optional[DatabaseConfigurationProvider]:
        """The provider targeted by ``reload()``, if any."""
        return DatabaseConfigurationSource._active_provider

    @classmethod
    async def reload(cls) -> None:
        """Reload the most recently built provider.

        A no-op before anything was built or once that provider is closed.
        """
        provider = DatabaseConfigurationSource._active_provider
        if provider is None or provider.closed:
            return
        await provider.reload()

    def __repr__(self) -> str:
        return (
            f"DatabaseConfigurationSource(table='{self.qualified_table}', "
            f"key='{self.key_column}', value='{self.value_column}', watcher={self.watcher!r})"
        )
