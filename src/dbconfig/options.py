"""Options for database-backed configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from .exceptions import ConfigurationError
from .watcher import PeriodicWatcher


@dataclass
class DatabaseConfigurationOptions:
    """How to find settings in the database and how often to reload them.

    Attributes:
        schema: Schema holding the settings table; empty means unqualified
        table: Settings table name
        key_column: Column holding configuration keys
        value_column: Column holding configuration values
        auto_reload: Reload interval in seconds or as a timedelta; zero disables
    """

    schema: str = ""
    table: str = "Settings"
    key_column: str = "Key"
    value_column: str = "Value"
    auto_reload: float | timedelta = 0

    @property
    def reload_interval(self) -> float:
        """Auto-reload interval in seconds."""
        if isinstance(self.auto_reload, timedelta):
            return self.auto_reload.total_seconds()
        return float(self.auto_reload)

    def create_watcher(self) -> Optional[PeriodicWatcher]:
        """Create the periodic watcher, or None when auto-reload is disabled."""
        if self.reload_interval > 0:
            return PeriodicWatcher(self.reload_interval)
        return None

    @classmethod
    def from_env(cls, prefix: str = "DBCONFIG_") -> DatabaseConfigurationOptions:
        """Create options from environment variables.

        Reads ``{prefix}SCHEMA``, ``{prefix}TABLE``, ``{prefix}KEY_COLUMN``,
        ``{prefix}VALUE_COLUMN`` and ``{prefix}AUTO_RELOAD`` (seconds). Unset
        variables keep their defaults.
        """
        options = cls()
        for name in ("schema", "table", "key_column", "value_column"):
            value = os.environ.get(f"{prefix}{name.upper()}")
            if value is not None:
                setattr(options, name, value)

        auto_reload = os.environ.get(f"{prefix}AUTO_RELOAD")
        if auto_reload:
            try:
                options.auto_reload = float(auto_reload)
            except ValueError as e:
                raise ConfigurationError(
                    f"Invalid {prefix}AUTO_RELOAD value {auto_reload!r}: expected seconds"
                ) from e

        return options
