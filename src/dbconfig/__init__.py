"""Reloadable configuration backed by a database settings table."""

from .backends import RowSource, SQLiteRowSource, create_row_source
from .exceptions import (
    ConfigurationError,
    DatabaseConnectionError,
    DatabaseError,
    QueryError,
    WatcherDisposedError,
)
from .extension import add_database
from .manager import ConfigurationManager
from .options import DatabaseConfigurationOptions
from .provider import DatabaseConfigurationProvider
from .source import DatabaseConfigurationSource
from .watcher import (
    ChangeNotification,
    ChangeWatcher,
    ManualWatcher,
    PeriodicWatcher,
    on_change,
)

__all__ = [
    "ChangeNotification",
    "ChangeWatcher",
    "ConfigurationError",
    "ConfigurationManager",
    "DatabaseConfigurationOptions",
    "DatabaseConfigurationProvider",
    "DatabaseConfigurationSource",
    "DatabaseConnectionError",
    "DatabaseError",
    "ManualWatcher",
    "PeriodicWatcher",
    "QueryError",
    "RowSource",
    "SQLiteRowSource",
    "WatcherDisposedError",
    "add_database",
    "create_row_source",
    "on_change",
]

__version__ = "0.1.0"
