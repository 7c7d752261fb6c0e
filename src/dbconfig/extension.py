"""Builder entry point for adding database settings to a configuration manager."""

import os
from typing import Callable, Optional

from .backends import RowSource, create_row_source
from .exceptions import ConfigurationError
from .manager import ConfigurationManager
from .options import DatabaseConfigurationOptions
from .source import DatabaseConfigurationSource


def add_database(
    manager: ConfigurationManager,
    row_source: Optional[RowSource] = None,
    configure: Optional[Callable[[DatabaseConfigurationOptions], None]] = None,
    *,
    url: Optional[str] = None,
    options: Optional[DatabaseConfigurationOptions] = None,
) -> ConfigurationManager:
    """Add a database-backed configuration source to a manager.

    Settings are read from a two-column (key, value) table. A positive
    ``auto_reload`` interval reloads them periodically in the background.

    Args:
        manager: Configuration manager to add the source to
        row_source: Connection to the settings database; built from ``url``
            or the DATABASE_URL environment variable when omitted
        configure: Optional callable that adjusts the options in place
        url: Database URL used when no row source is given
        options: Starting options; defaults to DatabaseConfigurationOptions()

    Returns:
        The manager, for chaining

    Example:
        manager = ConfigurationManager()

        def configure(opts):
            opts.schema = "app_config"
            opts.table = "Settings"
            opts.auto_reload = timedelta(minutes=5)

        add_database(manager, url="sqlite:///var/lib/app/settings.db", configure=configure)
        await manager.load()
        print(manager.get("Site:Name"))
    """
    if row_source is None:
        url = url or os.getenv("DATABASE_URL")
        if not url:
            raise ConfigurationError("Database URL not provided")
        row_source = create_row_source(url)

    options = options or DatabaseConfigurationOptions()
    if configure is not None:
        configure(options)

    manager.add_source(DatabaseConfigurationSource.from_options(row_source, options))
    return manager
