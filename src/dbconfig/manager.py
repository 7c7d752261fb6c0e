"""Configuration manager that combines database sources into one settings view."""

import asyncio
import inspect
import logging
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Type, TypeVar

from .exceptions import ConfigurationError
from .provider import DatabaseConfigurationProvider
from .schema import create_dataclass_from_dict, is_dataclass_instance, is_dataclass_type, unflatten
from .source import DatabaseConfigurationSource
from .watcher import ChangeRegistration, on_change

T = TypeVar("T")

logger = logging.getLogger(__name__)


class ConfigurationManager:
    """Reads the merged settings of one or more database sources.

    Sources added later override earlier ones key by key. The merged view is
    rebuilt whenever any provider publishes a new snapshot.
    """

    def __init__(self):
        """Initialize configuration manager."""
        self.sources: List[DatabaseConfigurationSource] = []
        self.providers: List[DatabaseConfigurationProvider] = []
        self._config_data: Mapping[str, Optional[str]] = MappingProxyType({})
        self._config_instance: Optional[Any] = None
        self._schema: Optional[Type] = None
        self._change_callbacks: List[Callable] = []
        self._registrations: List[ChangeRegistration] = []
        self._notify_tasks: set = set()

    def add_source(self, source: DatabaseConfigurationSource) -> None:
        """Add a configuration source.

        Args:
            source: Configuration source to add
        """
        self.sources.append(source)

    def set_schema(self, schema: Type[T]) -> None:
        """Set the configuration schema.

        Args:
            schema: Dataclass type the whole settings tree binds to
        """
        if not is_dataclass_type(schema):
            raise ValueError("Schema must be a dataclass type")
        self._schema = schema

    async def load(self) -> None:
        """Build providers for new sources and load all of them.

        Raises:
            ConfigurationError: If the merged settings do not fit the schema
        """
        new_providers = [source.build() for source in self.sources[len(self.providers):]]
        self.providers.extend(new_providers)

        for provider in self.providers:
            await provider.load()

        self._config_data = self._merge()
        if self._schema:
            self._config_instance = self._bind(self._config_data)

        # Subscribe after the initial load so it is not reported as a change
        for provider in new_providers:
            self._registrations.append(
                on_change(provider.get_reload_token, self._on_provider_reload)
            )

    async def reload(self) -> bool:
        """Reload every provider now.

        Returns:
            True if the merged settings changed, False otherwise
        """
        before = self._config_data
        for provider in self.providers:
            await provider.reload()
        return dict(before) != dict(self._config_data)

    def _merge(self) -> Mapping[str, Optional[str]]:
        merged: Dict[str, Optional[str]] = {}
        for provider in self.providers:
            merged.update(provider.data)
        return MappingProxyType(merged)

    def _bind(self, data: Mapping[str, Optional[str]]) -> Any:
        try:
            return create_dataclass_from_dict(self._schema, unflatten(data))
        except ConfigurationError:
            raise
        except Exception as e:
            raise ConfigurationError(f"Failed to create configuration instance: {e}")

    def _on_provider_reload(self) -> None:
        old_data = self._config_data
        new_data = self._merge()

        if self._schema:
            try:
                self._config_instance = self._bind(new_data)
            except ConfigurationError as e:
                # Keep the last settings that fit the schema
                logger.error(f"Reloaded settings do not fit {self._schema.__name__}: {e}")
                return

        self._config_data = new_data
        changes = self._find_changes(old_data, new_data)
        if changes and self._change_callbacks:
            task = asyncio.get_running_loop().create_task(self._notify_changes(changes))
            self._notify_tasks.add(task)
            task.add_done_callback(self._notify_tasks.discard)

    def get(self, key: str = "", default: Any = None) -> Any:
        """Get a configuration value.

        Args:
            key: Colon-delimited key (e.g., "Site:Name"); empty returns the
                bound schema instance if one is set
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        if not key:
            return self._config_instance if self._config_instance is not None else default
        return self._config_data.get(key, default)

    def __getitem__(self, key: str) -> Optional[str]:
        return self._config_data[key]

    def __contains__(self, key: str) -> bool:
        return key in self._config_data

    def get_section(self, path: str) -> Dict[str, Any]:
        """Get all settings below a section as nested dictionaries.

        Args:
            path: Section path (e.g., "Site")

        Returns:
            Nested dictionary, empty if the section does not exist
        """
        return unflatten(self._config_data, path)

    def get_typed(self, config_type: Type[T], path: str = "") -> T:
        """Get typed configuration section.

        Args:
            config_type: Dataclass type to convert to
            path: Optional path to configuration section

        Returns:
            Typed configuration instance

        Raises:
            ConfigurationError: If conversion fails
        """
        if not path and is_dataclass_instance(self._config_instance):
            if not isinstance(self._config_instance, config_type):
                raise ConfigurationError(
                    f"Configuration is {type(self._config_instance).__name__}, not {config_type.__name__}"
                )
            return self._config_instance

        return create_dataclass_from_dict(config_type, self.get_section(path), path)

    def get_raw(self) -> Dict[str, Optional[str]]:
        """Get a copy of the merged flat settings."""
        return dict(self._config_data)

    def add_change_callback(self, callback: Callable) -> None:
        """Add a callback for configuration changes.

        Args:
            callback: Sync or async function receiving a change dict with
                "key", "old_value" and "new_value"
        """
        self._change_callbacks.append(callback)

    async def _notify_changes(self, changes: Dict[str, tuple]) -> None:
        """Notify callbacks of configuration changes."""
        for key, (old_value, new_value) in changes.items():
            for callback in self._change_callbacks:
                try:
                    result = callback({"key": key, "old_value": old_value, "new_value": new_value})
                    if inspect.isawaitable(result):
                        await result
                except Exception as e:
                    logger.error(f"Error in config change callback: {e}")

    def _find_changes(
        self, old_data: Mapping[str, Optional[str]], new_data: Mapping[str, Optional[str]]
    ) -> Dict[str, tuple]:
        """Find changes between two flat configurations.

        Returns:
            Dictionary mapping keys to (old_value, new_value) tuples
        """
        changes = {}

        for key, new_value in new_data.items():
            if key not in old_data:
                changes[key] = (None, new_value)
            elif old_data[key] != new_value:
                changes[key] = (old_data[key], new_value)

        for key in old_data:
            if key not in new_data:
                changes[key] = (old_data[key], None)

        return changes

    async def close(self) -> None:
        """Stop listening for reloads and close all providers."""
        for registration in self._registrations:
            registration.dispose()
        self._registrations.clear()

        for provider in self.providers:
            await provider.close()

        if self._notify_tasks:
            await asyncio.gather(*list(self._notify_tasks), return_exceptions=True)

    async def __aenter__(self) -> "ConfigurationManager":
        await self.load()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
