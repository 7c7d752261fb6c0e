"""Tests for configuration manager."""

import asyncio
from dataclasses import dataclass, field

import pytest

from dbconfig.backends import SQLiteRowSource
from dbconfig.exceptions import ConfigurationError
from dbconfig.manager import ConfigurationManager
from dbconfig.source import DatabaseConfigurationSource
from dbconfig.watcher import PeriodicWatcher


@dataclass
class SiteConfig:
    """Site section."""

    name: str
    port: int = 80


@dataclass
class AppConfig:
    """Whole settings tree."""

    site: SiteConfig
    hosts: list[str] = field(default_factory=list)


class TestConfigurationManager:
    """Test the merged settings view."""

    @pytest.mark.asyncio
    async def test_load_and_get(self, fake_rows):
        """Values are addressed with colon-delimited keys."""
        manager = ConfigurationManager()
        manager.add_source(DatabaseConfigurationSource(fake_rows))

        await manager.load()

        assert manager.get("Site:Name") == "example.com"
        assert manager["Site:Port"] == "8080"
        assert "Site:Name" in manager
        assert manager.get("Site:Missing", "n/a") == "n/a"
        assert len(manager.providers) == 1

    @pytest.mark.asyncio
    async def test_later_sources_override(self, fake_rows, make_rows):
        """The last source added wins for shared keys."""
        overrides = make_rows([("Site:Port", "9090"), ("Extra", "yes")])
        manager = ConfigurationManager()
        manager.add_source(DatabaseConfigurationSource(fake_rows))
        manager.add_source(DatabaseConfigurationSource(overrides))

        await manager.load()

        assert manager.get_raw() == {
            "Site:Name": "example.com",
            "Site:Port": "9090",
            "Extra": "yes",
        }

    @pytest.mark.asyncio
    async def test_get_section(self, fake_rows):
        """Sections come back as nested dictionaries."""
        fake_rows.rows.append(("Site:Admin:Email", "admin@example.com"))
        manager = ConfigurationManager()
        manager.add_source(DatabaseConfigurationSource(fake_rows))
        await manager.load()

        assert manager.get_section("Site") == {
            "Name": "example.com",
            "Port": "8080",
            "Admin": {"Email": "admin@example.com"},
        }
        assert manager.get_section("Nope") == {}

    @pytest.mark.asyncio
    async def test_get_typed_section(self, fake_rows):
        """A section binds to a dataclass with type conversion."""
        manager = ConfigurationManager()
        manager.add_source(DatabaseConfigurationSource(fake_rows))
        await manager.load()

        site = manager.get_typed(SiteConfig, "Site")

        assert site == SiteConfig(name="example.com", port=8080)

    @pytest.mark.asyncio
    async def test_schema_binding(self, fake_rows):
        """The whole tree binds to the schema, including indexed lists."""
        fake_rows.rows += [("Hosts:0", "a.example.com"), ("Hosts:1", "b.example.com")]
        manager = ConfigurationManager()
        manager.add_source(DatabaseConfigurationSource(fake_rows))
        manager.set_schema(AppConfig)

        await manager.load()
        config = manager.get()

        assert isinstance(config, AppConfig)
        assert config.site.port == 8080
        assert config.hosts == ["a.example.com", "b.example.com"]
        assert manager.get_typed(AppConfig) is config

    @pytest.mark.asyncio
    async def test_schema_validation_error(self, make_rows):
        """Missing required settings fail the initial load."""
        manager = ConfigurationManager()
        manager.add_source(DatabaseConfigurationSource(make_rows([("Other", "x")])))
        manager.set_schema(AppConfig)

        with pytest.raises(ConfigurationError):
            await manager.load()

    def test_set_schema_requires_dataclass(self):
        """Only dataclasses can be schemas."""
        with pytest.raises(ValueError):
            ConfigurationManager().set_schema(dict)

    @pytest.mark.asyncio
    async def test_reload_reports_change(self, fake_rows):
        """reload() returns whether the merged settings changed."""
        manager = ConfigurationManager()
        manager.add_source(DatabaseConfigurationSource(fake_rows))
        await manager.load()

        assert await manager.reload() is False

        fake_rows.rows = [("Site:Name", "changed.com")]
        assert await manager.reload() is True
        assert manager.get("Site:Name") == "changed.com"
        assert manager.get("Site:Port") is None

    @pytest.mark.asyncio
    async def test_reload_keeps_values_on_outage(self, fake_rows):
        """A database outage leaves the last good settings in place."""
        manager = ConfigurationManager()
        manager.add_source(DatabaseConfigurationSource(fake_rows))
        await manager.load()

        fake_rows.fail_fetch = True
        assert await manager.reload() is False
        assert manager.get("Site:Name") == "example.com"

    @pytest.mark.asyncio
    async def test_change_callbacks(self, fake_rows):
        """Sync and async callbacks hear about added, changed and removed keys."""
        manager = ConfigurationManager()
        manager.add_source(DatabaseConfigurationSource(fake_rows))
        await manager.load()

        sync_changes = []
        async_changes = []

        async def async_callback(change):
            async_changes.append(change)

        manager.add_change_callback(sync_changes.append)
        manager.add_change_callback(async_callback)

        fake_rows.rows = [("Site:Name", "changed.com"), ("New", "1")]
        await manager.reload()
        await asyncio.gather(*list(manager._notify_tasks))

        by_key = {change["key"]: change for change in sync_changes}
        assert by_key["Site:Name"] == {
            "key": "Site:Name",
            "old_value": "example.com",
            "new_value": "changed.com",
        }
        assert by_key["Site:Port"]["new_value"] is None
        assert by_key["New"]["old_value"] is None
        assert len(async_changes) == 3

    @pytest.mark.asyncio
    async def test_initial_load_is_not_reported(self, fake_rows):
        """Callbacks only fire for changes after the first load."""
        manager = ConfigurationManager()
        manager.add_source(DatabaseConfigurationSource(fake_rows))
        changes = []
        manager.add_change_callback(changes.append)

        await manager.load()
        await asyncio.sleep(0)

        assert changes == []

    @pytest.mark.asyncio
    async def test_schema_mismatch_on_reload_keeps_instance(self, fake_rows):
        """A reload that breaks the schema keeps the last bound instance."""
        manager = ConfigurationManager()
        manager.add_source(DatabaseConfigurationSource(fake_rows))
        manager.set_schema(AppConfig)
        await manager.load()
        config = manager.get()

        fake_rows.rows = [("Unrelated", "x")]
        await manager.reload()

        assert manager.get() is config
        assert manager.get("Site:Name") == "example.com"

    @pytest.mark.asyncio
    async def test_watched_sqlite_source(self, settings_db, set_value):
        """End to end: a periodic watcher brings database edits into the manager."""
        source = DatabaseConfigurationSource(
            SQLiteRowSource(settings_db), watcher=PeriodicWatcher(0.02)
        )
        changes = []

        async with ConfigurationManager() as manager:
            manager.add_source(source)
            await manager.load()
            manager.add_change_callback(changes.append)

            await set_value(settings_db, "Site:Name", "example.org")
            for _ in range(200):
                if manager.get("Site:Name") == "example.org":
                    break
                await asyncio.sleep(0.01)

            assert manager.get("Site:Name") == "example.org"

        assert source.build().closed
        assert any(change["key"] == "Site:Name" for change in changes)
        assert not source.row_source.is_open
