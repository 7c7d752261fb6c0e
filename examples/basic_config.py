"""Basic example: settings stored in SQLite, reloaded while the app runs."""

import asyncio
import logging
import tempfile
from dataclasses import dataclass
from pathlib import Path

import aiosqlite

from dbconfig import ConfigurationManager, DatabaseConfigurationSource, add_database


@dataclass
class SiteConfig:
    """Site settings bound from the "Site" section."""

    name: str = "localhost"
    port: int = 8000
    maintenance: bool = False


async def create_settings_db(path: Path) -> None:
    async with aiosqlite.connect(path) as db:
        await db.execute('CREATE TABLE "Settings" ("Key" TEXT PRIMARY KEY, "Value" TEXT)')
        await db.executemany(
            'INSERT INTO "Settings" VALUES (?, ?)',
            [("Site:Name", "example.com"), ("Site:Port", "8080"), ("Site:Maintenance", "false")],
        )
        await db.commit()


async def set_setting(path: Path, key: str, value: str) -> None:
    async with aiosqlite.connect(path) as db:
        await db.execute('UPDATE "Settings" SET "Value" = ? WHERE "Key" = ?', (value, key))
        await db.commit()


async def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(message)s")

    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "settings.db"
        await create_settings_db(db_path)

        manager = ConfigurationManager()

        def configure(opts):
            opts.auto_reload = 0.5

        add_database(manager, url=f"sqlite://{db_path}", configure=configure)

        async def on_change(change):
            print(f"  changed {change['key']}: {change['old_value']} -> {change['new_value']}")

        manager.add_change_callback(on_change)

        async with manager:
            site = manager.get_typed(SiteConfig, "Site")
            print(f"Serving {site.name} on port {site.port}")

            # Picked up by the periodic watcher
            await set_setting(db_path, "Site:Maintenance", "true")
            await asyncio.sleep(1.5)
            print(f"Maintenance mode: {manager.get_typed(SiteConfig, 'Site').maintenance}")

            # Picked up immediately through the process-wide hook
            await set_setting(db_path, "Site:Port", "9090")
            await DatabaseConfigurationSource.reload()
            print(f"Port after manual reload: {manager.get('Site:Port')}")


if __name__ == "__main__":
    asyncio.run(main())
