"""
Explicitly owned database handle.

`open_database()` builds every component around one `ConnectionManager`,
connects, migrates (when enabled) and bootstraps an uninitialized database.
Callers hold the returned `Database` and must `close()` it.
"""

from __future__ import annotations

from dataclasses import dataclass

from qualitydb.bootstrap import Bootstrapper, InitializationOptions
from qualitydb.connection import ConnectionManager
from qualitydb.errors import DatabaseError, SeedError
from qualitydb.health import HealthReporter
from qualitydb.logging import get_logger
from qualitydb.migrations import default_catalog
from qualitydb.migrations.runner import MigrationRunner
from qualitydb.settings import DbSettings

logger = get_logger(__name__)


@dataclass
class Database:
    settings: DbSettings
    connection: ConnectionManager
    migrator: MigrationRunner
    bootstrapper: Bootstrapper
    health: HealthReporter

    async def close(self) -> None:
        await self.connection.close()


def build_database(settings: DbSettings, connection: ConnectionManager | None = None) -> Database:
    """Wire the components together without touching the network."""
    connection = connection or ConnectionManager(settings)
    migrator = MigrationRunner(
        connection,
        default_catalog(settings.migration_manifest),
        use_lock=settings.migration_lock,
        checksum_policy=settings.migration_checksum_policy,
    )
    return Database(
        settings=settings,
        connection=connection,
        migrator=migrator,
        bootstrapper=Bootstrapper(connection, migrator),
        health=HealthReporter(connection, migrator),
    )


async def open_database(settings: DbSettings | None = None) -> Database:
    settings = settings or DbSettings()
    if settings.environment == "development":
        logger.info("db_config", **settings.summary())

    db = build_database(settings)
    try:
        await db.connection.initialize()
        if settings.enable_migrations:
            logger.info("db_migrations_running")
            await db.migrator.migrate()
        if not await db.bootstrapper.is_initialized():
            logger.info("db_bootstrap_required")
            result = await db.bootstrapper.initialize(
                InitializationOptions(run_migrations=False, create_sample_data=settings.enable_sample_data)
            )
            if not result.success:
                raise SeedError(result.errors)
    except DatabaseError as e:
        logger.error("db_open_failed", error=str(e))
        await db.close()
        raise
    logger.info("db_ready", database=settings.name, environment=settings.environment)
    return db


async def reset_database(db: Database, confirmation_code: str) -> Database:
    """Drop everything, close `db` and return a freshly opened handle."""
    await db.bootstrapper.reset(confirmation_code)
    await db.close()
    return await open_database(db.settings)
