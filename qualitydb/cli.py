from __future__ import annotations

import argparse
import asyncio
import json
import sys
from dataclasses import asdict
from typing import Any

from qualitydb.bootstrap import InitializationOptions
from qualitydb.errors import DatabaseConnectionError, DatabaseError
from qualitydb.lifecycle import Database, build_database
from qualitydb.logging import configure_logging
from qualitydb.migrations.runner import MigrationStatus
from qualitydb.migrations.scaffold import scaffold_migration
from qualitydb.settings import DbSettings


def _emit(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


def _migration_status(status: MigrationStatus) -> dict[str, list[str]]:
    return {
        "available": [m.version for m in status.available],
        "executed": list(status.executed),
        "pending": [m.version for m in status.pending],
    }


async def _migrate(db: Database, args: argparse.Namespace) -> int:
    results = await db.migrator.migrate()
    _emit({"applied": [asdict(r) for r in results]})
    return 0


async def _status(db: Database, args: argparse.Namespace) -> int:
    status = await db.bootstrapper.get_status()
    data = asdict(status)
    data["migration_status"] = _migration_status(status.migration_status)
    data["initialized"] = await db.bootstrapper.is_initialized()
    _emit(data)
    return 0


async def _init(db: Database, args: argparse.Namespace) -> int:
    result = await db.bootstrapper.initialize(
        InitializationOptions(
            run_migrations=not args.no_migrations,
            skip_seed_data=args.skip_seed,
            create_sample_data=args.sample_data,
        )
    )
    _emit(asdict(result))
    return 0 if result.success else 1


async def _rollback_last(db: Database, args: argparse.Namespace) -> int:
    _emit({"rolled_back": await db.migrator.rollback_last()})
    return 0


async def _reset(db: Database, args: argparse.Namespace) -> int:
    await db.bootstrapper.reset(args.confirm)
    _emit({"reset": True, "database": db.settings.name})
    return 0


async def _health(db: Database, args: argparse.Namespace) -> int:
    report = await db.health.check_database_health()
    _emit(report.to_dict())
    return 0 if report.is_healthy else 1


COMMANDS = {
    "migrate": _migrate,
    "status": _status,
    "init": _init,
    "rollback-last": _rollback_last,
    "reset": _reset,
    "health": _health,
}


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="qualitydb", description="Database migrations and bootstrap for TSmart Quality")
    sub = p.add_subparsers(dest="command", required=True)
    sub.add_parser("migrate", help="Apply pending migrations")
    sub.add_parser("status", help="Show migration and seed status")
    init = sub.add_parser("init", help="Migrate and create baseline data")
    init.add_argument("--sample-data", action="store_true", help="Also create sample products and quality checks.")
    init.add_argument("--skip-seed", action="store_true")
    init.add_argument("--no-migrations", action="store_true")
    sub.add_parser("rollback-last", help="Forget the latest migration (schema changes are not reversed)")
    reset = sub.add_parser("reset", help="Drop every table (refused in production)")
    reset.add_argument("--confirm", required=True, metavar="CODE")
    sub.add_parser("health", help="Check connectivity and pool state")
    new = sub.add_parser("new-migration", help="Write a new migration module")
    new.add_argument("version")
    new.add_argument("name")
    new.add_argument("--description", default="")
    return p


async def amain(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    if args.command == "new-migration":
        try:
            path = scaffold_migration(args.version, args.name, args.description)
        except (ValueError, FileExistsError) as e:
            _emit({"error": str(e)})
            return 1
        _emit({"created": str(path), "next": "append MIGRATION to qualitydb.migrations.versions.MIGRATIONS"})
        return 0

    settings = DbSettings()
    configure_logging(settings.log_level, stream=sys.stderr)
    db = build_database(settings)
    try:
        try:
            await db.connection.initialize()
        except DatabaseConnectionError as e:
            if args.command != "health":
                raise
            # An unreachable database is a health result, not a crash.
            _emit({"status": "unhealthy", "error": str(e)})
            return 1
        return await COMMANDS[args.command](db, args)
    except DatabaseError as e:
        _emit({"error": str(e), "type": type(e).__name__})
        return 1
    finally:
        await db.close()


def main() -> None:
    raise SystemExit(asyncio.run(amain()))


if __name__ == "__main__":
    main()
