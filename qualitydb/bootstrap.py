"""
Turns an empty or partially provisioned database into a ready-to-serve one.

`Bootstrapper.initialize()` never raises for migration or seed problems: every
failure is logged and collected into `InitializationResult.errors`, and callers
decide what `success=False` means for them.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field

from argon2 import PasswordHasher

from qualitydb.connection import ConnectionManager, Transaction
from qualitydb.errors import DatabaseError, MigrationFailure, QueryError, ResetGuardError, SeedError
from qualitydb.logging import get_logger
from qualitydb.migrations.runner import LEDGER_TABLE, MigrationRunner, MigrationStatus
from qualitydb.seed import (
    DEFAULT_COMPANY_ID,
    DEV_ADMIN_PASSWORD,
    SAMPLE_PRODUCT_PREFIX,
    admin_row,
    company_row,
    insert_all,
    insert_if_absent,
    reference_rows,
    sample_rows,
    system_setting_rows,
)

logger = get_logger(__name__)

RESET_CONFIRMATION = "CONFIRM_RESET_DATABASE"

# Reverse dependency order.
RESET_TABLES = (
    "audit_logs",
    "user_sessions",
    "product_category_mapping",
    "quality_check_templates",
    "quality_checks",
    "product_history",
    "products",
    "product_categories",
    "product_types",
    "product_groups",
    "brands",
    "sellers",
    "system_settings",
    "users",
    "companies",
    LEDGER_TABLE,
)
RESET_FUNCTIONS = ("update_updated_at_column()", "audit_trigger_function()")

# Every check must find at least one row for the database to count as initialized.
_BASELINE_CHECKS = (
    ("SELECT COUNT(*) AS n FROM companies WHERE id = :company_id", {"company_id": DEFAULT_COMPANY_ID}),
    ("SELECT COUNT(*) AS n FROM users WHERE role = :role", {"role": "admin"}),
    ("SELECT COUNT(*) AS n FROM sellers WHERE company_id = :company_id", {"company_id": DEFAULT_COMPANY_ID}),
    ("SELECT COUNT(*) AS n FROM brands WHERE company_id = :company_id", {"company_id": DEFAULT_COMPANY_ID}),
)

_SCHEMA_CHECK = (
    "SELECT to_regclass('companies') IS NOT NULL AND to_regclass('users') IS NOT NULL "
    "AND to_regclass('sellers') IS NOT NULL AND to_regclass('products') IS NOT NULL AS present"
)


@dataclass(frozen=True)
class InitializationOptions:
    run_migrations: bool = True
    skip_seed_data: bool = False
    create_sample_data: bool = False
    admin_email: str | None = None
    admin_password: str | None = None
    company_name: str | None = None


@dataclass
class InitializationResult:
    success: bool = False
    migrations_run: int = 0
    seed_data_created: bool = False
    sample_data_created: bool = False
    admin_user_created: bool = False
    errors: list[str] = field(default_factory=list)
    duration_ms: int = 0


@dataclass(frozen=True)
class BootstrapStatus:
    tables_exist: bool
    migration_status: MigrationStatus
    has_admin_user: bool
    has_default_company: bool
    has_reference_data: bool
    sample_data_exists: bool


class Bootstrapper:
    def __init__(self, db: ConnectionManager, runner: MigrationRunner) -> None:
        self._db = db
        self._runner = runner
        self._settings = db.settings
        self._hasher = PasswordHasher()

    async def initialize(self, options: InitializationOptions | None = None) -> InitializationResult:
        options = options or InitializationOptions()
        t0 = time.perf_counter()
        result = InitializationResult()
        logger.info(
            "db_bootstrap_started",
            run_migrations=options.run_migrations,
            seed=not options.skip_seed_data,
            sample_data=options.create_sample_data,
        )
        try:
            await self._db.initialize()
            if options.run_migrations and not await self._run_migrations(result):
                # Seeding needs the schema the failed batch was meant to create.
                logger.warning("db_bootstrap_seed_skipped", reason="migration_failed")
            else:
                await self._seed_steps(result, options)
        except DatabaseError as e:
            result.errors.append(str(e))

        result.success = not result.errors
        result.duration_ms = int((time.perf_counter() - t0) * 1000)
        if result.success:
            logger.info(
                "db_bootstrap_completed",
                migrations_run=result.migrations_run,
                seed_data_created=result.seed_data_created,
                sample_data_created=result.sample_data_created,
                duration_ms=result.duration_ms,
            )
        else:
            logger.error("db_bootstrap_failed", errors=result.errors, duration_ms=result.duration_ms)
        return result

    async def _run_migrations(self, result: InitializationResult) -> bool:
        try:
            applied = await self._runner.migrate()
        except MigrationFailure as e:
            result.errors.append(f"Migration failed: {e}")
            return False
        result.migrations_run = len(applied)
        return True

    async def _seed_steps(self, result: InitializationResult, options: InitializationOptions) -> None:
        if not options.skip_seed_data:
            await self._create_seed_data(result, options)
        if options.create_sample_data:
            await self._create_sample_data(result)

    def _admin_password(self, options: InitializationOptions) -> str:
        if options.admin_password:
            return options.admin_password
        if self._settings.admin_password is not None:
            return self._settings.admin_password.get_secret_value()
        if self._settings.is_production:
            raise SeedError(["an admin password must be configured (DB_ADMIN_PASSWORD) in production"])
        logger.warning("db_bootstrap_default_admin_password", email=options.admin_email or self._settings.admin_email)
        return DEV_ADMIN_PASSWORD

    async def _create_seed_data(self, result: InitializationResult, options: InitializationOptions) -> None:
        email = options.admin_email or self._settings.admin_email
        company_name = options.company_name or self._settings.company_name
        try:
            password = self._admin_password(options)
            password_hash = await asyncio.to_thread(self._hasher.hash, password)

            async def seed(tx: Transaction) -> bool:
                outcomes = [await insert_if_absent(tx, company_row(company_name))]
                admin = await insert_if_absent(tx, admin_row(email, password_hash))
                outcomes.append(admin)
                outcomes += await insert_all(tx, reference_rows())
                outcomes += await insert_all(tx, system_setting_rows())
                failed = [o.describe() for o in outcomes if not o.ok]
                if failed:
                    raise SeedError(failed)
                logger.info(
                    "db_seed_applied",
                    created=sum(o.created for o in outcomes),
                    already_present=sum(not o.created for o in outcomes),
                )
                return admin.created

            result.admin_user_created = await self._db.transaction(seed)
        except (SeedError, QueryError) as e:
            errors = e.errors if isinstance(e, SeedError) else [str(e)]
            result.errors.extend(f"Seed data creation failed: {msg}" for msg in errors)
            return
        result.seed_data_created = True
        if result.admin_user_created:
            logger.info("db_admin_user_created", email=email)

    async def _create_sample_data(self, result: InitializationResult) -> None:
        async def seed(tx: Transaction) -> int:
            outcomes = await insert_all(tx, sample_rows())
            failed = [o.describe() for o in outcomes if not o.ok]
            if failed:
                raise SeedError(failed)
            return sum(o.created for o in outcomes)

        try:
            created = await self._db.transaction(seed)
        except (SeedError, QueryError) as e:
            errors = e.errors if isinstance(e, SeedError) else [str(e)]
            result.errors.extend(f"Sample data creation failed: {msg}" for msg in errors)
            return
        result.sample_data_created = True
        logger.info("db_sample_data_applied", created=created)

    async def _count(self, sql: str, params: dict[str, object]) -> int:
        res = await self._db.query(sql, params)
        return int(res.scalar() or 0)

    async def is_initialized(self) -> bool:
        """True only when the default company, an admin and baseline reference rows all exist."""
        try:
            for sql, params in _BASELINE_CHECKS:
                if await self._count(sql, params) == 0:
                    return False
        except QueryError as e:
            logger.info("db_not_initialized", reason=e.message)
            return False
        return True

    async def get_status(self) -> BootstrapStatus:
        migration_status = await self._runner.get_status()
        present = bool((await self._db.query(_SCHEMA_CHECK)).scalar())
        if not present:
            return BootstrapStatus(
                tables_exist=False,
                migration_status=migration_status,
                has_admin_user=False,
                has_default_company=False,
                has_reference_data=False,
                sample_data_exists=False,
            )
        company = {"company_id": DEFAULT_COMPANY_ID}
        admins = await self._count("SELECT COUNT(*) FROM users WHERE role = :role", {"role": "admin"})
        companies = await self._count("SELECT COUNT(*) FROM companies WHERE id = :company_id", company)
        sellers = await self._count("SELECT COUNT(*) FROM sellers WHERE company_id = :company_id", company)
        samples = await self._count(
            "SELECT COUNT(*) FROM products WHERE code LIKE :prefix", {"prefix": f"{SAMPLE_PRODUCT_PREFIX}%"}
        )
        return BootstrapStatus(
            tables_exist=True,
            migration_status=migration_status,
            has_admin_user=admins > 0,
            has_default_company=companies > 0,
            has_reference_data=sellers > 0,
            sample_data_exists=samples > 0,
        )

    async def reset(self, confirmation_code: str) -> None:
        """Drop every known table and trigger function. Refused in production."""
        if self._settings.is_production:
            raise ResetGuardError("Database reset is not allowed in production")
        if confirmation_code != RESET_CONFIRMATION:
            raise ResetGuardError("Invalid confirmation code")

        logger.warning("db_reset_started", database=self._settings.name)

        async def drop(tx: Transaction) -> None:
            for table in RESET_TABLES:
                await tx.execute_script(f"DROP TABLE IF EXISTS {table} CASCADE")
            for fn in RESET_FUNCTIONS:
                await tx.execute_script(f"DROP FUNCTION IF EXISTS {fn} CASCADE")

        await self._db.transaction(drop)
        logger.warning("db_reset_completed", database=self._settings.name)
