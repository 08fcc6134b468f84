from __future__ import annotations

import time
from dataclasses import dataclass

from qualitydb.connection import ConnectionManager, Transaction
from qualitydb.errors import MigrationChecksumError, MigrationFailure, QueryError
from qualitydb.logging import get_logger
from qualitydb.migrations import Migration, MigrationCatalog, pending_migrations, version_key
from qualitydb.settings import ChecksumPolicy

logger = get_logger(__name__)

LEDGER_TABLE = "schema_migrations"

# Fixed key for pg_advisory_xact_lock; any process running migrations takes the same one.
MIGRATION_LOCK_KEY = 0x7153_6D69_6772_6174

_LEDGER_DDL = (
    f"""
    CREATE TABLE IF NOT EXISTS {LEDGER_TABLE} (
        id                 SERIAL PRIMARY KEY,
        version            VARCHAR(50) NOT NULL UNIQUE,
        name               VARCHAR(255) NOT NULL,
        description        TEXT,
        executed_at        TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        execution_time_ms  INTEGER,
        checksum           VARCHAR(64),
        success            BOOLEAN NOT NULL DEFAULT TRUE
    )
    """,
    f"CREATE INDEX IF NOT EXISTS idx_{LEDGER_TABLE}_executed_at ON {LEDGER_TABLE} (executed_at)",
)

_RECORD_SUCCESS = f"""
    INSERT INTO {LEDGER_TABLE} (version, name, description, execution_time_ms, checksum, success)
    VALUES (:version, :name, :description, :execution_time_ms, :checksum, TRUE)
    ON CONFLICT (version) DO UPDATE SET
        name = EXCLUDED.name,
        description = EXCLUDED.description,
        executed_at = NOW(),
        execution_time_ms = EXCLUDED.execution_time_ms,
        checksum = EXCLUDED.checksum,
        success = TRUE
"""


@dataclass(frozen=True)
class MigrationResult:
    version: str
    name: str
    success: bool
    execution_time_ms: int
    error: str | None = None


@dataclass(frozen=True)
class MigrationStatus:
    available: list[Migration]
    executed: list[str]
    pending: list[Migration]


class MigrationRunner:
    def __init__(
        self,
        db: ConnectionManager,
        catalog: MigrationCatalog,
        *,
        use_lock: bool = True,
        checksum_policy: ChecksumPolicy = "warn",
    ) -> None:
        self._db = db
        self._catalog = catalog
        self._use_lock = use_lock
        self._checksum_policy = checksum_policy

    async def _ensure_ledger(self) -> None:
        for stmt in _LEDGER_DDL:
            await self._db.query(stmt)

    async def _ledger_exists(self) -> bool:
        res = await self._db.query("SELECT to_regclass(:t) IS NOT NULL AS present", {"t": LEDGER_TABLE})
        return bool(res.scalar())

    @staticmethod
    async def _applied(tx: Transaction) -> dict[str, str | None]:
        res = await tx.execute(
            f"SELECT version, checksum FROM {LEDGER_TABLE} WHERE success = TRUE ORDER BY executed_at, version"
        )
        return {r["version"]: r["checksum"] for r in res.rows}

    def _check_drift(self, available: list[Migration], applied: dict[str, str | None]) -> None:
        if self._checksum_policy == "ignore":
            return
        recorded_by_key = {version_key(v): checksum for v, checksum in applied.items()}
        for m in available:
            recorded = recorded_by_key.get(version_key(m.version))
            if recorded is None or recorded == m.checksum:
                continue
            if self._checksum_policy == "fail":
                raise MigrationChecksumError(
                    m.version,
                    f"checksum mismatch (recorded {recorded[:12]}, current {m.checksum[:12]})",
                    name=m.name,
                )
            logger.warning(
                "migration_checksum_drift",
                version=m.version,
                recorded=recorded,
                current=m.checksum,
            )

    async def migrate(self) -> list[MigrationResult]:
        """Apply all pending migrations in ascending order as one transaction."""
        await self._ensure_ledger()
        available = self._catalog.discover()
        applied = await self._db.transaction(self._applied)
        self._check_drift(available, applied)

        pending = pending_migrations(available, applied)
        logger.info(
            "migrations_discovered",
            available=len(available),
            executed=len(applied),
            pending=len(pending),
        )
        if not pending:
            logger.info("migrations_up_to_date")
            return []

        try:
            results = await self._db.transaction(lambda tx: self._apply_batch(tx, available))
        except MigrationFailure as failure:
            logger.error("migration_batch_rolled_back", version=failure.version, error=failure.message)
            raise
        logger.info("migrations_applied", count=len(results), versions=[r.version for r in results])
        return results

    async def _apply_batch(self, tx: Transaction, available: list[Migration]) -> list[MigrationResult]:
        if self._use_lock:
            await tx.execute("SELECT pg_advisory_xact_lock(:key)", {"key": MIGRATION_LOCK_KEY})
        # Recompute under the lock: another runner may have committed meanwhile.
        applied = await self._applied(tx)
        self._check_drift(available, applied)
        results: list[MigrationResult] = []
        for m in pending_migrations(available, applied):
            results.append(await self._apply_one(tx, m))
        return results

    async def _apply_one(self, tx: Transaction, m: Migration) -> MigrationResult:
        logger.info("migration_started", version=m.version, name=m.name)
        t0 = time.perf_counter()
        try:
            for stmt in m.statements:
                await tx.execute_script(stmt)
            elapsed_ms = int((time.perf_counter() - t0) * 1000)
            await tx.execute(
                _RECORD_SUCCESS,
                {
                    "version": m.version,
                    "name": m.name,
                    "description": m.description or m.name,
                    "execution_time_ms": elapsed_ms,
                    "checksum": m.checksum,
                },
            )
        except QueryError as e:
            elapsed_ms = int((time.perf_counter() - t0) * 1000)
            raise MigrationFailure(m.version, e.message, name=m.name, execution_time_ms=elapsed_ms) from e
        logger.info("migration_applied", version=m.version, name=m.name, execution_time_ms=elapsed_ms)
        return MigrationResult(version=m.version, name=m.name, success=True, execution_time_ms=elapsed_ms)

    async def get_status(self) -> MigrationStatus:
        """Available/executed/pending view; reads only, never creates the ledger."""
        available = self._catalog.discover()
        executed: list[str] = []
        if await self._ledger_exists():
            executed = list((await self._db.transaction(self._applied)).keys())
        return MigrationStatus(
            available=available,
            executed=executed,
            pending=pending_migrations(available, executed),
        )

    async def rollback_last(self) -> str | None:
        """
        Forget the most recently applied migration.

        Only the ledger row is deleted; the schema changes it made stay in place.
        """
        if not await self._ledger_exists():
            return None
        res = await self._db.query(
            f"DELETE FROM {LEDGER_TABLE} WHERE id = ("
            f"SELECT id FROM {LEDGER_TABLE} WHERE success = TRUE ORDER BY executed_at DESC, version DESC LIMIT 1"
            ") RETURNING version"
        )
        version = res.scalar()
        if version is None:
            logger.info("migration_rollback_nothing_to_do")
            return None
        logger.warning(
            "migration_rolled_back",
            version=version,
            note="ledger row removed; schema changes were not reversed",
        )
        return version
