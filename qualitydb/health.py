from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

from qualitydb.connection import ConnectionManager, PoolStats
from qualitydb.errors import DatabaseError, NotInitializedError
from qualitydb.logging import get_logger
from qualitydb.metrics import QueryMetric, QueryStats
from qualitydb.migrations.runner import MigrationRunner

logger = get_logger(__name__)

RECENT_QUERY_COUNT = 10


@dataclass(frozen=True)
class MigrationCounts:
    available: int
    executed: int
    pending: int


@dataclass(frozen=True)
class DatabaseHealth:
    status: str
    latency_ms: int | None = None
    error: str | None = None
    pool_stats: PoolStats | None = None
    migration_status: MigrationCounts | None = None

    @property
    def is_healthy(self) -> bool:
        return self.status == "healthy"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class DatabaseMetrics:
    query_stats: QueryStats
    connection_stats: PoolStats | None
    recent_queries: list[QueryMetric]

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        for q in data["recent_queries"]:
            q["timestamp"] = q["timestamp"].isoformat()
        return data


class HealthReporter:
    """Read-only view over pool, query and migration state for ops tooling."""

    def __init__(self, db: ConnectionManager, runner: MigrationRunner) -> None:
        self._db = db
        self._runner = runner

    async def check_database_health(self) -> DatabaseHealth:
        """Never raises; an unreachable or closed database is reported as unhealthy."""
        health = await self._db.check_health()
        if not health.is_healthy:
            return DatabaseHealth(status="unhealthy", error=health.error)
        try:
            status = await self._runner.get_status()
        except DatabaseError as e:
            logger.warning("db_health_migration_status_failed", error=str(e))
            return DatabaseHealth(
                status="unhealthy",
                latency_ms=health.latency_ms,
                error=str(e),
                pool_stats=health.pool_stats,
            )
        return DatabaseHealth(
            status="healthy",
            latency_ms=health.latency_ms,
            pool_stats=health.pool_stats,
            migration_status=MigrationCounts(
                available=len(status.available),
                executed=len(status.executed),
                pending=len(status.pending),
            ),
        )

    async def get_database_metrics(self) -> DatabaseMetrics:
        if not self._db.is_initialized:
            raise NotInitializedError()
        health = await self._db.check_health()
        return DatabaseMetrics(
            query_stats=self._db.get_query_stats(),
            connection_stats=health.pool_stats,
            recent_queries=self._db.metrics.recent(RECENT_QUERY_COUNT),
        )
