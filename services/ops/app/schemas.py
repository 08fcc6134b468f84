from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ContractModel(BaseModel):
    # Ops tooling consumes camelCase keys.
    model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class PoolStatsOut(ContractModel):
    total: int
    idle: int
    waiting: int


class MigrationCountsOut(ContractModel):
    available: int
    executed: int
    pending: int


class HealthResponse(ContractModel):
    status: Literal["healthy", "unhealthy"]
    is_healthy: bool
    latency_ms: int | None = None
    error: str | None = None
    pool_stats: PoolStatsOut | None = None
    migration_status: MigrationCountsOut | None = None


class MigrationVersionsOut(ContractModel):
    available: list[str]
    executed: list[str]
    pending: list[str]


class DbStatusResponse(ContractModel):
    initialized: bool
    tables_exist: bool
    has_admin_user: bool
    has_default_company: bool
    has_reference_data: bool
    sample_data_exists: bool
    migration_status: MigrationVersionsOut


class QueryStatsOut(ContractModel):
    total_queries: int
    successful_queries: int
    failed_queries: int
    average_duration_ms: int
    slow_queries: int


class QueryMetricOut(ContractModel):
    query: str
    duration_ms: float
    timestamp: datetime
    success: bool
    error: str | None = None


class DbMetricsResponse(ContractModel):
    query_stats: QueryStatsOut
    connection_stats: PoolStatsOut | None = None
    recent_queries: list[QueryMetricOut]
