from __future__ import annotations

import pytest


def _database():
    from qualitydb.lifecycle import build_database
    from qualitydb.settings import DbSettings

    return build_database(DbSettings(environment="test", connect_retries=0, pool_stats_interval_s=0))


@pytest.mark.asyncio
async def test_health_of_closed_database_is_unhealthy_not_an_exception() -> None:
    report = await _database().health.check_database_health()
    assert report.status == "unhealthy"
    assert report.is_healthy is False
    assert report.error == "Database not initialized"
    assert report.to_dict()["pool_stats"] is None


@pytest.mark.asyncio
async def test_metrics_of_closed_database_raise_not_initialized() -> None:
    from qualitydb.errors import NotInitializedError

    with pytest.raises(NotInitializedError):
        await _database().health.get_database_metrics()


def test_metrics_to_dict_serializes_timestamps() -> None:
    from datetime import UTC, datetime

    from qualitydb.connection import PoolStats
    from qualitydb.health import DatabaseMetrics
    from qualitydb.metrics import QueryMetric, QueryStats

    metrics = DatabaseMetrics(
        query_stats=QueryStats(1, 1, 0, 3, 0),
        connection_stats=PoolStats(total=2, idle=2, waiting=0),
        recent_queries=[QueryMetric("SELECT ?", 3.2, datetime(2026, 1, 1, tzinfo=UTC), True)],
    )
    data = metrics.to_dict()
    assert data["recent_queries"][0]["timestamp"] == "2026-01-01T00:00:00+00:00"
    assert data["connection_stats"] == {"total": 2, "idle": 2, "waiting": 0}
