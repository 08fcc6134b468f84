from __future__ import annotations

import time
from collections.abc import Callable, Iterator

from fastapi import FastAPI, Request, Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    GCCollector,
    Histogram,
    ProcessCollector,
    generate_latest,
)
from prometheus_client.core import GaugeMetricFamily, Metric, SummaryMetricFamily
from prometheus_client.registry import Collector

from qualitydb.connection import ConnectionManager

METRICS_PATH = "/metrics"

REGISTRY = CollectorRegistry()
ProcessCollector(registry=REGISTRY)
GCCollector(registry=REGISTRY)

# Every response is counted, so 503s from an unreachable database show up next to 200s.
OPS_REQUESTS_TOTAL = Counter(
    "ops_requests_total",
    "Ops endpoint responses by route template and status code",
    ["service", "route", "method", "status"],
    registry=REGISTRY,
)
# Health and status endpoints round-trip to the database; buckets follow the slow-query scale.
OPS_REQUEST_DURATION = Histogram(
    "ops_request_duration_ms",
    "Ops endpoint latency in milliseconds",
    ["service", "route"],
    buckets=(1, 5, 20, 50, 100, 250, 1000, 5000),
    registry=REGISTRY,
)


class DatabaseCollector(Collector):
    """
    Pool gauges and query-window statistics read at scrape time.

    Query figures cover the metrics buffer (the most recent N statements), so they
    are exported as gauges and a summary rather than monotonic counters.
    """

    def __init__(self) -> None:
        self._db: ConnectionManager | None = None

    def bind(self, db: ConnectionManager | None) -> None:
        self._db = db

    def collect(self) -> Iterator[Metric]:
        db = self._db
        if db is None or not db.is_initialized:
            return
        pool = db.get_pool_stats()
        pool_gauge = GaugeMetricFamily("db_pool_connections", "Pooled connections by state", labels=["state"])
        pool_gauge.add_metric(["total"], pool.total)
        pool_gauge.add_metric(["idle"], pool.idle)
        pool_gauge.add_metric(["waiting"], pool.waiting)
        yield pool_gauge

        metrics = db.get_query_metrics()
        stats = db.get_query_stats()
        window = GaugeMetricFamily("db_query_window", "Queries held in the metrics buffer by outcome", labels=["outcome"])
        window.add_metric(["success"], stats.successful_queries)
        window.add_metric(["failure"], stats.failed_queries)
        window.add_metric(["slow"], stats.slow_queries)
        yield window

        yield SummaryMetricFamily(
            "db_query_duration_ms",
            "Query duration over the metrics buffer in milliseconds",
            count_value=len(metrics),
            sum_value=sum(m.duration_ms for m in metrics),
        )


DB_COLLECTOR = DatabaseCollector()
REGISTRY.register(DB_COLLECTOR)


def _route_template(request: Request) -> str:
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


def add_metrics_middleware(app: FastAPI, service_name: str) -> None:
    @app.middleware("http")
    async def _observe(request: Request, call_next: Callable) -> Response:
        if request.url.path == METRICS_PATH:
            return await call_next(request)
        t0 = time.perf_counter()
        resp = await call_next(request)
        route = _route_template(request)
        OPS_REQUEST_DURATION.labels(service_name, route).observe((time.perf_counter() - t0) * 1000)
        OPS_REQUESTS_TOTAL.labels(service_name, route, request.method, str(resp.status_code)).inc()
        return resp

    async def scrape() -> Response:
        return Response(generate_latest(REGISTRY), media_type=CONTENT_TYPE_LATEST)

    app.add_api_route(METRICS_PATH, scrape, methods=["GET"], include_in_schema=False)
