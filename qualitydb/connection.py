"""
Pooled PostgreSQL gateway.

`ConnectionManager` owns the async engine (and therefore the pool) for its whole
lifetime: `initialize()` builds it with a bounded retry loop, `query()` and
`transaction()` meter every statement into a bounded metrics buffer, and
`check_health()` reports pool state without ever raising.
"""

from __future__ import annotations

import asyncio
import contextlib
import ssl
import time
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, TypeVar

import sqlalchemy as sa
from sqlalchemy import event
from sqlalchemy.exc import DBAPIError, DisconnectionError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from qualitydb.errors import DatabaseConnectionError, NotInitializedError, QueryError
from qualitydb.logging import get_logger
from qualitydb.metrics import QueryMetric, QueryMetricsBuffer, QueryStats, sanitize_sql
from qualitydb.settings import DbSettings

logger = get_logger(__name__)

T = TypeVar("T")

DRIVER_ERRORS = (SQLAlchemyError, OSError)


def _now() -> datetime:
    return datetime.now(tz=UTC)


def _error_message(exc: BaseException) -> str:
    if isinstance(exc, DBAPIError) and exc.orig is not None:
        return str(exc.orig) or type(exc.orig).__name__
    return str(exc) or type(exc).__name__


def backoff_delays(retries: int, base_delay_s: float, factor: float = 2.0) -> list[float]:
    """Sleep before each retry: base, base*factor, base*factor**2, ..."""
    delays: list[float] = []
    delay = base_delay_s
    for _ in range(retries):
        delays.append(delay)
        delay *= factor
    return delays


def _ssl_argument(settings: DbSettings) -> bool | ssl.SSLContext:
    if not settings.ssl:
        return False
    if settings.ssl_reject_unauthorized:
        return True
    ctx = ssl.create_default_context()
    ctx.check_hostname = False
    ctx.verify_mode = ssl.CERT_NONE
    return ctx


def build_engine(settings: DbSettings) -> AsyncEngine:
    # QueuePool treats pool_size=0 as unbounded, so keep at least one persistent slot.
    pool_size = max(settings.pool_min, 1)
    connect_args: dict[str, Any] = {
        "timeout": settings.connect_timeout_ms / 1000.0,
        "ssl": _ssl_argument(settings),
        "server_settings": {"application_name": settings.application_name},
    }
    if settings.statement_timeout_ms:
        connect_args["command_timeout"] = settings.statement_timeout_ms / 1000.0
    return create_async_engine(
        settings.sqlalchemy_url(),
        pool_size=pool_size,
        max_overflow=settings.pool_max - pool_size,
        pool_timeout=settings.acquire_timeout_ms / 1000.0,
        pool_pre_ping=True,
        connect_args=connect_args,
    )


@dataclass(frozen=True)
class QueryResult:
    rows: list[dict[str, Any]] = field(default_factory=list)
    rowcount: int = 0

    @classmethod
    def from_result(cls, result: sa.CursorResult[Any]) -> QueryResult:
        if result.returns_rows:
            rows = [dict(r) for r in result.mappings().all()]
            return cls(rows=rows, rowcount=len(rows))
        return cls(rows=[], rowcount=max(result.rowcount, 0))

    def first(self) -> dict[str, Any] | None:
        return self.rows[0] if self.rows else None

    def scalar(self) -> Any:  # noqa: ANN401 - column types are dynamic
        row = self.first()
        if row is None:
            return None
        return next(iter(row.values()), None)


@dataclass(frozen=True)
class PoolStats:
    total: int
    idle: int
    waiting: int


@dataclass(frozen=True)
class ConnectionHealth:
    is_healthy: bool
    latency_ms: int | None = None
    pool_stats: PoolStats | None = None
    error: str | None = None


class Transaction:
    """A single pooled connection pinned to one BEGIN ... COMMIT/ROLLBACK."""

    def __init__(self, manager: ConnectionManager, conn: AsyncConnection) -> None:
        self._manager = manager
        self._conn = conn

    @property
    def connection(self) -> AsyncConnection:
        return self._conn

    async def execute(self, sql: str, params: Mapping[str, Any] | None = None) -> QueryResult:
        return await self._manager._run(self._conn, sql, params)

    async def execute_script(self, sql: str) -> None:
        """Run one DDL statement verbatim (no bind-parameter parsing)."""
        await self._manager._run(self._conn, sql, None, raw=True)

    @contextlib.asynccontextmanager
    async def savepoint(self) -> AsyncIterator[Transaction]:
        async with self._conn.begin_nested():
            yield self


class ConnectionManager:
    def __init__(
        self,
        settings: DbSettings,
        *,
        engine_factory: Callable[[DbSettings], AsyncEngine] = build_engine,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.settings = settings
        self.metrics = QueryMetricsBuffer(settings.metrics_history_size)
        self._engine_factory = engine_factory
        self._sleep = sleep
        self._engine: AsyncEngine | None = None
        self._init_lock = asyncio.Lock()
        self._monitor: asyncio.Task[None] | None = None
        self._waiting = 0

    @property
    def is_initialized(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise NotInitializedError()
        return self._engine

    async def initialize(self) -> None:
        if self._engine is not None:
            return
        async with self._init_lock:
            if self._engine is not None:
                return
            delays = backoff_delays(self.settings.connect_retries, self.settings.connect_retry_base_delay_ms / 1000.0)
            attempts = len(delays) + 1
            for attempt in range(1, attempts + 1):
                engine = self._engine_factory(self.settings)
                self._install_pool_listeners(engine)
                try:
                    latency_ms = await self._open_pool(engine)
                except DRIVER_ERRORS as e:
                    await engine.dispose()
                    logger.error(
                        "db_connection_failed",
                        error=_error_message(e),
                        host=self.settings.host,
                        port=self.settings.port,
                        attempt=attempt,
                        max_attempts=attempts,
                    )
                    if attempt == attempts:
                        raise DatabaseConnectionError(
                            f"Failed to connect to database after {attempts} attempts: {_error_message(e)}",
                            attempts=attempts,
                        ) from e
                    delay = delays[attempt - 1]
                    logger.info("db_connection_retry_scheduled", delay_s=delay, attempt=attempt, max_attempts=attempts)
                    await self._sleep(delay)
                    continue

                self._engine = engine
                if self.settings.pool_stats_interval_s > 0 and not self.settings.allow_exit_on_idle:
                    self._monitor = asyncio.create_task(self._log_pool_stats_forever())
                logger.info(
                    "db_connection_initialized",
                    host=self.settings.host,
                    port=self.settings.port,
                    database=self.settings.name,
                    pool_min=self.settings.pool_min,
                    pool_max=self.settings.pool_max,
                    latency_ms=latency_ms,
                    attempt=attempt,
                )
                return

    async def _open_pool(self, engine: AsyncEngine) -> int:
        """Round-trip once, then open the minimum number of pooled connections."""
        t0 = time.perf_counter()
        async with engine.connect() as conn:
            await conn.execute(sa.text("SELECT 1"))
        latency_ms = int((time.perf_counter() - t0) * 1000)
        async with contextlib.AsyncExitStack() as stack:
            for _ in range(self.settings.pool_min):
                await stack.enter_async_context(engine.connect())
        return latency_ms

    def _install_pool_listeners(self, engine: AsyncEngine) -> None:
        max_uses = self.settings.max_uses
        idle_timeout_s = self.settings.idle_timeout_ms / 1000.0
        target = engine.sync_engine

        @event.listens_for(target, "connect")
        def _on_connect(dbapi_connection: Any, record: Any) -> None:
            record.info["uses"] = 0
            logger.debug("db_client_connected")

        @event.listens_for(target, "checkout")
        def _on_checkout(dbapi_connection: Any, record: Any, proxy: Any) -> None:
            uses = record.info.get("uses", 0) + 1
            checked_in_at = record.info.pop("checked_in_at", None)
            expired = max_uses and uses > max_uses
            idle = idle_timeout_s and checked_in_at is not None and time.monotonic() - checked_in_at > idle_timeout_s
            if expired or idle:
                record.info["uses"] = 0
                logger.debug("db_client_recycled", reason="max_uses" if expired else "idle_timeout")
                # The pool discards this connection and retries checkout with a fresh one.
                raise DisconnectionError("connection recycled")
            record.info["uses"] = uses

        @event.listens_for(target, "checkin")
        def _on_checkin(dbapi_connection: Any, record: Any) -> None:
            record.info["checked_in_at"] = time.monotonic()

        @event.listens_for(target, "invalidate")
        def _on_invalidate(dbapi_connection: Any, record: Any, exception: BaseException | None) -> None:
            if exception is not None and not isinstance(exception, DisconnectionError):
                logger.error("db_pool_error", error=_error_message(exception))

    async def _log_pool_stats_forever(self) -> None:
        while True:
            await asyncio.sleep(self.settings.pool_stats_interval_s)
            stats = self.get_pool_stats()
            logger.debug("db_pool_stats", total=stats.total, idle=stats.idle, waiting=stats.waiting)

    @contextlib.asynccontextmanager
    async def _acquire(self) -> AsyncIterator[AsyncConnection]:
        conn = self.engine.connect()
        self._waiting += 1
        try:
            await conn.start()
        finally:
            self._waiting -= 1
        try:
            yield conn
        finally:
            await conn.close()

    async def _run(
        self,
        conn: AsyncConnection,
        sql: str,
        params: Mapping[str, Any] | None,
        *,
        raw: bool = False,
    ) -> QueryResult:
        statement = sanitize_sql(sql)
        timestamp = _now()
        t0 = time.perf_counter()
        try:
            if raw:
                result = await conn.exec_driver_sql(sql)
            else:
                result = await conn.execute(sa.text(sql), dict(params or {}))
        except DRIVER_ERRORS as e:
            duration_ms = (time.perf_counter() - t0) * 1000
            message = _error_message(e)
            self.metrics.record(QueryMetric(statement, duration_ms, timestamp, success=False, error=message))
            logger.error("db_query_failed", query=statement, error=message, duration_ms=round(duration_ms))
            raise QueryError(statement, message) from e

        duration_ms = (time.perf_counter() - t0) * 1000
        self.metrics.record(QueryMetric(statement, duration_ms, timestamp, success=True))
        if duration_ms > self.settings.slow_query_threshold_ms:
            logger.warning(
                "db_slow_query",
                query=statement,
                duration_ms=round(duration_ms),
                params="[REDACTED]" if params else None,
            )
        elif self.settings.enable_query_logging:
            logger.debug("db_query", query=statement, duration_ms=round(duration_ms))
        return QueryResult.from_result(result)

    async def query(self, sql: str, params: Mapping[str, Any] | None = None) -> QueryResult:
        """Run one statement on a pooled connection in its own transaction."""
        timestamp = _now()
        t0 = time.perf_counter()
        executed = False

        async def run(tx: Transaction) -> QueryResult:
            nonlocal executed
            executed = True
            return await tx.execute(sql, params)

        try:
            return await self.transaction(run)
        except QueryError as e:
            if not executed:
                # No connection was handed out, so the statement was never metered.
                duration_ms = (time.perf_counter() - t0) * 1000
                self.metrics.record(
                    QueryMetric(sanitize_sql(sql), duration_ms, timestamp, success=False, error=e.message)
                )
            raise

    async def transaction(self, fn: Callable[[Transaction], Awaitable[T]]) -> T:
        """
        Run `fn` inside BEGIN/COMMIT on one dedicated connection.

        Any exception raised inside `fn` rolls the transaction back and propagates
        unchanged; the connection always returns to the pool.
        """
        try:
            async with self._acquire() as conn:
                async with conn.begin():
                    return await fn(Transaction(self, conn))
        except DRIVER_ERRORS as e:
            # Acquisition, COMMIT or ROLLBACK failures (not statement failures).
            message = _error_message(e)
            logger.error("db_transaction_failed", error=message)
            raise QueryError("TRANSACTION", message) from e

    def get_pool_stats(self) -> PoolStats:
        pool = self.engine.pool
        idle = pool.checkedin()  # type: ignore[attr-defined]
        return PoolStats(total=idle + pool.checkedout(), idle=idle, waiting=self._waiting)  # type: ignore[attr-defined]

    async def check_health(self) -> ConnectionHealth:
        if self._engine is None:
            return ConnectionHealth(is_healthy=False, error="Database not initialized")
        t0 = time.perf_counter()
        try:
            async with self._acquire() as conn:
                await conn.execute(sa.text("SELECT 1"))
            latency_ms = int((time.perf_counter() - t0) * 1000)
            return ConnectionHealth(is_healthy=True, latency_ms=latency_ms, pool_stats=self.get_pool_stats())
        except Exception as e:  # health checks report, never raise
            return ConnectionHealth(is_healthy=False, error=_error_message(e))

    def get_query_metrics(self) -> list[QueryMetric]:
        return self.metrics.snapshot()

    def get_query_stats(self) -> QueryStats:
        return self.metrics.stats(self.settings.slow_query_threshold_ms)

    async def close(self) -> None:
        if self._monitor is not None:
            self._monitor.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._monitor
            self._monitor = None
        if self._engine is not None:
            engine, self._engine = self._engine, None
            await engine.dispose()
            logger.info("db_connection_closed")
