from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from qualitydb.errors import DatabaseError
from qualitydb.lifecycle import Database, open_database
from qualitydb.logging import configure_logging, get_logger
from services.ops.app import observability
from services.ops.app.schemas import (
    DbMetricsResponse,
    DbStatusResponse,
    HealthResponse,
    MigrationVersionsOut,
)
from services.ops.app.settings import SETTINGS

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    db = await open_database()
    app.state.db = db
    observability.DB_COLLECTOR.bind(db.connection)
    try:
        yield
    finally:
        observability.DB_COLLECTOR.bind(None)
        app.state.db = None
        await db.close()


app = FastAPI(title="TSmart Quality Database Ops", version="0.1.0", lifespan=lifespan)
configure_logging(SETTINGS.log_level)
observability.add_metrics_middleware(app, service_name=SETTINGS.service_name)


def get_db(request: Request) -> Database:
    db = getattr(request.app.state, "db", None)
    if db is None:
        raise HTTPException(status_code=503, detail="database not open")
    return db


@app.get("/healthz", response_model=HealthResponse)
async def healthz(request: Request) -> JSONResponse:
    db: Database | None = getattr(request.app.state, "db", None)
    if db is None:
        body = HealthResponse(status="unhealthy", is_healthy=False, error="Database not initialized")
    else:
        body = HealthResponse.model_validate(await db.health.check_database_health())
    if not body.is_healthy:
        logger.warning("healthz_unhealthy", error=body.error)
    return JSONResponse(
        status_code=200 if body.is_healthy else 503,
        content=body.model_dump(mode="json", by_alias=True),
    )


@app.get("/db/status", response_model=DbStatusResponse)
async def db_status(db: Database = Depends(get_db)) -> DbStatusResponse:
    try:
        status = await db.bootstrapper.get_status()
        initialized = await db.bootstrapper.is_initialized()
    except DatabaseError as e:
        raise HTTPException(status_code=503, detail=str(e))
    ms = status.migration_status
    return DbStatusResponse(
        initialized=initialized,
        tables_exist=status.tables_exist,
        has_admin_user=status.has_admin_user,
        has_default_company=status.has_default_company,
        has_reference_data=status.has_reference_data,
        sample_data_exists=status.sample_data_exists,
        migration_status=MigrationVersionsOut(
            available=[m.version for m in ms.available],
            executed=list(ms.executed),
            pending=[m.version for m in ms.pending],
        ),
    )


@app.get("/db/metrics", response_model=DbMetricsResponse)
async def db_metrics(db: Database = Depends(get_db)) -> DbMetricsResponse:
    try:
        metrics = await db.health.get_database_metrics()
    except DatabaseError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return DbMetricsResponse.model_validate(metrics)
