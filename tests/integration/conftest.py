from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from typing import Any

import pytest
import pytest_asyncio

from qualitydb.bootstrap import RESET_CONFIRMATION
from qualitydb.lifecycle import Database, build_database
from qualitydb.settings import DbSettings


@pytest.fixture()
def make_settings(postgres_url: str) -> Callable[..., DbSettings]:
    def _make(**overrides: Any) -> DbSettings:
        values: dict[str, Any] = {
            "environment": "test",
            "database_url": postgres_url,
            "connect_retries": 0,
            "pool_stats_interval_s": 0,
        }
        values.update(overrides)
        return DbSettings(**values)

    return _make


@pytest_asyncio.fixture()
async def database(make_settings: Callable[..., DbSettings]) -> AsyncIterator[Database]:
    """Connected handle over an empty schema (everything from earlier tests dropped)."""
    db = build_database(make_settings())
    await db.connection.initialize()
    await db.bootstrapper.reset(RESET_CONFIRMATION)
    try:
        yield db
    finally:
        await db.close()

