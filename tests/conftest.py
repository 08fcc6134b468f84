from __future__ import annotations

import os
import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]

# Ensure the repo root is importable (so `import services.*` works in tests).
sys.path.insert(0, str(REPO_ROOT))

_ENV_VARS = ("APP_ENV", "DATABASE_URL")


@pytest.fixture(autouse=True)
def _isolated_db_env(monkeypatch: pytest.MonkeyPatch) -> None:
    # DbSettings reads the process environment; tests pass everything explicitly.
    for key in list(os.environ):
        if key.startswith("DB_") or key in _ENV_VARS:
            monkeypatch.delenv(key, raising=False)


@pytest.fixture(scope="session")
def postgres_url() -> Iterator[str]:
    from testcontainers.postgres import PostgresContainer

    try:
        pg = PostgresContainer("postgres:16", driver="asyncpg")
        pg.start()
    except Exception as e:  # no Docker daemon on this machine
        pytest.skip(f"PostgreSQL container unavailable: {e}")
    try:
        yield pg.get_connection_url()
    finally:
        pg.stop()
