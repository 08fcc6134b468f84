from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import AliasChoices, Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL, make_url

Environment = Literal["development", "test", "staging", "production"]
ChecksumPolicy = Literal["ignore", "warn", "fail"]

# Defaults applied per environment to fields the operator did not set explicitly.
_PROFILES: dict[str, dict[str, Any]] = {
    "development": {
        "pool_max": 10,
        "connect_timeout_ms": 5000,
        "slow_query_threshold_ms": 500,
        "enable_migrations": True,
        "enable_sample_data": True,
    },
    "test": {
        "pool_max": 5,
        "idle_timeout_ms": 1000,
        "connect_timeout_ms": 3000,
        "enable_query_logging": False,
        "enable_sample_data": False,
    },
    "staging": {
        "slow_query_threshold_ms": 1000,
        "enable_sample_data": False,
    },
    "production": {
        "pool_max": 20,
        "idle_timeout_ms": 60000,
        "connect_timeout_ms": 15000,
        "slow_query_threshold_ms": 2000,
        "enable_query_logging": False,
        "enable_migrations": False,
        "enable_sample_data": False,
        "ssl": True,
    },
}

_URL_FIELDS = ("host", "port", "name", "user", "password")


class DbSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="DB_", extra="forbid", populate_by_name=True)

    environment: Environment = Field(
        default="development", validation_alias=AliasChoices("APP_ENV", "DB_ENVIRONMENT")
    )
    database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")

    host: str = "localhost"
    port: int = Field(default=5432, ge=1, le=65535)
    name: str = "tsmartquality"
    user: str = "postgres"
    password: SecretStr = SecretStr("password")
    ssl: bool = False
    ssl_reject_unauthorized: bool = True
    application_name: str = "tsmartquality_api"

    # Pool
    pool_min: int = Field(default=2, ge=0)
    pool_max: int = Field(default=20, ge=1, le=100)
    idle_timeout_ms: int = Field(default=30000, ge=0)
    connect_timeout_ms: int = Field(default=10000, ge=1000)
    acquire_timeout_ms: int = Field(default=30000, gt=0)
    statement_timeout_ms: int | None = Field(default=None, gt=0)
    max_uses: int = Field(default=7500, ge=0)
    allow_exit_on_idle: bool = False

    # Connect retry budget
    connect_retries: int = Field(default=5, ge=0)
    connect_retry_base_delay_ms: int = Field(default=1000, ge=0)

    # Observability
    slow_query_threshold_ms: int = Field(default=1000, ge=0)
    metrics_history_size: int = Field(default=1000, ge=1)
    enable_query_logging: bool = True
    pool_stats_interval_s: float = 60.0
    log_level: str = "info"

    # Migrations
    enable_migrations: bool = True
    migration_lock: bool = True
    migration_checksum_policy: ChecksumPolicy = "warn"
    migration_manifest: Path | None = None

    # Seed data
    enable_sample_data: bool = False
    company_name: str = "TalYa Smart Quality"
    admin_email: str = "admin@talyasmart.com"
    admin_password: SecretStr | None = None

    @model_validator(mode="after")
    def _resolve(self) -> DbSettings:
        explicit = set(self.model_fields_set)
        if self.database_url:
            explicit.update(self._apply_url(make_url(self.database_url)))

        for field, value in _PROFILES[self.environment].items():
            if field not in explicit:
                setattr(self, field, value)
        if self.environment == "test" and "name" not in explicit and not self.name.endswith("_test"):
            self.name = f"{self.name}_test"

        if self.pool_min > self.pool_max:
            raise ValueError(f"pool_min ({self.pool_min}) must not exceed pool_max ({self.pool_max})")
        if self.environment == "production" and "password" not in explicit:
            raise ValueError("an explicit database password is required in production")
        return self

    def _apply_url(self, url: URL) -> set[str]:
        applied = set(_URL_FIELDS)
        if url.host:
            self.host = url.host
        if url.port:
            self.port = url.port
        if url.database:
            self.name = url.database
        if url.username:
            self.user = url.username
        if url.password is not None:
            self.password = SecretStr(str(url.password))
        sslmode = url.query.get("sslmode")
        if sslmode is not None:
            self.ssl = sslmode != "disable"
            applied.add("ssl")
        return applied

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def sqlalchemy_url(self) -> URL:
        return URL.create(
            "postgresql+asyncpg",
            username=self.user,
            password=self.password.get_secret_value(),
            host=self.host,
            port=self.port,
            database=self.name,
        )

    def summary(self) -> dict[str, Any]:
        """Configuration summary safe to log (no credentials)."""
        return {
            "environment": self.environment,
            "host": self.host,
            "port": self.port,
            "database": self.name,
            "user": self.user,
            "ssl": self.ssl,
            "pool_min": self.pool_min,
            "pool_max": self.pool_max,
            "query_logging": self.enable_query_logging,
            "slow_query_threshold_ms": self.slow_query_threshold_ms,
            "auto_migrations": self.enable_migrations,
        }
