from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class OpsSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="OPS_", extra="forbid")

    service_name: str = "qualitydb-ops"
    log_level: str = "info"


SETTINGS = OpsSettings()
