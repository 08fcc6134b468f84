from __future__ import annotations

from pathlib import Path
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, field_validator

from qualitydb.migrations import Migration, version_key

VersionToken = Annotated[str, StringConstraints(strip_whitespace=True, pattern=r"^\d+$")]
Statement = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class StrictModel(BaseModel):
    model_config = ConfigDict(extra="forbid")


class ManifestEntry(StrictModel):
    version: VersionToken
    name: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
    description: str = ""
    statements: Annotated[list[Statement], Field(min_length=1)]

    def to_migration(self) -> Migration:
        return Migration(
            version=self.version,
            name=self.name,
            description=self.description or self.name,
            statements=tuple(self.statements),
        )


class MigrationManifest(StrictModel):
    migrations: list[ManifestEntry]

    @field_validator("migrations")
    @classmethod
    def _unique_versions(cls, v: list[ManifestEntry]) -> list[ManifestEntry]:
        seen: set[int | str] = set()
        for entry in v:
            key = version_key(entry.version)
            if key in seen:
                raise ValueError(f"duplicate migration version {entry.version!r}")
            seen.add(key)
        return v


def parse_manifest(data: str | bytes) -> list[Migration]:
    manifest = MigrationManifest.model_validate_json(data)
    return [e.to_migration() for e in manifest.migrations]


def load_manifest(path: Path) -> list[Migration]:
    """
    Load extra migrations from a JSON manifest:

        {"migrations": [{"version": "004", "name": "...", "statements": ["ALTER TABLE ..."]}]}
    """
    return parse_manifest(path.read_text(encoding="utf-8"))

