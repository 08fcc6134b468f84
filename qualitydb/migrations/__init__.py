"""
Schema migrations.

Migrations are explicit `Migration` descriptors registered in an ordered
catalog (see `versions/`), optionally extended from a validated JSON manifest.
`MigrationRunner` applies the pending ones as a single transactional batch and
records each in the `schema_migrations` ledger.
"""

from __future__ import annotations

import hashlib
import re
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from qualitydb.logging import get_logger

logger = get_logger(__name__)

_VERSION = re.compile(r"^\d+$")


def parse_version(token: str) -> int | None:
    """Numeric ordering key of a version token, or None when it is not one."""
    token = token.strip()
    if not _VERSION.match(token):
        return None
    return int(token)


def version_key(token: str) -> int | str:
    """Identity of a version: "1" and "001" name the same migration."""
    key = parse_version(token)
    return token.strip() if key is None else key


@dataclass(frozen=True)
class Migration:
    version: str
    name: str
    statements: tuple[str, ...]
    description: str = ""

    @property
    def checksum(self) -> str:
        h = hashlib.sha256()
        h.update(self.version.encode("utf-8"))
        h.update(b"\x00")
        h.update(self.name.encode("utf-8"))
        for stmt in self.statements:
            h.update(b"\x00")
            h.update(stmt.strip().encode("utf-8"))
        return h.hexdigest()


class MigrationCatalog:
    """Ordered registry of migration descriptors keyed by version."""

    def __init__(self, migrations: Iterable[Migration] = ()) -> None:
        self._by_version: dict[int | str, Migration] = {}
        for m in migrations:
            self.register(m)

    def register(self, migration: Migration) -> None:
        key = version_key(migration.version)
        clash = self._by_version.get(key)
        if clash is not None:
            raise ValueError(
                f"duplicate migration version {migration.version!r} (already registered as {clash.version!r})"
            )
        self._by_version[key] = migration

    def extend(self, migrations: Iterable[Migration]) -> None:
        for m in migrations:
            self.register(m)

    def __len__(self) -> int:
        return len(self._by_version)

    def discover(self) -> list[Migration]:
        """Registered migrations in ascending version order; unparseable versions are skipped."""
        keyed: list[tuple[int, Migration]] = []
        for m in self._by_version.values():
            key = parse_version(m.version)
            if key is None:
                logger.warning("migration_skipped_invalid_version", version=m.version, name=m.name)
                continue
            if not m.statements:
                logger.warning("migration_skipped_no_statements", version=m.version, name=m.name)
                continue
            keyed.append((key, m))
        keyed.sort(key=lambda t: t[0])
        return [m for _, m in keyed]


def default_catalog(manifest: Path | None = None) -> MigrationCatalog:
    from qualitydb.migrations.versions import MIGRATIONS

    catalog = MigrationCatalog(MIGRATIONS)
    if manifest is not None:
        from qualitydb.migrations.manifest import load_manifest

        catalog.extend(load_manifest(manifest))
    return catalog


def pending_migrations(available: Iterable[Migration], applied: Iterable[str]) -> list[Migration]:
    """available − applied, keeping the (ascending) order of `available`."""
    done = {version_key(v) for v in applied}
    return [m for m in available if version_key(m.version) not in done]
