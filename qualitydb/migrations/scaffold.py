from __future__ import annotations

import re
from datetime import UTC, datetime
from pathlib import Path

from qualitydb.migrations import parse_version

VERSIONS_DIR = Path(__file__).parent / "versions"

_TEMPLATE = '''"""{description}

Created: {created}
"""

from __future__ import annotations

from qualitydb.migrations import Migration

MIGRATION = Migration(
    version="{version}",
    name="{name}",
    description="{description}",
    statements=(
        # One statement per entry, e.g. "ALTER TABLE products ADD COLUMN barcode VARCHAR(64)",
    ),
)
'''


def module_name(version: str, name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "_", name.lower()).strip("_")
    return f"v{version}_{slug}"


def render_migration(version: str, name: str, description: str = "") -> str:
    if parse_version(version) is None:
        raise ValueError(f"invalid migration version {version!r}: expected digits, e.g. 004")
    slug = module_name(version, name).split("_", 1)[1]
    return _TEMPLATE.format(
        version=version,
        name=slug,
        description=(description or name).replace('"', "'"),
        created=datetime.now(tz=UTC).date().isoformat(),
    )


def scaffold_migration(version: str, name: str, description: str = "", directory: Path = VERSIONS_DIR) -> Path:
    """Write a new migration module; it still has to be appended to `versions.MIGRATIONS`."""
    path = directory / f"{module_name(version, name)}.py"
    if path.exists():
        raise FileExistsError(path)
    path.write_text(render_migration(version, name, description), encoding="utf-8")
    return path
