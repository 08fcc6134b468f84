"""
Registered migrations, in ascending version order.

New migrations are added as a `vNNN_<name>.py` module exposing `MIGRATION`
(see `qualitydb new-migration`) and appended to `MIGRATIONS` below.
"""

from __future__ import annotations

from qualitydb.migrations.versions import v001_initial_schema, v002_updated_at_triggers, v003_audit_triggers

MIGRATIONS = [
    v001_initial_schema.MIGRATION,
    v002_updated_at_triggers.MIGRATION,
    v003_audit_triggers.MIGRATION,
]
