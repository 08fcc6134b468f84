"""Keep `updated_at` current on every row update."""

from __future__ import annotations

from qualitydb.migrations import Migration

TABLES = (
    "companies",
    "users",
    "sellers",
    "brands",
    "product_groups",
    "product_types",
    "product_categories",
    "system_settings",
    "products",
    "quality_checks",
    "quality_check_templates",
)

FUNCTION = """
CREATE OR REPLACE FUNCTION update_updated_at_column() RETURNS TRIGGER AS $$
BEGIN
    NEW.updated_at = NOW();
    RETURN NEW;
END;
$$ LANGUAGE plpgsql
"""

MIGRATION = Migration(
    version="002",
    name="updated_at_triggers",
    description="Trigger function maintaining updated_at columns",
    statements=(
        FUNCTION,
        *(f"DROP TRIGGER IF EXISTS trg_{t}_updated_at ON {t}" for t in TABLES),
        *(
            f"CREATE TRIGGER trg_{t}_updated_at BEFORE UPDATE ON {t} "
            "FOR EACH ROW EXECUTE FUNCTION update_updated_at_column()"
            for t in TABLES
        ),
    ),
)
