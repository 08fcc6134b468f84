"""Row-level audit trail for users, products and quality checks into `audit_logs`."""

from __future__ import annotations

from qualitydb.migrations import Migration

AUDITED_TABLES = ("users", "products", "quality_checks")

FUNCTION = """
CREATE OR REPLACE FUNCTION audit_trigger_function() RETURNS TRIGGER AS $$
BEGIN
    IF TG_OP = 'DELETE' THEN
        INSERT INTO audit_logs (table_name, record_id, action, old_values)
        VALUES (TG_TABLE_NAME, OLD.id::text, TG_OP, to_jsonb(OLD));
        RETURN OLD;
    ELSIF TG_OP = 'UPDATE' THEN
        INSERT INTO audit_logs (table_name, record_id, action, old_values, new_values)
        VALUES (TG_TABLE_NAME, NEW.id::text, TG_OP, to_jsonb(OLD), to_jsonb(NEW));
        RETURN NEW;
    END IF;
    INSERT INTO audit_logs (table_name, record_id, action, new_values)
    VALUES (TG_TABLE_NAME, NEW.id::text, TG_OP, to_jsonb(NEW));
    RETURN NEW;
END;
$$ LANGUAGE plpgsql
"""

MIGRATION = Migration(
    version="003",
    name="audit_triggers",
    description="Audit trigger function and row-level audit triggers",
    statements=(
        FUNCTION,
        *(f"DROP TRIGGER IF EXISTS trg_{t}_audit ON {t}" for t in AUDITED_TABLES),
        *(
            f"CREATE TRIGGER trg_{t}_audit AFTER INSERT OR UPDATE OR DELETE ON {t} "
            "FOR EACH ROW EXECUTE FUNCTION audit_trigger_function()"
            for t in AUDITED_TABLES
        ),
    ),
)
