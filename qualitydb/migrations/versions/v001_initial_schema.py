"""Baseline schema: tenants, users, reference data, products and quality checks."""

from __future__ import annotations

from qualitydb.migrations import Migration

STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS companies (
        id          INTEGER PRIMARY KEY,
        name        VARCHAR(255) NOT NULL,
        code        VARCHAR(50) NOT NULL UNIQUE,
        address     TEXT,
        email       VARCHAR(255),
        phone       VARCHAR(50),
        is_active   BOOLEAN NOT NULL DEFAULT TRUE,
        created_at  TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS users (
        id              UUID PRIMARY KEY,
        username        VARCHAR(100) NOT NULL UNIQUE,
        name            VARCHAR(100) NOT NULL,
        surname         VARCHAR(100) NOT NULL,
        email           VARCHAR(255) NOT NULL UNIQUE,
        password        TEXT NOT NULL,
        company_id      INTEGER NOT NULL REFERENCES companies(id),
        role            VARCHAR(20) NOT NULL DEFAULT 'user'
                        CHECK (role IN ('admin', 'manager', 'inspector', 'user')),
        is_active       BOOLEAN NOT NULL DEFAULT TRUE,
        email_verified  BOOLEAN NOT NULL DEFAULT FALSE,
        last_login_at   TIMESTAMPTZ,
        created_by      UUID,
        created_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at      TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS sellers (
        id              SERIAL PRIMARY KEY,
        name            VARCHAR(255) NOT NULL,
        code            VARCHAR(50) NOT NULL,
        company_id      INTEGER NOT NULL REFERENCES companies(id),
        contact_person  VARCHAR(255),
        email           VARCHAR(255),
        phone           VARCHAR(50),
        is_active       BOOLEAN NOT NULL DEFAULT TRUE,
        created_by      UUID REFERENCES users(id),
        created_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        UNIQUE (code, company_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS brands (
        id           SERIAL PRIMARY KEY,
        name         VARCHAR(255) NOT NULL,
        code         VARCHAR(50) NOT NULL,
        company_id   INTEGER NOT NULL REFERENCES companies(id),
        description  TEXT,
        logo_url     TEXT,
        is_active    BOOLEAN NOT NULL DEFAULT TRUE,
        created_by   UUID REFERENCES users(id),
        created_at   TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at   TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        UNIQUE (code, company_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS product_groups (
        id           SERIAL PRIMARY KEY,
        name         VARCHAR(255) NOT NULL,
        code         VARCHAR(50) NOT NULL,
        company_id   INTEGER NOT NULL REFERENCES companies(id),
        description  TEXT,
        is_active    BOOLEAN NOT NULL DEFAULT TRUE,
        created_by   UUID REFERENCES users(id),
        created_at   TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at   TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        UNIQUE (code, company_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS product_types (
        id                SERIAL PRIMARY KEY,
        name              VARCHAR(255) NOT NULL,
        code              VARCHAR(50) NOT NULL,
        company_id        INTEGER NOT NULL REFERENCES companies(id),
        product_group_id  INTEGER REFERENCES product_groups(id),
        description       TEXT,
        is_active         BOOLEAN NOT NULL DEFAULT TRUE,
        created_by        UUID REFERENCES users(id),
        created_at        TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at        TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        UNIQUE (code, company_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS product_categories (
        id           SERIAL PRIMARY KEY,
        name         VARCHAR(255) NOT NULL,
        code         VARCHAR(50) NOT NULL,
        company_id   INTEGER NOT NULL REFERENCES companies(id),
        description  TEXT,
        is_active    BOOLEAN NOT NULL DEFAULT TRUE,
        created_by   UUID REFERENCES users(id),
        created_at   TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at   TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        UNIQUE (code, company_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS system_settings (
        id              SERIAL PRIMARY KEY,
        company_id      INTEGER REFERENCES companies(id),
        setting_key     VARCHAR(100) NOT NULL,
        setting_value   TEXT,
        setting_type    VARCHAR(20) NOT NULL DEFAULT 'string'
                        CHECK (setting_type IN ('string', 'number', 'boolean', 'json')),
        description     TEXT,
        is_system_wide  BOOLEAN NOT NULL DEFAULT FALSE,
        created_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at      TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    # System-wide settings have a NULL company; fold it so the key stays unique.
    """
    CREATE UNIQUE INDEX IF NOT EXISTS uq_system_settings_key_company
        ON system_settings (setting_key, COALESCE(company_id, 0))
    """,
    """
    CREATE TABLE IF NOT EXISTS products (
        id                     SERIAL PRIMARY KEY,
        code                   VARCHAR(50) NOT NULL,
        name                   VARCHAR(255) NOT NULL,
        description            TEXT,
        company_id             INTEGER NOT NULL REFERENCES companies(id),
        seller_id              INTEGER REFERENCES sellers(id),
        brand_id               INTEGER REFERENCES brands(id),
        product_type_id        INTEGER REFERENCES product_types(id),
        critical_stock_amount  INTEGER NOT NULL DEFAULT 0,
        current_stock          INTEGER NOT NULL DEFAULT 0,
        weight                 NUMERIC(12, 3),
        unit_price             NUMERIC(12, 2),
        status                 VARCHAR(20) NOT NULL DEFAULT 'active'
                               CHECK (status IN ('active', 'inactive', 'discontinued')),
        created_by             UUID REFERENCES users(id),
        created_at             TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at             TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        UNIQUE (code, company_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS product_category_mapping (
        product_id   INTEGER NOT NULL REFERENCES products(id) ON DELETE CASCADE,
        category_id  INTEGER NOT NULL REFERENCES product_categories(id) ON DELETE CASCADE,
        PRIMARY KEY (product_id, category_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS product_history (
        id           BIGSERIAL PRIMARY KEY,
        product_id   INTEGER NOT NULL REFERENCES products(id) ON DELETE CASCADE,
        company_id   INTEGER NOT NULL REFERENCES companies(id),
        change_type  VARCHAR(50) NOT NULL,
        old_values   JSONB,
        new_values   JSONB,
        changed_by   UUID REFERENCES users(id),
        changed_at   TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS quality_checks (
        id              SERIAL PRIMARY KEY,
        reference_code  VARCHAR(50) UNIQUE,
        product_id      INTEGER NOT NULL REFERENCES products(id) ON DELETE CASCADE,
        company_id      INTEGER NOT NULL REFERENCES companies(id),
        inspector_id    UUID REFERENCES users(id),
        check_type      VARCHAR(30) NOT NULL
                        CHECK (check_type IN ('incoming', 'in_process', 'final', 'periodic')),
        status          VARCHAR(20) NOT NULL DEFAULT 'pending'
                        CHECK (status IN ('pending', 'passed', 'failed', 'conditional')),
        overall_grade   VARCHAR(2),
        score           NUMERIC(5, 2),
        notes           TEXT,
        checked_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        created_by      UUID REFERENCES users(id),
        created_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at      TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS quality_check_templates (
        id           SERIAL PRIMARY KEY,
        company_id   INTEGER NOT NULL REFERENCES companies(id),
        name         VARCHAR(255) NOT NULL,
        check_type   VARCHAR(30) NOT NULL,
        criteria     JSONB NOT NULL DEFAULT '[]'::jsonb,
        is_active    BOOLEAN NOT NULL DEFAULT TRUE,
        created_by   UUID REFERENCES users(id),
        created_at   TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at   TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        UNIQUE (name, company_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS user_sessions (
        id          UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        user_id     UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        token_hash  VARCHAR(128) NOT NULL UNIQUE,
        ip_address  VARCHAR(64),
        user_agent  TEXT,
        expires_at  TIMESTAMPTZ NOT NULL,
        created_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS audit_logs (
        id          BIGSERIAL PRIMARY KEY,
        table_name  VARCHAR(100) NOT NULL,
        record_id   TEXT,
        action      VARCHAR(10) NOT NULL CHECK (action IN ('INSERT', 'UPDATE', 'DELETE')),
        old_values  JSONB,
        new_values  JSONB,
        changed_by  UUID,
        changed_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_users_company ON users (company_id)",
    "CREATE INDEX IF NOT EXISTS idx_products_company ON products (company_id)",
    "CREATE INDEX IF NOT EXISTS idx_products_type ON products (product_type_id)",
    "CREATE INDEX IF NOT EXISTS idx_quality_checks_product ON quality_checks (product_id, checked_at)",
    "CREATE INDEX IF NOT EXISTS idx_product_history_product ON product_history (product_id, changed_at)",
    "CREATE INDEX IF NOT EXISTS idx_user_sessions_user ON user_sessions (user_id)",
    "CREATE INDEX IF NOT EXISTS idx_audit_logs_table_record ON audit_logs (table_name, record_id)",
)

MIGRATION = Migration(
    version="001",
    name="initial_schema",
    description="Baseline schema: tenants, users, reference data, products and quality checks",
    statements=STATEMENTS,
)
