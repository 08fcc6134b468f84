from __future__ import annotations

import pytest

BASELINE_TABLES = (
    "companies",
    "users",
    "sellers",
    "brands",
    "product_groups",
    "product_types",
    "product_categories",
    "system_settings",
)


async def _counts(database, tables=BASELINE_TABLES) -> dict[str, int]:
    from tests.integration.helpers import count_rows

    return {t: await count_rows(database, t) for t in tables}


@pytest.mark.asyncio
async def test_initialize_creates_baseline_once(database) -> None:
    from qualitydb.bootstrap import InitializationOptions

    assert await database.bootstrapper.is_initialized() is False

    first = await database.bootstrapper.initialize(InitializationOptions())
    assert first.success is True, first.errors
    assert first.migrations_run == 3
    assert first.seed_data_created is True
    assert first.admin_user_created is True
    assert first.sample_data_created is False
    assert first.errors == []
    assert await database.bootstrapper.is_initialized() is True

    counts = await _counts(database)
    assert counts == {
        "companies": 1,
        "users": 1,
        "sellers": 2,
        "brands": 2,
        "product_groups": 3,
        "product_types": 3,
        "product_categories": 3,
        "system_settings": 7,
    }

    second = await database.bootstrapper.initialize(InitializationOptions())
    assert second.success is True, second.errors
    assert second.migrations_run == 0
    assert second.admin_user_created is False
    assert await _counts(database) == counts


@pytest.mark.asyncio
async def test_admin_password_is_hashed(database) -> None:
    from argon2 import PasswordHasher

    from qualitydb.bootstrap import InitializationOptions

    await database.bootstrapper.initialize(InitializationOptions(admin_password="s3cret-pass"))
    res = await database.connection.query(
        "SELECT password, role, company_id FROM users WHERE email = :email", {"email": "admin@talyasmart.com"}
    )
    row = res.first()
    assert row is not None
    assert row["role"] == "admin"
    assert row["company_id"] == 1001
    assert row["password"] != "s3cret-pass"
    assert PasswordHasher().verify(row["password"], "s3cret-pass")


@pytest.mark.asyncio
async def test_product_types_link_to_their_groups(database) -> None:
    from qualitydb.bootstrap import InitializationOptions

    await database.bootstrapper.initialize(InitializationOptions())
    res = await database.connection.query(
        "SELECT t.code AS type_code, g.code AS group_code FROM product_types t "
        "JOIN product_groups g ON g.id = t.product_group_id ORDER BY t.code"
    )
    assert [(r["type_code"], r["group_code"]) for r in res.rows] == [
        ("COMP", "ELEC"),
        ("MCOMP", "MECH"),
        ("RMAT", "RAW"),
    ]


@pytest.mark.asyncio
async def test_sample_data_is_optional_and_idempotent(database) -> None:
    from qualitydb.bootstrap import InitializationOptions

    result = await database.bootstrapper.initialize(InitializationOptions(create_sample_data=True))
    assert result.success is True, result.errors
    assert result.sample_data_created is True

    again = await database.bootstrapper.initialize(InitializationOptions(create_sample_data=True))
    assert again.success is True, again.errors
    assert await _counts(database, ("products", "quality_checks")) == {"products": 3, "quality_checks": 2}

    status = await database.bootstrapper.get_status()
    assert status.sample_data_exists is True


@pytest.mark.asyncio
async def test_is_initialized_false_when_reference_rows_missing(database) -> None:
    from qualitydb.bootstrap import InitializationOptions

    await database.bootstrapper.initialize(InitializationOptions())
    await database.connection.query("DELETE FROM brands")
    assert await database.bootstrapper.is_initialized() is False

    status = await database.bootstrapper.get_status()
    assert status.has_admin_user is True
    assert status.has_default_company is True


@pytest.mark.asyncio
async def test_seed_failure_rolls_back_and_is_reported(database) -> None:
    from qualitydb.bootstrap import InitializationOptions
    from tests.integration.helpers import count_rows

    await database.migrator.migrate()
    await database.connection.query("DROP TABLE system_settings")

    result = await database.bootstrapper.initialize(InitializationOptions(run_migrations=False))
    assert result.success is False
    assert result.seed_data_created is False
    assert result.admin_user_created is False
    assert result.errors
    assert all(e.startswith("Seed data creation failed") for e in result.errors)
    assert any("system_settings" in e for e in result.errors)
    # Nothing from the seeding transaction survived.
    assert await count_rows(database, "companies") == 0
    assert await count_rows(database, "users") == 0


@pytest.mark.asyncio
async def test_get_status_on_empty_database(database) -> None:
    status = await database.bootstrapper.get_status()
    assert status.tables_exist is False
    assert status.has_admin_user is False
    assert status.migration_status.executed == []
    assert len(status.migration_status.pending) == 3


@pytest.mark.asyncio
async def test_reset_requires_exact_confirmation(database) -> None:
    from qualitydb.bootstrap import InitializationOptions
    from qualitydb.errors import ResetGuardError
    from tests.integration.helpers import count_rows

    await database.bootstrapper.initialize(InitializationOptions())
    with pytest.raises(ResetGuardError, match="confirmation"):
        await database.bootstrapper.reset("confirm_reset_database")
    assert await count_rows(database, "companies") == 1


@pytest.mark.asyncio
async def test_reset_drops_tables_functions_and_ledger(database) -> None:
    from qualitydb.bootstrap import RESET_CONFIRMATION, RESET_TABLES, InitializationOptions
    from tests.integration.helpers import table_exists

    await database.bootstrapper.initialize(InitializationOptions(create_sample_data=True))
    await database.bootstrapper.reset(RESET_CONFIRMATION)

    for table in RESET_TABLES:
        assert not await table_exists(database, table)
    res = await database.connection.query(
        "SELECT COUNT(*) FROM pg_proc WHERE proname IN ('update_updated_at_column', 'audit_trigger_function')"
    )
    assert res.scalar() == 0


@pytest.mark.asyncio
async def test_open_database_migrates_and_bootstraps(make_settings) -> None:
    from qualitydb.bootstrap import RESET_CONFIRMATION
    from qualitydb.lifecycle import open_database, reset_database

    db = await open_database(make_settings(enable_migrations=True))
    try:
        assert await db.bootstrapper.is_initialized() is True
        db = await reset_database(db, RESET_CONFIRMATION)
        # Reopened handle is migrated and bootstrapped again.
        assert await db.bootstrapper.is_initialized() is True
        assert (await db.migrator.get_status()).pending == []
    finally:
        await db.close()
