from __future__ import annotations

import json

import pytest
from pydantic import ValidationError


def _m(version: str, name: str = "m", *statements: str):
    from qualitydb.migrations import Migration

    return Migration(version=version, name=name, statements=statements or ("SELECT 1",))


@pytest.mark.parametrize("token,expected", [("001", 1), ("42", 42), (" 7 ", 7), ("v1", None), ("", None), ("1a", None)])
def test_parse_version(token: str, expected: int | None) -> None:
    from qualitydb.migrations import parse_version

    assert parse_version(token) == expected


def test_discover_orders_numerically_and_skips_invalid() -> None:
    from qualitydb.migrations import Migration, MigrationCatalog

    catalog = MigrationCatalog(
        [
            _m("10"),
            _m("9"),
            _m("abc"),
            Migration(version="011", name="empty", statements=()),
            _m("002"),
        ]
    )
    assert [m.version for m in catalog.discover()] == ["002", "9", "10"]
    assert len(catalog) == 5


def test_duplicate_versions_are_rejected() -> None:
    from qualitydb.migrations import MigrationCatalog

    catalog = MigrationCatalog([_m("001")])
    with pytest.raises(ValueError, match="duplicate"):
        catalog.register(_m("001", "other"))


def test_zero_padded_and_bare_versions_are_the_same_migration() -> None:
    from qualitydb.migrations import MigrationCatalog, pending_migrations

    catalog = MigrationCatalog([_m("001")])
    with pytest.raises(ValueError, match="already registered as '001'"):
        catalog.register(_m("1", "from_manifest"))
    assert [m.version for m in catalog.discover()] == ["001"]

    available = [_m("1"), _m("002")]
    assert [m.version for m in pending_migrations(available, ["001"])] == ["002"]
    assert pending_migrations([_m("002")], ["2"]) == []


def test_pending_keeps_ascending_order() -> None:
    from qualitydb.migrations import pending_migrations

    available = [_m("001"), _m("002"), _m("003")]
    assert [m.version for m in pending_migrations(available, ["001"])] == ["002", "003"]
    assert pending_migrations(available, ["001", "002", "003"]) == []
    # Ledger rows for versions no longer registered do not matter.
    assert [m.version for m in pending_migrations(available, ["000", "002"])] == ["001", "003"]


def test_checksum_tracks_content() -> None:
    base = _m("001", "init", "CREATE TABLE a (id INT)")
    assert base.checksum == _m("001", "init", "  CREATE TABLE a (id INT)\n").checksum
    assert base.checksum != _m("001", "init", "CREATE TABLE a (id BIGINT)").checksum
    assert base.checksum != _m("002", "init", "CREATE TABLE a (id INT)").checksum
    assert len(base.checksum) == 64


def test_registered_migrations_are_ordered_and_unique() -> None:
    from qualitydb.migrations import default_catalog

    versions = [m.version for m in default_catalog().discover()]
    assert versions == ["001", "002", "003"]
    baseline = default_catalog().discover()[0]
    joined = "\n".join(baseline.statements)
    for table in ("companies", "users", "sellers", "brands", "products", "quality_checks", "audit_logs"):
        assert f"CREATE TABLE IF NOT EXISTS {table} " in joined


def test_manifest_extends_catalog(tmp_path) -> None:
    from qualitydb.migrations import default_catalog

    path = tmp_path / "extra.json"
    path.write_text(
        json.dumps(
            {
                "migrations": [
                    {
                        "version": "004",
                        "name": "add_barcode",
                        "statements": ["ALTER TABLE products ADD COLUMN IF NOT EXISTS barcode VARCHAR(64)"],
                    }
                ]
            }
        ),
        encoding="utf-8",
    )
    catalog = default_catalog(path)
    last = catalog.discover()[-1]
    assert last.version == "004"
    assert last.description == "add_barcode"


def test_manifest_cannot_redefine_registered_version(tmp_path) -> None:
    from qualitydb.migrations import default_catalog

    path = tmp_path / "clash.json"
    path.write_text(json.dumps({"migrations": [{"version": "001", "name": "x", "statements": ["SELECT 1"]}]}))
    with pytest.raises(ValueError, match="duplicate"):
        default_catalog(path)


@pytest.mark.parametrize(
    "entries",
    [
        [{"version": "v4", "name": "x", "statements": ["SELECT 1"]}],
        [{"version": "004", "name": "x", "statements": []}],
        [{"version": "004", "name": "x", "statements": ["   "]}],
        [{"version": "004", "name": "x", "statements": ["SELECT 1"], "extra": True}],
        [
            {"version": "004", "name": "x", "statements": ["SELECT 1"]},
            {"version": "004", "name": "y", "statements": ["SELECT 2"]},
        ],
        [
            {"version": "4", "name": "x", "statements": ["SELECT 1"]},
            {"version": "004", "name": "y", "statements": ["SELECT 2"]},
        ],
    ],
)
def test_invalid_manifest_is_rejected(entries: list) -> None:
    from qualitydb.migrations.manifest import parse_manifest

    with pytest.raises(ValidationError):
        parse_manifest(json.dumps({"migrations": entries}))
