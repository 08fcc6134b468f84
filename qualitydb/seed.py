"""
Baseline and sample rows, and the insert-if-absent primitive that writes them.

Every row is keyed by a natural key backed by a unique constraint, so writing
the same rows twice is a no-op. `insert_if_absent` reports an `InsertOutcome`
instead of raising; callers decide what a failed outcome means.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from qualitydb.connection import Transaction
from qualitydb.errors import QueryError
from qualitydb.logging import get_logger

logger = get_logger(__name__)

DEFAULT_COMPANY_ID = 1001
DEFAULT_COMPANY_CODE = "TALYA"
ADMIN_USER_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")
ADMIN_USERNAME = "admin"
DEV_ADMIN_PASSWORD = "admin123"
SAMPLE_PRODUCT_PREFIX = "SAMPLE"


@dataclass(frozen=True)
class Lookup:
    """Resolve a foreign key at insert time: SELECT id FROM table WHERE where."""

    table: str
    where: dict[str, Any]


@dataclass(frozen=True)
class SeedRow:
    table: str
    key: tuple[str, ...]
    values: dict[str, Any]
    lookups: dict[str, Lookup] = field(default_factory=dict)

    def key_values(self) -> dict[str, Any]:
        return {k: self.values.get(k) for k in self.key}


@dataclass(frozen=True)
class InsertOutcome:
    table: str
    key: dict[str, Any]
    created: bool
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def describe(self) -> str:
        key = ", ".join(f"{k}={v}" for k, v in self.key.items())
        return f"{self.table}({key}): {self.error}"


def _insert_sql(row: SeedRow) -> tuple[str, dict[str, Any]]:
    columns = list(row.values)
    params = {f"v_{c}": v for c, v in row.values.items()}
    exprs = [f":v_{c}" for c in columns]
    for col, lk in row.lookups.items():
        conds = []
        for wc, wv in lk.where.items():
            pname = f"l_{col}_{wc}"
            conds.append(f"{wc} = :{pname}")
            params[pname] = wv
        columns.append(col)
        exprs.append(f"(SELECT id FROM {lk.table} WHERE {' AND '.join(conds)})")
    sql = (
        f"INSERT INTO {row.table} ({', '.join(columns)}) VALUES ({', '.join(exprs)}) "
        "ON CONFLICT DO NOTHING RETURNING 1 AS created"
    )
    return sql, params


async def insert_if_absent(tx: Transaction, row: SeedRow) -> InsertOutcome:
    """
    Insert `row` unless a row with the same natural key exists.

    Runs under a savepoint so a failure leaves the surrounding transaction usable.
    """
    sql, params = _insert_sql(row)
    try:
        async with tx.savepoint():
            res = await tx.execute(sql, params)
    except QueryError as e:
        logger.warning("seed_insert_failed", table=row.table, key=row.key_values(), error=e.message)
        return InsertOutcome(row.table, row.key_values(), created=False, error=e.message)
    return InsertOutcome(row.table, row.key_values(), created=res.rowcount > 0)


async def insert_all(tx: Transaction, rows: list[SeedRow]) -> list[InsertOutcome]:
    return [await insert_if_absent(tx, row) for row in rows]


def company_row(name: str) -> SeedRow:
    return SeedRow(
        table="companies",
        key=("id",),
        values={
            "id": DEFAULT_COMPANY_ID,
            "name": name,
            "code": DEFAULT_COMPANY_CODE,
            "address": "Istanbul, Turkey",
            "email": "info@talyasmart.com",
            "is_active": True,
        },
    )


def admin_row(email: str, password_hash: str) -> SeedRow:
    return SeedRow(
        table="users",
        key=("email",),
        values={
            "id": ADMIN_USER_ID,
            "username": ADMIN_USERNAME,
            "name": "System",
            "surname": "Administrator",
            "email": email,
            "password": password_hash,
            "company_id": DEFAULT_COMPANY_ID,
            "role": "admin",
            "is_active": True,
            "email_verified": True,
            "created_by": ADMIN_USER_ID,
        },
    )


def _reference(table: str, code: str, name: str, **extra: Any) -> SeedRow:
    return SeedRow(
        table=table,
        key=("code", "company_id"),
        values={
            "name": name,
            "code": code,
            "company_id": DEFAULT_COMPANY_ID,
            "is_active": True,
            "created_by": ADMIN_USER_ID,
            **extra,
        },
    )


def reference_rows() -> list[SeedRow]:
    rows = [
        _reference("sellers", "SUP001", "Default Supplier", contact_person="Contact Person"),
        _reference("sellers", "SUP002", "Premium Suppliers Ltd.", contact_person="Sales Manager"),
        _reference("brands", "TQ001", "TalYa Quality", description="Premium quality products"),
        _reference("brands", "STD001", "Standard Brand", description="Standard quality products"),
        _reference("product_groups", "ELEC", "Electronics", description="Electronic products and components"),
        _reference("product_groups", "MECH", "Mechanical Parts", description="Mechanical components and parts"),
        _reference("product_groups", "RAW", "Raw Materials", description="Raw materials and supplies"),
    ]
    for code, name, group, description in (
        ("COMP", "Electronic Components", "ELEC", "Electronic components and circuits"),
        ("MCOMP", "Mechanical Components", "MECH", "Mechanical parts and assemblies"),
        ("RMAT", "Raw Material Items", "RAW", "Basic raw materials"),
    ):
        row = _reference("product_types", code, name, description=description)
        rows.append(
            SeedRow(
                table=row.table,
                key=row.key,
                values=row.values,
                lookups={
                    "product_group_id": Lookup("product_groups", {"code": group, "company_id": DEFAULT_COMPANY_ID})
                },
            )
        )
    rows += [
        _reference("product_categories", "QGA", "Quality Grade A", description="Highest quality grade products"),
        _reference("product_categories", "QGB", "Quality Grade B", description="Standard quality grade products"),
        _reference("product_categories", "QGC", "Quality Grade C", description="Basic quality grade products"),
    ]
    return rows


SYSTEM_SETTINGS: list[tuple[int | None, str, str, str, str]] = [
    (DEFAULT_COMPANY_ID, "default_currency", "USD", "string", "Default currency for pricing"),
    (DEFAULT_COMPANY_ID, "quality_check_retention_days", "365", "number", "Days to retain quality check records"),
    (DEFAULT_COMPANY_ID, "auto_quality_check", "true", "boolean", "Automatically create quality checks for new products"),
    (DEFAULT_COMPANY_ID, "notification_email", "quality@talyasmart.com", "string", "Email for quality notifications"),
    (None, "system_version", "1.0.0", "string", "Current system version"),
    (None, "maintenance_mode", "false", "boolean", "System maintenance mode"),
    (None, "max_file_upload_size", "10485760", "number", "Maximum file upload size in bytes (10MB)"),
]


def system_setting_rows() -> list[SeedRow]:
    return [
        SeedRow(
            table="system_settings",
            key=("setting_key", "company_id"),
            values={
                "company_id": company_id,
                "setting_key": key,
                "setting_value": value,
                "setting_type": kind,
                "description": description,
                "is_system_wide": company_id is None,
            },
        )
        for company_id, key, value, kind, description in SYSTEM_SETTINGS
    ]


def _company_lookup(table: str, code: str) -> Lookup:
    return Lookup(table, {"code": code, "company_id": DEFAULT_COMPANY_ID})


SAMPLE_PRODUCTS = [
    # code, name, description, seller, brand, product type, critical stock, weight, unit price
    ("SAMPLE001", "Electronic Component Sample", "Sample electronic component for testing", "SUP001", "TQ001", "COMP", 50, "0.1", "25.99"),
    ("SAMPLE002", "Mechanical Part Sample", "Sample mechanical part for testing", "SUP002", "STD001", "MCOMP", 25, "1.5", "45.50"),
    ("SAMPLE003", "Raw Material Sample", "Sample raw material for testing", "SUP001", "TQ001", "RMAT", 100, "0.5", "12.75"),
]


def sample_rows() -> list[SeedRow]:
    rows = [
        SeedRow(
            table="products",
            key=("code", "company_id"),
            values={
                "code": code,
                "name": name,
                "description": description,
                "company_id": DEFAULT_COMPANY_ID,
                "critical_stock_amount": critical,
                "current_stock": critical * 2,
                "weight": Decimal(weight),
                "unit_price": Decimal(price),
                "status": "active",
                "created_by": ADMIN_USER_ID,
            },
            lookups={
                "seller_id": _company_lookup("sellers", seller),
                "brand_id": _company_lookup("brands", brand),
                "product_type_id": _company_lookup("product_types", ptype),
            },
        )
        for code, name, description, seller, brand, ptype, critical, weight, price in SAMPLE_PRODUCTS
    ]
    for i, product in enumerate(("SAMPLE001", "SAMPLE002"), start=1):
        rows.append(
            SeedRow(
                table="quality_checks",
                key=("reference_code",),
                values={
                    "reference_code": f"SAMPLE-QC-{i:03d}",
                    "company_id": DEFAULT_COMPANY_ID,
                    "inspector_id": ADMIN_USER_ID,
                    "check_type": "incoming",
                    "status": "passed",
                    "overall_grade": "A",
                    "score": Decimal("95.5"),
                    "notes": "Sample quality check for testing purposes",
                    "created_by": ADMIN_USER_ID,
                },
                lookups={"product_id": _company_lookup("products", product)},
            )
        )
    return rows
