from __future__ import annotations

from typing import Any

from qualitydb.lifecycle import Database


async def count_rows(db: Database, table: str, where: str = "TRUE", params: dict[str, Any] | None = None) -> int:
    res = await db.connection.query(f"SELECT COUNT(*) AS n FROM {table} WHERE {where}", params)
    return int(res.scalar())


async def table_exists(db: Database, table: str) -> bool:
    res = await db.connection.query("SELECT to_regclass(:t) IS NOT NULL AS present", {"t": table})
    return bool(res.scalar())
