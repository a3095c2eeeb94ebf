from __future__ import annotations

from typing import Any

from app.core.database import db


def _normalise_customer(row: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": str(row.get("id")) if row.get("id") is not None else None,
        "company_name": row.get("company_name"),
        "clickup_list_id": str(row.get("clickup_list_id") or "") or None,
    }


async def get_customer_by_clickup_list_id(list_id: str) -> dict[str, Any] | None:
    row = await db.fetch_one(
        "SELECT id, company_name, clickup_list_id FROM customers WHERE clickup_list_id = %s LIMIT 1",
        (list_id,),
    )
    return _normalise_customer(row) if row else None
