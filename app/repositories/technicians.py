from __future__ import annotations

from typing import Any

from app.core.database import db


def _normalise_technician(row: dict[str, Any]) -> dict[str, Any]:
    email = row.get("email")
    return {
        "id": str(row.get("id")) if row.get("id") is not None else None,
        "display_name": str(row.get("display_name") or "").strip(),
        "email": str(email).strip() if email else None,
    }


async def list_active_technicians() -> list[dict[str, Any]]:
    rows = await db.fetch_all(
        """
        SELECT id, display_name, email
        FROM technicians
        WHERE is_active = 1
        ORDER BY display_name ASC, id ASC
        """
    )
    return [_normalise_technician(row) for row in rows]
