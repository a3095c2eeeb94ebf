from __future__ import annotations

from typing import Any

from app.core.database import db


def _normalise_row(row: dict[str, Any]) -> dict[str, Any]:
    code = str(row.get("external_code") or "").strip()
    name = str(row.get("canonical_name") or "").strip()
    return {
        "external_code": code,
        "canonical_name": name or code,
        "is_terminal": bool(row.get("is_terminal", False)),
    }


async def list_statuses() -> list[dict[str, Any]]:
    rows = await db.fetch_all(
        "SELECT external_code, canonical_name, is_terminal FROM case_statuses ORDER BY external_code ASC"
    )
    return [_normalise_row(row) for row in rows if row.get("external_code")]
