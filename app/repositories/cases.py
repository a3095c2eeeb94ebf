from __future__ import annotations

import json
from datetime import date, datetime, time, timezone
from typing import Any

from app.core.database import db
from app.services.case_mapper import (
    FAMILY_FIELDS,
    CaseAssignee,
    CaseFamily,
    CasePriority,
    CaseRecord,
    map_priority,
)
from app.services.custom_fields import parse_decimal

_ASSIGNEE_ROLES = ("primary", "secondary", "tertiary")

_COMMON_COLUMNS: tuple[str, ...] = (
    "clickup_task_id",
    "case_number",
    "title",
    "description",
    "status_name",
    "status_code",
    "priority",
    *(
        f"{role}_assignee_{suffix}"
        for role in _ASSIGNEE_ROLES
        for suffix in ("id", "name", "email")
    ),
    "start_date",
    "due_date",
    "completed_date",
    "price",
    "commission_amount",
    "commission_calculated_at",
    "custom_attributes",
    "synced_at",
)

_DATETIME_COLUMNS = {
    "start_date",
    "due_date",
    "completed_date",
    "commission_calculated_at",
    "synced_at",
}
_DECIMAL_COLUMNS = {
    "price",
    "commission_amount",
    "labour_cost",
    "address_lat",
    "address_lng",
}

TABLE_COLUMNS: dict[str, tuple[str, ...]] = {
    CaseFamily.CUSTOMER_CONTRACT.table: (
        *_COMMON_COLUMNS,
        "customer_id",
        *FAMILY_FIELDS[CaseFamily.CUSTOMER_CONTRACT],
    ),
    CaseFamily.STANDALONE_PRIVATE.table: (
        *_COMMON_COLUMNS,
        *FAMILY_FIELDS[CaseFamily.STANDALONE_PRIVATE],
    ),
    CaseFamily.STANDALONE_BUSINESS.table: (
        *_COMMON_COLUMNS,
        *FAMILY_FIELDS[CaseFamily.STANDALONE_BUSINESS],
    ),
}

_FAMILY_BY_TABLE = {family.table: family for family in CaseFamily}


def _columns_for(table: str) -> tuple[str, ...]:
    try:
        return TABLE_COLUMNS[table]
    except KeyError as exc:
        raise ValueError(f"Unknown case table: {table}") from exc


def _ensure_datetime(value: Any) -> datetime | None:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime.combine(value, time.min)
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _to_mysql_datetime(value: Any) -> str | None:
    dt = _ensure_datetime(value)
    if not dt:
        return None
    return dt.replace(tzinfo=None).strftime("%Y-%m-%d %H:%M:%S")


def _to_db_decimal(value: Any) -> str | None:
    amount = parse_decimal(value)
    return str(amount) if amount is not None else None


def _dump_json(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return json.dumps(value, sort_keys=True, ensure_ascii=False, default=str)


def _load_json(value: Any) -> Any:
    if value in (None, ""):
        return None
    if isinstance(value, (dict, list)):
        return value
    try:
        return json.loads(value)
    except (TypeError, ValueError):
        return None


def record_to_row(record: CaseRecord) -> dict[str, Any]:
    """Flatten a case record into column values for its table."""

    row: dict[str, Any] = {
        "clickup_task_id": record.external_task_id,
        "case_number": record.case_number,
        "title": record.title,
        "description": record.description,
        "status_name": record.status_name,
        "status_code": record.status_code,
        "priority": CasePriority(record.priority).value,
        "start_date": record.start_date,
        "due_date": record.due_date,
        "completed_date": record.completed_date,
        "price": record.price,
        "commission_amount": record.commission_amount,
        "commission_calculated_at": record.commission_calculated_at,
        "custom_attributes": _dump_json(record.custom_attributes or {}),
        "synced_at": record.synced_at,
    }
    for index, role in enumerate(_ASSIGNEE_ROLES):
        assignee = record.assignees[index] if index < len(record.assignees) else None
        row[f"{role}_assignee_id"] = assignee.technician_id if assignee else None
        row[f"{role}_assignee_name"] = assignee.display_name if assignee else None
        row[f"{role}_assignee_email"] = assignee.email if assignee else None
    if record.case_family is CaseFamily.CUSTOMER_CONTRACT:
        row["customer_id"] = record.customer_id
    for column in FAMILY_FIELDS[record.case_family]:
        row[column] = record.family_fields.get(column)
    if "files" in row:
        row["files"] = _dump_json(row["files"])

    for column in _DATETIME_COLUMNS:
        row[column] = _to_mysql_datetime(row.get(column))
    for column in _DECIMAL_COLUMNS:
        if column in row:
            row[column] = _to_db_decimal(row[column])
    return row


def _row_to_record(table: str, row: dict[str, Any]) -> CaseRecord:
    family = _FAMILY_BY_TABLE[table]
    assignees: list[CaseAssignee] = []
    for role in _ASSIGNEE_ROLES:
        technician_id = row.get(f"{role}_assignee_id")
        name = row.get(f"{role}_assignee_name")
        email = row.get(f"{role}_assignee_email")
        if technician_id is None and name is None and email is None:
            continue
        assignees.append(
            CaseAssignee(
                technician_id=str(technician_id) if technician_id is not None else None,
                display_name=name,
                email=email,
            )
        )
    family_fields: dict[str, Any] = {}
    for column in FAMILY_FIELDS[family]:
        value = row.get(column)
        if column in _DECIMAL_COLUMNS:
            value = parse_decimal(value)
        family_fields[column] = value
    attributes = _load_json(row.get("custom_attributes"))
    return CaseRecord(
        external_task_id=str(row["clickup_task_id"]),
        case_number=str(row.get("case_number") or ""),
        case_family=family,
        title=row.get("title"),
        description=row.get("description"),
        status_name=str(row.get("status_name") or ""),
        status_code=row.get("status_code"),
        priority=map_priority(row.get("priority")),
        synced_at=_ensure_datetime(row.get("synced_at")) or datetime.now(timezone.utc),
        assignees=tuple(assignees),
        start_date=_ensure_datetime(row.get("start_date")),
        due_date=_ensure_datetime(row.get("due_date")),
        completed_date=_ensure_datetime(row.get("completed_date")),
        price=parse_decimal(row.get("price")),
        commission_amount=parse_decimal(row.get("commission_amount")),
        commission_calculated_at=_ensure_datetime(row.get("commission_calculated_at")),
        custom_attributes=attributes if isinstance(attributes, dict) else {},
        customer_id=str(row["customer_id"]) if row.get("customer_id") else None,
        family_fields=family_fields,
    )


async def get_case_by_task_id(table: str, task_id: str) -> CaseRecord | None:
    columns = _columns_for(table)
    row = await db.fetch_one(
        f"SELECT {', '.join(columns)} FROM {table} WHERE clickup_task_id = %s",
        (task_id,),
    )
    return _row_to_record(table, row) if row else None


async def case_exists(table: str, task_id: str) -> bool:
    _columns_for(table)
    row = await db.fetch_one(
        f"SELECT id FROM {table} WHERE clickup_task_id = %s LIMIT 1",
        (task_id,),
    )
    return row is not None


async def upsert_case(record: CaseRecord) -> None:
    """Insert the record or fully update the row with the same task id."""

    table = record.table
    columns = _columns_for(table)
    row = record_to_row(record)
    updates = [column for column in columns if column != "clickup_task_id"]
    placeholders = ", ".join(["%s"] * len(columns))
    if db.is_sqlite():
        update_clause = ", ".join(f"{column} = excluded.{column}" for column in updates)
        conflict = f"ON CONFLICT(clickup_task_id) DO UPDATE SET {update_clause}"
    else:
        update_clause = ", ".join(f"{column} = VALUES({column})" for column in updates)
        conflict = f"ON DUPLICATE KEY UPDATE {update_clause}"
    sql = (
        f"INSERT INTO {table} ({', '.join(columns)}) "
        f"VALUES ({placeholders}) {conflict}"
    )
    await db.execute(sql, tuple(row[column] for column in columns))
