"""Translate a ClickUp task payload into a :class:`CaseRecord`.

The mapper is pure: the status registry, technician resolver, clock and the
previously stored record are all passed in, so the webhook handler and the
batch importer produce identical records for the same task.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any, Mapping

from app.services.case_dates import DEFAULT_START_HOUR, resolve_case_dates
from app.services.commissions import (
    CommissionCategory,
    CommissionPolicy,
    apply_commission_policy,
)
from app.services.custom_fields import (
    LocationValue,
    parse_custom_fields,
    parse_decimal,
    render_custom_fields,
)
from app.services.status_registry import StatusRegistry
from app.services.technicians import CaseAssignee, TechnicianResolver

if TYPE_CHECKING:
    from app.services.case_lists import ListBinding

__all__ = [
    "CaseAssignee",
    "CaseFamily",
    "CasePriority",
    "CaseRecord",
    "FAMILY_FIELDS",
    "map_priority",
    "map_task_to_case",
]


class CaseFamily(str, Enum):
    CUSTOMER_CONTRACT = "customer_contract"
    STANDALONE_PRIVATE = "standalone_private"
    STANDALONE_BUSINESS = "standalone_business"

    @property
    def table(self) -> str:
        return _FAMILY_TABLES[self]

    @property
    def commission_category(self) -> CommissionCategory:
        if self is CaseFamily.STANDALONE_PRIVATE:
            return CommissionCategory.PRIVATE
        return CommissionCategory.BUSINESS


_FAMILY_TABLES = {
    CaseFamily.CUSTOMER_CONTRACT: "contract_cases",
    CaseFamily.STANDALONE_PRIVATE: "private_cases",
    CaseFamily.STANDALONE_BUSINESS: "business_cases",
}


class CasePriority(str, Enum):
    URGENT = "urgent"
    HIGH = "high"
    NORMAL = "normal"


FAMILY_FIELDS: dict[CaseFamily, tuple[str, ...]] = {
    CaseFamily.STANDALONE_PRIVATE: (
        "personal_id",
        "property_designation",
        "rot_rut",
        "labour_cost",
    ),
    CaseFamily.STANDALONE_BUSINESS: (
        "org_number",
        "invoice_marking",
        "invoice_email",
        "orderer",
    ),
    CaseFamily.CUSTOMER_CONTRACT: (
        "pest_type",
        "case_type",
        "address_formatted",
        "address_lat",
        "address_lng",
        "technician_report",
        "files",
    ),
}

_PRIORITY_BY_NUMBER = {
    1: CasePriority.URGENT,
    2: CasePriority.HIGH,
    3: CasePriority.NORMAL,
    4: CasePriority.NORMAL,
}
_PRIORITY_BY_TEXT = {
    "urgent": CasePriority.URGENT,
    "akut": CasePriority.URGENT,
    "brådskande": CasePriority.URGENT,
    "high": CasePriority.HIGH,
    "hög": CasePriority.HIGH,
    "normal": CasePriority.NORMAL,
    "low": CasePriority.NORMAL,
    "låg": CasePriority.NORMAL,
}


@dataclass(slots=True)
class CaseRecord:
    external_task_id: str
    case_number: str
    case_family: CaseFamily
    title: str | None
    description: str | None
    status_name: str
    status_code: str | None
    priority: CasePriority
    synced_at: datetime
    assignees: tuple[CaseAssignee, ...] = ()
    start_date: datetime | None = None
    due_date: datetime | None = None
    completed_date: datetime | None = None
    price: Decimal | None = None
    commission_amount: Decimal | None = None
    commission_calculated_at: datetime | None = None
    custom_attributes: dict[str, Any] = field(default_factory=dict)
    customer_id: str | None = None
    family_fields: dict[str, Any] = field(default_factory=dict)

    @property
    def table(self) -> str:
        return self.case_family.table


def map_priority(value: Any) -> CasePriority:
    """Map a ClickUp priority onto the case priority scale. Never raises."""

    if isinstance(value, Mapping):
        candidate = value.get("priority")
        if candidate in (None, ""):
            candidate = value.get("id")
        return map_priority(candidate)
    if value is None or isinstance(value, bool):
        return CasePriority.NORMAL
    if isinstance(value, (int, float)):
        return _PRIORITY_BY_NUMBER.get(int(value), CasePriority.NORMAL)
    text = str(value).strip().lower()
    if text.isdigit():
        return _PRIORITY_BY_NUMBER.get(int(text), CasePriority.NORMAL)
    return _PRIORITY_BY_TEXT.get(text, CasePriority.NORMAL)


def _clean_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _case_number(task: Mapping[str, Any], task_id: str) -> str:
    custom_id = _clean_text(task.get("custom_id"))
    if custom_id:
        return custom_id
    return task_id[-6:]


def _status_parts(task: Mapping[str, Any]) -> tuple[Any, Any]:
    status = task.get("status")
    if isinstance(status, Mapping):
        return status.get("id"), status.get("status")
    return None, status


def _attribute(attributes: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in attributes and attributes[key] is not None:
            return attributes[key]
    return None


def _contract_address(values: list[Any]) -> dict[str, Any]:
    for value in values:
        if isinstance(value, LocationValue) and value.key == "adress" and value.value:
            location = value.value.get("location")
            location = location if isinstance(location, Mapping) else {}
            return {
                "address_formatted": _clean_text(value.value.get("formatted_address")),
                "address_lat": parse_decimal(location.get("lat")),
                "address_lng": parse_decimal(location.get("lng")),
            }
    return {"address_formatted": None, "address_lat": None, "address_lng": None}


def _family_fields(
    family: CaseFamily,
    attributes: Mapping[str, Any],
    values: list[Any],
) -> dict[str, Any]:
    if family is CaseFamily.STANDALONE_PRIVATE:
        return {
            "personal_id": _clean_text(_attribute(attributes, "personnummer")),
            "property_designation": _clean_text(_attribute(attributes, "r_fastighetsbeteckning")),
            "rot_rut": _clean_text(_attribute(attributes, "r_rot_rut")),
            "labour_cost": parse_decimal(_attribute(attributes, "r_arbetskostnad")),
        }
    if family is CaseFamily.STANDALONE_BUSINESS:
        return {
            "org_number": _clean_text(_attribute(attributes, "org_nr")),
            "invoice_marking": _clean_text(_attribute(attributes, "markning_faktura")),
            "invoice_email": _clean_text(_attribute(attributes, "e_post_faktura")),
            "orderer": _clean_text(_attribute(attributes, "bestallare")),
        }
    fields = {
        "pest_type": _clean_text(_attribute(attributes, "skadedjur")),
        "case_type": _clean_text(_attribute(attributes, "arende")),
    }
    fields.update(_contract_address(values))
    fields["technician_report"] = _clean_text(_attribute(attributes, "rapport"))
    fields["files"] = _attribute(attributes, "filer")
    return fields


def map_task_to_case(
    task: Mapping[str, Any],
    binding: "ListBinding",
    *,
    registry: StatusRegistry,
    resolver: TechnicianResolver,
    now: datetime,
    existing: CaseRecord | None = None,
    policy: CommissionPolicy = CommissionPolicy.TRANSITION_ONLY,
    timezone_name: str | None = "UTC",
    start_hour: int = DEFAULT_START_HOUR,
) -> CaseRecord:
    task_id = str(task.get("id") or "").strip()
    if not task_id:
        raise ValueError("ClickUp task payload is missing an id")
    now = now if now.tzinfo else now.replace(tzinfo=timezone.utc)
    family = binding.family

    status_code, status_label = _status_parts(task)
    status_name = registry.resolve(status_code, status_label)
    is_terminal = registry.is_terminal(status_name)
    was_terminal = existing is not None and registry.is_terminal(existing.status_name)

    values = parse_custom_fields(task.get("custom_fields"))
    attributes = render_custom_fields(values)
    price = parse_decimal(_attribute(attributes, "pris", "price"))

    dates = resolve_case_dates(
        task,
        is_terminal,
        now=now,
        timezone_name=timezone_name,
        start_hour=start_hour,
        completed_fallback=existing.completed_date if was_terminal else None,
    )
    commission = apply_commission_policy(
        policy,
        is_terminal=is_terminal,
        was_terminal=was_terminal,
        price=price,
        category=family.commission_category,
        now=now,
        existing_amount=existing.commission_amount if existing else None,
        existing_calculated_at=existing.commission_calculated_at if existing else None,
    )

    return CaseRecord(
        external_task_id=task_id,
        case_number=_case_number(task, task_id),
        case_family=family,
        title=_clean_text(task.get("name")),
        description=_clean_text(task.get("description") or task.get("text_content")),
        status_name=status_name,
        status_code=_clean_text(status_code) or _clean_text(status_label),
        priority=map_priority(task.get("priority")),
        synced_at=now,
        assignees=resolver.resolve_assignees(task.get("assignees")),
        start_date=dates.start,
        due_date=dates.due,
        completed_date=dates.completed,
        price=price,
        commission_amount=commission.amount,
        commission_calculated_at=commission.calculated_at,
        custom_attributes=attributes,
        customer_id=binding.customer_id if family is CaseFamily.CUSTOMER_CONTRACT else None,
        family_fields=_family_fields(family, attributes, values),
    )
