from __future__ import annotations

from dataclasses import dataclass

from app.core.config import get_settings
from app.repositories import customers as customers_repo
from app.services.case_mapper import CaseFamily

PRIVATE_LIST_NAME = "Privatpersoner"
BUSINESS_LIST_NAME = "Företag"


@dataclass(frozen=True, slots=True)
class ListBinding:
    list_id: str
    family: CaseFamily
    list_name: str
    customer_id: str | None = None

    @property
    def table(self) -> str:
        return self.family.table


def private_list_binding() -> ListBinding:
    settings = get_settings()
    return ListBinding(
        list_id=str(settings.clickup_private_list_id),
        family=CaseFamily.STANDALONE_PRIVATE,
        list_name=PRIVATE_LIST_NAME,
    )


def business_list_binding() -> ListBinding:
    settings = get_settings()
    return ListBinding(
        list_id=str(settings.clickup_business_list_id),
        family=CaseFamily.STANDALONE_BUSINESS,
        list_name=BUSINESS_LIST_NAME,
    )


async def resolve_list_binding(list_id: str | None) -> ListBinding | None:
    """Find the case family for a ClickUp list.

    The configured private and business lists take precedence; any other list
    must belong to a contract customer.
    """

    text = str(list_id or "").strip()
    if not text:
        return None
    for binding in (private_list_binding(), business_list_binding()):
        if binding.list_id == text:
            return binding
    customer = await customers_repo.get_customer_by_clickup_list_id(text)
    if not customer or not customer.get("id"):
        return None
    return ListBinding(
        list_id=text,
        family=CaseFamily.CUSTOMER_CONTRACT,
        list_name=str(customer.get("company_name") or text),
        customer_id=customer["id"],
    )
