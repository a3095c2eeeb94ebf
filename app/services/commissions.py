from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any

from app.core.logging import log_warning
from app.services.custom_fields import parse_decimal

COMMISSION_RATE = Decimal("0.05")
VAT_DIVISOR = Decimal("1.25")
_CENT = Decimal("0.01")


class CommissionCategory(str, Enum):
    PRIVATE = "private"
    BUSINESS = "business"


class CommissionPolicy(str, Enum):
    TRANSITION_ONLY = "transition_only"
    RECOMPUTE_ON_SYNC = "recompute_on_sync"

    @classmethod
    def from_value(cls, value: Any) -> "CommissionPolicy":
        if isinstance(value, cls):
            return value
        text = str(value or "").strip().lower()
        for member in cls:
            if member.value == text:
                return member
        if text:
            log_warning("Unknown commission policy, using transition_only", policy=text)
        return cls.TRANSITION_ONLY


@dataclass(frozen=True, slots=True)
class CommissionResult:
    amount: Decimal | None
    calculated_at: datetime | None


_CLEARED = CommissionResult(amount=None, calculated_at=None)


def calculate_commission(price: Any, category: CommissionCategory | str) -> Decimal | None:
    """Return the technician commission for ``price``.

    Business prices include 25% VAT which is removed before the 5% rate is
    applied. Missing, non-numeric, zero and negative prices yield ``None``.
    """

    amount = parse_decimal(price)
    if amount is None or amount <= 0:
        return None
    try:
        category = CommissionCategory(category)
    except ValueError:
        category = CommissionCategory.PRIVATE
    net = amount / VAT_DIVISOR if category is CommissionCategory.BUSINESS else amount
    return (net * COMMISSION_RATE).quantize(_CENT, rounding=ROUND_HALF_UP)


def apply_commission_policy(
    policy: CommissionPolicy,
    *,
    is_terminal: bool,
    was_terminal: bool,
    price: Any,
    category: CommissionCategory,
    now: datetime,
    existing_amount: Decimal | None = None,
    existing_calculated_at: datetime | None = None,
) -> CommissionResult:
    """Decide the commission pair to store for a sync.

    ``was_terminal`` describes the stored record; a case seen for the first
    time is treated as non-terminal.
    """

    if not is_terminal:
        return _CLEARED
    if policy is CommissionPolicy.TRANSITION_ONLY and was_terminal:
        return CommissionResult(amount=existing_amount, calculated_at=existing_calculated_at)
    amount = calculate_commission(price, category)
    if amount is None:
        return _CLEARED
    if (
        policy is CommissionPolicy.RECOMPUTE_ON_SYNC
        and existing_calculated_at is not None
        and existing_amount is not None
        and parse_decimal(existing_amount) == amount
    ):
        return CommissionResult(amount=amount, calculated_at=existing_calculated_at)
    return CommissionResult(amount=amount, calculated_at=now)
