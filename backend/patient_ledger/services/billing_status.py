from __future__ import annotations

from decimal import Decimal
from typing import Any

from patient_ledger.models.billing import PaymentStatus
from patient_ledger.services.errors import InvalidInput
from patient_ledger.services.money import ZERO, money_equal


def _finite(value: Any, field: str) -> Decimal:
    if isinstance(value, bool):
        raise InvalidInput(f"{field} must be numeric")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (ArithmeticError, ValueError) as exc:
        raise InvalidInput(f"{field} must be numeric") from exc
    if not amount.is_finite():
        raise InvalidInput(f"{field} must be a finite number")
    return amount


def derive_status(total_amount: Any, amount_paid: Any) -> PaymentStatus:
    total = _finite(total_amount, "total_amount")
    paid = _finite(amount_paid, "amount_paid")

    if paid <= ZERO:
        return PaymentStatus.completed if total <= ZERO else PaymentStatus.pending
    if money_equal(paid, total):
        return PaymentStatus.completed
    if paid > total:
        return PaymentStatus.overpaid
    return PaymentStatus.partial
