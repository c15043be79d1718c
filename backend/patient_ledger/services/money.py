from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from patient_ledger.services.errors import InvalidAmount

CENT = Decimal("0.01")
MONEY_EPSILON = Decimal("0.01")
ZERO = Decimal("0.00")
# largest value a Numeric(12, 2) column holds
MAX_MONEY = Decimal("9999999999.99")


def to_money(value: Any) -> Decimal:
    """Quantize a trusted value (store reads, sums) to currency scale."""
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def parse_money(value: Any, *, field: str = "amount") -> Decimal:
    """Parse an untrusted amount once at the boundary.

    Accepts numbers or numeric text; rejects booleans, blanks, non-finite,
    negative and out-of-range values.
    """
    if value is None or isinstance(value, bool):
        raise InvalidAmount(f"{field} is required and must be numeric")
    if isinstance(value, str):
        text = value.strip().replace(",", "")
        if not text:
            raise InvalidAmount(f"{field} is required and must be numeric")
        raw: Any = text
    elif isinstance(value, (int, float, Decimal)):
        raw = str(value) if isinstance(value, float) else value
    else:
        raise InvalidAmount(f"{field} must be numeric")
    try:
        amount = Decimal(raw)
    except (InvalidOperation, ValueError) as exc:
        raise InvalidAmount(f"{field} must be numeric") from exc
    if not amount.is_finite():
        raise InvalidAmount(f"{field} must be a finite number")
    if amount < 0:
        raise InvalidAmount(f"{field} cannot be negative")
    if amount > MAX_MONEY:
        raise InvalidAmount(f"{field} cannot exceed {MAX_MONEY}")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def money_equal(left: Decimal, right: Decimal) -> bool:
    return abs(left - right) < MONEY_EPSILON
