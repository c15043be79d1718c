from __future__ import annotations

from calendar import monthrange
from dataclasses import dataclass
from datetime import date
from typing import Any

from patient_ledger.services.dates import MAX_YEAR, MIN_YEAR
from patient_ledger.services.errors import InvalidInput


@dataclass(frozen=True, order=True)
class Period:
    year: int
    month: int

    def __str__(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


def _as_int(value: Any, field: str) -> int:
    if isinstance(value, bool):
        raise InvalidInput(f"{field} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise InvalidInput(f"{field} must be an integer") from exc


def validate_period(month: Any, year: Any) -> Period:
    month_value = _as_int(month, "month")
    year_value = _as_int(year, "year")
    if month_value < 1 or month_value > 12:
        raise InvalidInput("month must be between 1 and 12")
    if year_value < MIN_YEAR or year_value > MAX_YEAR:
        raise InvalidInput(f"year must be between {MIN_YEAR} and {MAX_YEAR}")
    return Period(year=year_value, month=month_value)


def next_period(period: Period) -> Period:
    if period.month == 12:
        return Period(year=period.year + 1, month=1)
    return Period(year=period.year, month=period.month + 1)


def previous_period(period: Period) -> Period:
    if period.month == 1:
        return Period(year=period.year - 1, month=12)
    return Period(year=period.year, month=period.month - 1)


def period_of(value: date) -> Period:
    return Period(year=value.year, month=value.month)


def period_end(period: Period) -> date:
    return date(period.year, period.month, monthrange(period.year, period.month)[1])


def current_period(today: date | None = None) -> Period:
    return period_of(today or date.today())
