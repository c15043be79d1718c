from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from patient_ledger.models.billing import PaymentEntryType, PaymentMethod, PaymentRecord
from patient_ledger.models.user import User
from patient_ledger.services.billing_periods import Period, period_of
from patient_ledger.services.dates import normalize_date
from patient_ledger.services.errors import InvalidAmount, InvalidDate, InvalidInput, PaymentNotFound
from patient_ledger.services.money import ZERO, parse_money, to_money


def parse_payment_method(value: Any, default: PaymentMethod = PaymentMethod.cash) -> PaymentMethod:
    if value is None or (isinstance(value, str) and not value.strip()):
        return default
    if isinstance(value, PaymentMethod):
        return value
    key = str(value).strip().lower().replace(" ", "_").replace("-", "_")
    try:
        return PaymentMethod(key)
    except ValueError as exc:
        allowed = ", ".join(method.value for method in PaymentMethod)
        raise InvalidInput(f"payment_method must be one of: {allowed}") from exc


def require_positive(value: Any, *, field: str = "amount") -> Decimal:
    amount = parse_money(value, field=field)
    if amount <= ZERO:
        raise InvalidAmount(f"{field} must be greater than zero")
    return amount


class PaymentLedgerStore:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get(self, payment_id: int) -> PaymentRecord | None:
        return self.db.get(PaymentRecord, payment_id)

    def append(
        self,
        patient_id: int,
        payment_date: Any,
        amount: Any,
        method: PaymentMethod,
        notes: str | None,
        *,
        period: Period | None = None,
        actor: User | None = None,
        reference: str | None = None,
    ) -> PaymentRecord:
        value = require_positive(amount)
        normalized = normalize_date(payment_date)
        if normalized is None:
            raise InvalidDate(f"Invalid payment date: {payment_date!r}")
        target = period or period_of(normalized)
        entry = PaymentRecord(
            patient_id=patient_id,
            entry_type=PaymentEntryType.payment,
            payment_date=normalized,
            period_month=target.month,
            period_year=target.year,
            amount=value,
            payment_method=method,
            notes=notes or None,
            reference=reference,
            recorded_by_user_id=actor.id if actor else None,
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def corrected_total(self, payment_id: int) -> Decimal:
        total = self.db.scalar(
            select(func.coalesce(func.sum(PaymentRecord.amount), 0)).where(
                PaymentRecord.corrects_payment_id == payment_id,
                PaymentRecord.entry_type == PaymentEntryType.correction,
            )
        )
        return to_money(total)

    def append_correction(
        self,
        payment_id: int,
        amount: Any,
        notes: str | None,
        *,
        actor: User | None = None,
        correction_date: date | None = None,
    ) -> PaymentRecord:
        value = require_positive(amount)
        original = self.get(payment_id)
        if original is None:
            raise PaymentNotFound(f"Payment {payment_id} not found")
        if original.entry_type != PaymentEntryType.payment:
            raise InvalidInput("Only payments can be corrected")
        remaining = to_money(original.amount) - self.corrected_total(payment_id)
        if value > remaining:
            raise InvalidAmount(
                f"Correction {value} exceeds the uncorrected amount {remaining} of payment {payment_id}"
            )
        entry = PaymentRecord(
            patient_id=original.patient_id,
            entry_type=PaymentEntryType.correction,
            payment_date=correction_date or date.today(),
            period_month=original.period_month,
            period_year=original.period_year,
            amount=value,
            payment_method=original.payment_method,
            notes=notes or None,
            reference=f"CORR:{original.id}",
            corrects_payment_id=original.id,
            recorded_by_user_id=actor.id if actor else None,
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def sum_for_period(self, patient_id: int, period: Period) -> Decimal:
        signed = case(
            (PaymentRecord.entry_type == PaymentEntryType.correction, -PaymentRecord.amount),
            else_=PaymentRecord.amount,
        )
        total = self.db.scalar(
            select(func.coalesce(func.sum(signed), 0)).where(
                PaymentRecord.patient_id == patient_id,
                PaymentRecord.period_month == period.month,
                PaymentRecord.period_year == period.year,
            )
        )
        return to_money(total)

    def history(self, patient_id: int, period: Period | None = None) -> list[PaymentRecord]:
        stmt = select(PaymentRecord).where(PaymentRecord.patient_id == patient_id)
        if period is not None:
            stmt = stmt.where(
                PaymentRecord.period_month == period.month,
                PaymentRecord.period_year == period.year,
            )
        stmt = stmt.order_by(PaymentRecord.payment_date.desc(), PaymentRecord.id.desc())
        return list(self.db.scalars(stmt))
