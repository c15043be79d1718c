from __future__ import annotations

from decimal import Decimal
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from patient_ledger.models.billing import MonthlyRecord, PaymentMethod
from patient_ledger.services.billing_periods import Period
from patient_ledger.services.billing_status import derive_status
from patient_ledger.services.errors import RecordNotFound
from patient_ledger.services.fee_config import FeeConfig
from patient_ledger.services.money import ZERO, to_money


def _assign(record: MonthlyRecord, field: str, value: Any) -> bool:
    if getattr(record, field) == value:
        return False
    setattr(record, field, value)
    return True


def recompute(record: MonthlyRecord) -> bool:
    """Re-derive every dependent column; returns True if anything changed."""
    monthly_fees = to_money(record.monthly_fees)
    other_fees = to_money(record.other_fees)
    carry_in = to_money(record.carry_forward_from_previous)
    paid = to_money(record.amount_paid)

    total = monthly_fees + other_fees + carry_in
    pending = total - paid
    changed = False
    for field, value in (
        ("total_amount", total),
        ("amount_pending", pending),
        ("carry_forward_to_next", pending),
        ("net_balance", pending),
        ("payment_status", derive_status(total, paid)),
    ):
        changed = _assign(record, field, value) or changed
    return changed


class MonthlyRecordStore:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get(self, patient_id: int, period: Period, *, for_update: bool = False) -> MonthlyRecord | None:
        stmt = select(MonthlyRecord).where(
            MonthlyRecord.patient_id == patient_id,
            MonthlyRecord.month == period.month,
            MonthlyRecord.year == period.year,
        )
        if for_update:
            stmt = stmt.with_for_update(of=MonthlyRecord).execution_options(populate_existing=True)
        return self.db.scalar(stmt)

    def get_or_create(
        self, patient_id: int, period: Period, fee_config: FeeConfig
    ) -> tuple[MonthlyRecord, bool]:
        record = self.get(patient_id, period)
        if record is not None:
            return record, False

        record = MonthlyRecord(
            patient_id=patient_id,
            month=period.month,
            year=period.year,
            monthly_fees=to_money(fee_config.monthly_fees),
            other_fees=to_money(fee_config.other_fees),
            carry_forward_from_previous=ZERO,
            amount_paid=ZERO,
        )
        recompute(record)
        try:
            with self.db.begin_nested():
                self.db.add(record)
        except IntegrityError:
            # a concurrent creator won the unique (patient, month, year) race
            existing = self.get(patient_id, period)
            if existing is None:
                raise
            return existing, False
        return record, True

    def apply_carry_forward(
        self, patient_id: int, period: Period, amount: Decimal, fee_config: FeeConfig
    ) -> MonthlyRecord:
        record, _created = self.get_or_create(patient_id, period, fee_config)
        changed = _assign(record, "carry_forward_from_previous", to_money(amount))
        if recompute(record) or changed:
            self.db.flush()
        return record

    def record_payment_totals(
        self,
        patient_id: int,
        period: Period,
        new_amount_paid: Decimal,
        method: PaymentMethod | None = None,
    ) -> MonthlyRecord:
        record = self.get(patient_id, period)
        if record is None:
            raise RecordNotFound(f"No monthly record for patient {patient_id} in {period}")
        changed = _assign(record, "amount_paid", to_money(new_amount_paid))
        if method is not None:
            changed = _assign(record, "payment_method", method) or changed
        if recompute(record) or changed:
            self.db.flush()
        return record

    def list_for_period(self, period: Period, patient_ids: list[int] | None = None) -> list[MonthlyRecord]:
        stmt = select(MonthlyRecord).where(
            MonthlyRecord.month == period.month,
            MonthlyRecord.year == period.year,
        )
        if patient_ids is not None:
            stmt = stmt.where(MonthlyRecord.patient_id.in_(patient_ids))
        return list(self.db.scalars(stmt.order_by(MonthlyRecord.patient_id.asc())))

    def patient_ids_for_period(self, period: Period) -> list[int]:
        stmt = (
            select(MonthlyRecord.patient_id)
            .where(MonthlyRecord.month == period.month, MonthlyRecord.year == period.year)
            .order_by(MonthlyRecord.patient_id.asc())
        )
        return list(self.db.scalars(stmt))

    def period_totals(
        self, period: Period, patient_ids: list[int] | None = None
    ) -> dict[str, Decimal | int]:
        stmt = select(
            func.count(MonthlyRecord.id),
            func.coalesce(func.sum(MonthlyRecord.total_amount), 0),
            func.coalesce(func.sum(MonthlyRecord.amount_paid), 0),
            func.coalesce(func.sum(MonthlyRecord.amount_pending), 0),
        ).where(MonthlyRecord.month == period.month, MonthlyRecord.year == period.year)
        if patient_ids is not None:
            stmt = stmt.where(MonthlyRecord.patient_id.in_(patient_ids))
        row = self.db.execute(stmt).one()
        return {
            "total_records": int(row[0] or 0),
            "total_due": to_money(row[1]),
            "total_paid": to_money(row[2]),
            "total_pending": to_money(row[3]),
        }
