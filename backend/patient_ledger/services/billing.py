from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Callable, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from patient_ledger.models.billing import MonthlyRecord, PaymentMethod, PaymentRecord
from patient_ledger.models.patient import Patient, PatientStatus
from patient_ledger.models.user import User
from patient_ledger.services.audit import log_event
from patient_ledger.services.billing_periods import (
    Period,
    current_period,
    period_of,
    previous_period,
    validate_period,
)
from patient_ledger.services.carry_forward import CarryForwardPropagator
from patient_ledger.services.dates import normalize_date
from patient_ledger.services.errors import (
    BillingError,
    ConcurrencyConflict,
    InvalidDate,
    InvalidInput,
    PatientNotFound,
    PaymentNotFound,
    UpstreamUnavailable,
)
from patient_ledger.services.fee_config import DatabaseFeeConfigProvider, FeeConfigProvider
from patient_ledger.services.money import ZERO, to_money
from patient_ledger.services.monthly_records import MonthlyRecordStore
from patient_ledger.services.payment_ledger import (
    PaymentLedgerStore,
    parse_payment_method,
    require_positive,
)

logger = logging.getLogger("patient_ledger.billing")

T = TypeVar("T")

_CONFLICT_ERRORS = (StaleDataError, IntegrityError, OperationalError)


@dataclass(frozen=True)
class PaymentCommand:
    """A payment request that has already been validated and normalized."""

    patient_id: int
    amount: Decimal
    method: PaymentMethod
    notes: str | None
    payment_date: date
    period: Period

    def to_json(self) -> dict[str, Any]:
        return {
            "patient_id": self.patient_id,
            "amount": str(self.amount),
            "method": self.method.value,
            "notes": self.notes,
            "payment_date": self.payment_date.isoformat(),
            "month": self.period.month,
            "year": self.period.year,
        }

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "PaymentCommand":
        return build_payment_command(
            data.get("patient_id"),
            data.get("amount"),
            data.get("method"),
            data.get("notes"),
            payment_date=data.get("payment_date"),
            month=data.get("month"),
            year=data.get("year"),
        )


def _patient_id(value: Any) -> int:
    if value is None or isinstance(value, bool):
        raise InvalidInput("patient_id is required")
    try:
        patient_id = int(value)
    except (TypeError, ValueError) as exc:
        raise InvalidInput("patient_id must be an integer") from exc
    if patient_id <= 0:
        raise InvalidInput("patient_id must be positive")
    return patient_id


def build_payment_command(
    patient_id: Any,
    amount: Any,
    method: Any,
    notes: str | None = None,
    *,
    payment_date: Any = None,
    month: Any = None,
    year: Any = None,
    today: date | None = None,
    default_method: PaymentMethod = PaymentMethod.cash,
) -> PaymentCommand:
    value = require_positive(amount)
    if payment_date is None or (isinstance(payment_date, str) and not payment_date.strip()):
        paid_on = today or date.today()
    else:
        paid_on = normalize_date(payment_date)
        if paid_on is None:
            raise InvalidDate(f"Invalid payment date: {payment_date!r}")
    if month is not None or year is not None:
        period = validate_period(
            month if month is not None else paid_on.month,
            year if year is not None else paid_on.year,
        )
    else:
        period = period_of(paid_on)
    cleaned_notes = notes.strip() if isinstance(notes, str) else None
    return PaymentCommand(
        patient_id=_patient_id(patient_id),
        amount=value,
        method=parse_payment_method(method, default_method),
        notes=cleaned_notes or None,
        payment_date=paid_on,
        period=period,
    )


@dataclass
class PeriodListingItem:
    patient: Patient
    record: MonthlyRecord | None


@dataclass
class PeriodListing:
    period: Period
    page: int
    limit: int
    total_patients: int
    total_due: Decimal
    total_paid: Decimal
    total_pending: Decimal
    items: list[PeriodListingItem] = field(default_factory=list)

    @property
    def total_pages(self) -> int:
        if self.total_patients == 0:
            return 0
        return (self.total_patients + self.limit - 1) // self.limit


@dataclass
class MonthlyRecordsSummary:
    period: Period
    records_processed: int = 0
    records_created: int = 0
    carry_forward_updates: int = 0


@dataclass
class CarryForwardRun:
    period: Period
    source_period: Period
    updated_records: int = 0
    failed: list[dict[str, Any]] = field(default_factory=list)


class BillingLedgerService:
    """Unit-of-work orchestration over the monthly ledger.

    Every public write runs as one transaction, retried once from a fresh
    read when the store reports a write conflict.
    """

    def __init__(
        self,
        db: Session,
        fees: FeeConfigProvider | None = None,
        *,
        actor: User | None = None,
        request_id: str | None = None,
        ip_address: str | None = None,
    ) -> None:
        self.db = db
        self.fees = fees or DatabaseFeeConfigProvider(db)
        self.records = MonthlyRecordStore(db)
        self.ledger = PaymentLedgerStore(db)
        self.propagator = CarryForwardPropagator(self.records, self.ledger, self.fees)
        self.actor = actor
        self.request_id = request_id
        self.ip_address = ip_address

    def _audit(self, action: str, entity_type: str, entity_id: Any, **kwargs: Any) -> None:
        log_event(
            self.db,
            actor=self.actor,
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id),
            request_id=self.request_id,
            ip_address=self.ip_address,
            **kwargs,
        )

    def _run_unit(self, label: str, work: Callable[[], T]) -> T:
        for attempt in (1, 2):
            try:
                result = work()
                self.db.commit()
                return result
            except BillingError:
                self.db.rollback()
                raise
            except _CONFLICT_ERRORS as exc:
                self.db.rollback()
                if isinstance(exc, OperationalError) and exc.connection_invalidated:
                    raise UpstreamUnavailable("Ledger store is unavailable") from exc
                if attempt == 2:
                    raise ConcurrencyConflict(
                        f"{label} collided with a concurrent update; please retry"
                    ) from exc
                logger.warning("Retrying %s after write conflict: %s", label, exc)
        raise AssertionError("unreachable")

    # -- periods ---------------------------------------------------------

    def _ensure_period(self, patient_id: int, period: Period) -> MonthlyRecord:
        record = self.records.get(patient_id, period)
        if record is not None:
            return record
        fee_config = self.fees.fee_config(patient_id, period)
        record, created = self.records.get_or_create(patient_id, period, fee_config)
        if created:
            source = previous_period(period)
            if self.records.get(patient_id, source) is not None:
                record = self.propagator.propagate(patient_id, source)
            self._audit(
                "billing.period_created",
                "monthly_record",
                record.id,
                patient_id=patient_id,
                after_obj=record,
            )
        return record

    def ensure_period(self, patient_id: int, period: Period) -> MonthlyRecord:
        return self._run_unit("ensure_period", lambda: self._ensure_period(patient_id, period))

    # -- payments --------------------------------------------------------

    def _settle(self, patient_id: int, period: Period, method: PaymentMethod | None) -> MonthlyRecord:
        paid = self.ledger.sum_for_period(patient_id, period)
        record = self.records.record_payment_totals(patient_id, period, paid, method)
        self.propagator.propagate(patient_id, period)
        return record

    def _apply_payment(self, command: PaymentCommand) -> tuple[PaymentRecord, MonthlyRecord]:
        self._ensure_period(command.patient_id, command.period)
        self.records.get(command.patient_id, command.period, for_update=True)
        payment = self.ledger.append(
            command.patient_id,
            command.payment_date,
            command.amount,
            command.method,
            command.notes,
            period=command.period,
            actor=self.actor,
        )
        record = self._settle(command.patient_id, command.period, command.method)
        self._audit(
            "billing.payment_recorded",
            "payment_record",
            payment.id,
            patient_id=command.patient_id,
            after_obj=payment,
        )
        return payment, record

    def apply_command(self, command: PaymentCommand) -> tuple[PaymentRecord, MonthlyRecord]:
        payment, record = self._run_unit("record_payment", lambda: self._apply_payment(command))
        logger.info(
            "Payment %s recorded for patient %s in %s (status=%s)",
            payment.id,
            command.patient_id,
            command.period,
            record.payment_status.value,
        )
        return payment, record

    def record_payment(
        self,
        patient_id: Any,
        amount: Any,
        method: Any = None,
        notes: str | None = None,
        payment_date: Any = None,
        *,
        month: Any = None,
        year: Any = None,
    ) -> tuple[PaymentRecord, MonthlyRecord]:
        command = build_payment_command(
            patient_id,
            amount,
            method,
            notes,
            payment_date=payment_date,
            month=month,
            year=year,
        )
        return self.apply_command(command)

    def _apply_correction(
        self, payment_id: int, amount: Decimal, notes: str | None
    ) -> tuple[PaymentRecord, MonthlyRecord]:
        original = self.ledger.get(payment_id)
        if original is None:
            raise PaymentNotFound(f"Payment {payment_id} not found")
        period = Period(year=original.period_year, month=original.period_month)
        self._ensure_period(original.patient_id, period)
        self.records.get(original.patient_id, period, for_update=True)
        correction = self.ledger.append_correction(payment_id, amount, notes, actor=self.actor)
        record = self._settle(original.patient_id, period, None)
        self._audit(
            "billing.correction_recorded",
            "payment_record",
            correction.id,
            patient_id=original.patient_id,
            before_obj=original,
            after_obj=correction,
        )
        return correction, record

    def record_correction(
        self, payment_id: int, amount: Any, notes: str | None = None
    ) -> tuple[PaymentRecord, MonthlyRecord]:
        value = require_positive(amount)
        return self._run_unit(
            "record_correction", lambda: self._apply_correction(payment_id, value, notes)
        )

    # -- period views and batches ---------------------------------------

    def _fees_due(self, patient_id: int, period: Period) -> bool:
        fee_config = self.fees.fee_config(patient_id, period)
        if to_money(fee_config.monthly_fees) + to_money(fee_config.other_fees) > ZERO:
            return True
        return self.records.get(patient_id, previous_period(period)) is not None

    def list_period(
        self,
        period: Period,
        page: int = 1,
        page_size: int = 50,
        *,
        today: date | None = None,
    ) -> PeriodListing:
        if page < 1 or page_size < 1:
            raise InvalidInput("page and limit must be positive")
        eligible = self.fees.eligible_patient_ids(period)
        start = (page - 1) * page_size
        page_ids = eligible[start : start + page_size]

        present = current_period(today)
        if period <= present:
            # totals cover the whole period, so every eligible patient is materialized
            existing = set(self.records.patient_ids_for_period(period))
            for patient_id in eligible:
                if patient_id in existing:
                    continue
                if period < present and not self._fees_due(patient_id, period):
                    continue
                self.ensure_period(patient_id, period)

        patients = {
            patient.id: patient
            for patient in self.db.scalars(select(Patient).where(Patient.id.in_(page_ids)))
        }
        records = {
            record.patient_id: record for record in self.records.list_for_period(period, page_ids)
        }
        totals = self.records.period_totals(period, eligible)
        return PeriodListing(
            period=period,
            page=page,
            limit=page_size,
            total_patients=len(eligible),
            total_due=totals["total_due"],
            total_paid=totals["total_paid"],
            total_pending=totals["total_pending"],
            items=[
                PeriodListingItem(patient=patients[patient_id], record=records.get(patient_id))
                for patient_id in page_ids
                if patient_id in patients
            ],
        )

    def save_monthly_records(self, period: Period) -> MonthlyRecordsSummary:
        summary = MonthlyRecordsSummary(period=period)
        source = previous_period(period)

        def _materialize(patient_id: int) -> tuple[MonthlyRecord, bool]:
            existed = self.records.get(patient_id, period) is not None
            record = self._ensure_period(patient_id, period)
            if existed and self.records.get(patient_id, source) is not None:
                record = self.propagator.propagate(patient_id, source)
            return record, not existed

        for patient_id in self.fees.eligible_patient_ids(period):
            record, created = self._run_unit(
                "save_monthly_records", lambda patient_id=patient_id: _materialize(patient_id)
            )
            summary.records_processed += 1
            if created:
                summary.records_created += 1
            if to_money(record.carry_forward_to_next) != ZERO:
                summary.carry_forward_updates += 1

        logger.info(
            "Saved monthly records for %s: processed=%s created=%s carry_forward=%s",
            period,
            summary.records_processed,
            summary.records_created,
            summary.carry_forward_updates,
        )
        return summary

    def check_carry_forward(self, period: Period) -> CarryForwardRun:
        source = previous_period(period)
        run = CarryForwardRun(period=period, source_period=source)
        for patient_id in self.records.patient_ids_for_period(source):
            try:
                self._run_unit(
                    "check_carry_forward",
                    lambda patient_id=patient_id: self.propagator.propagate(patient_id, source),
                )
            except BillingError as exc:
                logger.warning(
                    "Carry forward skipped for patient %s into %s: %s", patient_id, period, exc
                )
                run.failed.append({"patient_id": patient_id, "code": exc.code, "detail": exc.message})
                continue
            run.updated_records += 1
        logger.info(
            "Carry forward %s -> %s updated %s records (%s failed)",
            source,
            period,
            run.updated_records,
            len(run.failed),
        )
        return run

    def carry_forward_summary(self, period: Period) -> list[tuple[Patient, MonthlyRecord]]:
        stmt = (
            select(Patient, MonthlyRecord)
            .join(MonthlyRecord, MonthlyRecord.patient_id == Patient.id)
            .where(
                Patient.status == PatientStatus.active,
                MonthlyRecord.month == period.month,
                MonthlyRecord.year == period.year,
                MonthlyRecord.carry_forward_to_next != 0,
            )
            .order_by(Patient.name.asc(), Patient.id.asc())
        )
        return [(patient, record) for patient, record in self.db.execute(stmt)]

    # -- reads -----------------------------------------------------------

    def require_patient(self, patient_id: int) -> Patient:
        patient = self.db.get(Patient, patient_id)
        if patient is None:
            raise PatientNotFound(f"Patient {patient_id} not found")
        return patient

    def history(self, patient_id: int, period: Period | None = None) -> list[PaymentRecord]:
        self.require_patient(patient_id)
        return self.ledger.history(patient_id, period)

    def receipt_context(self, payment_id: int) -> tuple[PaymentRecord, MonthlyRecord | None]:
        payment = self.ledger.get(payment_id)
        if payment is None:
            raise PaymentNotFound(f"Payment {payment_id} not found")
        period = Period(year=payment.period_year, month=payment.period_month)
        return payment, self.records.get(payment.patient_id, period)
