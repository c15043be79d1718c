from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from patient_ledger.models.patient import Patient, PatientStatus
from patient_ledger.services.billing_periods import Period, period_end, period_of
from patient_ledger.services.errors import PatientNotFound, UpstreamUnavailable
from patient_ledger.services.money import ZERO, to_money


@dataclass(frozen=True)
class FeeConfig:
    monthly_fees: Decimal = ZERO
    other_fees: Decimal = ZERO


class FeeConfigProvider(Protocol):
    def fee_config(self, patient_id: int, period: Period) -> FeeConfig: ...

    def eligible_patient_ids(self, period: Period) -> list[int]: ...


class DatabaseFeeConfigProvider:
    """Reads billing configuration from the patient-management tables."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def _load_patient(self, patient_id: int) -> Patient | None:
        try:
            return self.db.get(Patient, patient_id)
        except OperationalError as exc:
            raise UpstreamUnavailable("Patient records are unavailable; fees cannot be resolved") from exc

    def fee_config(self, patient_id: int, period: Period) -> FeeConfig:
        patient = self._load_patient(patient_id)
        if patient is None:
            raise PatientNotFound(f"Patient {patient_id} not found")
        other_fees = to_money(patient.other_fees)
        if patient.admission_date and period_of(patient.admission_date) == period:
            # one-time admission charges land in the admission month only
            other_fees += to_money(patient.blood_test_fee) + to_money(patient.pickup_charge)
        return FeeConfig(monthly_fees=to_money(patient.monthly_fees), other_fees=to_money(other_fees))

    def eligible_patient_ids(self, period: Period) -> list[int]:
        stmt = (
            select(Patient.id)
            .where(
                Patient.status == PatientStatus.active,
                Patient.admission_date.is_not(None),
                Patient.admission_date <= period_end(period),
            )
            .order_by(Patient.id.asc())
        )
        try:
            return list(self.db.scalars(stmt))
        except OperationalError as exc:
            raise UpstreamUnavailable("Patient records are unavailable") from exc
