from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from patient_ledger.models.billing import MonthlyRecord, PaymentMethod, PaymentStatus
from patient_ledger.services.billing_periods import Period
from patient_ledger.services.errors import PatientNotFound, RecordNotFound
from patient_ledger.services.fee_config import DatabaseFeeConfigProvider, FeeConfig
from patient_ledger.services.monthly_records import MonthlyRecordStore, recompute
from patient_ledger.models.patient import PatientStatus

MARCH = Period(2024, 3)


def test_recompute_derives_balances():
    record = MonthlyRecord(
        patient_id=1,
        month=3,
        year=2024,
        monthly_fees=Decimal("2000.00"),
        other_fees=Decimal("150.00"),
        carry_forward_from_previous=Decimal("-500.00"),
        amount_paid=Decimal("1000.00"),
    )
    assert recompute(record) is True
    assert record.total_amount == Decimal("1650.00")
    assert record.amount_pending == Decimal("650.00")
    assert record.carry_forward_to_next == record.amount_pending
    assert record.net_balance == record.amount_pending
    assert record.payment_status == PaymentStatus.partial
    assert recompute(record) is False


def test_get_or_create_is_idempotent(db_session, make_patient):
    patient = make_patient()
    store = MonthlyRecordStore(db_session)
    fees = FeeConfig(monthly_fees=Decimal("2000"), other_fees=Decimal("0"))

    record, created = store.get_or_create(patient.id, MARCH, fees)
    db_session.commit()
    again, created_again = store.get_or_create(patient.id, MARCH, fees)

    assert created is True
    assert created_again is False
    assert again.id == record.id
    assert record.total_amount == Decimal("2000.00")
    assert record.payment_status == PaymentStatus.pending
    count = db_session.scalar(select(func.count(MonthlyRecord.id)))
    assert count == 1


def test_apply_carry_forward_only_writes_on_change(db_session, make_patient):
    patient = make_patient()
    store = MonthlyRecordStore(db_session)
    fees = FeeConfig(monthly_fees=Decimal("2000"), other_fees=Decimal("0"))

    record = store.apply_carry_forward(patient.id, MARCH, Decimal("800"), fees)
    db_session.commit()
    version = record.version
    assert record.carry_forward_from_previous == Decimal("800.00")
    assert record.total_amount == Decimal("2800.00")

    store.apply_carry_forward(patient.id, MARCH, Decimal("800.00"), fees)
    db_session.commit()
    assert record.version == version

    store.apply_carry_forward(patient.id, MARCH, Decimal("-500"), fees)
    db_session.commit()
    assert record.version == version + 1
    assert record.total_amount == Decimal("1500.00")
    assert record.payment_status == PaymentStatus.pending


def test_record_payment_totals_requires_existing_row(db_session, make_patient):
    patient = make_patient()
    store = MonthlyRecordStore(db_session)
    with pytest.raises(RecordNotFound):
        store.record_payment_totals(patient.id, MARCH, Decimal("100"))


def test_record_payment_totals_sets_status_and_method(db_session, make_patient):
    patient = make_patient()
    store = MonthlyRecordStore(db_session)
    store.get_or_create(patient.id, MARCH, FeeConfig(monthly_fees=Decimal("2000")))
    record = store.record_payment_totals(patient.id, MARCH, Decimal("2500"), PaymentMethod.upi)
    db_session.commit()

    assert record.payment_status == PaymentStatus.overpaid
    assert record.amount_pending == Decimal("-500.00")
    assert record.payment_method == PaymentMethod.upi


def test_period_totals_and_listing(db_session, make_patient):
    first = make_patient("Asha")
    second = make_patient("Bala", monthly_fees="1000")
    store = MonthlyRecordStore(db_session)
    store.get_or_create(first.id, MARCH, FeeConfig(monthly_fees=Decimal("2000")))
    store.get_or_create(second.id, MARCH, FeeConfig(monthly_fees=Decimal("1000")))
    store.record_payment_totals(second.id, MARCH, Decimal("400"))
    db_session.commit()

    totals = store.period_totals(MARCH)
    assert totals["total_records"] == 2
    assert totals["total_due"] == Decimal("3000.00")
    assert totals["total_paid"] == Decimal("400.00")
    assert totals["total_pending"] == Decimal("2600.00")
    assert store.period_totals(MARCH, [second.id])["total_due"] == Decimal("1000.00")
    assert [r.patient_id for r in store.list_for_period(MARCH)] == [first.id, second.id]
    assert store.patient_ids_for_period(Period(2024, 4)) == []


def test_fee_config_adds_admission_charges_in_admission_month(db_session, make_patient):
    patient = make_patient(
        monthly_fees="2000",
        other_fees="100",
        blood_test_fee="350",
        pickup_charge="200",
        admission_date=date(2024, 3, 12),
    )
    provider = DatabaseFeeConfigProvider(db_session)

    admission = provider.fee_config(patient.id, MARCH)
    later = provider.fee_config(patient.id, Period(2024, 4))

    assert admission == FeeConfig(monthly_fees=Decimal("2000.00"), other_fees=Decimal("650.00"))
    assert later == FeeConfig(monthly_fees=Decimal("2000.00"), other_fees=Decimal("100.00"))


def test_fee_config_unknown_patient(db_session):
    with pytest.raises(PatientNotFound):
        DatabaseFeeConfigProvider(db_session).fee_config(9999, MARCH)


def test_eligible_patients_are_active_and_admitted(db_session, make_patient):
    admitted = make_patient("Admitted", admission_date=date(2024, 3, 31))
    make_patient("Future", admission_date=date(2024, 4, 1))
    make_patient("Discharged", status=PatientStatus.discharged)
    make_patient("Unknown", admission_date=None)

    assert DatabaseFeeConfigProvider(db_session).eligible_patient_ids(MARCH) == [admitted.id]
