from datetime import date

from patient_ledger.services.billing import BillingLedgerService
from patient_ledger.services.receipt_pdf import build_payment_receipt


def test_receipt_renders_payment_and_correction(db_session, make_patient):
    patient = make_patient(monthly_fees="2000", registration_id="REG-0042")
    service = BillingLedgerService(db_session)
    payment, _ = service.record_payment(patient.id, "1500", "cash", "Paid at desk", date(2024, 3, 10))
    correction, _ = service.record_correction(payment.id, "200")

    payment, record = service.receipt_context(payment.id)
    pdf_bytes = build_payment_receipt(
        payment, patient, record, practice_name="Test Care", currency_label="Rs."
    )
    assert pdf_bytes.startswith(b"%PDF")

    correction, record = service.receipt_context(correction.id)
    reversal = build_payment_receipt(
        correction, patient, None, practice_name="Test Care", currency_label="Rs."
    )
    assert reversal.startswith(b"%PDF")
