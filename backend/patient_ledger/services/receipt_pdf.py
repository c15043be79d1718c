from __future__ import annotations

from decimal import Decimal
from io import BytesIO

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas

from patient_ledger.models.billing import MonthlyRecord, PaymentEntryType, PaymentRecord
from patient_ledger.models.patient import Patient
from patient_ledger.services.billing_periods import Period


def _format_amount(amount: Decimal, currency_label: str) -> str:
    return f"{currency_label} {amount:,.2f}"


def _draw_header(pdf: canvas.Canvas, practice_name: str, title: str) -> None:
    pdf.setFont("Helvetica-Bold", 16)
    pdf.drawString(20 * mm, 280 * mm, practice_name)
    pdf.setFont("Helvetica-Bold", 14)
    pdf.drawRightString(190 * mm, 280 * mm, title)
    pdf.setStrokeColor(colors.lightgrey)
    pdf.line(20 * mm, 270 * mm, 190 * mm, 270 * mm)


def _draw_patient_block(pdf: canvas.Canvas, patient: Patient) -> None:
    pdf.setFont("Helvetica-Bold", 11)
    pdf.drawString(20 * mm, 258 * mm, "Received from")
    pdf.setFont("Helvetica", 10)
    pdf.drawString(20 * mm, 253 * mm, patient.name)
    y = 248 * mm
    if patient.registration_id:
        pdf.drawString(20 * mm, y, f"Registration: {patient.registration_id}")
        y -= 5 * mm
    if patient.phone:
        pdf.drawString(20 * mm, y, patient.phone)


def _draw_payment_meta(pdf: canvas.Canvas, payment: PaymentRecord) -> None:
    period = Period(year=payment.period_year, month=payment.period_month)
    pdf.setFont("Helvetica", 10)
    pdf.drawString(120 * mm, 258 * mm, f"Receipt no: {payment.id}")
    pdf.drawString(120 * mm, 253 * mm, f"Payment date: {payment.payment_date.isoformat()}")
    pdf.drawString(120 * mm, 248 * mm, f"Billing month: {period}")
    pdf.drawString(120 * mm, 243 * mm, f"Method: {payment.payment_method.value}")
    if payment.notes:
        pdf.drawString(120 * mm, 238 * mm, f"Notes: {payment.notes[:60]}")


def build_payment_receipt(
    payment: PaymentRecord,
    patient: Patient,
    record: MonthlyRecord | None,
    *,
    practice_name: str,
    currency_label: str,
) -> bytes:
    buffer = BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=A4)
    is_correction = payment.entry_type == PaymentEntryType.correction
    _draw_header(pdf, practice_name, "Payment correction" if is_correction else "Payment receipt")
    _draw_patient_block(pdf, patient)
    _draw_payment_meta(pdf, payment)

    label = "Amount reversed" if is_correction else "Amount received"
    pdf.setFont("Helvetica-Bold", 18)
    pdf.drawString(20 * mm, 215 * mm, f"{label}: {_format_amount(payment.amount, currency_label)}")

    if record is not None:
        pdf.setFont("Helvetica", 10)
        rows = [
            ("Monthly fees", record.monthly_fees),
            ("Other fees", record.other_fees),
            ("Brought forward", record.carry_forward_from_previous),
            ("Total due", record.total_amount),
            ("Paid this month", record.amount_paid),
            ("Balance", record.amount_pending),
        ]
        y = 195 * mm
        for title, amount in rows:
            pdf.drawString(20 * mm, y, title)
            pdf.drawRightString(110 * mm, y, _format_amount(amount, currency_label))
            y -= 6 * mm
        pdf.setFont("Helvetica-Bold", 10)
        pdf.drawString(20 * mm, y - 2 * mm, f"Status: {record.payment_status.value}")

    pdf.showPage()
    pdf.save()
    return buffer.getvalue()
