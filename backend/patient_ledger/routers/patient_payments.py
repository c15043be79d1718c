from fastapi import APIRouter, Depends, Header, Query, Request, Response, status
from sqlalchemy.orm import Session

from patient_ledger.core.settings import settings
from patient_ledger.db.session import get_db
from patient_ledger.deps import get_current_user
from patient_ledger.models.user import User
from patient_ledger.schemas.billing import (
    CarryForwardItemOut,
    CarryForwardRunOut,
    CarryForwardSummaryOut,
    CorrectionIn,
    MonthlyRecordOut,
    MonthlyRecordsSavedOut,
    PaymentHistoryOut,
    PaymentRecordedOut,
    PaymentRecordOut,
    PeriodIn,
    PeriodListingOut,
    PeriodPatientOut,
    PeriodStatsOut,
    RecordPaymentIn,
)
from patient_ledger.services.billing import BillingLedgerService, build_payment_command
from patient_ledger.services.billing_periods import current_period, validate_period
from patient_ledger.services.ledger_repository import STATUS_QUEUED, build_ledger_repository
from patient_ledger.services.money import ZERO, to_money
from patient_ledger.services.payment_ledger import parse_payment_method
from patient_ledger.services.receipt_pdf import build_payment_receipt

router = APIRouter(prefix="/patient-payments", tags=["patient-payments"])
carry_forward_router = APIRouter(tags=["patient-payments"])


def _service(db: Session, user: User, request: Request, request_id: str | None) -> BillingLedgerService:
    return BillingLedgerService(
        db,
        actor=user,
        request_id=request_id,
        ip_address=request.client.host if request.client else None,
    )


def _record_out(record) -> MonthlyRecordOut | None:
    if record is None:
        return None
    return MonthlyRecordOut.model_validate(record)


@router.get("/all", response_model=PeriodListingOut)
def list_patient_payments(
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    request_id: str | None = Header(default=None),
    month: int | None = Query(default=None),
    year: int | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int | None = Query(default=None, ge=1),
):
    present = current_period()
    period = validate_period(
        month if month is not None else present.month,
        year if year is not None else present.year,
    )
    page_size = min(limit or settings.payment_page_size, settings.max_payment_page_size)
    listing = _service(db, user, request, request_id).list_period(period, page, page_size)
    return PeriodListingOut(
        month=period.month,
        year=period.year,
        page=listing.page,
        limit=listing.limit,
        total_pages=listing.total_pages,
        stats=PeriodStatsOut(
            total_patients=listing.total_patients,
            total_due=listing.total_due,
            total_paid=listing.total_paid,
            total_pending=listing.total_pending,
        ),
        items=[
            PeriodPatientOut(
                patient_id=item.patient.id,
                name=item.patient.name,
                registration_id=item.patient.registration_id,
                phone=item.patient.phone,
                admission_date=item.patient.admission_date,
                record=_record_out(item.record),
            )
            for item in listing.items
        ],
    )


@router.post("/record-payment", response_model=PaymentRecordedOut)
def record_patient_payment(
    payload: RecordPaymentIn,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    request_id: str | None = Header(default=None),
):
    command = build_payment_command(
        payload.patient_id,
        payload.amount,
        payload.payment_method,
        payload.notes,
        payment_date=payload.payment_date,
        month=payload.month,
        year=payload.year,
        default_method=parse_payment_method(settings.default_payment_method),
    )
    repository = build_ledger_repository(
        settings,
        db,
        actor=user,
        request_id=request_id,
        ip_address=request.client.host if request.client else None,
    )
    outcome = repository.submit(command)
    if outcome.status == STATUS_QUEUED:
        response.status_code = status.HTTP_202_ACCEPTED
    return PaymentRecordedOut(
        status=outcome.status,
        payment=PaymentRecordOut.model_validate(outcome.payment) if outcome.payment else None,
        record=_record_out(outcome.record),
        queue_position=outcome.queue_position,
    )


@router.post("/corrections", response_model=PaymentRecordedOut)
def record_payment_correction(
    payload: CorrectionIn,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    request_id: str | None = Header(default=None),
):
    correction, record = _service(db, user, request, request_id).record_correction(
        payload.payment_id, payload.amount, payload.notes
    )
    return PaymentRecordedOut(
        status="applied",
        payment=PaymentRecordOut.model_validate(correction),
        record=_record_out(record),
    )


@router.post("/save-monthly-records", response_model=MonthlyRecordsSavedOut)
def save_monthly_records(
    payload: PeriodIn,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    request_id: str | None = Header(default=None),
):
    period = validate_period(payload.month, payload.year)
    summary = _service(db, user, request, request_id).save_monthly_records(period)
    return MonthlyRecordsSavedOut(
        month=period.month,
        year=period.year,
        records_processed=summary.records_processed,
        records_created=summary.records_created,
        carry_forward_updates=summary.carry_forward_updates,
    )


@router.get("/history/{patient_id}", response_model=PaymentHistoryOut)
def get_payment_history(
    patient_id: int,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    request_id: str | None = Header(default=None),
    month: int | None = Query(default=None),
    year: int | None = Query(default=None),
):
    period = None
    if month is not None or year is not None:
        present = current_period()
        period = validate_period(
            month if month is not None else present.month,
            year if year is not None else present.year,
        )
    items = _service(db, user, request, request_id).history(patient_id, period)
    return PaymentHistoryOut(
        patient_id=patient_id,
        items=[PaymentRecordOut.model_validate(item) for item in items],
    )


@router.get("/carry-forward/{month}/{year}", response_model=CarryForwardSummaryOut)
def get_carry_forward_summary(
    month: int,
    year: int,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    request_id: str | None = Header(default=None),
):
    period = validate_period(month, year)
    rows = _service(db, user, request, request_id).carry_forward_summary(period)
    items = [
        CarryForwardItemOut(
            patient_id=patient.id,
            patient_name=patient.name,
            carry_forward_amount=record.carry_forward_to_next,
            net_balance=record.net_balance,
            monthly_status=record.payment_status,
        )
        for patient, record in rows
    ]
    total = sum((to_money(record.carry_forward_to_next) for _patient, record in rows), ZERO)
    return CarryForwardSummaryOut(
        month=period.month, year=period.year, items=items, total_carry_forward=total
    )


@router.get("/{payment_id}/receipt.pdf")
def get_payment_receipt(
    payment_id: int,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    request_id: str | None = Header(default=None),
):
    service = _service(db, user, request, request_id)
    payment, record = service.receipt_context(payment_id)
    pdf_bytes = build_payment_receipt(
        payment,
        payment.patient,
        record,
        practice_name=settings.practice_name,
        currency_label=settings.currency_label,
    )
    filename = f"receipt-{payment.patient_id}-{payment.id}.pdf"
    headers = {"Content-Disposition": f'attachment; filename="{filename}"'}
    return Response(content=pdf_bytes, media_type="application/pdf", headers=headers)


@carry_forward_router.post("/check-carry-forward", response_model=CarryForwardRunOut)
def check_carry_forward(
    payload: PeriodIn,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    request_id: str | None = Header(default=None),
):
    period = validate_period(payload.month, payload.year)
    run = _service(db, user, request, request_id).check_carry_forward(period)
    return CarryForwardRunOut(
        month=period.month,
        year=period.year,
        source_month=run.source_period.month,
        source_year=run.source_period.year,
        updated_records=run.updated_records,
        failed=run.failed,
    )
