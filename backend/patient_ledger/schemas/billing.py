from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Optional, Union

from pydantic import BaseModel, ConfigDict, PlainSerializer

from patient_ledger.models.billing import PaymentEntryType, PaymentMethod, PaymentStatus

MoneyOut = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]
# raw amounts are parsed once by the billing service, not by pydantic
MoneyIn = Union[Decimal, str]


class RecordPaymentIn(BaseModel):
    patient_id: int
    amount: MoneyIn
    payment_method: Optional[str] = None
    notes: Optional[str] = None
    month: Optional[int] = None
    year: Optional[int] = None
    payment_date: Optional[Union[date, str, int]] = None


class CorrectionIn(BaseModel):
    payment_id: int
    amount: MoneyIn
    notes: Optional[str] = None


class PeriodIn(BaseModel):
    month: int
    year: int


class MonthlyRecordOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    patient_id: int
    month: int
    year: int
    monthly_fees: MoneyOut
    other_fees: MoneyOut
    carry_forward_from_previous: MoneyOut
    total_amount: MoneyOut
    amount_paid: MoneyOut
    amount_pending: MoneyOut
    carry_forward_to_next: MoneyOut
    net_balance: MoneyOut
    payment_status: PaymentStatus
    payment_method: Optional[PaymentMethod] = None
    created_at: datetime
    updated_at: datetime


class PaymentRecordOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    patient_id: int
    entry_type: PaymentEntryType
    payment_date: date
    period_month: int
    period_year: int
    amount: MoneyOut
    payment_method: PaymentMethod
    notes: Optional[str] = None
    reference: Optional[str] = None
    corrects_payment_id: Optional[int] = None
    created_at: datetime


class PaymentRecordedOut(BaseModel):
    status: str
    payment: Optional[PaymentRecordOut] = None
    record: Optional[MonthlyRecordOut] = None
    queue_position: Optional[int] = None


class PeriodPatientOut(BaseModel):
    patient_id: int
    name: str
    registration_id: Optional[str] = None
    phone: Optional[str] = None
    admission_date: Optional[date] = None
    record: Optional[MonthlyRecordOut] = None


class PeriodStatsOut(BaseModel):
    total_patients: int
    total_due: MoneyOut
    total_paid: MoneyOut
    total_pending: MoneyOut


class PeriodListingOut(BaseModel):
    month: int
    year: int
    page: int
    limit: int
    total_pages: int
    stats: PeriodStatsOut
    items: list[PeriodPatientOut]


class MonthlyRecordsSavedOut(BaseModel):
    month: int
    year: int
    records_processed: int
    records_created: int
    carry_forward_updates: int


class CarryForwardFailureOut(BaseModel):
    patient_id: int
    code: str
    detail: str


class CarryForwardRunOut(BaseModel):
    month: int
    year: int
    source_month: int
    source_year: int
    updated_records: int
    failed: list[CarryForwardFailureOut]


class CarryForwardItemOut(BaseModel):
    patient_id: int
    patient_name: str
    carry_forward_amount: MoneyOut
    net_balance: MoneyOut
    monthly_status: PaymentStatus


class CarryForwardSummaryOut(BaseModel):
    month: int
    year: int
    items: list[CarryForwardItemOut]
    total_carry_forward: MoneyOut


class PaymentHistoryOut(BaseModel):
    patient_id: int
    items: list[PaymentRecordOut]
