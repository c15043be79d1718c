from __future__ import annotations

import enum
from datetime import date
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    Date,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from patient_ledger.models.base import Base, TimestampMixin

ZERO = Decimal("0.00")


class PaymentStatus(str, enum.Enum):
    pending = "pending"
    partial = "partial"
    completed = "completed"
    overpaid = "overpaid"


class PaymentMethod(str, enum.Enum):
    cash = "cash"
    card = "card"
    upi = "upi"
    bank_transfer = "bank_transfer"
    cheque = "cheque"
    other = "other"


class PaymentEntryType(str, enum.Enum):
    payment = "payment"
    correction = "correction"


class MonthlyRecord(Base, TimestampMixin):
    """One ledger row per patient per billing month.

    Everything below ``carry_forward_from_previous`` is derived; see
    ``services.monthly_records.recompute``.
    """

    __tablename__ = "patient_monthly_records"
    __table_args__ = (
        UniqueConstraint("patient_id", "month", "year", name="uq_patient_month_year"),
        Index("ix_patient_monthly_records_period", "month", "year"),
        CheckConstraint("month >= 1 AND month <= 12", name="ck_patient_monthly_records_month"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    patient_id: Mapped[int] = mapped_column(ForeignKey("patients.id"), nullable=False, index=True)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    monthly_fees: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=ZERO, nullable=False)
    other_fees: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=ZERO, nullable=False)
    carry_forward_from_previous: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), default=ZERO, nullable=False
    )
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=ZERO, nullable=False)
    amount_paid: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=ZERO, nullable=False)
    amount_pending: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=ZERO, nullable=False)
    carry_forward_to_next: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=ZERO, nullable=False)
    net_balance: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=ZERO, nullable=False)
    payment_status: Mapped[PaymentStatus] = mapped_column(
        Enum(PaymentStatus, name="payment_status"),
        default=PaymentStatus.pending,
        nullable=False,
    )
    payment_method: Mapped[PaymentMethod | None] = mapped_column(
        Enum(PaymentMethod, name="payment_method"), nullable=True
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    patient = relationship("Patient")

    __mapper_args__ = {"version_id_col": version}


class PaymentRecord(Base, TimestampMixin):
    """Append-only payment event. Corrections are new rows, never edits."""

    __tablename__ = "patient_payment_records"
    __table_args__ = (
        Index("ix_patient_payment_records_patient_date", "patient_id", "payment_date"),
        Index(
            "ix_patient_payment_records_patient_period",
            "patient_id",
            "period_year",
            "period_month",
        ),
        CheckConstraint("amount > 0", name="ck_patient_payment_records_amount_positive"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    patient_id: Mapped[int] = mapped_column(ForeignKey("patients.id"), nullable=False, index=True)
    entry_type: Mapped[PaymentEntryType] = mapped_column(
        Enum(PaymentEntryType, name="payment_entry_type"),
        default=PaymentEntryType.payment,
        nullable=False,
    )
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    period_month: Mapped[int] = mapped_column(Integer, nullable=False)
    period_year: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    payment_method: Mapped[PaymentMethod] = mapped_column(
        Enum(PaymentMethod, name="payment_method"), nullable=False
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    reference: Mapped[str | None] = mapped_column(String(120), nullable=True)
    corrects_payment_id: Mapped[int | None] = mapped_column(
        ForeignKey("patient_payment_records.id"), nullable=True, index=True
    )
    recorded_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)

    patient = relationship("Patient", lazy="joined")
    recorded_by = relationship("User", lazy="joined")
