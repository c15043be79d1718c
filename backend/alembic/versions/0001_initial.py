"""initial ledger schema

Revision ID: 0001_initial
Revises: 
Create Date: 2026-10-18 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None

PAYMENT_METHODS = ("cash", "card", "upi", "bank_transfer", "cheque", "other")


def _money(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(name, sa.Numeric(12, 2), nullable=nullable, server_default="0")


def upgrade() -> None:
    # shared by two tables, so created once up front
    payment_method = postgresql.ENUM(*PAYMENT_METHODS, name="payment_method", create_type=False)
    payment_method.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("full_name", sa.String(length=200), nullable=False, server_default=""),
        sa.Column(
            "role",
            sa.Enum("admin", "accounts", "reception", "doctor", "staff", name="role_enum"),
            nullable=False,
            server_default="reception",
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("email"),
    )
    op.create_index("ix_users_email", "users", ["email"])

    op.create_table(
        "patients",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("registration_id", sa.String(length=32), nullable=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("phone", sa.String(length=50), nullable=True),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column(
            "status",
            sa.Enum("active", "inactive", "discharged", name="patient_status"),
            nullable=False,
            server_default="active",
        ),
        sa.Column("admission_date", sa.Date(), nullable=True),
        _money("monthly_fees"),
        _money("other_fees"),
        _money("blood_test_fee"),
        _money("pickup_charge"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("registration_id"),
    )
    op.create_index("ix_patients_status", "patients", ["status"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("actor_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("actor_email", sa.String(length=320), nullable=True),
        sa.Column("patient_id", sa.Integer(), sa.ForeignKey("patients.id"), nullable=True),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("entity_type", sa.String(length=50), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=False),
        sa.Column("request_id", sa.String(length=120), nullable=True),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("before_json", sa.JSON(), nullable=True),
        sa.Column("after_json", sa.JSON(), nullable=True),
    )
    op.create_index("ix_audit_logs_entity", "audit_logs", ["entity_type", "entity_id"])
    op.create_index("ix_audit_logs_patient_created", "audit_logs", ["patient_id", "created_at"])

    op.create_table(
        "patient_monthly_records",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("patient_id", sa.Integer(), sa.ForeignKey("patients.id"), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        _money("monthly_fees"),
        _money("other_fees"),
        _money("carry_forward_from_previous"),
        _money("total_amount"),
        _money("amount_paid"),
        _money("amount_pending"),
        _money("carry_forward_to_next"),
        _money("net_balance"),
        sa.Column(
            "payment_status",
            sa.Enum("pending", "partial", "completed", "overpaid", name="payment_status"),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("payment_method", payment_method, nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("patient_id", "month", "year", name="uq_patient_month_year"),
        sa.CheckConstraint("month >= 1 AND month <= 12", name="ck_patient_monthly_records_month"),
    )
    op.create_index(
        "ix_patient_monthly_records_patient_id", "patient_monthly_records", ["patient_id"]
    )
    op.create_index(
        "ix_patient_monthly_records_period", "patient_monthly_records", ["month", "year"]
    )

    op.create_table(
        "patient_payment_records",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("patient_id", sa.Integer(), sa.ForeignKey("patients.id"), nullable=False),
        sa.Column(
            "entry_type",
            sa.Enum("payment", "correction", name="payment_entry_type"),
            nullable=False,
            server_default="payment",
        ),
        sa.Column("payment_date", sa.Date(), nullable=False),
        sa.Column("period_month", sa.Integer(), nullable=False),
        sa.Column("period_year", sa.Integer(), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("payment_method", payment_method, nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("reference", sa.String(length=120), nullable=True),
        sa.Column(
            "corrects_payment_id",
            sa.Integer(),
            sa.ForeignKey("patient_payment_records.id"),
            nullable=True,
        ),
        sa.Column("recorded_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("amount > 0", name="ck_patient_payment_records_amount_positive"),
    )
    op.create_index(
        "ix_patient_payment_records_patient_id", "patient_payment_records", ["patient_id"]
    )
    op.create_index(
        "ix_patient_payment_records_patient_date",
        "patient_payment_records",
        ["patient_id", "payment_date"],
    )
    op.create_index(
        "ix_patient_payment_records_patient_period",
        "patient_payment_records",
        ["patient_id", "period_year", "period_month"],
    )
    op.create_index(
        "ix_patient_payment_records_corrects_payment_id",
        "patient_payment_records",
        ["corrects_payment_id"],
    )


def downgrade() -> None:
    op.drop_index("ix_patient_payment_records_corrects_payment_id", table_name="patient_payment_records")
    op.drop_index("ix_patient_payment_records_patient_period", table_name="patient_payment_records")
    op.drop_index("ix_patient_payment_records_patient_date", table_name="patient_payment_records")
    op.drop_index("ix_patient_payment_records_patient_id", table_name="patient_payment_records")
    op.drop_table("patient_payment_records")
    op.drop_index("ix_patient_monthly_records_period", table_name="patient_monthly_records")
    op.drop_index("ix_patient_monthly_records_patient_id", table_name="patient_monthly_records")
    op.drop_table("patient_monthly_records")
    op.drop_index("ix_audit_logs_patient_created", table_name="audit_logs")
    op.drop_index("ix_audit_logs_entity", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("ix_patients_status", table_name="patients")
    op.drop_table("patients")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
    op.execute("DROP TYPE IF EXISTS payment_entry_type")
    op.execute("DROP TYPE IF EXISTS payment_status")
    op.execute("DROP TYPE IF EXISTS payment_method")
    op.execute("DROP TYPE IF EXISTS patient_status")
    op.execute("DROP TYPE IF EXISTS role_enum")
