from patient_ledger.models.base import Base
from patient_ledger.models.user import Role, User
from patient_ledger.models.audit_log import AuditLog
from patient_ledger.models.patient import Patient, PatientStatus
from patient_ledger.models.billing import (
    MonthlyRecord,
    PaymentEntryType,
    PaymentMethod,
    PaymentRecord,
    PaymentStatus,
)

__all__ = [
    "Base",
    "Role",
    "User",
    "AuditLog",
    "Patient",
    "PatientStatus",
    "MonthlyRecord",
    "PaymentRecord",
    "PaymentStatus",
    "PaymentMethod",
    "PaymentEntryType",
]
