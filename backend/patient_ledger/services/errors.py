from __future__ import annotations


class BillingError(Exception):
    """Base for ledger failures surfaced to API callers."""

    code = "billing_error"
    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidInput(BillingError):
    code = "invalid_input"
    status_code = 400


class InvalidAmount(InvalidInput):
    code = "invalid_amount"


class InvalidDate(InvalidInput):
    code = "invalid_date"


class PatientNotFound(BillingError):
    code = "patient_not_found"
    status_code = 404


class PaymentNotFound(BillingError):
    code = "payment_not_found"
    status_code = 404


class RecordNotFound(BillingError):
    code = "record_not_found"
    status_code = 404


class ConcurrencyConflict(BillingError):
    code = "concurrency_conflict"
    status_code = 409


class UpstreamUnavailable(BillingError):
    code = "upstream_unavailable"
    status_code = 503
