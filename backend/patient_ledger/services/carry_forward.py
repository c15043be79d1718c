from __future__ import annotations

import logging
from decimal import Decimal

from patient_ledger.models.billing import MonthlyRecord
from patient_ledger.services.billing_periods import Period, next_period
from patient_ledger.services.fee_config import FeeConfigProvider
from patient_ledger.services.monthly_records import MonthlyRecordStore
from patient_ledger.services.payment_ledger import PaymentLedgerStore
from patient_ledger.services.money import to_money

logger = logging.getLogger("patient_ledger.billing")


class CarryForwardPropagator:
    """Pushes one period's pending balance into the following period.

    Only a single hop is made per call; later periods pick the balance up
    when they are themselves propagated.
    """

    def __init__(
        self,
        records: MonthlyRecordStore,
        ledger: PaymentLedgerStore,
        fees: FeeConfigProvider,
    ) -> None:
        self.records = records
        self.ledger = ledger
        self.fees = fees

    def pending_for(self, patient_id: int, period: Period) -> Decimal:
        record = self.records.get(patient_id, period)
        if record is not None:
            return to_money(record.amount_pending)
        fee_config = self.fees.fee_config(patient_id, period)
        total = to_money(fee_config.monthly_fees) + to_money(fee_config.other_fees)
        return total - self.ledger.sum_for_period(patient_id, period)

    def propagate(self, patient_id: int, period: Period) -> MonthlyRecord:
        pending = self.pending_for(patient_id, period)
        target = next_period(period)
        fee_config = self.fees.fee_config(patient_id, target)
        record = self.records.apply_carry_forward(patient_id, target, pending, fee_config)
        logger.debug(
            "Carry forward patient=%s %s -> %s amount=%s", patient_id, period, target, pending
        )
        return record
