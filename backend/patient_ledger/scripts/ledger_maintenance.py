from __future__ import annotations

import argparse
from typing import Sequence

from sqlalchemy.orm import Session

from patient_ledger.core.settings import settings
from patient_ledger.db.session import SessionLocal
from patient_ledger.services.billing import BillingLedgerService
from patient_ledger.services.billing_periods import Period, previous_period, validate_period
from patient_ledger.services.fee_config import DatabaseFeeConfigProvider
from patient_ledger.services.ledger_repository import (
    DatabaseLedgerRepository,
    OfflineQueueLedgerRepository,
)
from patient_ledger.services.money import ZERO, to_money
from patient_ledger.services.monthly_records import MonthlyRecordStore


def run_rollover(session: Session, period: Period, apply: bool) -> int:
    if not apply:
        eligible = DatabaseFeeConfigProvider(session).eligible_patient_ids(period)
        carried = [
            record
            for record in MonthlyRecordStore(session).list_for_period(previous_period(period))
            if to_money(record.carry_forward_to_next) != ZERO
        ]
        print(f"Rollover preview for {period}")
        print(f"Eligible patients: {len(eligible)}")
        print(f"Balances to carry from {previous_period(period)}: {len(carried)}")
        print("Dry run only. Use --apply to persist changes.")
        return 0

    service = BillingLedgerService(session)
    saved = service.save_monthly_records(period)
    carried = service.check_carry_forward(period)
    print(f"Rollover for {period}")
    print(
        f"Monthly records: processed={saved.records_processed} "
        f"created={saved.records_created} carrying={saved.carry_forward_updates}"
    )
    print(f"Carry forward: updated={carried.updated_records} failed={len(carried.failed)}")
    for failure in carried.failed:
        print(f"  patient {failure['patient_id']}: {failure['code']} {failure['detail']}")
    return 1 if carried.failed else 0


def run_replay(session: Session, queue_path: str, apply: bool) -> int:
    queue = OfflineQueueLedgerRepository(queue_path)
    pending = queue.pending()
    print(f"Offline queue {queue_path}: {len(pending)} pending payment(s)")
    if not apply:
        for command in pending:
            print(
                f"  patient {command.patient_id} {command.amount} {command.method.value} "
                f"for {command.period} (paid {command.payment_date.isoformat()})"
            )
        print("Dry run only. Use --apply to persist changes.")
        return 0

    result = queue.drain(DatabaseLedgerRepository(BillingLedgerService(session)))
    print(f"Applied: {result.applied}")
    print(f"Failed (kept in queue): {len(result.failed)}")
    for command, reason in result.failed:
        print(f"  patient {command.patient_id} {command.amount}: {reason}")
    return 1 if result.failed else 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Monthly ledger maintenance.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    rollover = subparsers.add_parser(
        "rollover", help="Materialize a billing month and carry balances into it."
    )
    rollover.add_argument("--month", type=int, required=True)
    rollover.add_argument("--year", type=int, required=True)
    rollover.add_argument("--apply", action="store_true", help="Write changes to the database.")

    replay = subparsers.add_parser("replay-offline", help="Apply payments queued while offline.")
    replay.add_argument(
        "--queue-path",
        default=None,
        help="Queue file (defaults to OFFLINE_QUEUE_PATH).",
    )
    replay.add_argument("--apply", action="store_true", help="Write changes to the database.")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    session = SessionLocal()
    try:
        if args.command == "rollover":
            period = validate_period(args.month, args.year)
            return run_rollover(session, period, args.apply)
        return run_replay(session, args.queue_path or settings.offline_queue_path, args.apply)
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


if __name__ == "__main__":
    raise SystemExit(main())
