from datetime import date

from sqlalchemy import func, select

from patient_ledger.models.billing import MonthlyRecord, PaymentRecord
from patient_ledger.scripts import ledger_maintenance
from patient_ledger.services.billing import BillingLedgerService, build_payment_command
from patient_ledger.services.ledger_repository import OfflineQueueLedgerRepository


def _count(session, model) -> int:
    return session.scalar(select(func.count(model.id)))


def test_rollover_dry_run_then_apply(session_factory, db_session, make_patient, monkeypatch, capsys):
    make_patient("Asha", monthly_fees="2000")
    make_patient("Bala", monthly_fees="1000")
    monkeypatch.setattr(ledger_maintenance, "SessionLocal", session_factory)

    assert ledger_maintenance.main(["rollover", "--month", "4", "--year", "2024"]) == 0
    out = capsys.readouterr().out
    assert "Eligible patients: 2" in out
    assert "Dry run only" in out
    assert _count(db_session, MonthlyRecord) == 0

    assert ledger_maintenance.main(["rollover", "--month", "4", "--year", "2024", "--apply"]) == 0
    out = capsys.readouterr().out
    assert "processed=2 created=2" in out
    assert "failed=0" in out
    assert _count(db_session, MonthlyRecord) == 2


def test_replay_offline_queue(session_factory, db_session, make_patient, monkeypatch, capsys, tmp_path):
    patient = make_patient(monthly_fees="1000")
    queue_path = tmp_path / "offline.jsonl"
    OfflineQueueLedgerRepository(queue_path).submit(
        build_payment_command(patient.id, "250", "upi", payment_date=date(2024, 3, 2))
    )
    monkeypatch.setattr(ledger_maintenance, "SessionLocal", session_factory)

    assert ledger_maintenance.main(["replay-offline", "--queue-path", str(queue_path)]) == 0
    assert "1 pending payment(s)" in capsys.readouterr().out
    assert _count(db_session, PaymentRecord) == 0

    args = ["replay-offline", "--queue-path", str(queue_path), "--apply"]
    assert ledger_maintenance.main(args) == 0
    assert "Applied: 1" in capsys.readouterr().out
    assert _count(db_session, PaymentRecord) == 1
    assert OfflineQueueLedgerRepository(queue_path).pending() == []


def test_rollover_preview_counts_only_open_balances(
    session_factory, db_session, make_patient, monkeypatch, capsys
):
    owing = make_patient("Asha", monthly_fees="2000")
    settled = make_patient("Bala", monthly_fees="1000")
    service = BillingLedgerService(db_session)
    service.record_payment(owing.id, "1200", "cash", payment_date=date(2024, 3, 10))
    service.record_payment(settled.id, "1000", "cash", payment_date=date(2024, 3, 10))
    monkeypatch.setattr(ledger_maintenance, "SessionLocal", session_factory)

    assert ledger_maintenance.main(["rollover", "--month", "4", "--year", "2024"]) == 0
    assert "Balances to carry from 2024-03: 1" in capsys.readouterr().out
