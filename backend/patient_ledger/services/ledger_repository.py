from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from sqlalchemy.orm import Session

from patient_ledger.core.settings import Settings
from patient_ledger.models.billing import MonthlyRecord, PaymentRecord
from patient_ledger.models.user import User
from patient_ledger.services.billing import BillingLedgerService, PaymentCommand
from patient_ledger.services.errors import BillingError, InvalidInput

logger = logging.getLogger("patient_ledger.offline_queue")

STATUS_APPLIED = "applied"
STATUS_QUEUED = "queued"


@dataclass
class PaymentOutcome:
    status: str
    command: PaymentCommand
    payment: PaymentRecord | None = None
    record: MonthlyRecord | None = None
    queue_position: int | None = None


@dataclass
class DrainResult:
    applied: int = 0
    failed: list[tuple[PaymentCommand, str]] = field(default_factory=list)


class LedgerRepository(Protocol):
    def submit(self, command: PaymentCommand) -> PaymentOutcome: ...


class DatabaseLedgerRepository:
    """Applies payments straight to the relational store."""

    def __init__(self, service: BillingLedgerService) -> None:
        self.service = service

    def submit(self, command: PaymentCommand) -> PaymentOutcome:
        payment, record = self.service.apply_command(command)
        return PaymentOutcome(status=STATUS_APPLIED, command=command, payment=payment, record=record)


class OfflineQueueLedgerRepository:
    """Queues validated payments in a JSON-lines file for later replay.

    Nothing here reads or writes ledger balances; queued payments only
    affect the ledger once ``drain`` hands them to a database repository.
    """

    _lock = threading.Lock()

    def __init__(self, path: str | Path, *, queued_by: str | None = None) -> None:
        self.path = Path(path)
        self.queued_by = queued_by

    def _read_lines(self) -> list[dict]:
        if not self.path.exists():
            return []
        entries: list[dict] = []
        with self.path.open("r", encoding="utf-8") as handle:
            for line_no, line in enumerate(handle, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    entries.append(json.loads(line))
                except json.JSONDecodeError:
                    logger.error("Skipping corrupt offline queue line %s in %s", line_no, self.path)
        return entries

    def _count_lines(self) -> int:
        with self.path.open("r", encoding="utf-8") as handle:
            return sum(1 for line in handle if line.strip())

    def _rewrite(self, entries: list[dict]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as handle:
            for entry in entries:
                handle.write(json.dumps(entry, sort_keys=True) + "\n")
        tmp_path.replace(self.path)

    def submit(self, command: PaymentCommand) -> PaymentOutcome:
        entry = {
            "queued_at": datetime.now(timezone.utc).isoformat(),
            "queued_by": self.queued_by,
            "command": command.to_json(),
        }
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(entry, sort_keys=True) + "\n")
            position = self._count_lines()
        logger.info(
            "Queued offline payment for patient %s (%s) at position %s",
            command.patient_id,
            command.amount,
            position,
        )
        return PaymentOutcome(status=STATUS_QUEUED, command=command, queue_position=position)

    def pending(self) -> list[PaymentCommand]:
        with self._lock:
            entries = self._read_lines()
        return [PaymentCommand.from_json(entry["command"]) for entry in entries]

    def drain(self, target: LedgerRepository) -> DrainResult:
        """Replay queued payments in order.

        The file is rewritten after every applied payment; whatever is still
        in it has not been applied.
        """
        result = DrainResult()
        with self._lock:
            entries = self._read_lines()
            kept: list[dict] = []
            index = 0
            try:
                while index < len(entries):
                    entry = entries[index]
                    try:
                        command = PaymentCommand.from_json(entry["command"])
                    except (BillingError, KeyError) as exc:
                        logger.error("Dropping unreadable offline payment %s: %s", entry, exc)
                        index += 1
                        continue
                    try:
                        target.submit(command)
                    except BillingError as exc:
                        logger.warning(
                            "Offline payment for patient %s not applied: %s", command.patient_id, exc
                        )
                        result.failed.append((command, exc.message))
                        kept.append(entry)
                        index += 1
                        continue
                    index += 1
                    result.applied += 1
                    self._rewrite(kept + entries[index:])
            finally:
                self._rewrite(kept + entries[index:])
        return result


def build_ledger_repository(
    settings: Settings,
    db: Session,
    *,
    actor: User | None = None,
    request_id: str | None = None,
    ip_address: str | None = None,
) -> LedgerRepository:
    backend = settings.ledger_backend.strip().lower()
    if backend == "offline_queue":
        return OfflineQueueLedgerRepository(
            settings.offline_queue_path, queued_by=actor.email if actor else None
        )
    if backend == "database":
        service = BillingLedgerService(db, actor=actor, request_id=request_id, ip_address=ip_address)
        return DatabaseLedgerRepository(service)
    raise InvalidInput(f"Unknown ledger backend {settings.ledger_backend!r}")
