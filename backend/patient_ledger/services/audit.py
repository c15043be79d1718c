from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import inspect
from sqlalchemy.orm import Session

from patient_ledger.models.audit_log import AuditLog
from patient_ledger.models.user import User


def _jsonable(value: Any) -> Any:
    if hasattr(value, "value"):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def snapshot_model(obj: Any | None) -> dict | None:
    if obj is None:
        return None
    data: dict[str, Any] = {}
    mapper = inspect(obj).mapper
    for column in mapper.columns:
        key = column.key
        data[key] = _jsonable(getattr(obj, key))
    return data


def log_event(
    db: Session,
    *,
    actor: User | None,
    action: str,
    entity_type: str,
    entity_id: str,
    patient_id: int | None = None,
    before_obj: Any | None = None,
    after_obj: Any | None = None,
    request_id: str | None = None,
    ip_address: str | None = None,
) -> AuditLog:
    entry = AuditLog(
        actor_user_id=actor.id if actor else None,
        actor_email=actor.email if actor else None,
        patient_id=patient_id,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        request_id=request_id,
        ip_address=ip_address,
        before_json=snapshot_model(before_obj),
        after_json=snapshot_model(after_obj),
    )
    db.add(entry)
    return entry
