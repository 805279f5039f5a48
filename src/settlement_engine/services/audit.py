"""Audit trail recording shared by the ledgers and the period service."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from settlement_engine.models import AuditEvent


def _jsonable(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_jsonable(v) for v in value]
    return getattr(value, "value", value)


def record_audit(
    db: Session,
    *,
    entity_type: str,
    entity_id: UUID,
    action: str,
    actor_id: UUID | None = None,
    details: dict[str, Any] | None = None,
) -> AuditEvent:
    """Record an audit event in the current transaction."""
    event = AuditEvent(
        actor_id=actor_id,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        details_json=_jsonable(details) if details else None,
    )
    db.add(event)
    return event
