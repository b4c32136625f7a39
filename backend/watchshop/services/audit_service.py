# Overview: Append-only audit trail for sales, services, expenses and closures.

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Optional

from ..extensions import db
from ..models import AuditEvent
"""
Audit trail invariants

- Append-only: no update or delete path.
- Events are added to the caller's session and committed with the domain
  change they record (never committed here).
- occurred_at is business time; created_at is system time (DB default).
"""


def append_audit_event(
    *,
    event_type: str,
    event_category: str,
    entity_type: str,
    entity_id: int,
    actor_user_id: int | None = None,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
    payload: Any = None,
) -> AuditEvent:
    if payload is not None and not isinstance(payload, str):
        payload = json.dumps(payload, sort_keys=True, default=str)

    ev = AuditEvent(
        event_type=event_type,
        event_category=event_category,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_user_id=actor_user_id,
        note=note[:255] if note else None,
        payload=payload,
    )
    if occurred_at is not None:
        ev.occurred_at = occurred_at
    db.session.add(ev)
    return ev


def list_audit_events(
    *,
    event_category: str | None = None,
    entity_type: str | None = None,
    entity_id: int | None = None,
    limit: int = 100,
) -> list[AuditEvent]:
    query = db.session.query(AuditEvent)
    if event_category:
        query = query.filter(AuditEvent.event_category == event_category)
    if entity_type:
        query = query.filter(AuditEvent.entity_type == entity_type)
    if entity_id is not None:
        query = query.filter(AuditEvent.entity_id == entity_id)
    return query.order_by(AuditEvent.id.desc()).limit(limit).all()
