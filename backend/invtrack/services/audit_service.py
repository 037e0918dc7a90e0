# Overview: Append-only audit log writer and reader.

from __future__ import annotations

import json
from typing import Any, Optional

from ..extensions import db
from ..models import AuditLog
from .id_service import generate_id, AUDIT_LOG_PREFIX
"""
Audit log invariants (authoritative)

- Append-only: no updates or deletes.
- Entries are written inside the same DB transaction as the change they record,
  so an operation and its audit entry commit (or roll back) together.
- details is a JSON object; non-JSON values are stringified.
"""


def record(
    *,
    actor_id: Optional[str],
    action: str,
    entity_type: str,
    entity_id: Optional[str],
    details: Optional[dict[str, Any]] = None,
    ip_address: Optional[str] = None,
) -> AuditLog:
    """Append one audit entry. Flushes, never commits."""
    entry = AuditLog(
        id=generate_id(AUDIT_LOG_PREFIX),
        user_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=json.dumps(details or {}, default=str, sort_keys=True),
        ip_address=ip_address,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def list_audit_logs(
    *,
    entity_type: str | None = None,
    entity_id: str | None = None,
    user_id: str | None = None,
    limit: int = 100,
) -> list[AuditLog]:
    q = db.session.query(AuditLog)
    if entity_type:
        q = q.filter(AuditLog.entity_type == entity_type)
    if entity_id:
        q = q.filter(AuditLog.entity_id == entity_id)
    if user_id:
        q = q.filter(AuditLog.user_id == user_id)
    return q.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(min(limit, 500)).all()
