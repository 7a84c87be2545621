# Overview: Append-only activity log for user actions.

from __future__ import annotations

from flask import has_request_context, request

from ..extensions import db
from ..models import ActivityLog
from pos_server.time_utils import utcnow
"""
Activity log invariants:

- Append-only; rows are never updated or deleted.
- Written inside the same DB transaction as the action they record, so a
  rolled-back sale leaves no audit row behind.
"""


def log_activity(
    *,
    user_id: int | None,
    action: str,
    entity: str,
    entity_id: int | None,
    details: dict | None = None,
) -> ActivityLog:
    ip_address = None
    user_agent = None
    if has_request_context():
        ip_address = request.remote_addr
        user_agent = (request.headers.get("User-Agent") or "")[:255] or None

    entry = ActivityLog(
        user_id=user_id,
        action=action,
        entity=entity,
        entity_id=entity_id,
        details=details,
        ip_address=ip_address,
        user_agent=user_agent,
        created_at=utcnow(),
    )
    db.session.add(entry)
    return entry


def list_activity(*, entity: str | None = None, entity_id: int | None = None, limit: int = 100) -> list[ActivityLog]:
    q = db.session.query(ActivityLog)
    if entity is not None:
        q = q.filter(ActivityLog.entity == entity)
    if entity_id is not None:
        q = q.filter(ActivityLog.entity_id == entity_id)
    return q.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc()).limit(limit).all()
