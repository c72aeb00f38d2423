# Overview: Service-layer operations for the audit log; best-effort, append-only.

from __future__ import annotations

from datetime import datetime

from flask import current_app, g, has_request_context, request
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import AuditLog, AUDIT_ACTIONS, AUDIT_RESOURCE_TYPES, User
"""
Audit Log Invariants

- Append-only: no updates or deletes through the service layer.
- Written AFTER the primary change has committed, in its own commit.
- Best-effort: a failed write is rolled back and logged; it never fails or
  rolls back the operation being audited.
"""

DEFAULT_LIST_LIMIT = 100
MAX_LIST_LIMIT = 500


def record_event(
    *,
    action: str,
    resource_type: str,
    resource_id: int | None = None,
    user: User | None = None,
    details: dict | None = None,
    previous_state: dict | None = None,
    new_state: dict | None = None,
) -> AuditLog | None:
    """
    Append an audit entry for the acting user (defaults to g.current_user).

    Request IP and user agent are captured when called inside a request.
    Returns the entry, or None when it could not be written.
    """
    if action not in AUDIT_ACTIONS or resource_type not in AUDIT_RESOURCE_TYPES:
        current_app.logger.error("Unknown audit action/resource: %s/%s", action, resource_type)
        return None

    if user is None:
        user = getattr(g, "current_user", None)
    if user is None:
        current_app.logger.warning("Audit event %s skipped: no acting user", action)
        return None

    ip_address = None
    user_agent = None
    if has_request_context():
        ip_address = request.remote_addr
        user_agent = request.headers.get("User-Agent")

    try:
        entry = AuditLog(
            user_id=user.id,
            user_name=user.name,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            details=details,
            previous_state=previous_state,
            new_state=new_state,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        db.session.add(entry)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.warning("Failed to write audit log for %s", action, exc_info=True)
        return None

    current_app.logger.info("Audit: %s %s#%s by %s", action, resource_type, resource_id, user.username)
    return entry


def list_events(
    *,
    action: str | None = None,
    resource_type: str | None = None,
    user_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int | None = None,
) -> list[AuditLog]:
    """Newest first; date bounds inclusive."""
    q = db.session.query(AuditLog)
    if action:
        q = q.filter(AuditLog.action == action)
    if resource_type:
        q = q.filter(AuditLog.resource_type == resource_type)
    if user_id is not None:
        q = q.filter(AuditLog.user_id == user_id)
    if start is not None:
        q = q.filter(AuditLog.created_at >= start)
    if end is not None:
        q = q.filter(AuditLog.created_at <= end)

    limit = max(1, min(limit or DEFAULT_LIST_LIMIT, MAX_LIST_LIMIT))
    return q.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit).all()
