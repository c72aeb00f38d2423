from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow

AUDIT_ACTIONS = (
    "LOGIN",
    "LOGOUT",
    "CREATE_PRODUCT",
    "UPDATE_PRODUCT",
    "DELETE_PRODUCT",
    "CREATE_TRANSACTION",
    "DELETE_TRANSACTION",
    "CREATE_CASH_WITHDRAWAL",
    "DELETE_CASH_WITHDRAWAL",
    "VIEW_REPORTS",
)

AUDIT_RESOURCE_TYPES = ("PRODUCT", "TRANSACTION", "CASH_WITHDRAWAL", "REPORT", "AUTH")


class AuditLog(db.Model):
    """
    Append-only record of who did what.

    Written after the primary change commits; see audit_service.
    details/previous_state/new_state are JSON snapshots.
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("ix_audit_logs_user_created", "user_id", "created_at"),
        db.Index("ix_audit_logs_action_created", "action", "created_at"),
        db.Index("ix_audit_logs_resource", "resource_type", "resource_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    user_name = db.Column(db.String(128), nullable=False)

    action = db.Column(db.String(32), nullable=False)
    resource_type = db.Column(db.String(32), nullable=False)
    resource_id = db.Column(db.Integer, nullable=True)

    details = db.Column(db.JSON, nullable=True)
    previous_state = db.Column(db.JSON, nullable=True)
    new_state = db.Column(db.JSON, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(512), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "action": self.action,
            "resource_type": self.resource_type,
            "resource_id": self.resource_id,
            "details": self.details,
            "previous_state": self.previous_state,
            "new_state": self.new_state,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "created_at": to_utc_z(self.created_at),
        }
