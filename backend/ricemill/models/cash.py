from __future__ import annotations

from ..extensions import db
from ..money_utils import as_money_float
from ..time_utils import to_utc_z, utcnow


class CashWithdrawal(db.Model):
    """Cash taken out of the till. Independent of the stock ledger."""
    __tablename__ = "cash_withdrawals"
    __table_args__ = (
        db.Index("ix_cash_withdrawals_created_by_created", "created_by_user_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    amount = db.Column(db.Numeric(12, 2), nullable=False)
    purpose = db.Column(db.String(255), nullable=False)
    taken_by = db.Column(db.String(128), nullable=False)
    reference = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    created_by = db.relationship("User", foreign_keys=[created_by_user_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "amount": as_money_float(self.amount),
            "purpose": self.purpose,
            "taken_by": self.taken_by,
            "reference": self.reference,
            "notes": self.notes,
            "created_by": self.created_by.to_summary() if self.created_by else None,
            "created_at": to_utc_z(self.created_at),
        }
