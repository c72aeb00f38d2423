# Overview: Service-layer operations for cash withdrawals.

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from ..extensions import db
from ..models import CashWithdrawal
from ..money_utils import round_money
from ..time_utils import to_utc_z
from ..validation import NotFoundError

DEFAULT_LIST_LIMIT = 100
MAX_LIST_LIMIT = 500


def create_withdrawal(*, patch: dict, created_by_user_id: int) -> CashWithdrawal:
    """Create from a validated patch (amount, purpose, taken_by, reference, notes)."""
    withdrawal = CashWithdrawal(
        amount=round_money(patch["amount"]),
        purpose=patch["purpose"],
        taken_by=patch["taken_by"],
        reference=patch.get("reference"),
        notes=patch.get("notes"),
        created_by_user_id=created_by_user_id,
    )
    db.session.add(withdrawal)
    db.session.commit()
    return withdrawal


def get_withdrawal(withdrawal_id: int) -> CashWithdrawal:
    withdrawal = db.session.get(CashWithdrawal, withdrawal_id)
    if withdrawal is None:
        raise NotFoundError("Cash withdrawal not found")
    return withdrawal


def list_withdrawals(*, limit: int | None = None) -> list[CashWithdrawal]:
    limit = max(1, min(limit or DEFAULT_LIST_LIMIT, MAX_LIST_LIMIT))
    return (
        db.session.query(CashWithdrawal)
        .order_by(CashWithdrawal.created_at.desc(), CashWithdrawal.id.desc())
        .limit(limit)
        .all()
    )


def withdrawals_in_range(start: datetime | None, end: datetime | None) -> list[CashWithdrawal]:
    q = db.session.query(CashWithdrawal)
    if start is not None:
        q = q.filter(CashWithdrawal.created_at >= start)
    if end is not None:
        q = q.filter(CashWithdrawal.created_at <= end)
    return q.order_by(CashWithdrawal.created_at.desc(), CashWithdrawal.id.desc()).all()


def withdrawal_summary(*, start: datetime | None = None, end: datetime | None = None) -> dict:
    """Total and count in the window plus the 10 most recent withdrawals."""
    withdrawals = withdrawals_in_range(start, end)
    total = sum((Decimal(w.amount) for w in withdrawals), Decimal("0"))
    return {
        "total_amount": float(round_money(total)),
        "count": len(withdrawals),
        "withdrawals": [
            {
                "id": w.id,
                "amount": float(round_money(w.amount)),
                "purpose": w.purpose,
                "taken_by": w.taken_by,
                "date": to_utc_z(w.created_at),
            }
            for w in withdrawals[:10]
        ],
    }


def delete_withdrawal(withdrawal_id: int) -> dict:
    """Administrative removal; returns the deleted row's snapshot."""
    withdrawal = get_withdrawal(withdrawal_id)
    snapshot = withdrawal.to_dict()
    db.session.delete(withdrawal)
    db.session.commit()
    return snapshot
