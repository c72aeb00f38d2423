# Overview: Flask API routes for cash withdrawals; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..models import CashWithdrawal
from ..services import audit_service
from ..services import cash_service
from ..time_utils import parse_date_range
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_cash_withdrawal,
    ValidationError,
    NotFoundError,
)
from ..decorators import require_auth, require_admin

CASH_WITHDRAWAL_POLICY = ModelValidationPolicy(
    writable_fields={"amount", "purpose", "taken_by", "reference", "notes"},
    required_on_create={"amount", "purpose", "taken_by"},
)

cash_withdrawals_bp = Blueprint("cash_withdrawals", __name__, url_prefix="/api/cash-withdrawals")


@cash_withdrawals_bp.get("")
@require_auth
def list_withdrawals_route():
    withdrawals = cash_service.list_withdrawals(limit=request.args.get("limit", type=int))
    items = [w.to_dict() for w in withdrawals]
    return jsonify({"items": items, "count": len(items)}), 200


@cash_withdrawals_bp.get("/summary")
@require_auth
def withdrawal_summary_route():
    try:
        start_dt, end_dt = parse_date_range(
            request.args.get("start_date"), request.args.get("end_date")
        )
    except ValueError:
        return jsonify({"error": "start_date and end_date must be ISO-8601 dates, start before end"}), 400

    return jsonify(cash_service.withdrawal_summary(start=start_dt, end=end_dt)), 200


@cash_withdrawals_bp.post("")
@require_auth
def create_withdrawal_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(
            model=CashWithdrawal, payload=payload, policy=CASH_WITHDRAWAL_POLICY, partial=False
        )
        enforce_rules_cash_withdrawal(patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        withdrawal = cash_service.create_withdrawal(patch=patch, created_by_user_id=g.current_user.id)
    except Exception:
        current_app.logger.exception("Failed to create cash withdrawal")
        return jsonify({"error": "Internal server error"}), 500

    result = withdrawal.to_dict()
    audit_service.record_event(
        action="CREATE_CASH_WITHDRAWAL",
        resource_type="CASH_WITHDRAWAL",
        resource_id=withdrawal.id,
        new_state=result,
    )
    return jsonify(result), 201


@cash_withdrawals_bp.delete("/<int:withdrawal_id>")
@require_auth
@require_admin
def delete_withdrawal_route(withdrawal_id: int):
    try:
        snapshot = cash_service.delete_withdrawal(withdrawal_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404

    audit_service.record_event(
        action="DELETE_CASH_WITHDRAWAL",
        resource_type="CASH_WITHDRAWAL",
        resource_id=withdrawal_id,
        previous_state=snapshot,
    )
    return jsonify({"ok": True}), 200
