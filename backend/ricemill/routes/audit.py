# Overview: Flask API routes for the audit log; admin read-only listing.

from flask import Blueprint, request, jsonify

from ..decorators import require_auth, require_admin
from ..services import audit_service
from ..time_utils import parse_date_range

audit_bp = Blueprint("audit", __name__, url_prefix="/api/audit-logs")


@audit_bp.get("")
@require_auth
@require_admin
def list_audit_logs_route():
    """
    Query params: action, resource_type, user_id, start_date, end_date, limit (max 500).
    Newest first.
    """
    try:
        start_dt, end_dt = parse_date_range(
            request.args.get("start_date"), request.args.get("end_date")
        )
    except ValueError:
        return jsonify({"error": "start_date and end_date must be ISO-8601 dates, start before end"}), 400

    events = audit_service.list_events(
        action=request.args.get("action"),
        resource_type=request.args.get("resource_type"),
        user_id=request.args.get("user_id", type=int),
        start=start_dt,
        end=end_dt,
        limit=request.args.get("limit", type=int),
    )
    items = [e.to_dict() for e in events]
    return jsonify({"items": items, "count": len(items)}), 200
