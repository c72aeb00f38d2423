# Overview: Flask API routes for stock transactions; the HTTP face of the stock ledger.

from flask import Blueprint, current_app, g, jsonify, request

from ..models import StockTransaction
from ..services import audit_service
from ..services import stock_service
from ..services.stock_service import InsufficientStockError, StockConflictError
from ..time_utils import parse_date_range
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_transaction,
    ValidationError,
    NotFoundError,
)
from ..decorators import require_auth, require_admin

"""
Time semantics:
- start_date/end_date accept ISO-8601 datetimes with Z/offsets; a bare date
  as end_date covers that whole day.
"""

TRANSACTION_POLICY = ModelValidationPolicy(
    writable_fields={
        "product_id",
        "type",
        "quantity",
        "price",
        "reference",
        "batch_number",
        "expiry_date",
        "supplier",
        "customer",
        "notes",
    },
    required_on_create={"product_id", "type", "quantity"},
)

transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


@transactions_bp.get("")
@require_auth
def list_transactions_route():
    try:
        start_dt, end_dt = parse_date_range(
            request.args.get("start_date"), request.args.get("end_date")
        )
    except ValueError:
        return jsonify({"error": "start_date and end_date must be ISO-8601 dates, start before end"}), 400

    try:
        transactions = stock_service.list_transactions(
            product_id=request.args.get("product_id", type=int),
            tx_type=request.args.get("type"),
            start=start_dt,
            end=end_dt,
            limit=request.args.get("limit", type=int),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    items = [t.to_dict() for t in transactions]
    return jsonify({"items": items, "count": len(items)}), 200


@transactions_bp.get("/<int:transaction_id>")
@require_auth
def get_transaction_route(transaction_id: int):
    try:
        return jsonify(stock_service.get_transaction(transaction_id).to_dict()), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@transactions_bp.post("")
@require_auth
def create_transaction_route():
    """
    Record a stock movement.

    Body: product_id, type (stock_in | stock_out | adjustment), quantity,
    optional price (defaults to the product's cost price) and metadata.
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(
            model=StockTransaction, payload=payload, policy=TRANSACTION_POLICY, partial=False
        )
        enforce_rules_transaction(patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        tx = stock_service.record_transaction(
            tx_type=patch.pop("type"),
            created_by_user_id=g.current_user.id,
            **patch,
        )
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except InsufficientStockError as e:
        return jsonify({
            "error": str(e),
            "available": float(e.available),
            "requested": float(e.requested),
        }), 422
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except StockConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to record stock transaction")
        return jsonify({"error": "Internal server error"}), 500

    result = tx.to_dict()
    audit_service.record_event(
        action="CREATE_TRANSACTION",
        resource_type="TRANSACTION",
        resource_id=tx.id,
        details={
            "product_id": result["product_id"],
            "type": result["type"],
            "quantity": result["quantity"],
        },
        new_state=result,
    )
    return jsonify(result), 201


@transactions_bp.delete("/<int:transaction_id>")
@require_auth
@require_admin
def delete_transaction_route(transaction_id: int):
    """
    Admin override: remove a ledger row.

    Product stock is not recomputed; GET /api/ledger/verify reports the gap.
    """
    try:
        snapshot = stock_service.delete_transaction(transaction_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to delete stock transaction %s", transaction_id)
        return jsonify({"error": "Internal server error"}), 500

    audit_service.record_event(
        action="DELETE_TRANSACTION",
        resource_type="TRANSACTION",
        resource_id=transaction_id,
        previous_state=snapshot,
    )
    return jsonify({"ok": True}), 200
