# Overview: Flask API routes for ledger verification; replays stock transactions against current_stock.

from flask import Blueprint, request, jsonify

from ..decorators import require_auth
from ..services import stock_service
from ..validation import NotFoundError

ledger_bp = Blueprint("ledger", __name__, url_prefix="/api/ledger")


@ledger_bp.get("/verify")
@require_auth
def verify_ledger_route():
    """
    Replay check for one product (?product_id=N) or for every product.

    Always 200; inconsistencies are reported in the body.
    """
    product_id = request.args.get("product_id", type=int)

    if product_id is None:
        return jsonify(stock_service.verify_all_ledgers()), 200

    try:
        return jsonify(stock_service.verify_product_ledger(product_id)), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
