# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/ricemill/routes/products.py
"""
Product catalog routes.

SECURITY: All routes require authentication.
current_stock may be set once at creation (recorded as an opening adjustment);
after that it only moves through /api/transactions.
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..models import Product
from ..services import audit_service
from ..services import products_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    ValidationError,
    NotFoundError,
    ConflictError,
)
from ..decorators import require_auth

_CATALOG_FIELDS = {
    "sku",
    "name",
    "description",
    "category",
    "unit",
    "min_stock_level",
    "max_stock_level",
    "cost_price",
    "selling_price",
    "location",
    "batch_number",
    "expiry_date",
    "supplier",
}

PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields=_CATALOG_FIELDS | {"current_stock"},
    required_on_create={"name", "cost_price", "selling_price"},
)

PRODUCT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=_CATALOG_FIELDS | {"is_active"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products():
    """
    List active products with optional filters and pagination.

    Query params:
    - search: name or SKU substring (case-insensitive)
    - category: exact category
    - low_stock: "true" to return only products at or below min_stock_level
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - per_page: int (optional) - items per page (default 20, max 100)
    """
    return products_service.list_products(
        search=request.args.get("search"),
        category=request.args.get("category"),
        low_stock=request.args.get("low_stock", "false").lower() == "true",
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    try:
        return products_service.get_product(product_id).to_dict()
    except NotFoundError as e:
        return {"error": str(e)}, 404


@products_bp.post("")
@require_auth
def create_product_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_CREATE_POLICY, partial=False)
        enforce_rules_product(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        created = products_service.upsert_product(patch=patch, created_by_user_id=g.current_user.id)
    except ConflictError as e:
        return {"error": str(e)}, 409
    except ValueError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to create product")
        return {"error": "Internal server error"}, 500

    result = created.to_dict()
    audit_service.record_event(
        action="CREATE_PRODUCT",
        resource_type="PRODUCT",
        resource_id=created.id,
        new_state=result,
    )
    return result, 201


@products_bp.put("/<int:product_id>")
@require_auth
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_UPDATE_POLICY, partial=True)
        enforce_rules_product(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        previous_state = products_service.get_product(product_id).to_dict()
        updated = products_service.upsert_product(patch=patch, product_id=product_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409
    except Exception:
        current_app.logger.exception("Failed to update product %s", product_id)
        return {"error": "Internal server error"}, 500

    result = updated.to_dict()
    audit_service.record_event(
        action="UPDATE_PRODUCT",
        resource_type="PRODUCT",
        resource_id=product_id,
        details={"fields": sorted(patch.keys())},
        previous_state=previous_state,
        new_state=result,
    )
    return result, 200


@products_bp.delete("/<int:product_id>")
@require_auth
def delete_product_route(product_id: int):
    """Soft-delete a product; its transactions are kept."""
    try:
        previous_state = products_service.get_product(product_id).to_dict()
        products_service.delete_product(product_id=product_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409
    except Exception:
        current_app.logger.exception("Failed to delete product %s", product_id)
        return {"error": "Internal server error"}, 500

    audit_service.record_event(
        action="DELETE_PRODUCT",
        resource_type="PRODUCT",
        resource_id=product_id,
        previous_state=previous_state,
    )
    return jsonify({"ok": True}), 200
