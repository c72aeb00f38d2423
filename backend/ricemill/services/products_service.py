# backend/ricemill/services/products_service.py
"""
Products Service (catalog operations)

- SKUs are optional, case-insensitive and globally unique: normalized to
  upper case before comparison and storage.
- current_stock is owned by the stock ledger. Creation may take an opening
  level, which is recorded as an adjustment transaction in the same commit;
  updates cannot touch it.
- Delete is a soft delete (is_active=False); transactions are never touched.
"""
from __future__ import annotations

from decimal import Decimal

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import Product, TX_ADJUSTMENT
from ..validation import ConflictError, NotFoundError, coerce_positive_quantity
from .concurrency import run_with_retry
from .stock_service import apply_transaction

PRODUCT_MUTABLE_FIELDS = {
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
    "is_active",
}


def normalize_sku(sku: str | None) -> str | None:
    if sku is None:
        return None
    sku = str(sku).strip().upper()
    return sku or None


def _sku_taken(sku: str, *, exclude_product_id: int | None = None) -> bool:
    q = db.session.query(Product.id).filter(Product.sku == sku)
    if exclude_product_id is not None:
        q = q.filter(Product.id != exclude_product_id)
    return q.first() is not None


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _persist(write=None) -> None:
    """Flush or commit (default). A unique-SKU violation from a racing writer becomes ConflictError."""
    try:
        (write or db.session.commit)()
    except IntegrityError as exc:
        db.session.rollback()
        if "sku" in str(exc.orig).lower():
            raise ConflictError("SKU already exists") from exc
        raise


def _retry_catalog_write(op) -> Product:
    """Run op under run_with_retry; exhausted version conflicts become ConflictError."""
    attempts = current_app.config.get("STOCK_MUTATION_RETRY_ATTEMPTS", 3)
    try:
        return run_with_retry(op, attempts=attempts)
    except (OperationalError, StaleDataError) as exc:
        raise ConflictError("Product changed concurrently; please retry") from exc


def get_product(product_id: int) -> Product:
    p = db.session.get(Product, product_id)
    if p is None:
        raise NotFoundError("Product not found")
    return p


def list_products(
    *,
    search: str | None = None,
    category: str | None = None,
    low_stock: bool = False,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Active products, newest first, with optional pagination.

    Args:
        search: case-insensitive substring of name or SKU
        category: exact category
        low_stock: only products at or below min_stock_level
        page: Page number (1-indexed). If None, returns all items.
        per_page: Items per page (default 20, max 100)
    """
    base_query = db.session.query(Product).filter(Product.is_active.is_(True))

    if search:
        # % and _ match literally
        term = search.strip().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        pattern = f"%{term}%"
        base_query = base_query.filter(
            or_(
                Product.name.ilike(pattern, escape="\\"),
                Product.sku.ilike(pattern, escape="\\"),
            )
        )
    if category:
        base_query = base_query.filter(Product.category == category)
    if low_stock:
        base_query = base_query.filter(Product.current_stock <= Product.min_stock_level)

    base_query = base_query.order_by(Product.created_at.desc(), Product.id.desc())

    if page is None:
        products = base_query.all()
        return {
            "items": [p.to_dict() for p in products],
            "count": len(products),
        }

    per_page = min(per_page or 20, 100)  # Default 20, max 100
    page = max(page, 1)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    products = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def create_product(*, patch: dict, created_by_user_id: int | None) -> Product:
    """
    Create product using a validated patch dict.

    An opening current_stock > 0 becomes an "Opening stock" adjustment so the
    ledger replays from zero.

    Raises:
        ConflictError: If the SKU already exists (case-insensitive)
    """
    patch = dict(patch)
    opening_stock = patch.pop("current_stock", None)
    opening_qty = None
    if opening_stock is not None and opening_stock > 0:
        if created_by_user_id is None:
            raise ValueError("opening stock requires an acting user")
        opening_qty = coerce_positive_quantity(opening_stock, "current_stock")

    if "sku" in patch:
        patch["sku"] = normalize_sku(patch["sku"])
    if patch.get("sku") and _sku_taken(patch["sku"]):
        raise ConflictError("SKU already exists")

    p = Product(current_stock=Decimal("0"), created_by_user_id=created_by_user_id)
    apply_product_patch(p, patch)

    db.session.add(p)
    _persist(db.session.flush)  # p.id is needed for the ledger row

    if opening_qty is not None:
        apply_transaction(
            p,
            tx_type=TX_ADJUSTMENT,
            quantity=opening_qty,
            created_by_user_id=created_by_user_id,
            notes="Opening stock",
        )

    db.session.commit()
    return p


def update_product(*, product_id: int, patch: dict) -> Product:
    """
    Update catalog fields of a product.

    A concurrent stock movement bumps version_id; the patch is then re-applied
    to the fresh row, up to STOCK_MUTATION_RETRY_ATTEMPTS times.

    Raises:
        NotFoundError: unknown product
        ConflictError: SKU taken by another product, or retries exhausted
    """
    if "sku" in patch:
        patch = dict(patch)
        patch["sku"] = normalize_sku(patch["sku"])

    def _op():
        p = get_product(product_id)
        if patch.get("sku") and patch["sku"] != p.sku and _sku_taken(patch["sku"], exclude_product_id=p.id):
            raise ConflictError("SKU already exists")
        apply_product_patch(p, patch)
        _persist()
        return p

    return _retry_catalog_write(_op)


def upsert_product(*, patch: dict, product_id: int | None = None, created_by_user_id: int | None = None) -> Product:
    """Create when product_id is None, otherwise update the existing product."""
    if product_id is None:
        return create_product(patch=patch, created_by_user_id=created_by_user_id)
    return update_product(product_id=product_id, patch=patch)


def delete_product(*, product_id: int) -> Product:
    """
    Soft-delete a product.

    Soft-delete only: preserve IDs and historical transactions.
    """
    def _op():
        p = get_product(product_id)
        if p.is_active:
            p.is_active = False
        db.session.commit()
        return p

    return _retry_catalog_write(_op)
