# Overview: Service-layer operations for the stock ledger; the only writer of Product.current_stock.

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Iterable

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import (
    Product,
    StockTransaction,
    TX_STOCK_IN,
    TX_STOCK_OUT,
    TX_ADJUSTMENT,
    TX_TRANSFER,
)
from ..money_utils import round_money, round_quantity, to_decimal
from ..time_utils import utcnow
from ..validation import (
    NotFoundError,
    ValidationError,
    coerce_positive_quantity,
    coerce_transaction_type,
)
from .concurrency import lock_for_update, run_with_retry
"""
Rice Mill Stock Ledger Invariants (authoritative)

Stock model:
- Product.current_stock is a materialized projection of stock_transactions.
- Every transaction stores stock_before/stock_after; stock_after is a pure
  function of (stock_before, type, quantity), see compute_stock_after().
- For one product, in id order, each stock_before equals the previous
  stock_after (0 for the first row); the last stock_after equals current_stock.

Mutation:
- The product row is read with SELECT ... FOR UPDATE, the transaction row is
  inserted and current_stock is updated, then both commit together.
- Product.version_id is the optimistic lock. A concurrent writer turns the
  UPDATE into a StaleDataError; the whole read-compute-write step is rolled
  back and retried. Exhausted retries raise StockConflictError.
- Failures (unknown product, insufficient stock) write nothing.

Types:
- stock_in adds quantity, stock_out subtracts it (never below zero),
  adjustment sets the absolute level.
- transfer has no defined stock effect and is rejected for new rows.
"""


DEFAULT_LIST_LIMIT = 100
MAX_LIST_LIMIT = 500


class InsufficientStockError(ValueError):
    """stock_out larger than the quantity on hand."""

    def __init__(self, available: Decimal, requested: Decimal):
        self.available = available
        self.requested = requested
        super().__init__(f"Insufficient stock: available {available}, requested {requested}")


class StockConflictError(Exception):
    """Concurrent updates kept invalidating the mutation; safe for the caller to retry."""


def compute_stock_after(
    tx_type: str,
    stock_before: Decimal,
    quantity: Decimal,
    *,
    enforce_sufficiency: bool = True,
) -> Decimal:
    """
    Stock-effect rule for one transaction.

    enforce_sufficiency=False is for replaying history, where a stock_out must be
    folded even if earlier rows were removed by an admin.
    """
    if tx_type == TX_STOCK_IN:
        return round_quantity(stock_before + quantity)
    if tx_type == TX_STOCK_OUT:
        if enforce_sufficiency and stock_before < quantity:
            raise InsufficientStockError(stock_before, quantity)
        return round_quantity(stock_before - quantity)
    if tx_type == TX_ADJUSTMENT:
        return round_quantity(quantity)
    if tx_type == TX_TRANSFER:
        raise ValidationError("transfer transactions are not supported")
    raise ValidationError(f"Invalid transaction type: {tx_type}")


def _load_product_for_update(product_id: int) -> Product:
    product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
    if product is None:
        raise NotFoundError("Product not found")
    if not product.is_active:
        raise ValidationError("Product is inactive")
    return product


def apply_transaction(
    product: Product,
    *,
    tx_type: str,
    quantity: Decimal,
    created_by_user_id: int,
    price: Decimal | None = None,
    reference: str | None = None,
    batch_number: str | None = None,
    expiry_date: datetime | None = None,
    supplier: str | None = None,
    customer: str | None = None,
    notes: str | None = None,
) -> StockTransaction:
    """Core mutation without locking, retry, or commit.

    Called by record_transaction() and by product creation for opening stock.
    """
    stock_before = to_decimal(product.current_stock or 0)
    stock_after = compute_stock_after(tx_type, stock_before, quantity)

    unit_price = price if price is not None else to_decimal(product.cost_price)
    total_value = round_money(unit_price * quantity)

    tx = StockTransaction(
        product_id=product.id,
        type=tx_type,
        quantity=quantity,
        unit=product.unit,
        price=round_money(unit_price),
        total_value=total_value,
        stock_before=stock_before,
        stock_after=stock_after,
        reference=reference,
        batch_number=batch_number,
        expiry_date=expiry_date,
        supplier=supplier,
        customer=customer,
        notes=notes,
        created_by_user_id=created_by_user_id,
    )
    db.session.add(tx)

    product.current_stock = stock_after
    # always UPDATE the product row so the version_id check runs, even for
    # an adjustment to the level already loaded
    product.updated_at = utcnow()
    db.session.flush()
    return tx


def record_transaction(
    *,
    tx_type: str,
    product_id: int,
    quantity,
    created_by_user_id: int,
    price=None,
    reference: str | None = None,
    batch_number: str | None = None,
    expiry_date: datetime | None = None,
    supplier: str | None = None,
    customer: str | None = None,
    notes: str | None = None,
) -> StockTransaction:
    """
    Record a stock movement and move the product's stock in one commit.

    Raises:
        ValidationError: bad type/quantity/price, transfer, or inactive product
        NotFoundError: unknown product
        InsufficientStockError: stock_out exceeds on-hand
        StockConflictError: concurrent writers exhausted the retries
    """
    tx_type = coerce_transaction_type(tx_type)
    qty = coerce_positive_quantity(quantity)
    if tx_type == TX_TRANSFER:
        raise ValidationError("transfer transactions are not supported")

    unit_price = None
    if price is not None:
        try:
            unit_price = to_decimal(price)
        except ValueError:
            raise ValidationError("price must be a number")
        if unit_price < 0:
            raise ValidationError("price must be >= 0")

    def _op():
        product = _load_product_for_update(product_id)
        tx = apply_transaction(
            product,
            tx_type=tx_type,
            quantity=qty,
            created_by_user_id=created_by_user_id,
            price=unit_price,
            reference=reference,
            batch_number=batch_number,
            expiry_date=expiry_date,
            supplier=supplier,
            customer=customer,
            notes=notes,
        )
        db.session.commit()
        return tx

    attempts = current_app.config.get("STOCK_MUTATION_RETRY_ATTEMPTS", 3)
    try:
        return run_with_retry(_op, attempts=attempts)
    except (OperationalError, StaleDataError) as exc:
        raise StockConflictError(
            "Product stock changed concurrently; please retry the transaction"
        ) from exc
    except ValueError:
        db.session.rollback()
        raise


def get_transaction(transaction_id: int) -> StockTransaction:
    tx = db.session.get(StockTransaction, transaction_id)
    if tx is None:
        raise NotFoundError("Transaction not found")
    return tx


def list_transactions(
    *,
    product_id: int | None = None,
    tx_type: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int | None = None,
) -> list[StockTransaction]:
    """Newest first. Date bounds are inclusive."""
    q = db.session.query(StockTransaction)
    if product_id is not None:
        q = q.filter(StockTransaction.product_id == product_id)
    if tx_type:
        q = q.filter(StockTransaction.type == coerce_transaction_type(tx_type))
    if start is not None:
        q = q.filter(StockTransaction.created_at >= start)
    if end is not None:
        q = q.filter(StockTransaction.created_at <= end)

    limit = limit or DEFAULT_LIST_LIMIT
    limit = max(1, min(limit, MAX_LIST_LIMIT))

    return (
        q.order_by(StockTransaction.created_at.desc(), StockTransaction.id.desc())
        .limit(limit)
        .all()
    )


def delete_transaction(transaction_id: int) -> dict:
    """
    Administrative override: remove one ledger row.

    Product.current_stock is NOT recomputed; verify_product_ledger() will report
    the gap. Returns the deleted row's snapshot for the audit trail.
    """
    tx = get_transaction(transaction_id)
    snapshot = tx.to_dict()
    db.session.delete(tx)
    db.session.commit()
    current_app.logger.warning(
        "Stock transaction %s deleted; product %s ledger no longer replays cleanly",
        transaction_id,
        snapshot["product_id"],
    )
    return snapshot


def replay_stock(transactions: Iterable[StockTransaction]) -> Decimal:
    """Fold the stock-effect rule over transactions (creation order) from zero."""
    stock = Decimal("0")
    for tx in transactions:
        stock = compute_stock_after(
            tx.type, stock, to_decimal(tx.quantity), enforce_sufficiency=False
        )
    return stock


def _ordered_transactions(product_id: int) -> list[StockTransaction]:
    return (
        db.session.query(StockTransaction)
        .filter(StockTransaction.product_id == product_id)
        .order_by(StockTransaction.id.asc())
        .all()
    )


def verify_product_ledger(product_id: int) -> dict:
    """
    Check the ledger chain and replay invariant for one product.

    Issues:
    - chain_break: stock_before differs from the previous row's stock_after
    - rule_mismatch: stock_after is not what the stock-effect rule yields
    - unsupported_type: a row whose type has no stock effect
    """
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found")

    txs = _ordered_transactions(product_id)
    issues: list[dict] = []
    previous_after = Decimal("0")
    replayed = Decimal("0")

    for tx in txs:
        before = to_decimal(tx.stock_before)
        after = to_decimal(tx.stock_after)
        qty = to_decimal(tx.quantity)

        if before != previous_after:
            issues.append({
                "transaction_id": tx.id,
                "issue": "chain_break",
                "expected_stock_before": float(previous_after),
                "stock_before": float(before),
            })
        try:
            expected_after = compute_stock_after(tx.type, before, qty, enforce_sufficiency=False)
            replayed = compute_stock_after(tx.type, replayed, qty, enforce_sufficiency=False)
        except ValidationError:
            issues.append({"transaction_id": tx.id, "issue": "unsupported_type", "type": tx.type})
            previous_after = after
            continue

        if after != expected_after:
            issues.append({
                "transaction_id": tx.id,
                "issue": "rule_mismatch",
                "expected_stock_after": float(expected_after),
                "stock_after": float(after),
            })
        previous_after = after

    current = to_decimal(product.current_stock or 0)
    return {
        "product_id": product.id,
        "sku": product.sku,
        "name": product.name,
        "transaction_count": len(txs),
        "current_stock": float(current),
        "replayed_stock": float(replayed),
        "consistent": not issues and replayed == current,
        "issues": issues,
    }


def verify_all_ledgers() -> dict:
    product_ids = [pid for (pid,) in db.session.query(Product.id).order_by(Product.id.asc()).all()]
    results = [verify_product_ledger(pid) for pid in product_ids]
    inconsistent = [r for r in results if not r["consistent"]]
    return {
        "products_checked": len(results),
        "consistent": not inconsistent,
        "inconsistent": inconsistent,
    }
