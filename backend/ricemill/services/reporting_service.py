# Overview: Service-layer operations for reporting; read-only projections over the ledgers.

from __future__ import annotations

from collections import OrderedDict
from datetime import datetime, timedelta
from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import Product, StockTransaction, TX_STOCK_IN, TX_STOCK_OUT, TX_ADJUSTMENT
from ..money_utils import round_money, to_decimal
from ..time_utils import parse_date_range, to_utc_z, utcnow
from .cash_service import withdrawals_in_range
"""
Reporting rules

- Catalog aggregates (counts, stock value, low stock, category stock) read
  active products only, filtered explicitly on is_active.
- Ledger aggregates (movement, revenue, profit, trends) read every transaction
  in the window, including those of since-deactivated products: history
  stays valid after a soft delete.
- Revenue is the stored total_value of stock_out rows.
- All money and quantity outputs are rounded half-up to 2 decimals.
"""

ZERO = Decimal("0")
TOP_PRODUCTS_LIMIT = 10


class ReportError(Exception):
    """Raised when report parameters are invalid."""
    pass


def _r2(value) -> float:
    return float(round_money(value or ZERO))


def _parse_range(start: str | None, end: str | None) -> tuple[datetime | None, datetime | None]:
    try:
        return parse_date_range(start, end)
    except ValueError as exc:
        raise ReportError(f"Invalid date range: {exc}")


def _active_products(order_by_name: bool = False) -> list[Product]:
    q = db.session.query(Product).filter(Product.is_active.is_(True))
    if order_by_name:
        q = q.order_by(Product.name.asc(), Product.id.asc())
    return q.all()


def _transactions(
    start_dt: datetime | None,
    end_dt: datetime | None,
    *,
    tx_type: str | None = None,
    product_id: int | None = None,
) -> list[StockTransaction]:
    q = db.session.query(StockTransaction)
    if tx_type:
        q = q.filter(StockTransaction.type == tx_type)
    if product_id is not None:
        q = q.filter(StockTransaction.product_id == product_id)
    if start_dt is not None:
        q = q.filter(StockTransaction.created_at >= start_dt)
    if end_dt is not None:
        q = q.filter(StockTransaction.created_at <= end_dt)
    return q.order_by(StockTransaction.created_at.desc(), StockTransaction.id.desc()).all()


def _stock_value(p: Product) -> Decimal:
    return to_decimal(p.current_stock) * to_decimal(p.cost_price)


def _potential_value(p: Product) -> Decimal:
    return to_decimal(p.current_stock) * to_decimal(p.selling_price)


def _sum_quantity(txs, tx_type: str) -> Decimal:
    return sum((to_decimal(t.quantity) for t in txs if t.type == tx_type), ZERO)


def dashboard(*, now: datetime | None = None) -> dict:
    now = now or utcnow()
    window_days = current_app.config.get("DASHBOARD_WINDOW_DAYS", 30)
    since = now - timedelta(days=window_days)

    products = _active_products()
    low_stock = [p for p in products if p.is_low_stock]

    recent = _transactions(since, None)
    withdrawals = withdrawals_in_range(since, None)
    total_withdrawn = sum((to_decimal(w.amount) for w in withdrawals), ZERO)

    return {
        "total_products": len(products),
        "total_stock_value": _r2(sum((_stock_value(p) for p in products), ZERO)),
        "total_stock_quantity": _r2(sum((to_decimal(p.current_stock) for p in products), ZERO)),
        "low_stock_count": len(low_stock),
        "low_stock_products": [
            {
                "id": p.id,
                "name": p.name,
                "sku": p.sku,
                "current_stock": float(p.current_stock),
                "min_stock_level": float(p.min_stock_level),
            }
            for p in low_stock
        ],
        "recent_activity": {
            "window_days": window_days,
            "stock_in": _r2(_sum_quantity(recent, TX_STOCK_IN)),
            "stock_out": _r2(_sum_quantity(recent, TX_STOCK_OUT)),
            "transactions": len(recent),
            "cash_withdrawals": len(withdrawals),
            "total_withdrawn": _r2(total_withdrawn),
        },
    }


def stock_value_report() -> dict:
    rows = []
    total_value = ZERO
    total_potential = ZERO
    for p in _active_products(order_by_name=True):
        stock_value = round_money(_stock_value(p))
        potential_value = round_money(_potential_value(p))
        total_value += stock_value
        total_potential += potential_value
        rows.append({
            "id": p.id,
            "name": p.name,
            "sku": p.sku,
            "category": p.category,
            "current_stock": float(p.current_stock),
            "unit": p.unit,
            "cost_price": _r2(p.cost_price),
            "selling_price": _r2(p.selling_price),
            "stock_value": float(stock_value),
            "potential_value": float(potential_value),
        })

    return {
        "products": rows,
        "summary": {
            "total_value": _r2(total_value),
            "total_potential_value": _r2(total_potential),
        },
    }


def movement_report(
    *,
    start: str | None = None,
    end: str | None = None,
    product_id: int | None = None,
) -> list[dict]:
    """Transactions grouped by product, newest transaction first within each group."""
    start_dt, end_dt = _parse_range(start, end)
    grouped: "OrderedDict[int, dict]" = OrderedDict()

    for t in _transactions(start_dt, end_dt, product_id=product_id):
        entry = grouped.get(t.product_id)
        if entry is None:
            entry = grouped[t.product_id] = {
                "product": t.product.to_summary(),
                "stock_in": ZERO,
                "stock_out": ZERO,
                "adjustments": 0,
                "transactions": [],
            }
        if t.type == TX_STOCK_IN:
            entry["stock_in"] += to_decimal(t.quantity)
        elif t.type == TX_STOCK_OUT:
            entry["stock_out"] += to_decimal(t.quantity)
        elif t.type == TX_ADJUSTMENT:
            entry["adjustments"] += 1
        entry["transactions"].append({
            "id": t.id,
            "type": t.type,
            "quantity": float(t.quantity),
            "date": to_utc_z(t.created_at),
        })

    result = []
    for entry in grouped.values():
        entry["stock_in"] = _r2(entry["stock_in"])
        entry["stock_out"] = _r2(entry["stock_out"])
        result.append(entry)
    return result


def sale_margin(selling_price: Decimal, cost_price: Decimal) -> Decimal:
    """Margin percent on selling price; 0 when cost is unknown (0) or price is 0."""
    if cost_price > 0 and selling_price > 0:
        return (selling_price - cost_price) / selling_price * 100
    return ZERO


def profit_analysis(*, start: str | None = None, end: str | None = None) -> dict:
    start_dt, end_dt = _parse_range(start, end)
    rows = []
    total_revenue = ZERO
    total_profit = ZERO
    margin_sum = ZERO

    for t in _transactions(start_dt, end_dt, tx_type=TX_STOCK_OUT):
        product = t.product
        quantity = to_decimal(t.quantity)
        cost_price = to_decimal(product.cost_price or 0)
        selling_price = to_decimal(t.price if t.price is not None else product.selling_price or 0)

        revenue = round_money(
            t.total_value if t.total_value is not None else selling_price * quantity
        )
        profit = round_money((selling_price - cost_price) * quantity)
        margin = round_money(sale_margin(selling_price, cost_price))

        total_revenue += revenue
        total_profit += profit
        margin_sum += margin

        rows.append({
            "transaction_id": t.id,
            "product_name": product.name,
            "category": product.category,
            "quantity": float(quantity),
            "cost_price": _r2(cost_price),
            "selling_price": _r2(selling_price),
            "revenue": float(revenue),
            "profit": float(profit),
            "profit_margin": float(margin),
            "date": to_utc_z(t.created_at),
        })

    average_margin = margin_sum / len(rows) if rows else ZERO
    return {
        "transactions": rows,
        "summary": {
            "total_revenue": _r2(total_revenue),
            "total_profit": _r2(total_profit),
            "average_margin": _r2(average_margin),
            "transaction_count": len(rows),
        },
    }


def bi_analytics(*, start: str | None = None, end: str | None = None, now: datetime | None = None) -> dict:
    """Category stock analysis, daily trends, category revenue and top products."""
    start_dt, end_dt = _parse_range(start, end)
    if start_dt is None and end_dt is None:
        window_days = current_app.config.get("ANALYTICS_WINDOW_DAYS", 90)
        start_dt = (now or utcnow()) - timedelta(days=window_days)

    products = _active_products()
    categories: "OrderedDict[str, dict]" = OrderedDict()
    for p in products:
        c = categories.setdefault(p.category, {
            "category": p.category,
            "total_stock": ZERO,
            "total_value": ZERO,
            "total_potential_value": ZERO,
            "product_count": 0,
        })
        c["total_stock"] += to_decimal(p.current_stock)
        c["total_value"] += _stock_value(p)
        c["total_potential_value"] += _potential_value(p)
        c["product_count"] += 1

    transactions = _transactions(start_dt, end_dt)
    trends: dict[str, dict] = {}
    category_revenue: "OrderedDict[str, dict]" = OrderedDict()
    performance: "OrderedDict[int, dict]" = OrderedDict()
    total_revenue = ZERO

    for t in transactions:
        day = t.created_at.strftime("%Y-%m-%d")
        trend = trends.setdefault(day, {"date": day, "stock_in": ZERO, "stock_out": ZERO, "revenue": ZERO})
        quantity = to_decimal(t.quantity)
        if t.type == TX_STOCK_IN:
            trend["stock_in"] += quantity
        elif t.type == TX_STOCK_OUT:
            revenue = to_decimal(t.total_value or 0)
            trend["stock_out"] += quantity
            trend["revenue"] += revenue
            total_revenue += revenue

            cat = category_revenue.setdefault(t.product.category, {
                "category": t.product.category, "revenue": ZERO, "quantity": ZERO,
            })
            cat["revenue"] += revenue
            cat["quantity"] += quantity

            perf = performance.setdefault(t.product_id, {
                "id": t.product_id,
                "name": t.product.name,
                "category": t.product.category,
                "total_quantity_sold": ZERO,
                "total_revenue": ZERO,
                "transaction_count": 0,
            })
            perf["total_quantity_sold"] += quantity
            perf["total_revenue"] += revenue
            perf["transaction_count"] += 1

    top_products = sorted(performance.values(), key=lambda r: r["total_revenue"], reverse=True)
    top_products = top_products[:TOP_PRODUCTS_LIMIT]

    def _rounded(row: dict) -> dict:
        return {k: (_r2(v) if isinstance(v, Decimal) else v) for k, v in row.items()}

    return {
        "category_analysis": [_rounded(c) for c in categories.values()],
        "transaction_trends": [_rounded(trends[d]) for d in sorted(trends)],
        "category_revenue": [_rounded(c) for c in category_revenue.values()],
        "top_products": [_rounded(p) for p in top_products],
        "summary": {
            "total_products": len(products),
            "total_inventory_value": _r2(sum((_stock_value(p) for p in products), ZERO)),
            "total_revenue": _r2(total_revenue),
            "total_transactions": len(transactions),
        },
    }
