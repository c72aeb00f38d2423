"""
Stock ledger tests.

Verifies:
- Stock-effect rule per transaction type (stock_in, stock_out, adjustment)
- Insufficient stock and invalid input write nothing
- total_value defaults to cost price x quantity
- Replaying the ledger from zero reproduces current_stock
- Optimistic version conflicts are retried against fresh state
"""

from decimal import Decimal

import pytest
from sqlalchemy import update

from ricemill.extensions import db
from ricemill.models import Product, StockTransaction
from ricemill.services import stock_service
from ricemill.services.stock_service import (
    InsufficientStockError,
    StockConflictError,
    compute_stock_after,
    record_transaction,
    replay_stock,
    verify_product_ledger,
    verify_all_ledgers,
)
from ricemill.validation import NotFoundError, ValidationError


def _record(product, user, tx_type, quantity, **kwargs):
    return record_transaction(
        tx_type=tx_type,
        product_id=product.id,
        quantity=quantity,
        created_by_user_id=user.id,
        **kwargs,
    )


def _tx_count(product_id):
    return db.session.query(StockTransaction).filter_by(product_id=product_id).count()


# =============================================================================
# STOCK-EFFECT RULE
# =============================================================================


class TestComputeStockAfter:

    def test_stock_in_adds(self):
        assert compute_stock_after("stock_in", Decimal("10"), Decimal("2.5")) == Decimal("12.5")

    def test_stock_out_subtracts(self):
        assert compute_stock_after("stock_out", Decimal("10"), Decimal("10")) == Decimal("0")

    def test_stock_out_insufficient(self):
        with pytest.raises(InsufficientStockError) as exc:
            compute_stock_after("stock_out", Decimal("5"), Decimal("6"))
        assert exc.value.available == Decimal("5")
        assert exc.value.requested == Decimal("6")

    def test_stock_out_replay_allows_negative(self):
        result = compute_stock_after("stock_out", Decimal("5"), Decimal("6"), enforce_sufficiency=False)
        assert result == Decimal("-1")

    def test_adjustment_sets_absolute_level(self):
        assert compute_stock_after("adjustment", Decimal("80"), Decimal("50")) == Decimal("50")

    def test_transfer_rejected(self):
        with pytest.raises(ValidationError):
            compute_stock_after("transfer", Decimal("10"), Decimal("1"))

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            compute_stock_after("shrinkage", Decimal("10"), Decimal("1"))


# =============================================================================
# RECORD TRANSACTION
# =============================================================================


class TestRecordTransaction:

    def test_stock_in_moves_stock_and_snapshots(self, product, staff_user):
        tx = _record(product, staff_user, "stock_in", "100")

        assert tx.stock_before == Decimal("0")
        assert tx.stock_after == Decimal("100")
        assert tx.unit == "kg"
        db.session.refresh(product)
        assert product.current_stock == tx.stock_after

    def test_reading_stock_twice_is_stable(self, product, staff_user):
        _record(product, staff_user, "stock_in", "42.5")

        first = db.session.get(Product, product.id).current_stock
        db.session.expire_all()
        second = db.session.get(Product, product.id).current_stock
        assert first == second == Decimal("42.5")

    def test_mill_scenario(self, product, staff_user):
        """Stock 100, min 20: out 30, out 80 fails, adjust to 50."""
        _record(product, staff_user, "stock_in", 100)

        out = _record(product, staff_user, "stock_out", 30)
        assert (out.stock_before, out.stock_after) == (Decimal("100"), Decimal("70"))

        with pytest.raises(InsufficientStockError):
            _record(product, staff_user, "stock_out", 80)
        db.session.refresh(product)
        assert product.current_stock == Decimal("70")
        assert _tx_count(product.id) == 2

        adj = _record(product, staff_user, "adjustment", 50)
        assert (adj.stock_before, adj.stock_after) == (Decimal("70"), Decimal("50"))
        db.session.refresh(product)
        assert product.current_stock == Decimal("50")

    def test_total_value_defaults_to_cost_price(self, product, staff_user):
        tx = _record(product, staff_user, "stock_in", 10)

        assert tx.price == Decimal("5.50")
        assert tx.total_value == Decimal("55.00")

    def test_total_value_uses_supplied_price(self, product, staff_user):
        _record(product, staff_user, "stock_in", 10)
        tx = _record(product, staff_user, "stock_out", "3", price="8.25")

        assert tx.total_value == Decimal("24.75")

    def test_explicit_zero_price_is_kept(self, product, staff_user):
        tx = _record(product, staff_user, "stock_in", 4, price=0)

        assert tx.price == Decimal("0")
        assert tx.total_value == Decimal("0")

    def test_total_value_rounds_half_up(self, product, staff_user):
        tx = _record(product, staff_user, "stock_in", "0.5", price="0.05")

        assert tx.total_value == Decimal("0.03")

    @pytest.mark.parametrize("quantity", [0, -5, "abc", None, "1.2345"])
    def test_invalid_quantity_writes_nothing(self, product, staff_user, quantity):
        with pytest.raises(ValidationError):
            _record(product, staff_user, "stock_in", quantity)
        assert _tx_count(product.id) == 0

    def test_negative_price_rejected(self, product, staff_user):
        with pytest.raises(ValidationError):
            _record(product, staff_user, "stock_in", 1, price=-1)

    def test_transfer_rejected(self, product, staff_user):
        with pytest.raises(ValidationError):
            _record(product, staff_user, "transfer", 5)
        assert _tx_count(product.id) == 0

    def test_unknown_product(self, staff_user):
        with pytest.raises(NotFoundError):
            record_transaction(
                tx_type="stock_in", product_id=999999, quantity=1, created_by_user_id=staff_user.id
            )

    def test_inactive_product_rejected(self, product, staff_user):
        product.is_active = False
        db.session.commit()

        with pytest.raises(ValidationError):
            _record(product, staff_user, "stock_in", 1)
        assert _tx_count(product.id) == 0

    def test_metadata_passthrough(self, product, staff_user):
        tx = _record(
            product, staff_user, "stock_in", 5,
            reference="PO-17", supplier="Paddy Co", batch_number="B-9", notes="first lot",
        )
        data = tx.to_dict()

        assert data["reference"] == "PO-17"
        assert data["supplier"] == "Paddy Co"
        assert data["product"]["sku"] == "BAS-001"
        assert data["created_by"]["name"] == staff_user.name


# =============================================================================
# OPTIMISTIC CONCURRENCY
# =============================================================================


def _concurrent_write_on_first_compute(monkeypatch, product_id, new_stock):
    """
    Simulate another writer committing between our read and our write.

    The competing UPDATE bumps version_id; our in-memory Product keeps the old
    version so the flush matches zero rows.
    """
    real_compute = stock_service.compute_stock_after
    calls = {"n": 0}

    def compute(*args, **kwargs):
        calls["n"] += 1
        if calls["n"] == 1:
            session = db.session()
            session.expire_on_commit = False
            try:
                session.execute(
                    update(Product)
                    .where(Product.id == product_id)
                    .values(current_stock=new_stock, version_id=Product.version_id + 1)
                    .execution_options(synchronize_session=False)
                )
                session.commit()
            finally:
                session.expire_on_commit = True
        return real_compute(*args, **kwargs)

    monkeypatch.setattr(stock_service, "compute_stock_after", compute)
    return calls


class TestOptimisticRetry:

    def test_stale_version_is_retried_with_fresh_stock(self, monkeypatch, product, staff_user):
        _record(product, staff_user, "stock_in", 100)
        calls = _concurrent_write_on_first_compute(monkeypatch, product.id, Decimal("40"))

        tx = _record(product, staff_user, "stock_in", 10)

        assert calls["n"] == 2
        assert tx.stock_before == Decimal("40")
        assert tx.stock_after == Decimal("50")
        db.session.refresh(product)
        assert product.current_stock == Decimal("50")
        assert _tx_count(product.id) == 2

    def test_adjustment_to_loaded_level_still_checks_version(self, monkeypatch, product, staff_user):
        _record(product, staff_user, "stock_in", 50)
        calls = _concurrent_write_on_first_compute(monkeypatch, product.id, Decimal("40"))

        tx = _record(product, staff_user, "adjustment", 50)

        assert calls["n"] == 2
        assert tx.stock_before == Decimal("40")
        assert tx.stock_after == Decimal("50")
        db.session.refresh(product)
        assert product.current_stock == Decimal("50")
        assert _tx_count(product.id) == 2

    def test_exhausted_retries_raise_conflict(self, app, monkeypatch, product, staff_user):
        _record(product, staff_user, "stock_in", 100)
        monkeypatch.setitem(app.config, "STOCK_MUTATION_RETRY_ATTEMPTS", 1)
        _concurrent_write_on_first_compute(monkeypatch, product.id, Decimal("40"))

        with pytest.raises(StockConflictError):
            _record(product, staff_user, "stock_in", 10)

        db.session.refresh(product)
        assert product.current_stock == Decimal("40")
        assert _tx_count(product.id) == 1


# =============================================================================
# LEDGER REPLAY / VERIFY
# =============================================================================


class TestLedgerReplay:

    def test_replay_reproduces_current_stock(self, product, staff_user):
        for tx_type, qty in [("stock_in", 100), ("stock_out", "12.5"), ("adjustment", 60), ("stock_in", 5)]:
            _record(product, staff_user, tx_type, qty)

        txs = product.transactions.order_by(StockTransaction.id.asc()).all()
        db.session.refresh(product)
        assert replay_stock(txs) == product.current_stock == Decimal("65")

    def test_verify_consistent_ledger(self, product, staff_user):
        _record(product, staff_user, "stock_in", 10)
        _record(product, staff_user, "stock_out", 4)

        report = verify_product_ledger(product.id)
        assert report["consistent"] is True
        assert report["issues"] == []
        assert report["transaction_count"] == 2
        assert report["replayed_stock"] == report["current_stock"] == 6.0

    def test_verify_reports_deleted_row_gap(self, product, staff_user):
        first = _record(product, staff_user, "stock_in", 10)
        _record(product, staff_user, "stock_in", 5)

        stock_service.delete_transaction(first.id)

        report = verify_product_ledger(product.id)
        assert report["consistent"] is False
        assert report["replayed_stock"] == 5.0
        assert report["current_stock"] == 15.0
        assert [i["issue"] for i in report["issues"]] == ["chain_break"]

    def test_verify_all(self, product, staff_user):
        _record(product, staff_user, "stock_in", 10)

        report = verify_all_ledgers()
        assert report["products_checked"] == 1
        assert report["consistent"] is True
        assert report["inconsistent"] == []

    def test_verify_unknown_product(self, db_session):
        with pytest.raises(NotFoundError):
            verify_product_ledger(424242)


class TestListTransactions:

    def test_filters_and_order(self, product, staff_user):
        _record(product, staff_user, "stock_in", 10)
        _record(product, staff_user, "stock_out", 2)
        _record(product, staff_user, "stock_in", 3)

        all_txs = stock_service.list_transactions(product_id=product.id)
        assert [float(t.quantity) for t in all_txs] == [3.0, 2.0, 10.0]

        ins = stock_service.list_transactions(tx_type="stock_in")
        assert len(ins) == 2

        limited = stock_service.list_transactions(limit=1)
        assert len(limited) == 1

    def test_invalid_type_filter(self, db_session):
        with pytest.raises(ValidationError):
            stock_service.list_transactions(tx_type="bogus")
