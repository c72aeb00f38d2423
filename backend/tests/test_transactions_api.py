"""
Stock transaction API tests.

Verifies:
- POST /api/transactions status codes (201/400/404/422)
- Response carries the product summary and acting user
- Listing filters
- Delete is admin-only and leaves stock untouched
"""

from decimal import Decimal

import pytest

from ricemill.extensions import db
from ricemill.models import StockTransaction


def _post(client, headers, product_id, tx_type, quantity, **extra):
    body = {"product_id": product_id, "type": tx_type, "quantity": quantity}
    body.update(extra)
    return client.post("/api/transactions", json=body, headers=headers)


class TestCreateTransaction:

    def test_requires_auth(self, client, product):
        resp = client.post("/api/transactions", json={"product_id": product.id, "type": "stock_in", "quantity": 1})
        assert resp.status_code == 401

    def test_stock_in(self, client, staff_headers, staff_user, product):
        resp = _post(client, staff_headers, product.id, "stock_in", 10, supplier="Delta Farms")

        assert resp.status_code == 201
        body = resp.json
        assert body["stock_before"] == 0.0
        assert body["stock_after"] == 10.0
        assert body["price"] == 5.5
        assert body["total_value"] == 55.0
        assert body["supplier"] == "Delta Farms"
        assert body["product"] == {
            "id": product.id,
            "name": "Basmati Premium",
            "sku": "BAS-001",
            "category": "Basmati",
            "unit": "kg",
        }
        assert body["created_by"] == {"id": staff_user.id, "name": staff_user.name, "email": staff_user.email}

    def test_insufficient_stock_is_422(self, client, staff_headers, product):
        _post(client, staff_headers, product.id, "stock_in", 10)

        resp = _post(client, staff_headers, product.id, "stock_out", 11)

        assert resp.status_code == 422
        assert resp.json["available"] == 10.0
        assert resp.json["requested"] == 11.0
        db.session.refresh(product)
        assert product.current_stock == Decimal("10")

    @pytest.mark.parametrize("body", [
        {"type": "stock_in", "quantity": 1},
        {"product_id": 1, "type": "stock_in"},
        {"product_id": 1, "type": "restock", "quantity": 1},
        {"product_id": 1, "type": "stock_in", "quantity": 0},
        {"product_id": 1, "type": "stock_in", "quantity": 1, "price": -2},
        {"product_id": "1.5", "type": "stock_in", "quantity": 1},
    ])
    def test_validation_errors(self, client, staff_headers, db_session, body):
        resp = client.post("/api/transactions", json=body, headers=staff_headers)
        assert resp.status_code == 400

    def test_transfer_is_rejected(self, client, staff_headers, product):
        resp = _post(client, staff_headers, product.id, "transfer", 1)

        assert resp.status_code == 400
        assert "transfer" in resp.json["error"]

    def test_stock_fields_not_client_writable(self, client, staff_headers, product):
        resp = _post(client, staff_headers, product.id, "stock_in", 1, stock_after=1000)
        assert resp.status_code == 400

    def test_unknown_product_is_404(self, client, staff_headers, db_session):
        resp = _post(client, staff_headers, 987654, "stock_in", 1)
        assert resp.status_code == 404


class TestListAndGet:

    def test_list_filters(self, client, staff_headers, product):
        _post(client, staff_headers, product.id, "stock_in", 10)
        _post(client, staff_headers, product.id, "stock_out", 3)

        resp = client.get(f"/api/transactions?product_id={product.id}", headers=staff_headers)
        assert resp.status_code == 200
        assert resp.json["count"] == 2
        assert resp.json["items"][0]["type"] == "stock_out"

        only_out = client.get("/api/transactions?type=stock_out", headers=staff_headers)
        assert only_out.json["count"] == 1

        future = client.get("/api/transactions?start_date=2999-01-01", headers=staff_headers)
        assert future.json["count"] == 0

    def test_bad_date_filter(self, client, staff_headers, db_session):
        resp = client.get("/api/transactions?start_date=yesterday", headers=staff_headers)
        assert resp.status_code == 400

    def test_get_single(self, client, staff_headers, product):
        created = _post(client, staff_headers, product.id, "stock_in", 2).json

        resp = client.get(f"/api/transactions/{created['id']}", headers=staff_headers)
        assert resp.status_code == 200
        assert resp.json["quantity"] == 2.0

        missing = client.get("/api/transactions/999999", headers=staff_headers)
        assert missing.status_code == 404


class TestDeleteTransaction:

    def test_staff_cannot_delete(self, client, staff_headers, product):
        created = _post(client, staff_headers, product.id, "stock_in", 2).json

        resp = client.delete(f"/api/transactions/{created['id']}", headers=staff_headers)
        assert resp.status_code == 403

    def test_admin_delete_does_not_recompute_stock(self, client, admin_headers, product):
        created = _post(client, admin_headers, product.id, "stock_in", 7).json

        resp = client.delete(f"/api/transactions/{created['id']}", headers=admin_headers)

        assert resp.status_code == 200
        assert db.session.get(StockTransaction, created["id"]) is None
        db.session.refresh(product)
        assert product.current_stock == Decimal("7")

        verify = client.get(f"/api/ledger/verify?product_id={product.id}", headers=admin_headers)
        assert verify.status_code == 200
        assert verify.json["consistent"] is False
        assert verify.json["replayed_stock"] == 0.0

    def test_delete_unknown(self, client, admin_headers):
        resp = client.delete("/api/transactions/31337", headers=admin_headers)
        assert resp.status_code == 404
