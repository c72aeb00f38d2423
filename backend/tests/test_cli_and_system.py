"""
CLI commands, health endpoint and CORS headers.
"""

from ricemill.extensions import db
from ricemill.models import User
from ricemill.services import stock_service
from ricemill.services.stock_service import record_transaction


def test_health(client, db_session):
    resp = client.get("/api/health")

    assert resp.status_code == 200
    assert resp.json["status"] == "healthy"
    assert resp.json["checks"]["database"]["status"] == "healthy"


def test_cors_allow_list(client, db_session):
    allowed = client.get("/api/health", headers={"Origin": "http://localhost:5173"})
    assert allowed.headers["Access-Control-Allow-Origin"] == "http://localhost:5173"

    denied = client.get("/api/health", headers={"Origin": "http://evil.example"})
    assert "Access-Control-Allow-Origin" not in denied.headers


def test_users_create_and_list(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=[
        "users", "create",
        "--username", "miller",
        "--name", "Head Miller",
        "--email", "miller@mill.local",
        "--password", "Password123!",
        "--role", "admin",
    ])
    assert result.exit_code == 0, result.output
    assert "PASS Created user: miller" in result.output

    user = db.session.query(User).filter_by(username="miller").one()
    assert user.is_admin

    listing = runner.invoke(args=["users", "list"])
    assert "miller" in listing.output


def test_users_create_weak_password(app, db_session):
    result = app.test_cli_runner().invoke(args=[
        "users", "create",
        "--username", "weak",
        "--name", "Weak",
        "--email", "weak@mill.local",
        "--password", "weak",
    ])
    assert result.exit_code == 1
    assert "FAIL Password validation failed" in result.output


def test_ledger_verify_cli(app, product, staff_user):
    runner = app.test_cli_runner()
    first = record_transaction(
        tx_type="stock_in", product_id=product.id, quantity=10, created_by_user_id=staff_user.id
    )
    record_transaction(
        tx_type="stock_out", product_id=product.id, quantity=3, created_by_user_id=staff_user.id
    )

    ok = runner.invoke(args=["ledger", "verify"])
    assert ok.exit_code == 0, ok.output
    assert "PASS 1 product ledger(s) consistent" in ok.output

    stock_service.delete_transaction(first.id)

    broken = runner.invoke(args=["ledger", "verify", "--product-id", str(product.id)])
    assert broken.exit_code == 1
    assert "chain_break" in broken.output

    missing = runner.invoke(args=["ledger", "verify", "--product-id", "99999"])
    assert missing.exit_code == 1


def test_ledger_verify_route(client, staff_headers, product, staff_user):
    record_transaction(
        tx_type="stock_in", product_id=product.id, quantity=4, created_by_user_id=staff_user.id
    )

    resp = client.get("/api/ledger/verify", headers=staff_headers)
    assert resp.status_code == 200
    assert resp.json["consistent"] is True
    assert resp.json["products_checked"] == 1

    missing = client.get("/api/ledger/verify?product_id=99999", headers=staff_headers)
    assert missing.status_code == 404
