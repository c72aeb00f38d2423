"""
Pytest fixtures for the rice mill backend tests.

Provides test database setup, users with bearer tokens, and test client.
"""

from decimal import Decimal

import pytest
from ricemill import create_app
from ricemill.extensions import db
from ricemill.models import Product, User
from ricemill.services.auth_service import hash_password
from ricemill.services.session_service import create_session

PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='session')
def password_hash(app):
    """Hash the shared test password once per run."""
    with app.app_context():
        return hash_password(PASSWORD)


def _make_user(session, password_hash, username, role):
    user = User(
        username=username,
        name=username.title(),
        email=f"{username}@mill.local",
        password_hash=password_hash,
        role=role,
    )
    session.add(user)
    session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(db_session, password_hash):
    return _make_user(db_session, password_hash, "admin", "admin")


@pytest.fixture(scope='function')
def staff_user(db_session, password_hash):
    return _make_user(db_session, password_hash, "staff", "staff")


@pytest.fixture(scope='function')
def admin_headers(admin_user):
    _, token = create_session(admin_user.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def staff_headers(staff_user):
    _, token = create_session(staff_user.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def product(db_session, staff_user):
    """Basmati product with no stock and no ledger rows yet."""
    p = Product(
        sku="BAS-001",
        name="Basmati Premium",
        category="Basmati",
        unit="kg",
        current_stock=Decimal("0"),
        min_stock_level=Decimal("20"),
        cost_price=Decimal("5.50"),
        selling_price=Decimal("8.00"),
        created_by_user_id=staff_user.id,
    )
    db_session.add(p)
    db_session.commit()
    return p


def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
