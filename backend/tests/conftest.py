"""
Pytest fixtures for back office tests.

Provides the app on in-memory SQLite, per-test table wipe, test client,
catalog factories and an authenticated admin (password + TOTP).
"""

from decimal import Decimal

import pyotp
import pytest
from backoffice import create_app
from backoffice.extensions import db
from backoffice.models import AdminUser
from backoffice.services import auth_service, catalog_service
from backoffice.services.session_service import MemorySessionStore


TEST_PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'SESSION_STORE': 'memory',
        'TASKS_EAGER': True,
        'BCRYPT_ROUNDS': 4,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        app.extensions["session_store"] = MemorySessionStore()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def client(app, db_session):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: make_product(name=..., category=..., base_price=...)."""
    def _make(name="Wireless Earbuds", category="Audio", base_price=Decimal("4500.00"), **extra):
        return catalog_service.create_product({
            "name": name,
            "category": category,
            "base_price": base_price,
            **extra,
        })
    return _make


@pytest.fixture(scope='function')
def make_variant(db_session, make_product):
    """
    Factory: make_variant(stock=10, threshold=5, product=None, variant_type=..., variant_value=...).

    Initial stock goes through the ledger as a restock entry.
    """
    def _make(stock=10, threshold=5, product=None, variant_type="Colour", variant_value="Black", **extra):
        if product is None:
            product = make_product()
        return catalog_service.add_variant(
            product.id,
            {
                "variant_type": variant_type,
                "variant_value": variant_value,
                "stock_quantity": stock,
                "low_stock_threshold": threshold,
                **extra,
            },
            actor="tests",
        )
    return _make


@pytest.fixture(scope='function')
def admin(db_session):
    """Create an admin without 2FA enrolled."""
    return auth_service.create_admin("admin", TEST_PASSWORD)


def login(client, username: str = "admin", password: str = TEST_PASSWORD) -> tuple[str, str]:
    """
    Run the full login flow (enrolling TOTP on first login).

    Returns (session token, TOTP secret).
    """
    response = client.post('/admin/login', json={'username': username, 'password': password})
    assert response.status_code == 200, response.json
    body = response.json

    if body.get("needs2FA"):
        secret = body["secret"]
        response = client.post('/admin/verify-2fa-setup', json={
            'username': username,
            'code': pyotp.TOTP(secret).now(),
            'tempToken': body["tempToken"],
        })
    else:
        secret = db.session.query(AdminUser).filter_by(username=username).one().totp_secret
        response = client.post('/admin/verify-2fa', json={
            'username': username,
            'code': pyotp.TOTP(secret).now(),
            'tempToken': body["tempToken"],
        })

    assert response.status_code == 200, response.json
    return response.json["token"], secret


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(client, admin):
    token, _ = login(client)
    return auth_headers(token)
