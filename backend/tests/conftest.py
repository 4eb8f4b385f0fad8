"""
Pytest fixtures for the boutique backend tests.

Provides the test app (in-memory SQLite), a clean database per test,
users for each role, and catalog / client factories.
"""

import pytest

from boutique import create_app
from boutique.extensions import db
from boutique.models.auth import ROLE_ADMIN, ROLE_SALESPERSON, ROLE_STOCK_CLERK
from boutique.services import auth_service, customer_service, products_service

PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SECRET_KEY': 'test-secret-key',
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


@pytest.fixture(scope='function', autouse=True)
def db_session(app):
    """Create fresh database for each test."""
    meta = db.metadata
    for table in reversed(meta.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    # Cleanup after test
    db.session.rollback()
    db.session.remove()


@pytest.fixture(scope='function')
def admin_user(db_session):
    return auth_service.create_user("admin", "Admin", PASSWORD, ROLE_ADMIN)


@pytest.fixture(scope='function')
def salesperson(db_session):
    return auth_service.create_user("ana", "Ana Seller", PASSWORD, ROLE_SALESPERSON)


@pytest.fixture(scope='function')
def stock_clerk(db_session):
    return auth_service.create_user("bruno", "Bruno Stock", PASSWORD, ROLE_STOCK_CLERK)


@pytest.fixture(scope='function')
def make_product(db_session, admin_user):
    """Factory: opening stock is booked through the ledger like any product create."""
    def _make(name="Linen Dress", size="M", quantity=10, price_cents=10000):
        return products_service.create_product(
            {"name": name, "size": size, "quantity": quantity, "price_cents": price_cents},
            actor_id=admin_user.id,
        )
    return _make


@pytest.fixture(scope='function')
def product(make_product):
    return make_product()


@pytest.fixture(scope='function')
def make_client(db_session):
    def _make(name="Maria Souza", whatsapp="+55 11 90000-0000", **extra):
        return customer_service.create_client({"name": name, "whatsapp": whatsapp, **extra})
    return _make


@pytest.fixture(scope='function')
def customer(make_client):
    return make_client()


def get_auth_token(client, username, password=PASSWORD):
    """Helper to log in and return the bearer token."""
    response = client.post('/api/auth/login', json={'username': username, 'password': password})
    assert response.status_code == 200, response.get_json()
    return response.get_json()['token']


def _headers(client, username):
    return {'Authorization': f'Bearer {get_auth_token(client, username)}'}


@pytest.fixture(scope='function')
def admin_headers(client, admin_user):
    return _headers(client, admin_user.username)


@pytest.fixture(scope='function')
def salesperson_headers(client, salesperson):
    return _headers(client, salesperson.username)


@pytest.fixture(scope='function')
def clerk_headers(client, stock_clerk):
    return _headers(client, stock_clerk.username)
