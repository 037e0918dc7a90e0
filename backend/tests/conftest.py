"""
Pytest fixtures for inventory tracker backend tests.

Provides test database setup, users for each role, catalog/location
fixtures, and test client.
"""

import pytest
from invtrack import create_app
from invtrack.extensions import db
from invtrack.models import Category, Location, Product
from invtrack.services.auth_service import create_user
from invtrack.services.id_service import generate_id, PRODUCT_PREFIX, LOCATION_PREFIX

PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'JWT_SECRET_KEY': 'test-jwt-secret',
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


@pytest.fixture(scope='function')
def admin_user(db_session):
    return create_user(username="admin", password=PASSWORD, email="admin@example.com", role="admin")


@pytest.fixture(scope='function')
def manager_user(db_session):
    return create_user(username="manager", password=PASSWORD, email="manager@example.com", role="manager")


@pytest.fixture(scope='function')
def staff_user(db_session):
    return create_user(username="staff", password=PASSWORD, email="staff@example.com", role="staff")


@pytest.fixture(scope='function')
def main_storage(db_session):
    loc = Location(id=generate_id(LOCATION_PREFIX), name="Main Storage", type="main_storage")
    db_session.add(loc)
    db_session.commit()
    return loc


@pytest.fixture(scope='function')
def outlet(db_session):
    loc = Location(id=generate_id(LOCATION_PREFIX), name="Bar Outlet", type="outlet")
    db_session.add(loc)
    db_session.commit()
    return loc


@pytest.fixture(scope='function')
def categories(db_session):
    """Wine > Red Wine, and Liquor > Whiskey."""
    rows = {
        "wine": Category(id="cat-001", name="Wine"),
        "liquor": Category(id="cat-002", name="Liquor"),
        "red": Category(id="cat-101", name="Red Wine", parent_id="cat-001"),
        "whiskey": Category(id="cat-201", name="Whiskey", parent_id="cat-002"),
    }
    db_session.add_all(rows.values())
    db_session.commit()
    return rows


def make_product(db_session, name, *, category_id=None, price_cents=1000, cost_cents=600,
                 minimum_stock=0, barcode=None):
    """Helper to insert a product directly."""
    product = Product(
        id=generate_id(PRODUCT_PREFIX),
        name=name,
        barcode=barcode,
        category_id=category_id,
        unit_price_cents=price_cents,
        unit_cost_cents=cost_cents,
        minimum_stock=minimum_stock,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product(db_session, categories):
    """A red wine at $20.00 retail / $12.00 cost."""
    return make_product(
        db_session, "Test Cab", category_id="cat-101", price_cents=2000, cost_cents=1200,
        minimum_stock=5, barcode="CAB123456",
    )


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


@pytest.fixture(scope='function')
def admin_headers(client, admin_user):
    return auth_headers(get_auth_token(client, "admin"))


@pytest.fixture(scope='function')
def manager_headers(client, manager_user):
    return auth_headers(get_auth_token(client, "manager"))


@pytest.fixture(scope='function')
def staff_headers(client, staff_user):
    return auth_headers(get_auth_token(client, "staff"))
