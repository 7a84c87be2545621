"""
Pytest fixtures for POS backend and terminal tests.

Provides test database setup, staff users with API tokens, a small catalog,
and test client.
"""

import pytest
from pos_server import create_app
from pos_server.extensions import db
from pos_server.models import Location, User, Product, Customer, TaxRate, Category
from pos_server.services import session_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LOYALTY_POINTS_PER_UNIT': 1,
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
def location(db_session):
    loc = Location(name="Main Store")
    db_session.add(loc)
    db_session.commit()
    return loc


@pytest.fixture(scope='function')
def tax_rate(db_session):
    """Default 8.25% sales tax."""
    rate = TaxRate(name="Sales Tax", rate_bps=825, is_default=True, is_active=True)
    db_session.add(rate)
    db_session.commit()
    return rate


def _make_user(db_session, location, role: str) -> User:
    user = User(
        email=f"{role.lower()}@pos.local",
        first_name=role.title(),
        last_name="User",
        role=role,
        location_id=location.id,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(db_session, location):
    return _make_user(db_session, location, "ADMIN")


@pytest.fixture(scope='function')
def manager_user(db_session, location):
    return _make_user(db_session, location, "MANAGER")


@pytest.fixture(scope='function')
def cashier_user(db_session, location):
    return _make_user(db_session, location, "CASHIER")


@pytest.fixture(scope='function')
def admin_headers(admin_user):
    _, token = session_service.create_session(admin_user.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def manager_headers(manager_user):
    _, token = session_service.create_session(manager_user.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def cashier_headers(cashier_user):
    _, token = session_service.create_session(cashier_user.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def category(db_session):
    cat = Category(name="Beverages")
    db_session.add(cat)
    db_session.commit()
    return cat


@pytest.fixture(scope='function')
def products(db_session, category):
    """
    widget: $10.00, taxable, 10 on hand
    gadget: $25.00, taxable, 3 on hand
    service: $5.00, not taxable, inventory not tracked
    """
    widget = Product(sku="WID-001", name="Widget", price_cents=1000, stock_quantity=10,
                     barcode="111111", category_id=category.id)
    gadget = Product(sku="GAD-001", name="Gadget", price_cents=2500, stock_quantity=3,
                     barcode="222222", low_stock_alert=5)
    service = Product(sku="SVC-001", name="Gift Wrap", price_cents=500, is_taxable=False,
                      track_inventory=False, stock_quantity=0)
    db_session.add_all([widget, gadget, service])
    db_session.commit()
    return {"widget": widget, "gadget": gadget, "service": service}


@pytest.fixture(scope='function')
def customer(db_session):
    cust = Customer(first_name="Dana", last_name="Reyes", email="dana@example.com", phone="5550100")
    db_session.add(cust)
    db_session.commit()
    return cust


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def sale_payload(items, *, amount_paid_cents, payment_method="CASH", **extra) -> dict:
    """Helper to build a POST /api/sales body."""
    body = {
        "items": items,
        "payment_method": payment_method,
        "amount_paid_cents": amount_paid_cents,
    }
    body.update(extra)
    return body
