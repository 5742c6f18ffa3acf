"""Shared test fixtures for the OTW fulfillment test suite.

Provides:
- app: Flask app configured for testing (in-memory SQLite, limiters off)
- client: Flask test client
- db_session: clean database per test (tables created/dropped)
- seed_data: admin, operator, customer and driver users with bearer tokens,
  an available driver profile and a small menu
- make_delivery / make_order: factories for records in a given status
"""

from decimal import Decimal

import pytest
from flask import g
from flask.testing import FlaskClient

from otw import create_app
from otw.extensions import db as _db
from otw.models.delivery import DeliveryRequest
from otw.models.driver import Driver
from otw.models.menu_item import MenuItem
from otw.models.order import Order
from otw.models.user import User
from otw.services.identity_service import issue_token


class ApiClient(FlaskClient):
    """Test client that resets per-request globals.

    Requests reuse the app context pushed by db_session, so anything
    cached on `g` (the Flask-Login user, the rate limit decision) would
    otherwise leak from one request into the next.
    """

    def open(self, *args, **kwargs):
        g.pop("_login_user", None)
        g.pop("rate_limit", None)
        g.pop("driver", None)
        return super().open(*args, **kwargs)


@pytest.fixture(scope="session")
def app():
    """Create the Flask application configured for testing."""
    app = create_app("testing")
    app.test_client_class = ApiClient
    yield app


@pytest.fixture(autouse=True)
def db_session(app):
    """Create all tables before each test, drop after."""
    with app.app_context():
        _db.create_all()
        yield _db.session
        _db.session.rollback()
        _db.drop_all()


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


def auth_headers(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def seed_data(app, db_session):
    """Seed users, a driver profile and menu items.

    Returns a dict with plain IDs and tokens for easy access in tests.
    """
    admin = User(email="admin@otw.local", full_name="Admin User", role="admin")
    operator = User(email="ops@otw.local", full_name="Ops User", role="operator")
    customer = User(email="jane@example.com", full_name="Jane Customer", role="customer")
    driver_user = User(email="dan@otw.local", full_name="Dan Driver", role="driver")
    _db.session.add_all([admin, operator, customer, driver_user])
    _db.session.flush()

    driver = Driver(
        user_id=driver_user.id,
        name="Dan Driver",
        phone="5555550100",
        is_available=True,
    )
    burger = MenuItem(name="Broski Burger", price=Decimal("12.99"), category="Burgers")
    fries = MenuItem(name="Loaded Fries", price=Decimal("6.50"), category="Sides")
    sold_out = MenuItem(name="Seasonal Shake", price=Decimal("5.00"), is_available=False)
    _db.session.add_all([driver, burger, fries, sold_out])
    _db.session.commit()

    return {
        "admin_id": admin.id,
        "operator_id": operator.id,
        "customer_id": customer.id,
        "driver_user_id": driver_user.id,
        "driver_id": driver.id,
        "admin_token": issue_token(admin),
        "operator_token": issue_token(operator),
        "customer_token": issue_token(customer),
        "driver_token": issue_token(driver_user),
        "burger_id": burger.id,
        "fries_id": fries.id,
        "sold_out_id": sold_out.id,
    }


ADDRESS_A = {
    "street": "123 Main Street",
    "city": "Austin",
    "state": "TX",
    "zip_code": "78701",
    "lat": 30.2672,
    "lng": -97.7431,
}

ADDRESS_B = {
    "street": "900 Congress Avenue",
    "city": "Austin",
    "state": "TX",
    "zip_code": "78701",
    "lat": 30.2747,
    "lng": -97.7404,
}


@pytest.fixture
def make_delivery(db_session):
    """Factory: a committed DeliveryRequest in the given status."""

    def _make(user_id="user-1", status="pending_payment", **overrides):
        values = dict(
            user_id=user_id,
            pickup_address=dict(ADDRESS_A),
            dropoff_address=dict(ADDRESS_B),
            items=[{"name": "Groceries", "unit_price": "20.00", "quantity": 1}],
            priority="standard",
            contact_phone="5125550100",
            distance_meters=3219,
            duration_seconds=600,
            fee=Decimal("8.99"),
            route_polyline="abc123",
            items_total=Decimal("20.00"),
            total=Decimal("28.99"),
            status=status,
        )
        values.update(overrides)
        delivery = DeliveryRequest(**values)
        _db.session.add(delivery)
        _db.session.commit()
        return delivery

    return _make


@pytest.fixture
def make_order(db_session):
    """Factory: a committed Order in the given status."""

    def _make(user_id="user-1", status="pending_payment", **overrides):
        values = dict(
            user_id=user_id,
            items=[{"name": "Broski Burger", "unit_price": "12.99", "quantity": 2}],
            total=Decimal("25.98"),
            status=status,
        )
        values.update(overrides)
        order = Order(**values)
        _db.session.add(order)
        _db.session.commit()
        return order

    return _make


class FakeMapsClient:
    """Stands in for MapsClient: fixed coordinates, fixed route."""

    def __init__(self, distance_meters=16093, duration_seconds=900, fail_geocode=None):
        self.distance_meters = distance_meters
        self.duration_seconds = duration_seconds
        self.fail_geocode = fail_geocode
        self.geocoded = []

    def geocode(self, address):
        from otw.errors import GeocodeError

        self.geocoded.append(address)
        if self.fail_geocode and self.fail_geocode in address:
            raise GeocodeError(f"Could not geocode address: {address}")
        return {"lat": 30.0, "lng": -97.0, "address": address, "place_id": "p1"}

    def route(self, origin, destination):
        return {
            "distance_meters": self.distance_meters,
            "duration_seconds": self.duration_seconds,
            "polyline": "encoded_polyline",
        }


@pytest.fixture
def fake_maps():
    return FakeMapsClient()


@pytest.fixture
def maps_factory():
    """The FakeMapsClient class, for tests that need a custom distance or failure."""
    return FakeMapsClient
