"""
Pytest fixtures for storefront backend tests.

Provides test database setup, tenant fixtures, a customer with a session
token, a small catalog with stock, and a fake payment gateway.
"""

import itertools

import pytest
from storefront import create_app
from storefront.extensions import db
from storefront.models import Store, Product, StoreInventory, Coupon, Influencer
from storefront.models.coupons import COUPON_TYPE_PERCENT
from storefront.services.auth_service import create_user
from storefront.services.gateway_client import Billing, Customer, GatewayError
from storefront.services.session_service import create_session


STORE_URL = "http://cascavel.localhost"
OTHER_STORE_URL = "http://toledo.localhost"
WEBHOOK_SECRET = "whsec-cascavel"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'FRONTEND_URL': 'http://shop.test',
        'ABACATEPAY_BASE_URL': 'https://gateway.test/v1',
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
def store(db_session):
    """Store with payment gateway credentials (tenant "cascavel")."""
    store = Store(
        name="ForFit - Cascavel",
        subdomain="cascavel",
        city="Cascavel",
        state="PR",
        gateway_api_key="key-cascavel",
        gateway_webhook_secret=WEBHOOK_SECRET,
    )
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def other_store(db_session):
    """Second tenant with its own credentials."""
    store = Store(
        name="ForFit - Toledo",
        subdomain="toledo",
        city="Toledo",
        state="PR",
        gateway_api_key="key-toledo",
        gateway_webhook_secret="whsec-toledo",
    )
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def user(db_session, store):
    """Customer with a phone number, so payment links can be created."""
    return create_user(
        name="Ana Cliente",
        email="ana@example.com",
        password="Password123",
        tax_id="12345678909",
        phone="45999990000",
        store_id=store.id,
    )


@pytest.fixture(scope='function')
def auth_headers(user):
    _, token = create_session(user.id)
    return {"Authorization": f"Bearer {token}"}


def add_product(store, code, price_cents, quantity, name=None):
    product = Product(
        code=code,
        name=name or f"Produto {code}",
        cost_price_cents=price_cents // 2,
        sale_price_cents=price_cents,
    )
    db.session.add(product)
    db.session.flush()
    if quantity is not None:
        db.session.add(StoreInventory(store_id=store.id, product_id=product.id, quantity=quantity))
    db.session.commit()
    return product


def inventory_of(store, product):
    row = db.session.query(StoreInventory).filter_by(store_id=store.id, product_id=product.id).first()
    db.session.refresh(row)
    return row.quantity


@pytest.fixture(scope='function')
def product_a(store):
    """Sale price 1000 cents, 5 in stock."""
    return add_product(store, "FF-001", 1000, 5, name="Sopa de Mandioquinha")


@pytest.fixture(scope='function')
def product_b(store):
    """Sale price 2500 cents, 10 in stock."""
    return add_product(store, "FF-002", 2500, 10, name="Lasagna Low Carb")


@pytest.fixture(scope='function')
def influencer(db_session):
    influencer = Influencer(name="Bia", email="bia@example.com")
    db_session.add(influencer)
    db_session.commit()
    return influencer


@pytest.fixture(scope='function')
def coupon(db_session, influencer):
    """10% coupon referred by an influencer."""
    coupon = Coupon(code="BIA10", type=COUPON_TYPE_PERCENT, value=10, influencer_id=influencer.id)
    db_session.add(coupon)
    db_session.commit()
    return coupon


def delivery_payload(state="PR"):
    return {
        "street": "Rua Paraná",
        "number": "100",
        "district": "Centro",
        "city": "Cascavel",
        "state": state,
        "zip": "85801-000",
    }


class FakeGateway:
    """
    Stand-in for GatewayClient used through client_for_store.

    Records every call; set fail_billing / fail_customer to a GatewayError
    to simulate provider failures. on_billing runs inside create_billing,
    before the inventory commit.
    """

    def __init__(self):
        self.customers = []
        self.billings = []
        self.stores = []
        self.fail_customer = None
        self.fail_billing = None
        self.on_billing = None
        self._ids = itertools.count(1)

    def for_store(self, store):
        self.stores.append(store.subdomain)
        return self

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return None

    def create_customer(self, customer):
        if self.fail_customer:
            raise self.fail_customer
        self.customers.append(customer)
        return Customer(id=f"cust_{next(self._ids)}")

    def create_billing(self, billing):
        if self.fail_billing:
            raise self.fail_billing
        self.billings.append(billing)
        if self.on_billing:
            self.on_billing()
        billing_id = f"bill_{next(self._ids)}"
        return Billing(id=billing_id, url=f"https://pay.test/{billing_id}", status="PENDING")


@pytest.fixture(scope='function')
def gateway(monkeypatch):
    fake = FakeGateway()
    monkeypatch.setattr(
        "storefront.services.checkout_service.client_for_store",
        fake.for_store,
    )
    return fake


@pytest.fixture(scope='function')
def gateway_down(gateway):
    gateway.fail_billing = GatewayError("AbacatePay /billing/create 502", status_code=502, body="bad gateway")
    return gateway
