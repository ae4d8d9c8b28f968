"""
Pytest fixtures for ScentPOS backend tests.

Provides an in-memory database, a test client, and a small shop: one store
taxed at 18%, a cashier, and three perfume variants.
"""

from datetime import timedelta

import pytest

from scentpos import create_app
from scentpos.extensions import db
from scentpos.models import Product, Store, User, Variant
from scentpos.services import inventory_service
from scentpos.time_utils import utcnow


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'DB_RETRY_BACKOFF': 0,
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
    """Perfume Paradise, 18% tax."""
    store = Store(name="Perfume Paradise", code="PP", tax_rate_bps=1800)
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def cashier(db_session, store):
    user = User(store_id=store.id, name="Cashier One", email="cashier@scentpos.test", role="CASHIER")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def product(db_session):
    product = Product(brand="Dior", name="Sauvage", category="Men")
    db_session.add(product)
    db_session.commit()
    return product


def _variant(db_session, product, sku, size, price):
    variant = Variant(
        product_id=product.id,
        sku=sku,
        barcode=f"BC-{sku}",
        size=size,
        concentration="EDP",
        retail_price_cents=price,
    )
    db_session.add(variant)
    db_session.commit()
    return variant


@pytest.fixture(scope='function')
def variant_a(db_session, product):
    return _variant(db_session, product, "SAUV-EDP-60", "60ml", 450000)


@pytest.fixture(scope='function')
def variant_b(db_session, product):
    return _variant(db_session, product, "SAUV-EDP-100", "100ml", 620000)


@pytest.fixture(scope='function')
def variant_c(db_session):
    other = Product(brand="Chanel", name="No 5", category="Women")
    db_session.add(other)
    db_session.commit()
    return _variant(db_session, other, "CH5-EDP-50", "50ml", 700000)


@pytest.fixture(scope='function')
def receive(store):
    """
    receive(variant, qty, cost, days_ago=0, vendor="Acme Fragrances") -> batch

    days_ago sets received_at in the past so FIFO order is explicit.
    """
    base = utcnow().replace(microsecond=0)

    def _receive(variant, quantity, unit_cost_cents, days_ago=0, vendor="Acme Fragrances", store_id=None):
        return inventory_service.receive_batch(
            store_id=store_id or store.id,
            variant_id=variant.id,
            quantity=quantity,
            unit_cost_cents=unit_cost_cents,
            vendor=vendor,
            received_at=base - timedelta(days=days_ago),
        )

    return _receive
