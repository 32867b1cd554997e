"""
Pytest fixtures for shopledger backend tests.

Provides the test application, a per-test clean database, a test client
and small factories for products, customers and suppliers.
"""

from datetime import datetime, timedelta

import pytest
from shopledger import create_app
from shopledger.extensions import db
from shopledger.models import Customer, Product, ProductPriceTier, Supplier, WholesalePriceEntry


# Fixed "now" so validity windows and order codes are deterministic
NOW = datetime(2026, 10, 19, 12, 0, 0)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_ENGINE_OPTIONS': {},
        'LEDGER_RETRY_BACKOFF_SECONDS': 0,
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
        # Core deletes bypass the append-only ORM guards on the ledgers
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def make_product(db_session):
    counter = {"n": 0}

    def _make(price=100, cost=60, stock=0, tiers=None, sale_unit=None, sale_ratio=1, name=None):
        counter["n"] += 1
        product = Product(
            sku=f"SKU-{counter['n']:03d}",
            name=name or f"Product {counter['n']}",
            price=price,
            cost=cost,
            stock=stock,
            sale_unit=sale_unit,
            sale_ratio=sale_ratio,
        )
        for min_quantity, tier_price in (tiers or []):
            product.price_tiers.append(ProductPriceTier(min_quantity=min_quantity, price=tier_price))
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def make_customer(db_session):
    def _make(name="Chi Lan", debt=0, customer_type="retail"):
        customer = Customer(name=name, debt=debt, customer_type=customer_type)
        db_session.add(customer)
        db_session.commit()
        return customer

    return _make


@pytest.fixture(scope='function')
def make_supplier(db_session):
    def _make(name="Nong San Xanh", debt=0):
        supplier = Supplier(name=name, debt=debt)
        db_session.add(supplier)
        db_session.commit()
        return supplier

    return _make


@pytest.fixture(scope='function')
def make_price_entry(db_session):
    """Wholesale entry valid around NOW unless a window is given."""
    def _make(customer, product, price, valid_from=None, valid_to=None):
        entry = WholesalePriceEntry(
            customer_id=customer.id,
            product_id=product.id,
            price=price,
            valid_from=valid_from or NOW - timedelta(days=30),
            valid_to=valid_to or NOW + timedelta(days=30),
        )
        db_session.add(entry)
        db_session.commit()
        return entry

    return _make
