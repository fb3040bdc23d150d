"""
Pytest fixtures for the ledger backend tests.

Provides test database setup, party/product fixtures, and test client.
"""

import pytest

from billing import create_app
from billing.extensions import db
from billing.models import Customer, Supplier, Product


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'STOCK_OVERSELL_POLICY': 'warn',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


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
def oversell_policy(app):
    """Temporarily switch STOCK_OVERSELL_POLICY; restored after the test."""
    original = app.config['STOCK_OVERSELL_POLICY']

    def _set(policy):
        app.config['STOCK_OVERSELL_POLICY'] = policy

    yield _set
    app.config['STOCK_OVERSELL_POLICY'] = original


@pytest.fixture(scope='function')
def customer(db_session):
    customer = Customer(name="Acme Retail", email="billing@acme.test")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def supplier(db_session):
    """Supplier on net-30 terms."""
    supplier = Supplier(name="Wholesale Co", payment_terms_days=30)
    db_session.add(supplier)
    db_session.commit()
    return supplier


@pytest.fixture(scope='function')
def product_a(db_session):
    product = Product(sku="PROD-A-001", name="Product A", selling_price_cents=10000, stock_quantity=10)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_b(db_session):
    product = Product(sku="PROD-B-001", name="Product B", selling_price_cents=5000, stock_quantity=10)
    db_session.add(product)
    db_session.commit()
    return product
