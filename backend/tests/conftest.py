"""
Pytest fixtures for stockpos backend tests.

Provides test database setup, catalog fixtures, and test client.
"""

import pytest

from stockpos import create_app
from stockpos.extensions import db
from stockpos.services import products_service

ACTOR_ID = 7


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'DEFAULT_TAX_RATE_BPS': 0,
        'INVOICE_PREFIX': 'INV',
        'STORE_RETRY_BACKOFF': 0.0,
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

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def client(app, db_session):
    """Create test client bound to the per-test database state."""
    return app.test_client()


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory for products; initial stock is booked through the ledger."""
    counter = {"n": 0}

    def _make(*, stock=10, price_cents=2000, name=None, sku=None, min_stock_level=2):
        counter["n"] += 1
        return products_service.create_product(
            db_session,
            sku=sku or f"SKU-{counter['n']:03d}",
            name=name or f"Product {counter['n']}",
            selling_price_cents=price_cents,
            cost_price_cents=price_cents // 2,
            initial_stock=stock,
            min_stock_level=min_stock_level,
            max_stock_level=100,
        )

    return _make


@pytest.fixture(scope='function')
def product(make_product):
    """Stock 10, selling price 20.00."""
    return make_product(stock=10, price_cents=2000, name="Widget", sku="WID-001")


def actor_headers(actor_id: int = ACTOR_ID) -> dict:
    """Helper to create identity headers."""
    return {'X-Actor-Id': str(actor_id)}
