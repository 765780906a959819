"""
Pytest fixtures for stock ledger tests.

Provides test database setup, catalog fixtures, the inventory engine, and test client.
"""

from decimal import Decimal

import pytest
from stockledger import create_app
from stockledger.extensions import db, cache
from stockledger.models import Category, Location, Product


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'CACHE_TYPE': 'SimpleCache',
        'DB_RETRY_ATTEMPTS': 3,
        'DB_RETRY_BACKOFF_SECONDS': 0,
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
        cache.clear()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def engine(app, db_session):
    """The app's InventoryEngine."""
    return app.extensions["inventory_engine"]


@pytest.fixture(scope='function')
def category(db_session):
    category = Category(name="Hardware")
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture(scope='function')
def main_location(db_session):
    location = Location(code="MAIN", name="Main Warehouse")
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def back_location(db_session):
    location = Location(code="BACK", name="Back Room")
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def product(db_session, category):
    """Active product with a standard cost of 1.50."""
    product = Product(
        sku="WID-001",
        name="Widget",
        category_id=category.id,
        standard_cost=Decimal("1.50"),
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def other_product(db_session):
    """Uncategorised product with a standard cost of 3.00."""
    product = Product(
        sku="GAD-001",
        name="Gadget",
        standard_cost=Decimal("3.00"),
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def inactive_product(db_session):
    product = Product(sku="OLD-001", name="Retired", standard_cost=Decimal("1.00"), is_active=False)
    db_session.add(product)
    db_session.commit()
    return product


def receive(engine, product_id: int, quantity: int, unit_price="1.00", **fields):
    """Helper to record a purchase of one product."""
    return engine.create_transaction(
        "purchase",
        [{"product_id": product_id, "quantity": quantity, "unit_price": unit_price}],
        **fields,
    )


def sell(engine, product_id: int, quantity: int, unit_price="5.00", **fields):
    """Helper to record a sale of one product."""
    return engine.create_transaction(
        "sale",
        [{"product_id": product_id, "quantity": quantity, "unit_price": unit_price}],
        **fields,
    )


def actor_headers(actor_id: int) -> dict:
    """Helper to create actor headers for the HTTP boundary."""
    return {'X-Actor-Id': str(actor_id)}


@pytest.fixture(scope='function')
def shared_db_apps(tmp_path):
    """
    Two independently created apps on one file-backed database, standing in
    for two worker processes. Production cache selection applies (no TESTING).
    """
    uri = f"sqlite:///{tmp_path / 'shared.sqlite3'}"
    apps = [
        create_app({
            'SQLALCHEMY_DATABASE_URI': uri,
            'DB_RETRY_ATTEMPTS': 5,
            'DB_RETRY_BACKOFF_SECONDS': 0.01,
        })
        for _ in range(2)
    ]

    with apps[0].app_context():
        db.create_all()
        product = Product(sku="SHR-001", name="Shared Widget", standard_cost=Decimal("1.00"))
        db.session.add(product)
        db.session.commit()
        for app in apps:
            app.config['SHARED_PRODUCT_ID'] = product.id

    yield apps

    for app in apps:
        with app.app_context():
            db.session.remove()
            db.engine.dispose()
