"""
Pytest fixtures for tradeops backend tests.

Provides test database setup, catalog/order factories, and test client.
"""

import itertools

import pytest
from tradeops import create_app
from tradeops.extensions import db
from tradeops.models import Order, Product, StockMovement, Supplier
from tradeops.services import order_service
from tradeops.services.purchase_order_service import create_purchase_order


ACTOR = "ops@tradeops.test"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
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
def actor_headers():
    return {'X-Actor-Id': ACTOR}


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
def supplier(db_session):
    supplier = Supplier(name="Shenzhen Homeware Co.", country="CN", email="sales@szhome.example")
    db_session.add(supplier)
    db_session.commit()
    return supplier


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: product with opening stock already on hand (no ledger rows)."""
    counter = itertools.count(1)

    def _make(
        *,
        stock=10,
        reorder_level=2,
        price_cents=1000,
        landed_cost_cents=None,
        sku=None,
        name=None,
        supplier=None,
        is_active=True,
    ):
        n = next(counter)
        product = Product(
            sku=sku or f"SKU-{n:03d}",
            name=name or f"Product {n}",
            price_cents=price_cents,
            landed_cost_cents=landed_cost_cents,
            opening_stock=stock,
            current_stock=stock,
            reorder_level=reorder_level,
            supplier_id=supplier.id if supplier else None,
            is_active=is_active,
        )
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def make_order(db_session):
    """
    Factory: pending order through order_service.create_order.

    lines: [(product, quantity)] or [(product, quantity, unit_price_cents)]
    """
    def _make(lines, *, order_type="retail", customer_name="Jane Buyer", **kwargs):
        items = []
        for line in lines:
            item = {"product_id": line[0].id, "quantity": line[1]}
            if len(line) > 2:
                item["unit_price_cents"] = line[2]
            items.append(item)
        kwargs.setdefault("actor", ACTOR)
        result = order_service.create_order(order_type, customer_name, items, **kwargs)
        return result.unwrap()

    return _make


@pytest.fixture(scope='function')
def snapshot(db_session):
    """
    Capture everything a rejected operation must leave untouched:
    the order row and items, the product rows and the ledger.
    """
    def _take(order_id, product_ids):
        db_session.expire_all()
        order = db_session.get(Order, order_id)
        products = (
            db_session.query(Product)
            .filter(Product.id.in_(list(product_ids)))
            .order_by(Product.id)
            .all()
        )
        movements = db_session.query(StockMovement).order_by(StockMovement.id).all()
        return {
            "order": order.to_dict(include_items=True) if order else None,
            "products": [(p.id, p.current_stock, p.version_id) for p in products],
            "movements": [m.to_dict() for m in movements],
        }

    return _take


@pytest.fixture(scope='function')
def make_po(supplier):
    """
    Factory: draft purchase order from the supplier fixture.

    lines: [(product, quantity, unit_cost_cents)] or with a trailing landed_cost_cents
    """
    def _make(lines, **kwargs):
        items = []
        for product, quantity, unit_cost, *rest in lines:
            item = {"product_id": product.id, "quantity": quantity, "unit_cost_cents": unit_cost}
            if rest:
                item["landed_cost_cents"] = rest[0]
            items.append(item)
        return create_purchase_order(supplier.id, items, actor="buyer", **kwargs).unwrap()

    return _make
