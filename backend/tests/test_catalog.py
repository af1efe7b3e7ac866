"""Products and suppliers master data."""

import pytest

from tradeops.models import StockMovement
from tradeops.services import products_service, supplier_service
from tradeops.validation import ConflictError, ValidationError


def test_create_product_seeds_stock_from_opening_stock(db_session, supplier):
    product = products_service.create_product(
        sku=" LAMP-01 ", name="Desk lamp", supplier_id=supplier.id, price_cents=2999, opening_stock=12
    )

    assert product.sku == "LAMP-01"
    assert product.current_stock == 12
    assert product.opening_stock == 12
    assert db_session.query(StockMovement).count() == 0


def test_duplicate_sku_conflicts(db_session, make_product):
    make_product(sku="DUP-1")

    with pytest.raises(ConflictError):
        products_service.create_product(sku="DUP-1", name="Another")


@pytest.mark.parametrize(
    "kwargs",
    [
        {"price_cents": -1},
        {"price_cents": 1_000_000_000},
        {"opening_stock": -3},
        {"reorder_level": -1},
        {"supplier_id": 9999},
        {"name": "   "},
    ],
)
def test_create_product_validation(db_session, kwargs):
    params = {"sku": "NEW-1", "name": "New thing"}
    params.update(kwargs)

    with pytest.raises(ValidationError):
        products_service.create_product(**params)


def test_update_product_cannot_touch_stock(db_session, make_product):
    product = make_product(stock=5)

    with pytest.raises(ValidationError):
        products_service.update_product(product.id, {"current_stock": 50})
    with pytest.raises(ValidationError):
        products_service.update_product(product.id, {"opening_stock": 50})

    updated = products_service.update_product(product.id, {"name": "Renamed", "reorder_level": 8})
    assert updated.name == "Renamed"
    assert updated.current_stock == 5


def test_update_missing_product_returns_none(db_session):
    assert products_service.update_product(12345, {"name": "Ghost"}) is None


def test_update_to_existing_sku_conflicts(db_session, make_product):
    make_product(sku="TAKEN")
    other = make_product(sku="FREE")

    with pytest.raises(ConflictError):
        products_service.update_product(other.id, {"sku": "TAKEN"})


def test_low_stock_products(db_session, make_product):
    make_product(stock=0, reorder_level=3, sku="EMPTY")
    make_product(stock=2, reorder_level=3, sku="LOW")
    make_product(stock=9, reorder_level=3, sku="FINE")
    make_product(stock=0, reorder_level=3, sku="GONE", is_active=False)

    rows = products_service.low_stock_products()

    assert [(r["sku"], r["out_of_stock"], r["stock_needed"]) for r in rows] == [
        ("EMPTY", True, 3),
        ("LOW", False, 1),
    ]
    assert len(products_service.list_products(low_stock_only=True)) == 3
    assert len(products_service.list_products(include_inactive=False)) == 3


def test_suppliers(db_session):
    supplier_service.create_supplier(name="Hanoi Ceramics", email=" Sales@HanoiCeramics.example ")

    with pytest.raises(ConflictError):
        supplier_service.create_supplier(name="Hanoi Ceramics")
    with pytest.raises(ValidationError):
        supplier_service.create_supplier(name="")

    suppliers = supplier_service.list_suppliers()
    assert [s.email for s in suppliers] == ["sales@hanoiceramics.example"]
