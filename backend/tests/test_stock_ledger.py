"""
Stock ledger tests.

Manual adjustments, reconciliation and the append-only guarantees of
stock_movements.
"""

import pytest
from sqlalchemy import update

from tradeops.models import Product, StockMovement, StockReference
from tradeops.models.stock import ImmutableRecordError, ReferenceType
from tradeops.services import ledger_service
from tradeops.services.errors import InsufficientStock, InvalidStockAdjustment, ProductNotFound
from tradeops.services.order_status_service import change_order_status


def test_positive_adjustment_is_written_as_in(db_session, make_product):
    product = make_product(stock=3)

    result = ledger_service.adjust_stock(product.id, 4, "found", "found behind pallet", "stocktaker")

    assert result.ok
    movement = result.movements[0]
    assert (movement.type, movement.reason, movement.quantity) == ("in", "found", 4)
    assert movement.reference == StockReference.manual()
    assert movement.reference_id is None
    assert movement.created_by == "stocktaker"
    assert product.current_stock == 7


def test_negative_adjustment_is_written_as_out(db_session, make_product):
    product = make_product(stock=10)

    result = ledger_service.adjust_stock(product.id, -2, "damage", "crushed in transit", "stocktaker")

    assert result.ok
    assert result.movements[0].type == "out"
    assert (result.movements[0].stock_before, result.movements[0].stock_after) == (10, 8)


@pytest.mark.parametrize("quantity", [5, -5])
def test_corrections_are_adjustment_entries(db_session, make_product, quantity):
    product = make_product(stock=10)

    result = ledger_service.adjust_stock(product.id, quantity, "correction", "annual stock count", "auditor")

    assert result.ok
    assert result.movements[0].type == "adjustment"
    assert product.current_stock == 10 + quantity


@pytest.mark.parametrize(
    "quantity,reason,notes",
    [
        (0, "found", "nothing to see"),
        (True, "found", "boolean quantity"),
        (1.5, "found", "fractional quantity"),
        (3, "sale", "sales go through orders"),
        (3, "shipment_received", "receipts go through purchase orders"),
        (3, "found", "abc"),
        (3, "found", None),
        (3, "found", "    "),
    ],
)
def test_invalid_adjustments_write_nothing(db_session, make_product, quantity, reason, notes):
    product = make_product(stock=10)

    result = ledger_service.adjust_stock(product.id, quantity, reason, notes, "stocktaker")

    assert isinstance(result.error, InvalidStockAdjustment)
    db_session.expire_all()
    assert product.current_stock == 10
    assert db_session.query(StockMovement).count() == 0


def test_adjustment_cannot_drive_stock_negative(db_session, make_product):
    product = make_product(stock=2)

    result = ledger_service.adjust_stock(product.id, -3, "loss", "missing after audit", "stocktaker")

    assert isinstance(result.error, InsufficientStock)
    assert result.error.details["shortfall"] == 1
    db_session.expire_all()
    assert product.current_stock == 2
    assert db_session.query(StockMovement).count() == 0


def test_adjusting_unknown_product(db_session):
    result = ledger_service.adjust_stock(31337, 1, "found", "mystery box", "stocktaker")

    assert isinstance(result.error, ProductNotFound)


def test_reconcile_product_in_sync(db_session, make_product):
    product = make_product(stock=10)
    ledger_service.adjust_stock(product.id, 5, "found", "found spare carton", "a")
    ledger_service.adjust_stock(product.id, -3, "damage", "water damage", "a")

    row = ledger_service.reconcile_product_stock(product.id)

    assert row == {
        "product_id": product.id,
        "sku": product.sku,
        "opening_stock": 10,
        "ledger_total": 2,
        "expected_stock": 12,
        "current_stock": 12,
        "drift": 0,
        "in_sync": True,
    }


def test_reconcile_reports_drift_without_repairing_it(db_session, make_product):
    product = make_product(stock=10)
    ledger_service.adjust_stock(product.id, -1, "loss", "shrinkage noted", "a")

    # Simulate a write that bypassed the ledger
    db_session.execute(update(Product).where(Product.id == product.id).values(current_stock=20))
    db_session.commit()

    row = ledger_service.reconcile_product_stock(product.id)

    assert row["expected_stock"] == 9
    assert row["current_stock"] == 20
    assert row["drift"] == 11
    assert row["in_sync"] is False
    db_session.expire_all()
    assert db_session.get(Product, product.id).current_stock == 20


def test_reconcile_unknown_product_raises(db_session):
    with pytest.raises(ProductNotFound):
        ledger_service.reconcile_product_stock(404)


def test_reconcile_all_includes_products_without_movements(db_session, make_product):
    quiet = make_product(stock=4)
    busy = make_product(stock=4)
    ledger_service.adjust_stock(busy.id, 2, "found", "second look", "a")

    rows = {row["product_id"]: row for row in ledger_service.reconcile_all()}

    assert rows[quiet.id]["ledger_total"] == 0
    assert rows[busy.id]["ledger_total"] == 2
    assert all(row["in_sync"] for row in rows.values())


def test_list_movements_filters_and_orders_newest_first(db_session, make_product, make_order):
    a = make_product(stock=10)
    b = make_product(stock=10)
    ledger_service.adjust_stock(a.id, 1, "found", "first entry", "a")
    ledger_service.adjust_stock(b.id, 1, "found", "other product", "a")
    order = make_order([(a, 2)])
    change_order_status(order.id, "confirmed", "ops")

    for_a = ledger_service.list_movements(product_id=a.id)
    assert [m.quantity for m in for_a] == [-2, 1]

    for_order = ledger_service.list_movements(reference=StockReference.order(order.id))
    assert [(m.product_id, m.type) for m in for_order] == [(a.id, "out")]

    outs = ledger_service.list_movements(movement_type="out")
    assert len(outs) == 1
    assert len(ledger_service.list_movements(limit=2)) == 2


def test_stock_reference_shapes():
    assert StockReference.order(3).kind is ReferenceType.ORDER
    assert StockReference.from_columns("PurchaseOrder", 9) == StockReference.purchase_order(9)
    assert StockReference.manual().id is None

    with pytest.raises(ValueError):
        StockReference(ReferenceType.MANUAL, 5)
    with pytest.raises(ValueError):
        StockReference(ReferenceType.ORDER)
    with pytest.raises(ValueError):
        StockReference.from_columns("Invoice", 1)


def test_movements_are_append_only(db_session, make_product):
    product = make_product(stock=10)
    ledger_service.adjust_stock(product.id, 1, "found", "found one more", "a")
    movement = db_session.query(StockMovement).one()

    movement.notes = "rewritten history"
    with pytest.raises(ImmutableRecordError):
        db_session.flush()
    db_session.rollback()

    db_session.delete(db_session.query(StockMovement).one())
    with pytest.raises(ImmutableRecordError):
        db_session.flush()
    db_session.rollback()

    assert db_session.query(StockMovement).one().notes == "found one more"


@pytest.mark.parametrize(
    "movement_type,reason",
    [("in", "gift"), ("teleport", "found"), ("out", "Sale")],
)
def test_record_movement_rejects_unknown_type_or_reason(db_session, make_product, movement_type, reason):
    product = make_product(stock=4)

    with pytest.raises(ValueError):
        ledger_service.record_movement(
            product=product,
            quantity=1 if movement_type == "in" else -1,
            movement_type=movement_type,
            reason=reason,
            reference=StockReference.manual(),
            actor="ops",
        )

    db_session.rollback()
    assert product.current_stock == 4
    assert db_session.query(StockMovement).count() == 0
