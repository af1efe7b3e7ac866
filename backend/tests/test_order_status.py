"""
Order status coordinator tests.

Covers the confirm/cancel stock effects, rejection without side effects,
all-or-nothing confirmation and the ledger reconciliation invariant.
"""

import pytest

from tradeops.models import Order, Product, StockMovement
from tradeops.services import ledger_service
from tradeops.services.errors import IllegalTransition, InsufficientStock, OrderNotFound
from tradeops.services.order_status_service import change_order_status


ACTOR = "warehouse-lead"


def _movements_for(db_session, order_id):
    return (
        db_session.query(StockMovement)
        .filter_by(reference_type="Order", reference_id=order_id)
        .order_by(StockMovement.id)
        .all()
    )


def test_confirm_then_cancel_restores_stock(db_session, make_product, make_order):
    product = make_product(stock=10, reorder_level=2)
    order = make_order([(product, 4)])

    result = change_order_status(order.id, "confirmed", ACTOR)

    assert result.ok
    assert result.value.status == "confirmed"
    assert product.current_stock == 6
    assert len(result.movements) == 1
    out = result.movements[0]
    assert out.type == "out"
    assert out.reason == "sale"
    assert out.quantity == -4
    assert (out.stock_before, out.stock_after) == (10, 6)
    assert out.reference_type == "Order"
    assert out.reference_id == order.id
    assert out.created_by == ACTOR

    result = change_order_status(order.id, "cancelled", ACTOR)

    assert result.ok
    assert result.value.status == "cancelled"
    assert product.current_stock == 10
    back = result.movements[0]
    assert back.type == "in"
    assert back.reason == "return"
    assert back.quantity == 4
    assert (back.stock_before, back.stock_after) == (6, 10)

    movements = _movements_for(db_session, order.id)
    assert [(m.type, m.reason, m.quantity) for m in movements] == [
        ("out", "sale", -4),
        ("in", "return", 4),
    ]


def test_cancelling_pending_order_has_no_stock_effect(db_session, make_product, make_order):
    product = make_product(stock=5)
    order = make_order([(product, 3)])

    result = change_order_status(order.id, "cancelled", ACTOR)

    assert result.ok
    assert result.movements == []
    assert result.value.status == "cancelled"
    assert product.current_stock == 5
    assert _movements_for(db_session, order.id) == []


def test_fulfilment_steps_are_pure_status_changes(db_session, make_product, make_order):
    product = make_product(stock=8)
    order = make_order([(product, 2)])
    assert change_order_status(order.id, "confirmed", ACTOR).ok

    for target in ("packed", "shipped", "delivered"):
        result = change_order_status(order.id, target, ACTOR)
        assert result.ok
        assert result.movements == []
        assert result.value.status == target

    assert product.current_stock == 6
    assert len(_movements_for(db_session, order.id)) == 1


@pytest.mark.parametrize("start_path", [["confirmed", "packed"], ["confirmed", "packed", "shipped"]])
def test_cancel_after_confirmation_restocks_every_line(db_session, make_product, make_order, start_path):
    a = make_product(stock=10)
    b = make_product(stock=7)
    order = make_order([(a, 3), (b, 2)])
    for target in start_path:
        assert change_order_status(order.id, target, ACTOR).ok

    result = change_order_status(order.id, "cancelled", ACTOR)

    assert result.ok
    assert [m.product_id for m in result.movements] == [a.id, b.id]
    assert (a.current_stock, b.current_stock) == (10, 7)


@pytest.mark.parametrize(
    "path,illegal_target",
    [
        ([], "packed"),
        ([], "delivered"),
        (["confirmed"], "pending"),
        (["confirmed"], "confirmed"),
        (["confirmed", "packed", "shipped", "delivered"], "cancelled"),
        (["cancelled"], "confirmed"),
        (["cancelled"], "pending"),
    ],
)
def test_illegal_transition_mutates_nothing(db_session, make_product, make_order, snapshot, path, illegal_target):
    product = make_product(stock=10)
    order = make_order([(product, 4)])
    for target in path:
        assert change_order_status(order.id, target, ACTOR).ok

    before = snapshot(order.id, [product.id])
    result = change_order_status(order.id, illegal_target, ACTOR)
    after = snapshot(order.id, [product.id])

    assert not result.ok
    assert isinstance(result.error, IllegalTransition)
    assert result.error.code == "illegal_transition"
    assert before == after


def test_insufficient_stock_on_third_of_five_lines_writes_nothing(db_session, make_product, make_order, snapshot):
    products = [make_product(stock=10) for _ in range(5)]
    quantities = [5, 5, 11, 5, 5]
    order = make_order(list(zip(products, quantities)))

    before = snapshot(order.id, [p.id for p in products])
    result = change_order_status(order.id, "confirmed", ACTOR)
    after = snapshot(order.id, [p.id for p in products])

    assert not result.ok
    assert isinstance(result.error, InsufficientStock)
    details = result.error.details
    assert details["product_id"] == products[2].id
    assert details["sku"] == products[2].sku
    assert details["requested"] == 11
    assert details["available"] == 10
    assert details["shortfall"] == 1
    assert before == after
    assert _movements_for(db_session, order.id) == []
    assert db_session.get(Order, order.id).status == "pending"


def test_insufficient_stock_names_first_failing_line(db_session, make_product, make_order):
    first_short = make_product(stock=1)
    second_short = make_product(stock=0)
    order = make_order([(first_short, 2), (second_short, 1)])

    result = change_order_status(order.id, "confirmed", ACTOR)

    assert result.error.details["product_id"] == first_short.id
    assert result.error.details["shortfall"] == 1


def test_repeated_product_lines_are_checked_together(db_session, make_product, make_order):
    product = make_product(stock=5)
    order = make_order([(product, 3), (product, 3)])

    result = change_order_status(order.id, "confirmed", ACTOR)

    assert isinstance(result.error, InsufficientStock)
    assert result.error.details["requested"] == 6
    assert result.error.details["shortfall"] == 1
    assert product.current_stock == 5


def test_exact_stock_can_be_confirmed_down_to_zero(db_session, make_product, make_order):
    product = make_product(stock=4)
    order = make_order([(product, 4)])

    result = change_order_status(order.id, "confirmed", ACTOR)

    assert result.ok
    assert product.current_stock == 0


def test_ledger_entries_follow_line_order(db_session, make_product, make_order):
    # Line order differs from product id order
    a = make_product(stock=10)
    b = make_product(stock=10)
    c = make_product(stock=10)
    order = make_order([(c, 1), (a, 2), (b, 3)])

    result = change_order_status(order.id, "confirmed", ACTOR)

    assert [m.product_id for m in result.movements] == [c.id, a.id, b.id]
    assert [m.quantity for m in result.movements] == [-1, -2, -3]


def test_unknown_order_is_reported(db_session):
    result = change_order_status(999_999, "confirmed", ACTOR)

    assert not result.ok
    assert isinstance(result.error, OrderNotFound)


def test_totals_are_unchanged_by_status_changes(db_session, make_product, make_order):
    product = make_product(stock=10, price_cents=2500)
    order = make_order([(product, 2)], shipping_fee_cents=500, discount_cents=1000)
    totals = (order.subtotal_cents, order.shipping_fee_cents, order.discount_cents, order.total_cents)

    result = change_order_status(order.id, "confirmed", ACTOR)

    updated = result.value
    assert (updated.subtotal_cents, updated.shipping_fee_cents, updated.discount_cents, updated.total_cents) == totals
    assert totals == (5000, 500, 1000, 4500)


def test_counter_always_reconciles_with_ledger(db_session, make_product, make_order):
    a = make_product(stock=20)
    b = make_product(stock=3)
    orders = [make_order([(a, 5), (b, 1)]) for _ in range(3)]

    change_order_status(orders[0].id, "confirmed", ACTOR)
    change_order_status(orders[1].id, "confirmed", ACTOR)
    change_order_status(orders[0].id, "cancelled", ACTOR)
    change_order_status(orders[2].id, "confirmed", ACTOR)
    change_order_status(orders[2].id, "packed", ACTOR)

    for row in ledger_service.reconcile_all():
        assert row["in_sync"], row
    db_session.expire_all()
    for product in db_session.query(Product).all():
        assert product.current_stock >= 0
