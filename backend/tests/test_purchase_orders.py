"""Purchase order lifecycle and receipt into stock."""

import pytest

from tradeops.models import StockMovement, StockReference
from tradeops.services import ledger_service
from tradeops.services.errors import (
    IllegalTransition,
    InvalidAmount,
    InvalidOrderData,
    OverpaymentRejected,
    PurchaseOrderNotFound,
)
from tradeops.services.purchase_order_service import (
    change_purchase_order_status,
    create_purchase_order,
    list_purchase_orders,
    receive_purchase_order,
    record_purchase_order_payment,
    weighted_average_cost,
)
from tradeops.time_utils import current_year


SHIPPING_PATH = ("sent", "confirmed", "producing", "shipped")


def _ship(po):
    for status in SHIPPING_PATH:
        assert change_purchase_order_status(po.id, status).ok


def test_create_purchase_order(db_session, make_product, make_po):
    a = make_product(stock=0)
    b = make_product(stock=0)

    first = make_po([(a, 100, 250), (b, 20, 1000, 1200)], notes="spring restock")
    second = make_po([(a, 1, 250)])

    assert first.po_number == f"PO-{current_year()}-001"
    assert second.po_number == f"PO-{current_year()}-002"
    assert first.status == "draft"
    assert first.total_cost_cents == 100 * 250 + 20 * 1000
    assert [(i.position, i.landed_cost_cents) for i in first.items] == [(1, None), (2, 1200)]
    assert db_session.query(StockMovement).count() == 0


def test_create_with_unknown_supplier(db_session, make_product):
    product = make_product()

    result = create_purchase_order(777, [{"product_id": product.id, "quantity": 1, "unit_cost_cents": 1}])

    assert isinstance(result.error, InvalidOrderData)


@pytest.mark.parametrize(
    "item",
    [
        {"quantity": 0, "unit_cost_cents": 10},
        {"quantity": 2, "unit_cost_cents": -1},
        {"quantity": 2},
    ],
)
def test_create_with_bad_lines(db_session, supplier, make_product, item):
    product = make_product()

    result = create_purchase_order(supplier.id, [dict(item, product_id=product.id)])

    assert isinstance(result.error, InvalidOrderData)


def test_status_moves_forward_and_one_step_back(db_session, make_product, make_po):
    po = make_po([(make_product(), 5, 100)])

    assert change_purchase_order_status(po.id, "sent").ok
    assert change_purchase_order_status(po.id, "draft").ok
    assert change_purchase_order_status(po.id, "sent").ok
    assert change_purchase_order_status(po.id, "confirmed").ok
    assert change_purchase_order_status(po.id, "producing").ok
    assert change_purchase_order_status(po.id, "confirmed").ok

    result = change_purchase_order_status(po.id, "shipped")
    assert isinstance(result.error, IllegalTransition)
    assert result.error.details["allowed"] == ["producing", "sent"]


def test_received_is_not_a_plain_status_change(db_session, make_product, make_po):
    po = make_po([(make_product(), 5, 100)])
    _ship(po)

    result = change_purchase_order_status(po.id, "received")

    assert isinstance(result.error, IllegalTransition)
    assert "receive" in result.error.message
    assert db_session.query(StockMovement).count() == 0


def test_shipped_purchase_orders_cannot_step_back(db_session, make_product, make_po):
    po = make_po([(make_product(), 5, 100)])
    _ship(po)

    assert isinstance(change_purchase_order_status(po.id, "producing").error, IllegalTransition)


def test_unknown_purchase_order(db_session):
    assert isinstance(change_purchase_order_status(5150, "sent").error, PurchaseOrderNotFound)
    assert isinstance(receive_purchase_order(5150, "clerk").error, PurchaseOrderNotFound)


@pytest.mark.parametrize("path", [(), ("sent",), ("sent", "confirmed", "producing")])
def test_receive_requires_shipped(db_session, make_product, make_po, path):
    product = make_product(stock=0)
    po = make_po([(product, 5, 100)])
    for status in path:
        change_purchase_order_status(po.id, status)

    result = receive_purchase_order(po.id, "clerk")

    assert isinstance(result.error, IllegalTransition)
    db_session.expire_all()
    assert product.current_stock == 0


def test_receive_books_stock_and_landed_cost(db_session, make_product, make_po):
    a = make_product(stock=10, landed_cost_cents=200)
    b = make_product(stock=0)
    po = make_po([(a, 30, 250, 300), (b, 12, 800)])
    _ship(po)

    result = receive_purchase_order(po.id, "clerk")

    assert result.ok
    received = result.value
    assert received.status == "received"
    assert received.received_by == "clerk"
    assert received.received_at is not None

    assert [(m.product_id, m.type, m.reason, m.quantity) for m in result.movements] == [
        (a.id, "in", "shipment_received", 30),
        (b.id, "in", "shipment_received", 12),
    ]
    assert all(m.reference == StockReference.purchase_order(po.id) for m in result.movements)
    assert result.movements[0].unit_cost_cents == 250
    assert result.movements[0].landed_cost_cents == 300

    assert (a.current_stock, b.current_stock) == (40, 12)
    # (10 * 200 + 30 * 300) / 40 = 275
    assert a.landed_cost_cents == 275
    assert b.landed_cost_cents == 800
    assert [i.received_quantity for i in received.items] == [30, 12]


def test_partial_receipt_skips_zero_lines(db_session, make_product, make_po):
    a = make_product(stock=0)
    b = make_product(stock=0)
    po = make_po([(a, 10, 100), (b, 10, 100)])
    _ship(po)
    first, second = po.items

    result = receive_purchase_order(po.id, "clerk", received={first.id: 7, second.id: 0})

    assert result.ok
    assert [(m.product_id, m.quantity) for m in result.movements] == [(a.id, 7)]
    assert (a.current_stock, b.current_stock) == (7, 0)
    assert b.landed_cost_cents is None
    assert [i.received_quantity for i in result.value.items] == [7, 0]


@pytest.mark.parametrize("override", [11, -1])
def test_receipt_quantities_are_bounded(db_session, make_product, make_po, override):
    product = make_product(stock=0)
    po = make_po([(product, 10, 100)])
    _ship(po)

    result = receive_purchase_order(po.id, "clerk", received={po.items[0].id: override})

    assert isinstance(result.error, InvalidOrderData)
    db_session.expire_all()
    assert product.current_stock == 0
    assert po.status == "shipped"


def test_receipt_rejects_foreign_items(db_session, make_product, make_po):
    po = make_po([(make_product(), 10, 100)])
    _ship(po)

    result = receive_purchase_order(po.id, "clerk", received={999: 1})

    assert isinstance(result.error, InvalidOrderData)


def test_receiving_twice_is_refused(db_session, make_product, make_po):
    product = make_product(stock=0)
    po = make_po([(product, 4, 100)])
    _ship(po)
    assert receive_purchase_order(po.id, "clerk").ok

    result = receive_purchase_order(po.id, "clerk")

    assert isinstance(result.error, IllegalTransition)
    assert product.current_stock == 4
    assert ledger_service.reconcile_product_stock(product.id)["in_sync"]


def test_list_purchase_orders(db_session, make_product, make_po):
    product = make_product()
    draft = make_po([(product, 1, 100)])
    sent = make_po([(product, 1, 100)])
    change_purchase_order_status(sent.id, "sent")

    assert [po.id for po in list_purchase_orders(status="draft")] == [draft.id]
    assert len(list_purchase_orders()) == 2


def test_supplier_payments_track_balance(db_session, make_product, make_po):
    po = make_po([(make_product(), 10, 150)])
    assert (po.paid_amount_cents, po.payment_status) == (0, "pending")

    first = record_purchase_order_payment(po.id, 600, actor="accounts")
    assert first.ok
    assert (first.value.paid_amount_cents, first.value.payment_status) == (600, "partial")

    second = record_purchase_order_payment(po.id, 900, actor="accounts")
    assert second.ok
    assert second.value.payment_status == "paid"
    assert second.value.to_dict()["balance_due_cents"] == 0


def test_supplier_payment_cannot_exceed_total(db_session, make_product, make_po):
    po = make_po([(make_product(), 2, 500)])
    assert record_purchase_order_payment(po.id, 400).ok

    result = record_purchase_order_payment(po.id, 601)

    assert isinstance(result.error, OverpaymentRejected)
    assert result.error.details["balance_due_cents"] == 600
    db_session.expire_all()
    assert (po.paid_amount_cents, po.payment_status) == (400, "partial")


@pytest.mark.parametrize("amount", [0, -5, 12.5, True, "100", None])
def test_supplier_payment_amount_must_be_positive_cents(db_session, make_product, make_po, amount):
    po = make_po([(make_product(), 1, 500)])

    result = record_purchase_order_payment(po.id, amount)

    assert isinstance(result.error, InvalidAmount)
    db_session.expire_all()
    assert po.paid_amount_cents == 0


def test_supplier_payment_on_unknown_purchase_order(db_session):
    assert isinstance(record_purchase_order_payment(4040, 100).error, PurchaseOrderNotFound)


@pytest.mark.parametrize(
    "old_stock,old_cost,qty,cost,expected",
    [
        (0, None, 10, 500, 500),
        (5, None, 5, 300, 300),
        (0, 900, 3, 300, 300),
        (10, 200, 30, 300, 275),
        (1, 100, 1, 101, 101),  # 100.5 rounds half up
        (2, 100, 1, 101, 100),  # 100.33
    ],
)
def test_weighted_average_cost(old_stock, old_cost, qty, cost, expected):
    assert weighted_average_cost(old_stock, old_cost, qty, cost) == expected
