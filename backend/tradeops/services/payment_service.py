# Overview: Service-layer operations for order payments; encapsulates business logic and database work.

"""
Order Payment Service

Payment and fulfilment are independent axes: recording a payment never
touches the status state machine or the stock ledger.

INVARIANTS:
- 0 <= paid_amount_cents <= total_cents
- payment_status is always derive_payment_status(paid, total); every write
  site calls it instead of setting the column by hand
- payment records are append-only
"""

from __future__ import annotations

from ..extensions import db
from ..models import Order, OrderPayment
from ..models.orders import (
    ORDER_STATUS_CANCELLED,
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_PARTIAL,
    PAYMENT_STATUS_PENDING,
)
from .concurrency import lock_for_update, run_unit_of_work
from .errors import (
    InvalidAmount,
    OperationResult,
    OrderLocked,
    OrderNotFound,
    OverpaymentRejected,
)


def derive_payment_status(paid_cents: int, total_cents: int) -> str:
    if paid_cents >= total_cents and total_cents > 0:
        return PAYMENT_STATUS_PAID
    if paid_cents > 0:
        return PAYMENT_STATUS_PARTIAL
    return PAYMENT_STATUS_PENDING


def load_order_for_update(order_id: int) -> Order:
    order = lock_for_update(db.session.query(Order).filter(Order.id == order_id)).first()
    if order is None:
        raise OrderNotFound(f"Order {order_id} not found", details={"order_id": order_id})
    return order


def record_payment(
    order_id: int,
    amount_cents,
    notes: str | None = None,
    actor: str | None = None,
) -> OperationResult:
    """
    Add a payment to an order.

    Fails with InvalidAmount for anything but a positive integer, with
    OverpaymentRejected when the order would be paid beyond its total and with
    OrderLocked for cancelled orders. The order keeps its prior state on failure.
    """
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
        return OperationResult.failure(
            InvalidAmount(
                "Payment amount must be a positive whole number of cents",
                details={"amount_cents": amount_cents},
            )
        )

    def _operation():
        order = load_order_for_update(order_id)
        if order.status == ORDER_STATUS_CANCELLED:
            raise OrderLocked(
                f"Order {order.order_number} is cancelled and cannot take payments",
                details={"order_id": order.id, "status": order.status},
            )

        balance_due = order.balance_due_cents
        if amount_cents > balance_due:
            raise OverpaymentRejected(
                f"Payment of {amount_cents} exceeds balance due of {balance_due}",
                details={
                    "order_id": order.id,
                    "amount_cents": amount_cents,
                    "paid_amount_cents": order.paid_amount_cents,
                    "total_cents": order.total_cents,
                    "balance_due_cents": balance_due,
                },
            )

        order.paid_amount_cents += amount_cents
        order.payment_status = derive_payment_status(order.paid_amount_cents, order.total_cents)

        payment = OrderPayment(
            order_id=order.id,
            amount_cents=amount_cents,
            notes=notes,
            recorded_by=actor,
        )
        db.session.add(payment)
        db.session.flush()
        return order, []

    return run_unit_of_work(_operation)


def list_payments(order_id: int) -> list[OrderPayment]:
    return (
        db.session.query(OrderPayment)
        .filter(OrderPayment.order_id == order_id)
        .order_by(OrderPayment.id)
        .all()
    )
