# Overview: Order status coordinator; applies a status change and its stock effect as one transaction.

"""
change_order_status() is the only way an order's status moves.

SEQUENCE (one unit of work):
    1. load the order (row lock)
    2. validate the transition against the state machine table
    3. lock every product on the order, in ascending id order
    4. confirm: check sufficiency for every line before writing anything
    5. write one ledger entry per line, in line order, moving each counter
    6. set the new status and commit

Any failure rolls the whole unit back: no ledger row, no counter change and
no status change survive. Concurrency failures come back as
ConcurrencyConflict; the caller decides whether to retry.
"""

from __future__ import annotations

from ..extensions import db
from ..models import StockReference
from ..models.stock import MOVEMENT_IN, MOVEMENT_OUT, REASON_RETURN, REASON_SALE
from .concurrency import run_unit_of_work
from .errors import OperationResult
from .ledger_service import insufficient_stock_error, lock_products, record_movement
from .order_state import StockEffect, stock_effect, validate_transition
from .payment_service import load_order_for_update


def _check_sufficiency(order, products) -> None:
    """Raise for the first line (in line order) its product cannot cover."""
    requested: dict[int, int] = {}
    for item in order.items:
        requested[item.product_id] = requested.get(item.product_id, 0) + item.quantity
        product = products[item.product_id]
        if product.current_stock < requested[item.product_id]:
            raise insufficient_stock_error(product, requested[item.product_id])


def _apply_stock_effect(order, effect: StockEffect, actor: str | None) -> list:
    if effect is StockEffect.NONE or not order.items:
        return []

    products = lock_products(item.product_id for item in order.items)
    if effect is StockEffect.DEDUCT:
        _check_sufficiency(order, products)

    reference = StockReference.order(order.id)
    movements = []
    for item in order.items:
        if effect is StockEffect.DEDUCT:
            quantity, movement_type, reason = -item.quantity, MOVEMENT_OUT, REASON_SALE
        else:
            quantity, movement_type, reason = item.quantity, MOVEMENT_IN, REASON_RETURN
        movements.append(
            record_movement(
                product=products[item.product_id],
                quantity=quantity,
                movement_type=movement_type,
                reason=reason,
                reference=reference,
                actor=actor,
                notes=f"{order.order_number} line {item.position}",
            )
        )
    return movements


def change_order_status(order_id: int, target_status: str, actor: str | None) -> OperationResult:
    """
    Move an order to target_status.

    Returns OperationResult with the updated order as value and the ledger
    entries written (none, or one per line) as movements. Expected failures:
    OrderNotFound, IllegalTransition, InsufficientStock, ConcurrencyConflict.
    """

    def _operation():
        order = load_order_for_update(order_id)
        from_status = order.status
        validate_transition(from_status, target_status)

        movements = _apply_stock_effect(order, stock_effect(from_status, target_status), actor)

        order.status = target_status
        db.session.flush()
        return order, movements

    return run_unit_of_work(_operation)
