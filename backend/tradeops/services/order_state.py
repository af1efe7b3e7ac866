# Overview: Order status state machine; legal transitions and the stock effect each one carries.

"""
Order Status State Machine

STATE MACHINE:
    pending -> confirmed -> packed -> shipped -> delivered
    any non-terminal state -> cancelled

    delivered and cancelled are terminal.

STOCK EFFECTS:
    pending -> confirmed            deduct every line (out / sale)
    <not pending> -> cancelled      restock every line (in / return)
    everything else                 status change only

This module is pure: no database access. The coordinator in
order_status_service applies the effect inside a unit of work.
"""

from __future__ import annotations

import enum

from ..models.orders import (
    ORDER_STATUS_CANCELLED,
    ORDER_STATUS_CONFIRMED,
    ORDER_STATUS_DELIVERED,
    ORDER_STATUS_PACKED,
    ORDER_STATUS_PENDING,
    ORDER_STATUS_SHIPPED,
    ORDER_STATUSES,
)
from .errors import IllegalTransition


ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    ORDER_STATUS_PENDING: frozenset({ORDER_STATUS_CONFIRMED, ORDER_STATUS_CANCELLED}),
    ORDER_STATUS_CONFIRMED: frozenset({ORDER_STATUS_PACKED, ORDER_STATUS_CANCELLED}),
    ORDER_STATUS_PACKED: frozenset({ORDER_STATUS_SHIPPED, ORDER_STATUS_CANCELLED}),
    ORDER_STATUS_SHIPPED: frozenset({ORDER_STATUS_DELIVERED, ORDER_STATUS_CANCELLED}),
    ORDER_STATUS_DELIVERED: frozenset(),
    ORDER_STATUS_CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset(s for s, targets in ALLOWED_TRANSITIONS.items() if not targets)


class StockEffect(str, enum.Enum):
    NONE = "none"
    DEDUCT = "deduct"
    RESTOCK = "restock"


def allowed_targets(from_status: str) -> frozenset[str]:
    return ALLOWED_TRANSITIONS.get(from_status, frozenset())


def can_transition(from_status: str, to_status: str) -> bool:
    """Same-state requests are not transitions and are never allowed."""
    return to_status in allowed_targets(from_status)


def validate_transition(from_status: str, to_status: str) -> None:
    if to_status not in ORDER_STATUSES:
        raise IllegalTransition(
            f"Unknown order status '{to_status}'. Must be one of: {', '.join(ORDER_STATUSES)}",
            details={"from": from_status, "to": to_status, "allowed": sorted(allowed_targets(from_status))},
        )
    if not can_transition(from_status, to_status):
        raise IllegalTransition(
            f"Cannot change order status from '{from_status}' to '{to_status}'",
            details={"from": from_status, "to": to_status, "allowed": sorted(allowed_targets(from_status))},
        )


def stock_effect(from_status: str, to_status: str) -> StockEffect:
    """Assumes the transition has already been validated."""
    if from_status == ORDER_STATUS_PENDING and to_status == ORDER_STATUS_CONFIRMED:
        return StockEffect.DEDUCT
    if to_status == ORDER_STATUS_CANCELLED and from_status != ORDER_STATUS_PENDING:
        return StockEffect.RESTOCK
    return StockEffect.NONE


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES
