"""Transition table tests, independent of the database."""

import pytest

from tradeops.models.orders import ORDER_STATUSES
from tradeops.services.errors import IllegalTransition
from tradeops.services.order_state import (
    ALLOWED_TRANSITIONS,
    StockEffect,
    can_transition,
    is_terminal,
    stock_effect,
    validate_transition,
)


LEGAL = {
    ("pending", "confirmed"),
    ("pending", "cancelled"),
    ("confirmed", "packed"),
    ("confirmed", "cancelled"),
    ("packed", "shipped"),
    ("packed", "cancelled"),
    ("shipped", "delivered"),
    ("shipped", "cancelled"),
}


def test_table_covers_every_status():
    assert set(ALLOWED_TRANSITIONS) == set(ORDER_STATUSES)


@pytest.mark.parametrize("from_status", ORDER_STATUSES)
@pytest.mark.parametrize("to_status", ORDER_STATUSES)
def test_can_transition_matches_table(from_status, to_status):
    assert can_transition(from_status, to_status) == ((from_status, to_status) in LEGAL)


@pytest.mark.parametrize("status", ["delivered", "cancelled"])
def test_terminal_statuses_allow_nothing(status):
    assert is_terminal(status)
    for target in ORDER_STATUSES:
        with pytest.raises(IllegalTransition):
            validate_transition(status, target)


def test_same_state_is_not_a_transition():
    with pytest.raises(IllegalTransition) as exc:
        validate_transition("confirmed", "confirmed")
    assert exc.value.details["allowed"] == ["cancelled", "packed"]


def test_unknown_target_status_is_illegal():
    with pytest.raises(IllegalTransition) as exc:
        validate_transition("pending", "refunded")
    assert "Unknown order status" in exc.value.message


@pytest.mark.parametrize(
    "from_status,to_status,effect",
    [
        ("pending", "confirmed", StockEffect.DEDUCT),
        ("pending", "cancelled", StockEffect.NONE),
        ("confirmed", "cancelled", StockEffect.RESTOCK),
        ("packed", "cancelled", StockEffect.RESTOCK),
        ("shipped", "cancelled", StockEffect.RESTOCK),
        ("confirmed", "packed", StockEffect.NONE),
        ("packed", "shipped", StockEffect.NONE),
        ("shipped", "delivered", StockEffect.NONE),
    ],
)
def test_stock_effect(from_status, to_status, effect):
    assert stock_effect(from_status, to_status) is effect
