# Overview: Error taxonomy and result wrapper shared by the order, payment and stock services.

"""
Expected business failures are values, not crashes.

Services raise the OrderOperationError subclasses below internally, and the
public entry points (change_order_status, record_payment, create_order, ...)
catch them and hand back an OperationResult. Anything outside this taxonomy
(driver errors, integrity violations, bugs) rolls the unit of work back and
propagates to the caller unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar


T = TypeVar("T")


class OrderOperationError(Exception):
    """Base class for expected, caller-facing failures."""

    code = "order_error"
    retryable = False

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "code": self.code,
            "details": self.details,
            "retryable": self.retryable,
        }


class OrderNotFound(OrderOperationError):
    code = "order_not_found"


class InvalidOrderData(OrderOperationError):
    code = "invalid_order_data"


class PurchaseOrderNotFound(OrderOperationError):
    code = "purchase_order_not_found"


class ProductNotFound(OrderOperationError):
    code = "product_not_found"


class ShipmentNotFound(OrderOperationError):
    code = "shipment_not_found"


class InvalidShipmentData(OrderOperationError):
    code = "invalid_shipment_data"


class InvalidStockAdjustment(OrderOperationError):
    code = "invalid_stock_adjustment"


class IllegalTransition(OrderOperationError):
    code = "illegal_transition"


class InsufficientStock(OrderOperationError):
    code = "insufficient_stock"


class InvalidAmount(OrderOperationError):
    code = "invalid_amount"


class OverpaymentRejected(OrderOperationError):
    code = "overpayment_rejected"


class OrderLocked(OrderOperationError):
    code = "order_locked"


class ConcurrencyConflict(OrderOperationError):
    """Another transaction touched the same rows first. Retry the whole operation."""

    code = "concurrency_conflict"
    retryable = True


@dataclass
class OperationResult(Generic[T]):
    ok: bool
    value: T | None = None
    error: OrderOperationError | None = None
    movements: list[Any] = field(default_factory=list)

    @classmethod
    def success(cls, value: T, movements: list | None = None) -> "OperationResult[T]":
        return cls(ok=True, value=value, movements=list(movements or []))

    @classmethod
    def failure(cls, error: OrderOperationError) -> "OperationResult[T]":
        return cls(ok=False, error=error)

    def unwrap(self) -> T:
        """Return the value or raise the carried error."""
        if not self.ok:
            raise self.error
        return self.value
