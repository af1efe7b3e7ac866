# Overview: Service-layer operations for the stock ledger; encapsulates business logic and database work.

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import Product, StockMovement, StockReference
from ..models.stock import (
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_IN,
    MOVEMENT_OUT,
    MOVEMENT_REASONS,
    MOVEMENT_TYPES,
    REASON_CORRECTION,
    REASON_DAMAGE,
    REASON_FOUND,
    REASON_LOSS,
    REASON_OTHER,
    REASON_RETURN,
)
from .concurrency import lock_for_update, run_unit_of_work
from .errors import InsufficientStock, InvalidStockAdjustment, OperationResult, ProductNotFound
"""
Stock Ledger Invariants (authoritative)

- stock_movements is append-only; rows are never updated or deleted.
- Every change to Product.current_stock goes through record_movement(), which
  appends the matching ledger row in the same transaction.
- current_stock == opening_stock + SUM(stock_movements.quantity) per product.
- current_stock never goes below zero; a movement that would do so is refused
  before anything is written.
"""


MANUAL_ADJUSTMENT_REASONS = frozenset({
    REASON_DAMAGE,
    REASON_LOSS,
    REASON_FOUND,
    REASON_CORRECTION,
    REASON_RETURN,
    REASON_OTHER,
})
MIN_ADJUSTMENT_NOTES_LENGTH = 5


def lock_products(product_ids) -> dict[int, Product]:
    """
    Lock product rows for a read-check-write, in ascending id order.

    A fixed lock order means two transactions touching overlapping product
    sets queue up instead of deadlocking.
    """
    ids = sorted(set(product_ids))
    if not ids:
        return {}
    rows = lock_for_update(
        db.session.query(Product).filter(Product.id.in_(ids)).order_by(Product.id)
    ).all()
    products = {p.id: p for p in rows}
    missing = [pid for pid in ids if pid not in products]
    if missing:
        raise ProductNotFound(
            f"Product {missing[0]} not found",
            details={"product_id": missing[0]},
        )
    return products


def insufficient_stock_error(product: Product, requested: int) -> InsufficientStock:
    shortfall = requested - product.current_stock
    return InsufficientStock(
        f"Insufficient stock for {product.sku}: requested {requested}, "
        f"available {product.current_stock} (short by {shortfall})",
        details={
            "product_id": product.id,
            "sku": product.sku,
            "name": product.name,
            "requested": requested,
            "available": product.current_stock,
            "shortfall": shortfall,
        },
    )


def record_movement(
    *,
    product: Product,
    quantity: int,
    movement_type: str,
    reason: str,
    reference: StockReference,
    actor: str | None,
    notes: str | None = None,
    unit_cost_cents: int | None = None,
    landed_cost_cents: int | None = None,
) -> StockMovement:
    """
    Append one ledger entry and move the product's counter with it.

    Must run inside an open unit of work with the product row already locked
    (see lock_products). Nothing is committed here.
    """
    if movement_type not in MOVEMENT_TYPES:
        raise ValueError(f"unknown movement type: {movement_type!r}")
    if reason not in MOVEMENT_REASONS:
        raise ValueError(f"unknown movement reason: {reason!r}")
    if not isinstance(reference, StockReference):
        raise TypeError("reference must be a StockReference")
    if quantity == 0:
        raise ValueError("ledger entries cannot have a zero quantity")

    stock_before = product.current_stock
    stock_after = stock_before + quantity
    if stock_after < 0:
        raise insufficient_stock_error(product, -quantity)

    movement = StockMovement(
        product_id=product.id,
        type=movement_type,
        reason=reason,
        quantity=quantity,
        reference_type=reference.kind.value,
        reference_id=reference.id,
        stock_before=stock_before,
        stock_after=stock_after,
        unit_cost_cents=unit_cost_cents,
        landed_cost_cents=landed_cost_cents,
        notes=notes,
        created_by=actor,
    )
    product.current_stock = stock_after
    db.session.add(movement)
    db.session.flush()
    return movement


def adjust_stock(
    product_id: int,
    quantity,
    reason: str,
    notes: str | None,
    actor: str | None,
) -> OperationResult:
    """
    Manual stock adjustment (stock count corrections, damage, loss, found goods).

    Positive quantities are written as 'in', negative as 'out'; a correction
    is recorded as 'adjustment' whatever its sign. The reference is always Manual.
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity == 0:
        return OperationResult.failure(
            InvalidStockAdjustment("quantity must be a non-zero integer", details={"quantity": quantity})
        )
    if reason not in MANUAL_ADJUSTMENT_REASONS:
        return OperationResult.failure(
            InvalidStockAdjustment(
                f"reason must be one of: {', '.join(sorted(MANUAL_ADJUSTMENT_REASONS))}",
                details={"reason": reason},
            )
        )
    cleaned_notes = (notes or "").strip()
    if len(cleaned_notes) < MIN_ADJUSTMENT_NOTES_LENGTH:
        return OperationResult.failure(
            InvalidStockAdjustment(
                f"notes must be at least {MIN_ADJUSTMENT_NOTES_LENGTH} characters",
                details={"notes": notes},
            )
        )

    if reason == REASON_CORRECTION:
        movement_type = MOVEMENT_ADJUSTMENT
    else:
        movement_type = MOVEMENT_IN if quantity > 0 else MOVEMENT_OUT

    def _operation():
        product = lock_products([product_id])[product_id]
        movement = record_movement(
            product=product,
            quantity=quantity,
            movement_type=movement_type,
            reason=reason,
            reference=StockReference.manual(),
            actor=actor,
            notes=cleaned_notes,
        )
        return product, [movement]

    return run_unit_of_work(_operation)


def list_movements(
    *,
    product_id: int | None = None,
    reference: StockReference | None = None,
    movement_type: str | None = None,
    limit: int = 200,
) -> list[StockMovement]:
    """Ledger entries, newest first."""
    query = db.session.query(StockMovement)
    if product_id is not None:
        query = query.filter(StockMovement.product_id == product_id)
    if reference is not None:
        query = query.filter(
            StockMovement.reference_type == reference.kind.value,
            StockMovement.reference_id == reference.id,
        )
    if movement_type is not None:
        query = query.filter(StockMovement.type == movement_type)
    return (
        query.order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .limit(limit)
        .all()
    )


def ledger_sum(product_id: int) -> int:
    return int(
        db.session.query(func.coalesce(func.sum(StockMovement.quantity), 0))
        .filter(StockMovement.product_id == product_id)
        .scalar()
    )


def _reconciliation_row(product: Product, movement_total: int) -> dict:
    expected = product.opening_stock + movement_total
    return {
        "product_id": product.id,
        "sku": product.sku,
        "opening_stock": product.opening_stock,
        "ledger_total": movement_total,
        "expected_stock": expected,
        "current_stock": product.current_stock,
        "drift": product.current_stock - expected,
        "in_sync": product.current_stock == expected,
    }


def reconcile_product_stock(product_id: int) -> dict:
    """
    Compare the cached counter with what the ledger says it should be.

    Read-only; drift is reported, never repaired here.
    """
    product = db.session.get(Product, product_id)
    if product is None:
        raise ProductNotFound(f"Product {product_id} not found", details={"product_id": product_id})
    return _reconciliation_row(product, ledger_sum(product_id))


def reconcile_all() -> list[dict]:
    totals = dict(
        db.session.query(StockMovement.product_id, func.sum(StockMovement.quantity))
        .group_by(StockMovement.product_id)
        .all()
    )
    products = db.session.query(Product).order_by(Product.id).all()
    return [_reconciliation_row(p, int(totals.get(p.id) or 0)) for p in products]
