# Overview: Service-layer operations for purchase orders; status table and receipt into the stock ledger.

"""
Purchase Order Service

LIFECYCLE:
    draft -> sent -> confirmed -> producing -> shipped -> received
    back steps: sent -> draft, confirmed -> sent, producing -> confirmed

RULES:
1. 'received' is reachable only from 'shipped', through receive_purchase_order()
   or by delivering the purchase order's shipment.
2. Receipt writes one 'in' / 'shipment_received' ledger entry per line with a
   positive received quantity, in line order, all in one unit of work.
3. Receipt folds the landed cost into the product's weighted-average landed
   cost (nearest-cent rounding, half-up).
4. A purchase order with a shipment is received only by delivering the
   shipment (see shipment_service), which books through book_receipt().
5. Supplier payments never exceed total_cost_cents.
"""

from __future__ import annotations

from ..extensions import db
from ..models import Product, PurchaseOrder, PurchaseOrderItem, Shipment, StockReference, Supplier
from ..models.purchasing import (
    PO_STATUS_CONFIRMED,
    PO_STATUS_DRAFT,
    PO_STATUS_PRODUCING,
    PO_STATUS_RECEIVED,
    PO_STATUS_SENT,
    PO_STATUS_SHIPPED,
    PO_STATUSES,
)
from ..models.stock import MOVEMENT_IN, REASON_SHIPMENT_RECEIVED
from tradeops.time_utils import utcnow
from .concurrency import lock_for_update, run_unit_of_work
from .document_service import next_purchase_order_number
from .errors import (
    IllegalTransition,
    InvalidAmount,
    InvalidOrderData,
    OperationResult,
    OverpaymentRejected,
    ProductNotFound,
    PurchaseOrderNotFound,
)
from .ledger_service import lock_products, record_movement
from .payment_service import derive_payment_status


PO_TRANSITIONS: dict[str, frozenset[str]] = {
    PO_STATUS_DRAFT: frozenset({PO_STATUS_SENT}),
    PO_STATUS_SENT: frozenset({PO_STATUS_CONFIRMED, PO_STATUS_DRAFT}),
    PO_STATUS_CONFIRMED: frozenset({PO_STATUS_PRODUCING, PO_STATUS_SENT}),
    PO_STATUS_PRODUCING: frozenset({PO_STATUS_SHIPPED, PO_STATUS_CONFIRMED}),
    PO_STATUS_SHIPPED: frozenset(),
    PO_STATUS_RECEIVED: frozenset(),
}


def _require_int(value, field: str, *, minimum: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise InvalidOrderData(f"{field} must be an integer >= {minimum}", details={field: value})
    return value


def weighted_average_cost(
    old_stock: int,
    old_cost_cents: int | None,
    added_qty: int,
    added_cost_cents: int,
) -> int:
    """(old_stock*old_cost + qty*new_cost) / new_stock, nearest cent (half-up)."""
    if old_cost_cents is None or old_stock <= 0:
        return added_cost_cents
    units = old_stock + added_qty
    total_cost = old_stock * old_cost_cents + added_qty * added_cost_cents
    return (total_cost + (units // 2)) // units


def load_purchase_order_for_update(po_id: int) -> PurchaseOrder:
    po = lock_for_update(db.session.query(PurchaseOrder).filter(PurchaseOrder.id == po_id)).first()
    if po is None:
        raise PurchaseOrderNotFound(f"Purchase order {po_id} not found", details={"purchase_order_id": po_id})
    return po


def create_purchase_order(
    supplier_id: int,
    items,
    *,
    notes: str | None = None,
    actor: str | None = None,
) -> OperationResult:
    """
    Create a draft purchase order.

    items: [{"product_id", "quantity", "unit_cost_cents", "landed_cost_cents"?}, ...]
    """

    def _operation():
        supplier = db.session.get(Supplier, supplier_id)
        if supplier is None:
            raise InvalidOrderData(f"Supplier {supplier_id} not found", details={"supplier_id": supplier_id})
        if not isinstance(items, (list, tuple)) or not items:
            raise InvalidOrderData("Purchase order must have at least one item")

        po = PurchaseOrder(
            supplier_id=supplier.id,
            status=PO_STATUS_DRAFT,
            notes=notes,
            created_by=actor,
        )
        for position, raw in enumerate(items, start=1):
            if not isinstance(raw, dict):
                raise InvalidOrderData(f"Item {position} must be an object")
            product_id = _require_int(raw.get("product_id"), "product_id", minimum=1)
            if db.session.get(Product, product_id) is None:
                raise ProductNotFound(f"Product {product_id} not found", details={"product_id": product_id})
            landed = raw.get("landed_cost_cents")
            po.items.append(
                PurchaseOrderItem(
                    product_id=product_id,
                    position=position,
                    quantity=_require_int(raw.get("quantity"), "quantity", minimum=1),
                    unit_cost_cents=_require_int(raw.get("unit_cost_cents"), "unit_cost_cents", minimum=0),
                    landed_cost_cents=None if landed is None else _require_int(landed, "landed_cost_cents", minimum=0),
                )
            )
        po.total_cost_cents = sum(item.quantity * item.unit_cost_cents for item in po.items)
        po.po_number = next_purchase_order_number()
        db.session.add(po)
        db.session.flush()
        return po, []

    return run_unit_of_work(_operation)


def change_purchase_order_status(po_id: int, target_status: str) -> OperationResult:
    def _operation():
        po = load_purchase_order_for_update(po_id)
        allowed = PO_TRANSITIONS.get(po.status, frozenset())
        if target_status not in allowed:
            hint = ""
            if target_status == PO_STATUS_RECEIVED:
                hint = "; use receive to book a shipped purchase order into stock"
            elif target_status not in PO_STATUSES:
                hint = f"; status must be one of: {', '.join(PO_STATUSES)}"
            raise IllegalTransition(
                f"Cannot change purchase order status from '{po.status}' to '{target_status}'{hint}",
                details={"from": po.status, "to": target_status, "allowed": sorted(allowed)},
            )
        po.status = target_status
        db.session.flush()
        return po, []

    return run_unit_of_work(_operation)


def book_receipt(
    po: PurchaseOrder,
    quantities: dict[int, int],
    reference: StockReference,
    actor: str | None,
    landed_costs: dict[int, int] | None = None,
) -> list:
    """
    Write the receipt ledger entries for a locked purchase order and mark it received.

    quantities maps PurchaseOrderItem.id -> validated quantity received.
    landed_costs overrides the per-unit landed cost for a line; otherwise the
    line's own landed_cost_cents, then its unit_cost_cents, is used.
    Must run inside the caller's unit of work.
    """
    landed_costs = landed_costs or {}
    products = lock_products(item.product_id for item in po.items)
    movements = []
    for item in po.items:
        qty = quantities[item.id]
        item.received_quantity = qty
        if qty == 0:
            continue

        product = products[item.product_id]
        landed = landed_costs.get(item.id)
        if landed is None:
            landed = item.landed_cost_cents if item.landed_cost_cents is not None else item.unit_cost_cents
        new_cost = weighted_average_cost(product.current_stock, product.landed_cost_cents, qty, landed)
        movements.append(
            record_movement(
                product=product,
                quantity=qty,
                movement_type=MOVEMENT_IN,
                reason=REASON_SHIPMENT_RECEIVED,
                reference=reference,
                actor=actor,
                notes=f"{po.po_number} line {item.position}",
                unit_cost_cents=item.unit_cost_cents,
                landed_cost_cents=landed,
            )
        )
        product.landed_cost_cents = new_cost

    po.status = PO_STATUS_RECEIVED
    po.received_by = actor
    po.received_at = utcnow()
    return movements


def receive_purchase_order(po_id: int, actor: str | None, received: dict | None = None) -> OperationResult:
    """
    Book a shipped purchase order into stock.

    received maps PurchaseOrderItem.id -> quantity actually received; lines
    not mentioned are received in full. A quantity of 0 writes no ledger entry.
    Purchase orders travelling under a shipment are received by delivering
    that shipment instead.
    """

    def _operation():
        po = load_purchase_order_for_update(po_id)
        if po.status != PO_STATUS_SHIPPED:
            raise IllegalTransition(
                f"Only shipped purchase orders can be received (status is '{po.status}')",
                details={"from": po.status, "to": PO_STATUS_RECEIVED},
            )
        shipment = db.session.query(Shipment).filter(Shipment.purchase_order_id == po.id).first()
        if shipment is not None:
            raise IllegalTransition(
                f"Purchase order {po.po_number} travels under shipment {shipment.shipment_number}; "
                "mark the shipment delivered to receive it",
                details={"from": po.status, "to": PO_STATUS_RECEIVED, "shipment_id": shipment.id},
            )

        overrides = dict(received or {})
        known_ids = {item.id for item in po.items}
        unknown = [item_id for item_id in overrides if item_id not in known_ids]
        if unknown:
            raise InvalidOrderData(
                f"Item {unknown[0]} is not on purchase order {po.po_number}",
                details={"item_id": unknown[0]},
            )

        quantities = {}
        for item in po.items:
            qty = _require_int(overrides.get(item.id, item.quantity), "received quantity", minimum=0)
            if qty > item.quantity:
                raise InvalidOrderData(
                    f"Cannot receive {qty} of line {item.position}; ordered {item.quantity}",
                    details={"item_id": item.id, "ordered": item.quantity, "received": qty},
                )
            quantities[item.id] = qty

        movements = book_receipt(po, quantities, StockReference.purchase_order(po.id), actor)
        db.session.flush()
        return po, movements

    return run_unit_of_work(_operation)


def record_purchase_order_payment(po_id: int, amount_cents, actor: str | None = None) -> OperationResult:
    """
    Record money paid to the supplier against a purchase order.

    Fails with InvalidAmount for anything but a positive integer and with
    OverpaymentRejected when the payment would exceed total_cost_cents.
    """
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
        return OperationResult.failure(
            InvalidAmount(
                "Payment amount must be a positive whole number of cents",
                details={"amount_cents": amount_cents},
            )
        )

    def _operation():
        po = load_purchase_order_for_update(po_id)
        balance_due = po.total_cost_cents - po.paid_amount_cents
        if amount_cents > balance_due:
            raise OverpaymentRejected(
                f"Payment of {amount_cents} exceeds balance due of {balance_due} on {po.po_number}",
                details={
                    "purchase_order_id": po.id,
                    "amount_cents": amount_cents,
                    "paid_amount_cents": po.paid_amount_cents,
                    "total_cost_cents": po.total_cost_cents,
                    "balance_due_cents": balance_due,
                },
            )
        po.paid_amount_cents += amount_cents
        po.payment_status = derive_payment_status(po.paid_amount_cents, po.total_cost_cents)
        db.session.flush()
        return po, []

    return run_unit_of_work(_operation)


def get_purchase_order(po_id: int) -> PurchaseOrder | None:
    return db.session.get(PurchaseOrder, po_id)


def list_purchase_orders(*, status: str | None = None, supplier_id: int | None = None) -> list[PurchaseOrder]:
    query = db.session.query(PurchaseOrder)
    if status:
        query = query.filter(PurchaseOrder.status == status)
    if supplier_id is not None:
        query = query.filter(PurchaseOrder.supplier_id == supplier_id)
    return query.order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc()).all()
