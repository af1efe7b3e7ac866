# Overview: Service-layer operations for shipments; freight status table, costing, payments and delivery receipt.

"""
Shipment Service

A shipment carries exactly one purchase order from the supplier to us.

LIFECYCLE:
    pending -> in_transit -> customs -> delivered
    no backward steps; delivered is terminal

RULES:
1. A shipment can only be opened for a 'confirmed' or 'producing' purchase
   order, at most one per purchase order. Opening it moves the purchase order
   to 'shipped'.
2. Delivery receives the whole purchase order in the same unit of work:
   one 'in' / 'shipment_received' ledger entry per line, referenced to the
   shipment, and the purchase order becomes 'received'.
3. On delivery, shipping cost, customs duty and other fees are spread over
   the lines by line value and folded into the per-unit landed cost
   (half-up). Lines that already carry a landed cost keep it.
4. 0 <= paid_amount_cents <= total_cost_cents; payment_status is derived.
5. Delivered shipments cannot be edited or deleted; only pending ones can be
   deleted, which puts the purchase order back to 'producing'.
"""

from __future__ import annotations

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from ..extensions import db
from ..models import Shipment, ShippingCompany, StockReference
from ..models.purchasing import (
    PO_STATUS_CONFIRMED,
    PO_STATUS_PRODUCING,
    PO_STATUS_SHIPPED,
)
from ..models.shipping import (
    SHIPMENT_STATUS_CUSTOMS,
    SHIPMENT_STATUS_DELIVERED,
    SHIPMENT_STATUS_IN_TRANSIT,
    SHIPMENT_STATUS_PENDING,
    SHIPMENT_STATUSES,
    SHIPPING_METHOD_SEA,
    SHIPPING_METHODS,
)
from tradeops.time_utils import parse_iso_datetime, utcnow
from .concurrency import lock_for_update, run_unit_of_work
from .document_service import next_shipment_number
from .errors import (
    IllegalTransition,
    InvalidAmount,
    InvalidShipmentData,
    OperationResult,
    OverpaymentRejected,
    ShipmentNotFound,
)
from .payment_service import derive_payment_status
from .purchase_order_service import book_receipt, load_purchase_order_for_update


SHIPMENT_TRANSITIONS: dict[str, frozenset[str]] = {
    SHIPMENT_STATUS_PENDING: frozenset({SHIPMENT_STATUS_IN_TRANSIT}),
    SHIPMENT_STATUS_IN_TRANSIT: frozenset({SHIPMENT_STATUS_CUSTOMS}),
    SHIPMENT_STATUS_CUSTOMS: frozenset({SHIPMENT_STATUS_DELIVERED}),
    SHIPMENT_STATUS_DELIVERED: frozenset(),
}

SHIPPABLE_PO_STATUSES = frozenset({PO_STATUS_CONFIRMED, PO_STATUS_PRODUCING})

EDITABLE_FIELDS = frozenset({
    "tracking_number",
    "departure_date",
    "estimated_arrival",
    "total_weight_kg",
    "total_volume_cbm",
    "shipping_cost_cents",
    "customs_duty_cents",
    "other_fees_cents",
    "notes",
})


def _require_int(value, field: str, *, minimum: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise InvalidShipmentData(f"{field} must be an integer >= {minimum}", details={field: value})
    return value


def _measure(value, field: str) -> Decimal | None:
    """Weight (kg) or volume (CBM): positive number, or None when not given."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise InvalidShipmentData(f"{field} must be a positive number", details={field: value})
    try:
        measure = Decimal(str(value).strip())
    except InvalidOperation:
        raise InvalidShipmentData(f"{field} must be a positive number", details={field: value})
    if not measure.is_finite() or measure <= 0:
        raise InvalidShipmentData(f"{field} must be a positive number", details={field: value})
    return measure


def _date(value, field: str) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        raise InvalidShipmentData(f"{field} must be an ISO-8601 date", details={field: value})
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise InvalidShipmentData(f"{field} must be an ISO-8601 date", details={field: value})


def _check_schedule(departure: datetime | None, arrival: datetime | None) -> None:
    if departure and arrival and arrival <= departure:
        raise InvalidShipmentData(
            "Estimated arrival must be after departure date",
            details={"departure_date": departure.isoformat(), "estimated_arrival": arrival.isoformat()},
        )


def _cents(amount: Decimal) -> int:
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _load_for_update(shipment_id: int) -> Shipment:
    shipment = lock_for_update(db.session.query(Shipment).filter(Shipment.id == shipment_id)).first()
    if shipment is None:
        raise ShipmentNotFound(f"Shipment {shipment_id} not found", details={"shipment_id": shipment_id})
    return shipment


def _active_company(shipping_company_id) -> ShippingCompany:
    company = None
    if isinstance(shipping_company_id, int) and not isinstance(shipping_company_id, bool):
        company = db.session.get(ShippingCompany, shipping_company_id)
    if company is None:
        raise InvalidShipmentData(
            f"Shipping company {shipping_company_id} not found",
            details={"shipping_company_id": shipping_company_id},
        )
    if not company.is_active:
        raise InvalidShipmentData(
            f"Shipping company {company.name} is inactive",
            details={"shipping_company_id": company.id},
        )
    return company


def calculate_shipping_cost(
    shipping_company_id: int,
    method: str,
    total_weight_kg=None,
    total_volume_cbm=None,
) -> dict:
    """
    Quote freight from a company's rates.

    Sea freight is charged per CBM, air and courier per kg; the company's
    minimum charge applies on top. Returns {"cost_cents", "breakdown"}.

    Raises InvalidShipmentData when nothing can be quoted.
    """
    if method not in SHIPPING_METHODS:
        raise InvalidShipmentData(
            f"method must be one of: {', '.join(SHIPPING_METHODS)}", details={"method": method}
        )
    company = _active_company(shipping_company_id)
    weight = _measure(total_weight_kg, "total_weight_kg")
    volume = _measure(total_volume_cbm, "total_volume_cbm")

    cost = 0
    breakdown = []
    if method == SHIPPING_METHOD_SEA:
        if volume is not None and company.rate_per_cbm_cents is not None:
            cost = _cents(volume * company.rate_per_cbm_cents)
            breakdown.append(f"{volume} CBM x {company.rate_per_cbm_cents}/CBM = {cost}")
    elif weight is not None and company.rate_per_kg_cents is not None:
        cost = _cents(weight * company.rate_per_kg_cents)
        breakdown.append(f"{weight} kg x {company.rate_per_kg_cents}/kg = {cost}")

    if company.min_charge_cents is not None and cost < company.min_charge_cents:
        cost = company.min_charge_cents
        breakdown.append(f"Minimum charge applied: {cost}")

    if not breakdown:
        raise InvalidShipmentData(
            "Could not calculate shipping cost; enter it manually",
            details={"shipping_company_id": company.id, "method": method},
        )
    return {"cost_cents": cost, "breakdown": breakdown}


def allocate_landed_costs(items, extra_cents: int) -> dict[int, int]:
    """
    Per-unit landed cost for each line without an explicit one.

    extra_cents is split across all lines by line value (quantity *
    unit_cost_cents), or by quantity when every line is free of charge.
    Shares and per-unit amounts round half-up.
    """
    weights = {item.id: item.quantity * item.unit_cost_cents for item in items}
    if sum(weights.values()) == 0:
        weights = {item.id: item.quantity for item in items}
    total_weight = sum(weights.values())

    landed = {}
    for item in items:
        if item.landed_cost_cents is not None:
            continue
        share = 0
        if total_weight and extra_cents:
            share = (2 * extra_cents * weights[item.id] + total_weight) // (2 * total_weight)
        landed[item.id] = item.unit_cost_cents + (share + item.quantity // 2) // item.quantity
    return landed


def create_shipment(
    purchase_order_id: int,
    shipping_company_id: int,
    method: str,
    *,
    shipping_cost_cents=None,
    customs_duty_cents=0,
    other_fees_cents=0,
    departure_date=None,
    estimated_arrival=None,
    tracking_number: str | None = None,
    total_weight_kg=None,
    total_volume_cbm=None,
    notes: str | None = None,
    actor: str | None = None,
) -> OperationResult:
    """
    Open a shipment for a confirmed or producing purchase order.

    Without shipping_cost_cents the freight is quoted from the company's rates.
    """

    def _operation():
        if method not in SHIPPING_METHODS:
            raise InvalidShipmentData(
                f"method must be one of: {', '.join(SHIPPING_METHODS)}", details={"method": method}
            )
        company = _active_company(shipping_company_id)
        departure = _date(departure_date, "departure_date")
        arrival = _date(estimated_arrival, "estimated_arrival")
        _check_schedule(departure, arrival)
        weight = _measure(total_weight_kg, "total_weight_kg")
        volume = _measure(total_volume_cbm, "total_volume_cbm")

        if shipping_cost_cents is None:
            freight = calculate_shipping_cost(company.id, method, weight, volume)["cost_cents"]
        else:
            freight = _require_int(shipping_cost_cents, "shipping_cost_cents", minimum=0)
        duty = _require_int(customs_duty_cents or 0, "customs_duty_cents", minimum=0)
        fees = _require_int(other_fees_cents or 0, "other_fees_cents", minimum=0)

        po = load_purchase_order_for_update(purchase_order_id)
        if po.status not in SHIPPABLE_PO_STATUSES:
            raise IllegalTransition(
                f"Purchase order {po.po_number} must be confirmed or producing to ship "
                f"(status is '{po.status}')",
                details={"from": po.status, "to": PO_STATUS_SHIPPED},
            )
        existing = db.session.query(Shipment.id).filter(Shipment.purchase_order_id == po.id).first()
        if existing:
            raise InvalidShipmentData(
                f"Purchase order {po.po_number} already has a shipment",
                details={"purchase_order_id": po.id, "shipment_id": existing.id},
            )

        shipment = Shipment(
            shipment_number=next_shipment_number(),
            purchase_order_id=po.id,
            shipping_company_id=company.id,
            method=method,
            tracking_number=(tracking_number or "").strip() or None,
            status=SHIPMENT_STATUS_PENDING,
            departure_date=departure,
            estimated_arrival=arrival,
            total_weight_kg=weight,
            total_volume_cbm=volume,
            shipping_cost_cents=freight,
            customs_duty_cents=duty,
            other_fees_cents=fees,
            total_cost_cents=freight + duty + fees,
            paid_amount_cents=0,
            payment_status=derive_payment_status(0, freight + duty + fees),
            notes=notes,
            created_by=actor,
        )
        po.status = PO_STATUS_SHIPPED
        db.session.add(shipment)
        db.session.flush()
        return shipment, []

    return run_unit_of_work(_operation)


def update_shipment(shipment_id: int, **changes) -> OperationResult:
    """Edit schedule, tracking, measurements and costs of an undelivered shipment."""
    unknown = sorted(set(changes) - EDITABLE_FIELDS)
    if unknown:
        return OperationResult.failure(
            InvalidShipmentData(f"Field not editable: {unknown[0]}", details={"fields": unknown})
        )

    def _operation():
        shipment = _load_for_update(shipment_id)
        if shipment.status == SHIPMENT_STATUS_DELIVERED:
            raise IllegalTransition(
                f"Shipment {shipment.shipment_number} is delivered and can no longer be edited",
                details={"shipment_id": shipment.id, "status": shipment.status},
            )

        values = {}
        for field in ("departure_date", "estimated_arrival"):
            if field in changes:
                values[field] = _date(changes[field], field)
        for field in ("total_weight_kg", "total_volume_cbm"):
            if field in changes:
                values[field] = _measure(changes[field], field)
        for field in ("shipping_cost_cents", "customs_duty_cents", "other_fees_cents"):
            if field in changes:
                values[field] = _require_int(changes[field], field, minimum=0)
        if "tracking_number" in changes:
            values["tracking_number"] = (changes["tracking_number"] or "").strip() or None
        if "notes" in changes:
            values["notes"] = changes["notes"]

        _check_schedule(
            values.get("departure_date", shipment.departure_date),
            values.get("estimated_arrival", shipment.estimated_arrival),
        )
        total = (
            values.get("shipping_cost_cents", shipment.shipping_cost_cents)
            + values.get("customs_duty_cents", shipment.customs_duty_cents)
            + values.get("other_fees_cents", shipment.other_fees_cents)
        )
        if total < shipment.paid_amount_cents:
            raise OverpaymentRejected(
                f"New total {total} is below the {shipment.paid_amount_cents} already paid",
                details={
                    "shipment_id": shipment.id,
                    "total_cost_cents": total,
                    "paid_amount_cents": shipment.paid_amount_cents,
                },
            )

        for field, value in values.items():
            setattr(shipment, field, value)
        shipment.total_cost_cents = total
        shipment.payment_status = derive_payment_status(shipment.paid_amount_cents, total)
        db.session.flush()
        return shipment, []

    return run_unit_of_work(_operation)


def change_shipment_status(shipment_id: int, target_status: str, actor: str | None) -> OperationResult:
    """
    Move a shipment one step along its lifecycle.

    Delivering it receives the purchase order into stock; the movements come
    back on the result.
    """

    def _operation():
        shipment = _load_for_update(shipment_id)
        allowed = SHIPMENT_TRANSITIONS.get(shipment.status, frozenset())
        if target_status not in allowed:
            hint = ""
            if target_status not in SHIPMENT_STATUSES:
                hint = f"; status must be one of: {', '.join(SHIPMENT_STATUSES)}"
            raise IllegalTransition(
                f"Cannot change shipment status from '{shipment.status}' to '{target_status}'{hint}",
                details={"from": shipment.status, "to": target_status, "allowed": sorted(allowed)},
            )

        movements = []
        if target_status == SHIPMENT_STATUS_DELIVERED:
            po = load_purchase_order_for_update(shipment.purchase_order_id)
            if po.status != PO_STATUS_SHIPPED:
                raise IllegalTransition(
                    f"Purchase order {po.po_number} is '{po.status}', expected '{PO_STATUS_SHIPPED}'",
                    details={"purchase_order_id": po.id, "from": po.status},
                )
            items = list(po.items)
            landed = allocate_landed_costs(items, shipment.total_cost_cents)
            quantities = {item.id: item.quantity for item in items}
            movements = book_receipt(
                po, quantities, StockReference.shipment(shipment.id), actor, landed_costs=landed
            )
            shipment.actual_arrival = utcnow()

        shipment.status = target_status
        db.session.flush()
        return shipment, movements

    return run_unit_of_work(_operation)


def record_shipment_payment(shipment_id: int, amount_cents, actor: str | None = None) -> OperationResult:
    """
    Record money paid to the forwarder for a shipment.

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
        shipment = _load_for_update(shipment_id)
        balance_due = shipment.total_cost_cents - shipment.paid_amount_cents
        if amount_cents > balance_due:
            raise OverpaymentRejected(
                f"Payment of {amount_cents} exceeds balance due of {balance_due} "
                f"on {shipment.shipment_number}",
                details={
                    "shipment_id": shipment.id,
                    "amount_cents": amount_cents,
                    "paid_amount_cents": shipment.paid_amount_cents,
                    "total_cost_cents": shipment.total_cost_cents,
                    "balance_due_cents": balance_due,
                },
            )
        shipment.paid_amount_cents += amount_cents
        shipment.payment_status = derive_payment_status(
            shipment.paid_amount_cents, shipment.total_cost_cents
        )
        db.session.flush()
        return shipment, []

    return run_unit_of_work(_operation)


def delete_shipment(shipment_id: int) -> OperationResult:
    """Remove a pending shipment and put its purchase order back to 'producing'."""

    def _operation():
        shipment = _load_for_update(shipment_id)
        if shipment.status != SHIPMENT_STATUS_PENDING:
            raise IllegalTransition(
                f"Only pending shipments can be deleted (status is '{shipment.status}')",
                details={"shipment_id": shipment.id, "status": shipment.status},
            )
        po = load_purchase_order_for_update(shipment.purchase_order_id)
        po.status = PO_STATUS_PRODUCING
        db.session.delete(shipment)
        db.session.flush()
        return po, []

    return run_unit_of_work(_operation)


def get_shipment(shipment_id: int) -> Shipment | None:
    return db.session.get(Shipment, shipment_id)


def list_shipments(
    *,
    status: str | None = None,
    shipping_company_id: int | None = None,
    purchase_order_id: int | None = None,
) -> list[Shipment]:
    query = db.session.query(Shipment)
    if status:
        query = query.filter(Shipment.status == status)
    if shipping_company_id is not None:
        query = query.filter(Shipment.shipping_company_id == shipping_company_id)
    if purchase_order_id is not None:
        query = query.filter(Shipment.purchase_order_id == purchase_order_id)
    return query.order_by(Shipment.created_at.desc(), Shipment.id.desc()).all()
