# Overview: Service-layer operations for orders; creation, editing and read helpers for the order aggregate.

"""
Order Aggregate

An order owns its line items and money columns. Creation and editing never
touch the stock ledger: stock only moves when the status coordinator
confirms or cancels the order.

INVARIANTS (checked here, backed by CHECK constraints):
- line total_price_cents == quantity * unit_price_cents
- subtotal_cents == SUM(line totals)
- total_cents == subtotal_cents + shipping_fee_cents - discount_cents >= 0
- 0 <= paid_amount_cents <= total_cents

EDITING RULES:
- line items can only be replaced while the order is pending
- delivered and cancelled orders cannot be edited at all
- an edit may not push the total below what has already been paid
"""

from __future__ import annotations

from ..extensions import db
from ..models import Order, OrderItem, Product
from ..models.orders import (
    ORDER_STATUS_CANCELLED,
    ORDER_STATUS_DELIVERED,
    ORDER_STATUS_PENDING,
    ORDER_TYPES,
    PAYMENT_STATUS_PENDING,
)
from .concurrency import run_unit_of_work
from .document_service import next_order_number
from .errors import (
    InvalidOrderData,
    OperationResult,
    OrderLocked,
    OverpaymentRejected,
    ProductNotFound,
)
from .payment_service import derive_payment_status, load_order_for_update


CUSTOMER_NAME_MIN_LENGTH = 2
CUSTOMER_NAME_MAX_LENGTH = 200

CUSTOMER_FIELDS = (
    "customer_name",
    "customer_phone",
    "customer_email",
    "company_name",
    "shipping_address",
    "city",
    "notes",
)
EDITABLE_FIELDS = frozenset(CUSTOMER_FIELDS) | {
    "items",
    "shipping_fee_cents",
    "discount_cents",
    "is_wholesale",
}
LOCKED_STATUSES = frozenset({ORDER_STATUS_DELIVERED, ORDER_STATUS_CANCELLED})


def _require_int(value, field: str, *, minimum: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidOrderData(f"{field} must be an integer", details={field: value})
    if value < minimum:
        raise InvalidOrderData(f"{field} must be >= {minimum}", details={field: value})
    return value


def _clean_text(value) -> str | None:
    if value is None:
        return None
    cleaned = str(value).strip()
    return cleaned or None


def _validate_customer_name(name) -> str:
    cleaned = _clean_text(name) or ""
    if not CUSTOMER_NAME_MIN_LENGTH <= len(cleaned) <= CUSTOMER_NAME_MAX_LENGTH:
        raise InvalidOrderData(
            f"customer_name must be {CUSTOMER_NAME_MIN_LENGTH}-{CUSTOMER_NAME_MAX_LENGTH} characters",
            details={"customer_name": name},
        )
    return cleaned


def _build_items(items) -> list[OrderItem]:
    """Validate raw line dicts and snapshot unit prices. Positions are 1-based in input order."""
    if not isinstance(items, (list, tuple)) or not items:
        raise InvalidOrderData("Order must have at least one item")

    built: list[OrderItem] = []
    for position, raw in enumerate(items, start=1):
        if not isinstance(raw, dict):
            raise InvalidOrderData(f"Item {position} must be an object")
        product_id = _require_int(raw.get("product_id"), "product_id", minimum=1)
        quantity = _require_int(raw.get("quantity"), "quantity", minimum=1)

        product = db.session.get(Product, product_id)
        if product is None:
            raise ProductNotFound(f"Product {product_id} not found", details={"product_id": product_id})
        if not product.is_active:
            raise InvalidOrderData(
                f"Product {product.sku} is inactive",
                details={"product_id": product_id, "position": position},
            )

        unit_price = raw.get("unit_price_cents")
        if unit_price is None:
            unit_price = product.price_cents
        if unit_price is None:
            raise InvalidOrderData(
                f"Product {product.sku} has no price; unit_price_cents is required",
                details={"product_id": product_id, "position": position},
            )
        unit_price = _require_int(unit_price, "unit_price_cents", minimum=1)

        built.append(
            OrderItem(
                product_id=product_id,
                position=position,
                quantity=quantity,
                unit_price_cents=unit_price,
                total_price_cents=quantity * unit_price,
            )
        )
    return built


def _compute_totals(
    items,
    shipping_fee_cents: int,
    discount_cents: int,
    paid_amount_cents: int,
    order_id: int | None = None,
) -> tuple[int, int]:
    """
    Return (subtotal_cents, total_cents) for a prospective item set and fees.

    Pure: callers apply the result only after it validates, so the order row
    never holds a total that breaks the CHECK constraints.
    """
    subtotal = sum(item.total_price_cents for item in items)
    total = subtotal + shipping_fee_cents - discount_cents
    if total < 0:
        raise InvalidOrderData(
            "Discount cannot exceed subtotal plus shipping",
            details={
                "subtotal_cents": subtotal,
                "shipping_fee_cents": shipping_fee_cents,
                "discount_cents": discount_cents,
            },
        )
    if total < paid_amount_cents:
        raise OverpaymentRejected(
            f"New total {total} is below the {paid_amount_cents} already paid",
            details={
                "order_id": order_id,
                "total_cents": total,
                "paid_amount_cents": paid_amount_cents,
                "balance_due_cents": total - paid_amount_cents,
            },
        )
    return subtotal, total


def _check_wholesale(is_wholesale: bool, company_name: str | None) -> None:
    if is_wholesale and not company_name:
        raise InvalidOrderData("company_name is required for wholesale orders")


def create_order(
    order_type: str,
    customer_name: str,
    items,
    *,
    shipping_fee_cents: int = 0,
    discount_cents: int = 0,
    customer_phone: str | None = None,
    customer_email: str | None = None,
    company_name: str | None = None,
    shipping_address: str | None = None,
    city: str | None = None,
    is_wholesale: bool | None = None,
    notes: str | None = None,
    actor: str | None = None,
) -> OperationResult:
    """Create a pending, unpaid order. No stock is reserved or deducted."""
    if order_type not in ORDER_TYPES:
        return OperationResult.failure(
            InvalidOrderData(
                f"type must be one of: {', '.join(ORDER_TYPES)}",
                details={"type": order_type},
            )
        )

    def _operation():
        order = Order(
            type=order_type,
            status=ORDER_STATUS_PENDING,
            payment_status=PAYMENT_STATUS_PENDING,
            customer_name=_validate_customer_name(customer_name),
            customer_phone=_clean_text(customer_phone),
            customer_email=_clean_text(customer_email),
            company_name=_clean_text(company_name),
            shipping_address=_clean_text(shipping_address),
            city=_clean_text(city),
            is_wholesale=bool(is_wholesale) or order_type == "wholesale",
            notes=_clean_text(notes),
            shipping_fee_cents=_require_int(shipping_fee_cents, "shipping_fee_cents", minimum=0),
            discount_cents=_require_int(discount_cents, "discount_cents", minimum=0),
            paid_amount_cents=0,
            created_by=actor,
        )
        _check_wholesale(order.is_wholesale, order.company_name)
        new_items = _build_items(items)
        subtotal, total = _compute_totals(
            new_items, order.shipping_fee_cents, order.discount_cents, 0
        )
        order.items = new_items
        order.subtotal_cents = subtotal
        order.total_cents = total
        order.payment_status = derive_payment_status(0, total)

        order.order_number = next_order_number()
        db.session.add(order)
        db.session.flush()
        return order, []

    return run_unit_of_work(_operation)


def update_order(order_id: int, *, actor: str | None = None, **changes) -> OperationResult:
    """
    Edit an order.

    changes may hold any of EDITABLE_FIELDS. Replacing items requires a
    pending order; delivered and cancelled orders refuse every edit with
    OrderLocked.
    """
    unknown = sorted(set(changes) - EDITABLE_FIELDS)
    if unknown:
        return OperationResult.failure(
            InvalidOrderData(f"Field not editable: {unknown[0]}", details={"fields": unknown})
        )

    def _operation():
        order = load_order_for_update(order_id)
        if order.status in LOCKED_STATUSES:
            raise OrderLocked(
                f"Order {order.order_number} is {order.status} and can no longer be edited",
                details={"order_id": order.id, "status": order.status},
            )
        if "items" in changes and order.status != ORDER_STATUS_PENDING:
            raise OrderLocked(
                f"Items on order {order.order_number} are locked once it is {order.status}",
                details={"order_id": order.id, "status": order.status},
            )

        # Nothing is assigned until every value validates, so autoflush never
        # writes a half-edited row.
        current_items = list(order.items)

        customer = {}
        for field in CUSTOMER_FIELDS:
            if field in changes:
                if field == "customer_name":
                    customer[field] = _validate_customer_name(changes[field])
                else:
                    customer[field] = _clean_text(changes[field])

        is_wholesale = order.is_wholesale
        if "is_wholesale" in changes:
            is_wholesale = bool(changes["is_wholesale"]) or order.type == "wholesale"
        _check_wholesale(is_wholesale, customer.get("company_name", order.company_name))

        shipping = order.shipping_fee_cents
        if "shipping_fee_cents" in changes:
            shipping = _require_int(changes["shipping_fee_cents"], "shipping_fee_cents", minimum=0)
        discount = order.discount_cents
        if "discount_cents" in changes:
            discount = _require_int(changes["discount_cents"], "discount_cents", minimum=0)

        new_items = _build_items(changes["items"]) if "items" in changes else None
        subtotal, total = _compute_totals(
            current_items if new_items is None else new_items,
            shipping,
            discount,
            order.paid_amount_cents,
            order.id,
        )

        if new_items is not None:
            # Old rows must be gone before new ones reuse their positions
            order.items.clear()
            db.session.flush()
            order.items.extend(new_items)

        for field, value in customer.items():
            setattr(order, field, value)
        order.is_wholesale = is_wholesale
        order.shipping_fee_cents = shipping
        order.discount_cents = discount
        order.subtotal_cents = subtotal
        order.total_cents = total
        order.payment_status = derive_payment_status(order.paid_amount_cents, total)
        db.session.flush()
        return order, []

    return run_unit_of_work(_operation)


def get_order(order_id: int) -> Order | None:
    return db.session.get(Order, order_id)


def get_order_by_number(order_number: str) -> Order | None:
    return db.session.query(Order).filter(Order.order_number == order_number).first()


def list_orders(
    *,
    status: str | None = None,
    payment_status: str | None = None,
    order_type: str | None = None,
    limit: int = 100,
) -> list[Order]:
    query = db.session.query(Order)
    if status:
        query = query.filter(Order.status == status)
    if payment_status:
        query = query.filter(Order.payment_status == payment_status)
    if order_type:
        query = query.filter(Order.type == order_type)
    return query.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).all()
