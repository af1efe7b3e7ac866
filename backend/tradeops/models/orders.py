from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from tradeops.time_utils import to_utc_z
from .stock import ImmutableRecordError


ORDER_TYPES = ("online", "wholesale", "retail")

ORDER_STATUS_PENDING = "pending"
ORDER_STATUS_CONFIRMED = "confirmed"
ORDER_STATUS_PACKED = "packed"
ORDER_STATUS_SHIPPED = "shipped"
ORDER_STATUS_DELIVERED = "delivered"
ORDER_STATUS_CANCELLED = "cancelled"
ORDER_STATUSES = (
    ORDER_STATUS_PENDING,
    ORDER_STATUS_CONFIRMED,
    ORDER_STATUS_PACKED,
    ORDER_STATUS_SHIPPED,
    ORDER_STATUS_DELIVERED,
    ORDER_STATUS_CANCELLED,
)

PAYMENT_STATUS_PENDING = "pending"
PAYMENT_STATUS_PARTIAL = "partial"
PAYMENT_STATUS_PAID = "paid"
PAYMENT_STATUSES = (PAYMENT_STATUS_PENDING, PAYMENT_STATUS_PARTIAL, PAYMENT_STATUS_PAID)


class Order(db.Model):
    """
    Customer order (online, wholesale or retail).

    MONEY: all amounts are integer cents.
    INVARIANTS (CHECK constraints back up the service layer):
    - total_cents == subtotal_cents + shipping_fee_cents - discount_cents
    - 0 <= paid_amount_cents <= total_cents
    - payment_status is derived from (paid_amount_cents, total_cents), never set directly
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.CheckConstraint(
            "total_cents = subtotal_cents + shipping_fee_cents - discount_cents",
            name="total_identity",
        ),
        db.CheckConstraint(
            "paid_amount_cents >= 0 AND paid_amount_cents <= total_cents",
            name="paid_within_total",
        ),
        db.CheckConstraint(
            "subtotal_cents >= 0 AND shipping_fee_cents >= 0 AND discount_cents >= 0",
            name="amounts_non_negative",
        ),
        db.Index("ix_orders_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number, e.g. "ORD-2026-001"
    order_number = db.Column(db.String(64), nullable=False, unique=True)
    type = db.Column(db.String(16), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=ORDER_STATUS_PENDING, index=True)
    payment_status = db.Column(db.String(16), nullable=False, default=PAYMENT_STATUS_PENDING, index=True)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    shipping_fee_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    paid_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    customer_name = db.Column(db.String(200), nullable=False)
    customer_phone = db.Column(db.String(50), nullable=True)
    customer_email = db.Column(db.String(255), nullable=True)
    is_wholesale = db.Column(db.Boolean, nullable=False, default=False)
    company_name = db.Column(db.String(200), nullable=True)
    shipping_address = db.Column(db.String(1000), nullable=True)
    city = db.Column(db.String(100), nullable=True)
    notes = db.Column(db.String(2000), nullable=True)

    created_by = db.Column(db.String(128), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    items = db.relationship(
        "OrderItem",
        back_populates="order",
        order_by="OrderItem.position",
        cascade="all, delete-orphan",
    )
    payments = db.relationship(
        "OrderPayment",
        back_populates="order",
        order_by="OrderPayment.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def balance_due_cents(self) -> int:
        return self.total_cents - self.paid_amount_cents

    def __repr__(self) -> str:
        return f"<Order id={self.id} number={self.order_number!r} status={self.status}>"

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "type": self.type,
            "status": self.status,
            "payment_status": self.payment_status,
            "subtotal_cents": self.subtotal_cents,
            "shipping_fee_cents": self.shipping_fee_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "paid_amount_cents": self.paid_amount_cents,
            "balance_due_cents": self.balance_due_cents,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "customer_email": self.customer_email,
            "is_wholesale": self.is_wholesale,
            "company_name": self.company_name,
            "shipping_address": self.shipping_address,
            "city": self.city,
            "notes": self.notes,
            "created_by": self.created_by,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class OrderItem(db.Model):
    """Line item on an order. unit_price_cents is a snapshot taken when the line is written."""
    __tablename__ = "order_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="quantity_positive"),
        db.CheckConstraint("total_price_cents = quantity * unit_price_cents", name="line_total_identity"),
        db.UniqueConstraint("order_id", "position", name="uq_order_items_order_position"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    # 1-based line number; ledger entries for an order are written in this order
    position = db.Column(db.Integer, nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_price_cents = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "position": self.position,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_price_cents": self.total_price_cents,
            "created_at": to_utc_z(self.created_at),
        }


class OrderPayment(db.Model):
    """
    Informational, append-only record of a customer payment.

    Not part of the stock ledger; Order.paid_amount_cents is the running total.
    """
    __tablename__ = "order_payments"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.String(500), nullable=True)
    recorded_by = db.Column(db.String(128), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order", back_populates="payments")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "amount_cents": self.amount_cents,
            "notes": self.notes,
            "recorded_by": self.recorded_by,
            "created_at": to_utc_z(self.created_at),
        }


@event.listens_for(OrderPayment, "before_update")
def _refuse_payment_update(mapper, connection, target):
    raise ImmutableRecordError(f"payment record {target.id} is immutable")


@event.listens_for(OrderPayment, "before_delete")
def _refuse_payment_delete(mapper, connection, target):
    raise ImmutableRecordError(f"payment record {target.id} cannot be deleted")
