from __future__ import annotations

from ..extensions import db
from tradeops.time_utils import to_utc_z
from .orders import PAYMENT_STATUS_PENDING


PO_STATUS_DRAFT = "draft"
PO_STATUS_SENT = "sent"
PO_STATUS_CONFIRMED = "confirmed"
PO_STATUS_PRODUCING = "producing"
PO_STATUS_SHIPPED = "shipped"
PO_STATUS_RECEIVED = "received"
PO_STATUSES = (
    PO_STATUS_DRAFT,
    PO_STATUS_SENT,
    PO_STATUS_CONFIRMED,
    PO_STATUS_PRODUCING,
    PO_STATUS_SHIPPED,
    PO_STATUS_RECEIVED,
)


class PurchaseOrder(db.Model):
    """
    Purchase order placed with a supplier.

    LIFECYCLE:
        draft -> sent -> confirmed -> producing -> shipped -> received
    with single backward steps allowed before shipping. Receipt is the only
    way into 'received' and is what writes stock_movements rows. A purchase
    order with a shipment is received when that shipment is delivered.

    Supplier payments are tracked separately from the lifecycle:
    0 <= paid_amount_cents <= total_cost_cents, payment_status derived.
    """
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.CheckConstraint(
            "paid_amount_cents >= 0 AND paid_amount_cents <= total_cost_cents",
            name="paid_within_total",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    po_number = db.Column(db.String(64), nullable=False, unique=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=PO_STATUS_DRAFT, index=True)
    total_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    paid_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    payment_status = db.Column(db.String(16), nullable=False, default=PAYMENT_STATUS_PENDING)
    notes = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.String(128), nullable=True)
    received_by = db.Column(db.String(128), nullable=True)
    received_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    supplier = db.relationship("Supplier", backref=db.backref("purchase_orders", lazy=True))
    items = db.relationship(
        "PurchaseOrderItem",
        back_populates="purchase_order",
        order_by="PurchaseOrderItem.position",
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "po_number": self.po_number,
            "supplier_id": self.supplier_id,
            "status": self.status,
            "total_cost_cents": self.total_cost_cents,
            "paid_amount_cents": self.paid_amount_cents,
            "payment_status": self.payment_status,
            "balance_due_cents": self.total_cost_cents - (self.paid_amount_cents or 0),
            "notes": self.notes,
            "created_by": self.created_by,
            "received_by": self.received_by,
            "received_at": to_utc_z(self.received_at) if self.received_at else None,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class PurchaseOrderItem(db.Model):
    __tablename__ = "purchase_order_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="quantity_positive"),
        db.CheckConstraint("received_quantity >= 0", name="received_non_negative"),
        db.UniqueConstraint("purchase_order_id", "position", name="uq_po_items_po_position"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False)
    # Unit cost including freight/duty share; falls back to unit_cost_cents on receipt
    landed_cost_cents = db.Column(db.Integer, nullable=True)
    received_quantity = db.Column(db.Integer, nullable=False, default=0)

    purchase_order = db.relationship("PurchaseOrder", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_order_id": self.purchase_order_id,
            "product_id": self.product_id,
            "position": self.position,
            "quantity": self.quantity,
            "unit_cost_cents": self.unit_cost_cents,
            "landed_cost_cents": self.landed_cost_cents,
            "received_quantity": self.received_quantity,
        }
