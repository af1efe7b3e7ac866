from __future__ import annotations

from ..extensions import db
from tradeops.time_utils import to_utc_z
from .orders import PAYMENT_STATUS_PENDING


SHIPPING_METHOD_SEA = "sea"
SHIPPING_METHOD_AIR = "air"
SHIPPING_METHOD_COURIER = "courier"
SHIPPING_METHODS = (SHIPPING_METHOD_SEA, SHIPPING_METHOD_AIR, SHIPPING_METHOD_COURIER)

SHIPMENT_STATUS_PENDING = "pending"
SHIPMENT_STATUS_IN_TRANSIT = "in_transit"
SHIPMENT_STATUS_CUSTOMS = "customs"
SHIPMENT_STATUS_DELIVERED = "delivered"
SHIPMENT_STATUSES = (
    SHIPMENT_STATUS_PENDING,
    SHIPMENT_STATUS_IN_TRANSIT,
    SHIPMENT_STATUS_CUSTOMS,
    SHIPMENT_STATUS_DELIVERED,
)


def _decimal_or_none(value):
    return None if value is None else str(value)


class ShippingCompany(db.Model):
    """Freight forwarder or courier with its published rates (cents)."""
    __tablename__ = "shipping_companies"
    __table_args__ = (
        db.CheckConstraint(
            "(rate_per_kg_cents IS NULL OR rate_per_kg_cents >= 0) AND "
            "(rate_per_cbm_cents IS NULL OR rate_per_cbm_cents >= 0) AND "
            "(min_charge_cents IS NULL OR min_charge_cents >= 0)",
            name="rates_non_negative",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False, unique=True)
    contact_name = db.Column(db.String(200), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(50), nullable=True)
    rate_per_kg_cents = db.Column(db.Integer, nullable=True)
    rate_per_cbm_cents = db.Column(db.Integer, nullable=True)
    min_charge_cents = db.Column(db.Integer, nullable=True)
    transit_time = db.Column(db.String(64), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<ShippingCompany id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "contact_name": self.contact_name,
            "email": self.email,
            "phone": self.phone,
            "rate_per_kg_cents": self.rate_per_kg_cents,
            "rate_per_cbm_cents": self.rate_per_cbm_cents,
            "min_charge_cents": self.min_charge_cents,
            "transit_time": self.transit_time,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Shipment(db.Model):
    """
    Inbound freight carrying one purchase order.

    LIFECYCLE:
        pending -> in_transit -> customs -> delivered
    Delivery receives the purchase order into stock in the same transaction,
    with freight, duty and fees folded into the landed cost.

    MONEY (cents):
    - total_cost_cents == shipping_cost_cents + customs_duty_cents + other_fees_cents
    - 0 <= paid_amount_cents <= total_cost_cents, payment_status derived
    """
    __tablename__ = "shipments"
    __table_args__ = (
        db.CheckConstraint(
            "total_cost_cents = shipping_cost_cents + customs_duty_cents + other_fees_cents",
            name="total_identity",
        ),
        db.CheckConstraint(
            "paid_amount_cents >= 0 AND paid_amount_cents <= total_cost_cents",
            name="paid_within_total",
        ),
        db.CheckConstraint(
            "shipping_cost_cents >= 0 AND customs_duty_cents >= 0 AND other_fees_cents >= 0",
            name="costs_non_negative",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shipment_number = db.Column(db.String(64), nullable=False, unique=True)
    purchase_order_id = db.Column(
        db.Integer, db.ForeignKey("purchase_orders.id"), nullable=False, unique=True
    )
    shipping_company_id = db.Column(
        db.Integer, db.ForeignKey("shipping_companies.id"), nullable=False, index=True
    )

    method = db.Column(db.String(16), nullable=False)
    tracking_number = db.Column(db.String(128), nullable=True)
    status = db.Column(db.String(16), nullable=False, default=SHIPMENT_STATUS_PENDING, index=True)

    departure_date = db.Column(db.DateTime(timezone=True), nullable=True)
    estimated_arrival = db.Column(db.DateTime(timezone=True), nullable=True)
    actual_arrival = db.Column(db.DateTime(timezone=True), nullable=True)

    total_weight_kg = db.Column(db.Numeric(12, 3), nullable=True)
    total_volume_cbm = db.Column(db.Numeric(12, 3), nullable=True)

    shipping_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    customs_duty_cents = db.Column(db.Integer, nullable=False, default=0)
    other_fees_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    paid_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    payment_status = db.Column(db.String(16), nullable=False, default=PAYMENT_STATUS_PENDING)

    notes = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.String(128), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    purchase_order = db.relationship(
        "PurchaseOrder", backref=db.backref("shipment", uselist=False, lazy=True)
    )
    shipping_company = db.relationship(
        "ShippingCompany", backref=db.backref("shipments", lazy=True)
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Shipment id={self.id} number={self.shipment_number!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shipment_number": self.shipment_number,
            "purchase_order_id": self.purchase_order_id,
            "shipping_company_id": self.shipping_company_id,
            "method": self.method,
            "tracking_number": self.tracking_number,
            "status": self.status,
            "departure_date": to_utc_z(self.departure_date),
            "estimated_arrival": to_utc_z(self.estimated_arrival),
            "actual_arrival": to_utc_z(self.actual_arrival),
            "total_weight_kg": _decimal_or_none(self.total_weight_kg),
            "total_volume_cbm": _decimal_or_none(self.total_volume_cbm),
            "shipping_cost_cents": self.shipping_cost_cents,
            "customs_duty_cents": self.customs_duty_cents,
            "other_fees_cents": self.other_fees_cents,
            "total_cost_cents": self.total_cost_cents,
            "paid_amount_cents": self.paid_amount_cents,
            "payment_status": self.payment_status,
            "balance_due_cents": self.total_cost_cents - (self.paid_amount_cents or 0),
            "notes": self.notes,
            "created_by": self.created_by,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
