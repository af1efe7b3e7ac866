from __future__ import annotations

import enum
from dataclasses import dataclass

from sqlalchemy import event

from ..extensions import db
from tradeops.time_utils import to_utc_z


MOVEMENT_IN = "in"
MOVEMENT_OUT = "out"
MOVEMENT_ADJUSTMENT = "adjustment"
MOVEMENT_TYPES = frozenset({MOVEMENT_IN, MOVEMENT_OUT, MOVEMENT_ADJUSTMENT})

REASON_SALE = "sale"
REASON_RETURN = "return"
REASON_SHIPMENT_RECEIVED = "shipment_received"
REASON_DAMAGE = "damage"
REASON_LOSS = "loss"
REASON_FOUND = "found"
REASON_CORRECTION = "correction"
REASON_OTHER = "other"
MOVEMENT_REASONS = frozenset({
    REASON_SALE,
    REASON_RETURN,
    REASON_SHIPMENT_RECEIVED,
    REASON_DAMAGE,
    REASON_LOSS,
    REASON_FOUND,
    REASON_CORRECTION,
    REASON_OTHER,
})


class ReferenceType(str, enum.Enum):
    """Closed set of business objects a stock movement can point at."""

    ORDER = "Order"
    PURCHASE_ORDER = "PurchaseOrder"
    SHIPMENT = "Shipment"
    MANUAL = "Manual"


class ImmutableRecordError(RuntimeError):
    """Raised when code tries to update or delete an append-only row."""


@dataclass(frozen=True)
class StockReference:
    """
    The business object that caused a stock movement.

    Manual references carry no id; every other kind must name the object.
    Use the constructors rather than building instances by hand.
    """

    kind: ReferenceType
    id: int | None = None

    def __post_init__(self):
        if not isinstance(self.kind, ReferenceType):
            raise ValueError(f"unknown reference kind: {self.kind!r}")
        if self.kind is ReferenceType.MANUAL:
            if self.id is not None:
                raise ValueError("manual references do not carry an id")
        elif self.id is None:
            raise ValueError(f"{self.kind.value} reference requires an id")

    @classmethod
    def order(cls, order_id: int) -> "StockReference":
        return cls(ReferenceType.ORDER, order_id)

    @classmethod
    def purchase_order(cls, purchase_order_id: int) -> "StockReference":
        return cls(ReferenceType.PURCHASE_ORDER, purchase_order_id)

    @classmethod
    def shipment(cls, shipment_id: int) -> "StockReference":
        return cls(ReferenceType.SHIPMENT, shipment_id)

    @classmethod
    def manual(cls) -> "StockReference":
        return cls(ReferenceType.MANUAL)

    @classmethod
    def from_columns(cls, reference_type: str, reference_id: int | None) -> "StockReference":
        return cls(ReferenceType(reference_type), reference_id)


class StockMovement(db.Model):
    """
    Append-only stock ledger entry.

    INVARIANTS:
    - stock_after - stock_before == quantity (also enforced by a CHECK constraint)
    - quantity is signed: positive increases stock, negative decreases it
    - rows are never updated or deleted (ORM hooks below refuse it)
    - written in the same transaction as the Product.current_stock update
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.CheckConstraint("quantity <> 0", name="quantity_non_zero"),
        db.CheckConstraint("stock_after - stock_before = quantity", name="snapshot_matches_quantity"),
        db.CheckConstraint("stock_after >= 0", name="stock_after_non_negative"),
        db.CheckConstraint(
            "(type = 'in' AND quantity > 0) OR (type = 'out' AND quantity < 0) OR type = 'adjustment'",
            name="type_matches_sign",
        ),
        db.CheckConstraint(
            "(reference_type = 'Manual' AND reference_id IS NULL) "
            "OR (reference_type <> 'Manual' AND reference_id IS NOT NULL)",
            name="reference_shape",
        ),
        db.Index("ix_stock_movements_product_created", "product_id", "created_at"),
        db.Index("ix_stock_movements_reference", "reference_type", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False, index=True)
    reason = db.Column(db.String(32), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)

    # Polymorphic pointer, not a foreign key
    reference_type = db.Column(db.String(32), nullable=False)
    reference_id = db.Column(db.Integer, nullable=True)

    stock_before = db.Column(db.Integer, nullable=False)
    stock_after = db.Column(db.Integer, nullable=False)

    # Receipts only
    unit_cost_cents = db.Column(db.Integer, nullable=True)
    landed_cost_cents = db.Column(db.Integer, nullable=True)

    notes = db.Column(db.String(1000), nullable=True)
    created_by = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("stock_movements", lazy=True))

    @property
    def reference(self) -> StockReference:
        return StockReference.from_columns(self.reference_type, self.reference_id)

    def __repr__(self) -> str:
        return (
            f"<StockMovement id={self.id} product_id={self.product_id} type={self.type} "
            f"quantity={self.quantity} {self.stock_before}->{self.stock_after}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "type": self.type,
            "reason": self.reason,
            "quantity": self.quantity,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "stock_before": self.stock_before,
            "stock_after": self.stock_after,
            "unit_cost_cents": self.unit_cost_cents,
            "landed_cost_cents": self.landed_cost_cents,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }


@event.listens_for(StockMovement, "before_update")
def _refuse_movement_update(mapper, connection, target):
    raise ImmutableRecordError(f"stock movement {target.id} is immutable")


@event.listens_for(StockMovement, "before_delete")
def _refuse_movement_delete(mapper, connection, target):
    raise ImmutableRecordError(f"stock movement {target.id} cannot be deleted")
