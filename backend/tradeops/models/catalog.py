from __future__ import annotations

from ..extensions import db
from tradeops.time_utils import to_utc_z


class Supplier(db.Model):
    """Overseas or domestic supplier that products are bought from."""
    __tablename__ = "suppliers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False, unique=True)
    country = db.Column(db.String(100), nullable=True)
    contact_name = db.Column(db.String(200), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(50), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Supplier id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "country": self.country,
            "contact_name": self.contact_name,
            "email": self.email,
            "phone": self.phone,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Product master data with a denormalized stock counter.

    STOCK OWNERSHIP:
    current_stock is a cache of opening_stock + SUM(stock_movements.quantity).
    It is only ever written by the stock ledger service inside the same
    transaction that appends the matching StockMovement row. Catalog edits
    cannot touch it.

    CONCURRENCY:
    - Writers lock the row (SELECT ... FOR UPDATE) before the read-check-write.
    - version_id is bumped on every flush; a stale write raises StaleDataError,
      which the order coordinator reports as a ConcurrencyConflict.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("current_stock >= 0", name="current_stock_non_negative"),
        db.CheckConstraint("opening_stock >= 0", name="opening_stock_non_negative"),
        db.CheckConstraint("reorder_level >= 0", name="reorder_level_non_negative"),
        db.Index("ix_products_active_name", "is_active", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(64), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)

    # Authoritative storage in cents
    price_cents = db.Column(db.Integer, nullable=True)
    # Weighted-average landed cost, maintained on purchase-order receipt
    landed_cost_cents = db.Column(db.Integer, nullable=True)

    current_stock = db.Column(db.Integer, nullable=False, default=0)
    opening_stock = db.Column(db.Integer, nullable=False, default=0)
    reorder_level = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    supplier = db.relationship("Supplier", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_low_stock(self) -> bool:
        return self.current_stock <= self.reorder_level

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} stock={self.current_stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "supplier_id": self.supplier_id,
            "price_cents": self.price_cents,
            "landed_cost_cents": self.landed_cost_cents,
            "current_stock": self.current_stock,
            "opening_stock": self.opening_stock,
            "reorder_level": self.reorder_level,
            "is_low_stock": self.is_low_stock,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
