# Overview: Service-layer operations for suppliers; encapsulates business logic and database work.

"""
Supplier Service

Suppliers are plain master data: products and purchase orders point at them,
nothing here touches stock.
"""

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Supplier
from ..validation import ConflictError, ValidationError


def create_supplier(
    *,
    name: str,
    country: str | None = None,
    contact_name: str | None = None,
    email: str | None = None,
    phone: str | None = None,
    notes: str | None = None,
) -> Supplier:
    """
    Create a supplier.

    Raises:
        ValidationError: name missing
        ConflictError: a supplier with that name already exists
    """
    name = (name or "").strip()
    if not name:
        raise ValidationError("Supplier name is required")

    existing = db.session.query(Supplier.id).filter(Supplier.name == name).first()
    if existing:
        raise ConflictError(f"Supplier {name} already exists.")

    supplier = Supplier(
        name=name,
        country=country,
        contact_name=contact_name,
        email=email.strip().lower() if email else None,
        phone=phone,
        notes=notes,
    )
    db.session.add(supplier)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"Supplier {name} already exists.")
    return supplier


def get_supplier(supplier_id: int) -> Supplier | None:
    return db.session.get(Supplier, supplier_id)


def list_suppliers() -> list[Supplier]:
    return db.session.query(Supplier).order_by(Supplier.name.asc()).all()
