# Overview: Service-layer operations for shipping companies; forwarder master data and rates.

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import ShippingCompany
from ..validation import ConflictError, ValidationError, enforce_rules_shipping_company


def create_shipping_company(*, name: str, **fields) -> ShippingCompany:
    """
    Create a shipping company from an already validated patch.

    Raises:
        ValidationError: name missing or a negative rate
        ConflictError: a company with that name already exists
    """
    name = (name or "").strip()
    if not name:
        raise ValidationError("Shipping company name is required")
    enforce_rules_shipping_company(fields)

    if db.session.query(ShippingCompany.id).filter(ShippingCompany.name == name).first():
        raise ConflictError(f"Shipping company {name} already exists.")

    email = fields.pop("email", None)
    company = ShippingCompany(
        name=name,
        email=email.strip().lower() if email else None,
        **fields,
    )
    db.session.add(company)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"Shipping company {name} already exists.")
    return company


def get_shipping_company(company_id: int) -> ShippingCompany | None:
    return db.session.get(ShippingCompany, company_id)


def list_shipping_companies(*, include_inactive: bool = True) -> list[ShippingCompany]:
    query = db.session.query(ShippingCompany)
    if not include_inactive:
        query = query.filter(ShippingCompany.is_active.is_(True))
    return query.order_by(ShippingCompany.name.asc()).all()
