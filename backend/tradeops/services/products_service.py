# Overview: Service-layer operations for the product catalog; the stock counter stays owned by the ledger.

"""
Products Service

STOCK OWNERSHIP:
- create_product seeds current_stock from opening_stock; no ledger row is
  written because opening_stock is the ledger's starting point.
- update_product never writes current_stock or opening_stock. Stock changes
  go through ledger_service.adjust_stock or the order/purchase-order flows.
"""

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Product, Supplier
from ..validation import ConflictError, ValidationError, enforce_rules_product
from .concurrency import lock_for_update

PRODUCT_MUTABLE_FIELDS = {
    "sku",
    "name",
    "description",
    "supplier_id",
    "price_cents",
    "landed_cost_cents",
    "reorder_level",
    "is_active",
}


def _require_supplier(supplier_id: int | None) -> None:
    if supplier_id is not None and db.session.get(Supplier, supplier_id) is None:
        raise ValidationError(f"Supplier {supplier_id} not found")


def _require_unique_sku(sku: str, *, exclude_id: int | None = None) -> None:
    query = db.session.query(Product.id).filter(Product.sku == sku)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first() is not None:
        raise ConflictError(f"SKU {sku} already exists.")


def create_product(
    *,
    sku: str,
    name: str,
    description: str | None = None,
    supplier_id: int | None = None,
    price_cents: int | None = None,
    landed_cost_cents: int | None = None,
    opening_stock: int = 0,
    reorder_level: int = 0,
    is_active: bool = True,
) -> Product:
    """
    Create a product.

    Raises:
        ValidationError: bad numbers or unknown supplier
        ConflictError: SKU already exists
    """
    sku = (sku or "").strip()
    name = (name or "").strip()
    if not sku:
        raise ValidationError("sku is required")
    if not name:
        raise ValidationError("name is required")

    enforce_rules_product({
        "price_cents": price_cents,
        "landed_cost_cents": landed_cost_cents,
        "opening_stock": opening_stock,
        "reorder_level": reorder_level,
    })
    _require_supplier(supplier_id)
    _require_unique_sku(sku)

    product = Product(
        sku=sku,
        name=name,
        description=description,
        supplier_id=supplier_id,
        price_cents=price_cents,
        landed_cost_cents=landed_cost_cents,
        opening_stock=opening_stock,
        current_stock=opening_stock,
        reorder_level=reorder_level,
        is_active=is_active,
    )
    db.session.add(product)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"SKU {sku} already exists.")
    return product


def update_product(product_id: int, patch: dict) -> Product | None:
    """Apply a catalog patch. Returns None when the product does not exist."""
    illegal = sorted(set(patch) - PRODUCT_MUTABLE_FIELDS)
    if illegal:
        raise ValidationError(f"Field not allowed: {illegal[0]}")
    enforce_rules_product(patch)

    product = lock_for_update(db.session.query(Product).filter(Product.id == product_id)).first()
    if product is None:
        return None

    if "sku" in patch:
        patch["sku"] = (patch["sku"] or "").strip()
        if not patch["sku"]:
            raise ValidationError("sku cannot be blank")
        _require_unique_sku(patch["sku"], exclude_id=product.id)
    if "supplier_id" in patch:
        _require_supplier(patch["supplier_id"])

    for k, v in patch.items():
        setattr(product, k, v)

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"SKU {patch.get('sku')} already exists.")
    return product


def get_product(product_id: int) -> Product | None:
    return db.session.get(Product, product_id)


def list_products(*, low_stock_only: bool = False, include_inactive: bool = True) -> list[Product]:
    query = db.session.query(Product)
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    if low_stock_only:
        query = query.filter(Product.current_stock <= Product.reorder_level)
    return query.order_by(Product.name.asc(), Product.id.asc()).all()


def low_stock_products() -> list[dict]:
    """Active products at or below their reorder level, out-of-stock ones included, neediest first."""
    products = (
        db.session.query(Product)
        .filter(Product.is_active.is_(True), Product.current_stock <= Product.reorder_level)
        .order_by(Product.current_stock.asc(), Product.sku.asc())
        .all()
    )
    rows = []
    for p in products:
        data = p.to_dict()
        data["out_of_stock"] = p.current_stock == 0
        data["stock_needed"] = max(p.reorder_level - p.current_stock, 0)
        rows.append(data)
    return rows
