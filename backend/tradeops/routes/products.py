# Overview: Flask API routes for products and stock; parses input and returns JSON responses.

"""
Product catalog and stock ledger routes.

current_stock is read-only here: stock changes only through /adjust, order
status changes and purchase-order receipts, each of which writes the ledger.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor
from ..models import Product, StockReference
from ..models.stock import ReferenceType
from ..services import ledger_service, products_service
from ..services.errors import ProductNotFound
from ..validation import (
    PRODUCT_CREATE_POLICY,
    PRODUCT_UPDATE_POLICY,
    ConflictError,
    ValidationError,
    coerce_int,
    validate_payload,
)
from .responses import error_response, json_body

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products():
    """
    Query params:
    - low_stock: "1"/"true" to return only products at or below reorder level
    """
    low_stock_only = request.args.get("low_stock", "").lower() in {"1", "true", "yes"}
    products = products_service.list_products(low_stock_only=low_stock_only)
    return {"items": [p.to_dict() for p in products], "count": len(products)}


@products_bp.get("/low-stock")
def low_stock():
    rows = products_service.low_stock_products()
    return {"items": rows, "count": len(rows)}


@products_bp.post("")
@require_actor
def create_product():
    try:
        patch = validate_payload(
            model=Product,
            payload=request.get_json(silent=True),
            policy=PRODUCT_CREATE_POLICY,
            partial=False,
        )
        product = products_service.create_product(**patch)
        current_app.logger.info("Product %s created by %s", product.sku, g.actor_id)
        return {"product": product.to_dict()}, 201
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409


@products_bp.get("/<int:product_id>")
def get_product(product_id: int):
    product = products_service.get_product(product_id)
    if not product:
        return {"error": "Product not found"}, 404
    return {"product": product.to_dict()}


@products_bp.patch("/<int:product_id>")
@require_actor
def update_product(product_id: int):
    try:
        patch = validate_payload(
            model=Product,
            payload=request.get_json(silent=True),
            policy=PRODUCT_UPDATE_POLICY,
            partial=True,
        )
        product = products_service.update_product(product_id, patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409

    if not product:
        return {"error": "Product not found"}, 404
    return {"product": product.to_dict()}


@products_bp.post("/<int:product_id>/adjust")
@require_actor
def adjust_stock(product_id: int):
    """
    Manual stock adjustment.

    Body: {"quantity": int (non-zero, signed), "reason": str, "notes": str (>= 5 chars)}
    """
    data = json_body()
    try:
        quantity = coerce_int(data.get("quantity"), "quantity")
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        result = ledger_service.adjust_stock(
            product_id,
            quantity,
            data.get("reason"),
            data.get("notes"),
            g.actor_id,
        )
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500

    if not result.ok:
        return error_response(result.error)
    movement = result.movements[0]
    current_app.logger.info(
        "Stock adjusted for product %s by %s: %+d (%s)",
        product_id, g.actor_id, movement.quantity, movement.reason,
    )
    return {"product": result.value.to_dict(), "movement": movement.to_dict()}, 201


@products_bp.get("/<int:product_id>/movements")
def list_movements(product_id: int):
    """
    Query params:
    - type: in | out | adjustment
    - reference_type / reference_id: filter by causing document
    - limit: int (default 200, max 1000)
    """
    if not products_service.get_product(product_id):
        return {"error": "Product not found"}, 404

    reference = None
    reference_type = request.args.get("reference_type")
    if reference_type:
        try:
            reference = StockReference(
                ReferenceType(reference_type),
                request.args.get("reference_id", type=int),
            )
        except ValueError as e:
            return {"error": str(e)}, 400

    limit = min(request.args.get("limit", default=200, type=int) or 200, 1000)
    movements = ledger_service.list_movements(
        product_id=product_id,
        reference=reference,
        movement_type=request.args.get("type"),
        limit=limit,
    )
    return {"items": [m.to_dict() for m in movements], "count": len(movements)}


@products_bp.get("/<int:product_id>/reconcile")
def reconcile(product_id: int):
    try:
        return {"reconciliation": ledger_service.reconcile_product_stock(product_id)}
    except ProductNotFound as e:
        return error_response(e)
