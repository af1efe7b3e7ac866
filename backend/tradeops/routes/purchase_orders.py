# Overview: Flask API routes for purchase orders; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor
from ..services import purchase_order_service
from ..validation import ValidationError, coerce_int
from .responses import error_response, json_body

purchase_orders_bp = Blueprint("purchase_orders", __name__, url_prefix="/api/purchase-orders")


@purchase_orders_bp.get("")
def list_purchase_orders():
    orders = purchase_order_service.list_purchase_orders(
        status=request.args.get("status"),
        supplier_id=request.args.get("supplier_id", type=int),
    )
    return {"items": [po.to_dict() for po in orders], "count": len(orders)}


@purchase_orders_bp.post("")
@require_actor
def create_purchase_order():
    """Body: {"supplier_id": int, "items": [...], "notes": str?}"""
    data = json_body()
    try:
        result = purchase_order_service.create_purchase_order(
            data.get("supplier_id"),
            data.get("items"),
            notes=data.get("notes"),
            actor=g.actor_id,
        )
    except Exception:
        current_app.logger.exception("Failed to create purchase order")
        return jsonify({"error": "Internal server error"}), 500

    if not result.ok:
        return error_response(result.error)
    return {"purchase_order": result.value.to_dict(include_items=True)}, 201


@purchase_orders_bp.get("/<int:po_id>")
def get_purchase_order(po_id: int):
    po = purchase_order_service.get_purchase_order(po_id)
    if not po:
        return {"error": "Purchase order not found"}, 404
    return {"purchase_order": po.to_dict(include_items=True)}


@purchase_orders_bp.patch("/<int:po_id>/status")
@require_actor
def change_status(po_id: int):
    target = json_body().get("status")
    if not target:
        return {"error": "status required"}, 400
    try:
        result = purchase_order_service.change_purchase_order_status(po_id, target)
    except Exception:
        current_app.logger.exception("Failed to change purchase order status")
        return jsonify({"error": "Internal server error"}), 500

    if not result.ok:
        return error_response(result.error)
    return {"purchase_order": result.value.to_dict()}


@purchase_orders_bp.post("/<int:po_id>/receive")
@require_actor
def receive(po_id: int):
    """
    Body (optional): {"received": {"<item_id>": qty, ...}}

    Lines not listed are received in full.
    """
    raw = json_body().get("received") or {}
    if not isinstance(raw, dict):
        return {"error": "received must be an object of item_id -> quantity"}, 400
    try:
        received = {coerce_int(k, "item_id"): coerce_int(v, "quantity") for k, v in raw.items()}
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        result = purchase_order_service.receive_purchase_order(po_id, g.actor_id, received)
    except Exception:
        current_app.logger.exception("Failed to receive purchase order")
        return jsonify({"error": "Internal server error"}), 500

    if not result.ok:
        return error_response(result.error)
    current_app.logger.info(
        "Purchase order %s received by %s (%d stock movements)",
        result.value.po_number, g.actor_id, len(result.movements),
    )
    return {
        "purchase_order": result.value.to_dict(include_items=True),
        "movements": [m.to_dict() for m in result.movements],
    }


@purchase_orders_bp.post("/<int:po_id>/payment")
@require_actor
def record_payment(po_id: int):
    """Body: {"amount_cents": int}"""
    try:
        result = purchase_order_service.record_purchase_order_payment(
            po_id, json_body().get("amount_cents"), actor=g.actor_id
        )
    except Exception:
        current_app.logger.exception("Failed to record purchase order payment")
        return jsonify({"error": "Internal server error"}), 500

    if not result.ok:
        return error_response(result.error)
    current_app.logger.info(
        "Payment recorded on %s by %s (%s)", result.value.po_number, g.actor_id, result.value.payment_status,
    )
    return {"purchase_order": result.value.to_dict()}, 201
