# Overview: Flask API routes for orders; parses input and returns JSON responses.

"""
Order routes.

Mutations require the X-Actor-Id header. Status changes are retried here on
ConcurrencyConflict (STATUS_CHANGE_RETRY_ATTEMPTS); the service itself never
retries.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor
from ..models.orders import ORDER_STATUSES
from ..services import order_service, order_status_service, payment_service
from ..services.concurrency import run_with_retry
from .responses import error_response, json_body


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")

CUSTOMER_KEYS = (
    "customer_phone",
    "customer_email",
    "company_name",
    "shipping_address",
    "city",
    "is_wholesale",
    "notes",
)


@orders_bp.post("")
@require_actor
def create_order_route():
    data = json_body()
    try:
        result = order_service.create_order(
            data.get("type"),
            data.get("customer_name"),
            data.get("items"),
            shipping_fee_cents=data.get("shipping_fee_cents", 0),
            discount_cents=data.get("discount_cents", 0),
            actor=g.actor_id,
            **{k: data.get(k) for k in CUSTOMER_KEYS},
        )
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500

    if not result.ok:
        return error_response(result.error)
    current_app.logger.info("Order %s created by %s", result.value.order_number, g.actor_id)
    return jsonify({"order": result.value.to_dict(include_items=True)}), 201


@orders_bp.get("")
def list_orders_route():
    """
    Query params:
    - status, payment_status, type: exact-match filters
    - limit: int (default 100, max 500)
    """
    limit = min(request.args.get("limit", default=100, type=int) or 100, 500)
    orders = order_service.list_orders(
        status=request.args.get("status"),
        payment_status=request.args.get("payment_status"),
        order_type=request.args.get("type"),
        limit=limit,
    )
    return jsonify({"items": [o.to_dict() for o in orders], "count": len(orders)}), 200


@orders_bp.get("/<int:order_id>")
def get_order_route(order_id: int):
    order = order_service.get_order(order_id)
    if not order:
        return jsonify({"error": "Order not found"}), 404
    return jsonify({"order": order.to_dict(include_items=True)}), 200


@orders_bp.patch("/<int:order_id>")
@require_actor
def update_order_route(order_id: int):
    data = json_body()
    if not data:
        return jsonify({"error": "No changes supplied"}), 400
    try:
        changes = {k: v for k, v in data.items() if k != "actor"}
        result = order_service.update_order(order_id, actor=g.actor_id, **changes)
    except Exception:
        current_app.logger.exception("Failed to update order")
        return jsonify({"error": "Internal server error"}), 500

    if not result.ok:
        return error_response(result.error)
    return jsonify({"order": result.value.to_dict(include_items=True)}), 200


@orders_bp.patch("/<int:order_id>/status")
@require_actor
def change_status_route(order_id: int):
    """
    Body: {"status": "<target>"}

    Returns the updated order plus the stock movements the change wrote.
    """
    data = json_body()
    target = data.get("status")
    if not target:
        return jsonify({"error": "status required", "allowed": list(ORDER_STATUSES)}), 400

    def _on_retry(attempt, error):
        current_app.logger.warning(
            "Concurrency conflict changing order %s to %s (attempt %s): %s",
            order_id, target, attempt, error.details,
        )

    try:
        result = run_with_retry(
            lambda: order_status_service.change_order_status(order_id, target, g.actor_id),
            attempts=current_app.config.get("STATUS_CHANGE_RETRY_ATTEMPTS", 3),
            on_retry=_on_retry,
        )
    except Exception:
        current_app.logger.exception("Failed to change order status")
        return jsonify({"error": "Internal server error"}), 500

    if not result.ok:
        if result.error.retryable:
            current_app.logger.warning("Giving up on order %s status change: %s", order_id, result.error.message)
        return error_response(result.error)

    current_app.logger.info(
        "Order %s moved to %s by %s (%d stock movements)",
        result.value.order_number, result.value.status, g.actor_id, len(result.movements),
    )
    return jsonify({
        "order": result.value.to_dict(include_items=True),
        "movements": [m.to_dict() for m in result.movements],
    }), 200


@orders_bp.post("/<int:order_id>/payment")
@require_actor
def record_payment_route(order_id: int):
    """Body: {"amount_cents": int, "notes": str?}"""
    data = json_body()
    try:
        result = payment_service.record_payment(
            order_id,
            data.get("amount_cents"),
            notes=data.get("notes"),
            actor=g.actor_id,
        )
    except Exception:
        current_app.logger.exception("Failed to record payment")
        return jsonify({"error": "Internal server error"}), 500

    if not result.ok:
        return error_response(result.error)
    return jsonify({"order": result.value.to_dict()}), 201


@orders_bp.get("/<int:order_id>/payments")
def list_payments_route(order_id: int):
    if not order_service.get_order(order_id):
        return jsonify({"error": "Order not found"}), 404
    payments = payment_service.list_payments(order_id)
    return jsonify({"items": [p.to_dict() for p in payments], "count": len(payments)}), 200
