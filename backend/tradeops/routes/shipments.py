# Overview: Flask API routes for shipments and shipping companies; parses input and returns JSON responses.

"""
Shipment endpoints.

Delivering a shipment (PATCH /status to 'delivered') receives its purchase
order into stock and returns the ledger entries it wrote. Status changes are
retried on ConcurrencyConflict like order status changes.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor
from ..models import ShippingCompany
from ..models.shipping import SHIPMENT_STATUSES
from ..services import shipment_service, shipping_company_service
from ..services.concurrency import run_with_retry
from ..services.errors import OrderOperationError
from ..validation import (
    SHIPPING_COMPANY_POLICY,
    ConflictError,
    ValidationError,
    validate_payload,
)
from .responses import error_response, json_body

shipments_bp = Blueprint("shipments", __name__, url_prefix="/api/shipments")
shipping_companies_bp = Blueprint("shipping_companies", __name__, url_prefix="/api/shipping-companies")

SHIPMENT_OPTIONAL_KEYS = (
    "shipping_cost_cents",
    "customs_duty_cents",
    "other_fees_cents",
    "departure_date",
    "estimated_arrival",
    "tracking_number",
    "total_weight_kg",
    "total_volume_cbm",
    "notes",
)


@shipments_bp.get("")
def list_shipments():
    shipments = shipment_service.list_shipments(
        status=request.args.get("status"),
        shipping_company_id=request.args.get("shipping_company_id", type=int),
        purchase_order_id=request.args.get("purchase_order_id", type=int),
    )
    return {"items": [s.to_dict() for s in shipments], "count": len(shipments)}


@shipments_bp.post("")
@require_actor
def create_shipment():
    """
    Body: {"purchase_order_id": int, "shipping_company_id": int, "method": "sea"|"air"|"courier", ...}

    shipping_cost_cents is quoted from the company's rates when omitted.
    """
    data = json_body()
    try:
        result = shipment_service.create_shipment(
            data.get("purchase_order_id"),
            data.get("shipping_company_id"),
            data.get("method"),
            actor=g.actor_id,
            **{k: data[k] for k in SHIPMENT_OPTIONAL_KEYS if k in data},
        )
    except Exception:
        current_app.logger.exception("Failed to create shipment")
        return jsonify({"error": "Internal server error"}), 500

    if not result.ok:
        return error_response(result.error)
    current_app.logger.info(
        "Shipment %s opened for purchase order %s by %s",
        result.value.shipment_number, result.value.purchase_order_id, g.actor_id,
    )
    return {"shipment": result.value.to_dict()}, 201


@shipments_bp.post("/calculate-cost")
def calculate_cost():
    """Body: {"shipping_company_id": int, "method": str, "total_weight_kg"?, "total_volume_cbm"?}"""
    data = json_body()
    try:
        quote = shipment_service.calculate_shipping_cost(
            data.get("shipping_company_id"),
            data.get("method"),
            total_weight_kg=data.get("total_weight_kg"),
            total_volume_cbm=data.get("total_volume_cbm"),
        )
    except OrderOperationError as e:
        return error_response(e)
    return quote


@shipments_bp.get("/<int:shipment_id>")
def get_shipment(shipment_id: int):
    shipment = shipment_service.get_shipment(shipment_id)
    if not shipment:
        return {"error": "Shipment not found"}, 404
    return {
        "shipment": shipment.to_dict(),
        "purchase_order": shipment.purchase_order.to_dict(include_items=True),
        "shipping_company": shipment.shipping_company.to_dict(),
    }


@shipments_bp.patch("/<int:shipment_id>")
@require_actor
def update_shipment(shipment_id: int):
    data = json_body()
    if not data:
        return {"error": "No changes supplied"}, 400
    try:
        result = shipment_service.update_shipment(shipment_id, **data)
    except Exception:
        current_app.logger.exception("Failed to update shipment")
        return jsonify({"error": "Internal server error"}), 500

    if not result.ok:
        return error_response(result.error)
    return {"shipment": result.value.to_dict()}


@shipments_bp.delete("/<int:shipment_id>")
@require_actor
def delete_shipment(shipment_id: int):
    try:
        result = shipment_service.delete_shipment(shipment_id)
    except Exception:
        current_app.logger.exception("Failed to delete shipment")
        return jsonify({"error": "Internal server error"}), 500

    if not result.ok:
        return error_response(result.error)
    current_app.logger.info("Shipment %s deleted by %s", shipment_id, g.actor_id)
    return {"purchase_order": result.value.to_dict()}


@shipments_bp.patch("/<int:shipment_id>/status")
@require_actor
def change_status(shipment_id: int):
    """
    Body: {"status": "<target>"}

    Returns the shipment plus the stock movements a delivery wrote.
    """
    target = json_body().get("status")
    if not target:
        return {"error": "status required", "allowed": list(SHIPMENT_STATUSES)}, 400

    def _on_retry(attempt, error):
        current_app.logger.warning(
            "Concurrency conflict changing shipment %s to %s (attempt %s): %s",
            shipment_id, target, attempt, error.details,
        )

    try:
        result = run_with_retry(
            lambda: shipment_service.change_shipment_status(shipment_id, target, g.actor_id),
            attempts=current_app.config.get("STATUS_CHANGE_RETRY_ATTEMPTS", 3),
            on_retry=_on_retry,
        )
    except Exception:
        current_app.logger.exception("Failed to change shipment status")
        return jsonify({"error": "Internal server error"}), 500

    if not result.ok:
        return error_response(result.error)
    current_app.logger.info(
        "Shipment %s moved to %s by %s (%d stock movements)",
        result.value.shipment_number, result.value.status, g.actor_id, len(result.movements),
    )
    return {
        "shipment": result.value.to_dict(),
        "movements": [m.to_dict() for m in result.movements],
    }


@shipments_bp.post("/<int:shipment_id>/payment")
@require_actor
def record_payment(shipment_id: int):
    """Body: {"amount_cents": int}"""
    try:
        result = shipment_service.record_shipment_payment(
            shipment_id, json_body().get("amount_cents"), actor=g.actor_id
        )
    except Exception:
        current_app.logger.exception("Failed to record shipment payment")
        return jsonify({"error": "Internal server error"}), 500

    if not result.ok:
        return error_response(result.error)
    return {"shipment": result.value.to_dict()}, 201


@shipping_companies_bp.get("")
def list_shipping_companies():
    include_inactive = request.args.get("include_inactive", "true").lower() != "false"
    companies = shipping_company_service.list_shipping_companies(include_inactive=include_inactive)
    return {"items": [c.to_dict() for c in companies], "count": len(companies)}


@shipping_companies_bp.post("")
@require_actor
def create_shipping_company():
    try:
        patch = validate_payload(
            model=ShippingCompany,
            payload=request.get_json(silent=True),
            policy=SHIPPING_COMPANY_POLICY,
            partial=False,
        )
        company = shipping_company_service.create_shipping_company(**patch)
        return {"shipping_company": company.to_dict()}, 201
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409


@shipping_companies_bp.get("/<int:company_id>")
def get_shipping_company(company_id: int):
    company = shipping_company_service.get_shipping_company(company_id)
    if not company:
        return {"error": "Shipping company not found"}, 404
    return {"shipping_company": company.to_dict()}
