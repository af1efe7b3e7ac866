# Overview: Shared JSON error responses for API routes.

from flask import jsonify, request

from ..services.errors import (
    ConcurrencyConflict,
    OrderNotFound,
    OrderOperationError,
    ProductNotFound,
    PurchaseOrderNotFound,
    ShipmentNotFound,
)

NOT_FOUND_ERRORS = (OrderNotFound, ProductNotFound, PurchaseOrderNotFound, ShipmentNotFound)


def status_for(error: OrderOperationError) -> int:
    if isinstance(error, NOT_FOUND_ERRORS):
        return 404
    if isinstance(error, ConcurrencyConflict):
        return 409
    return 400


def error_response(error: OrderOperationError):
    return jsonify(error.to_dict()), status_for(error)


def json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}
