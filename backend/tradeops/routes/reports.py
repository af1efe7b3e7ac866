# Overview: Flask API routes for reports; parses input and returns JSON responses.

from flask import Blueprint, request, current_app

from ..services import reporting_service
from ..services.reporting_service import ReportError

reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/revenue")
def revenue():
    """Query params: start, end (ISO-8601, optional)."""
    try:
        return reporting_service.revenue_summary(request.args.get("start"), request.args.get("end"))
    except ReportError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to build revenue report")
        return {"error": "Internal server error"}, 500


@reports_bp.get("/profit")
def profit():
    """Query params: start, end (ISO-8601, optional)."""
    try:
        return reporting_service.profit_summary(request.args.get("start"), request.args.get("end"))
    except ReportError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to build profit report")
        return {"error": "Internal server error"}, 500


@reports_bp.get("/stock-value")
def stock_value():
    return reporting_service.stock_value_summary()
