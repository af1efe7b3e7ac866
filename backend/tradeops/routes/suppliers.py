# Overview: Flask API routes for suppliers; parses input and returns JSON responses.

from flask import Blueprint, request

from ..decorators import require_actor
from ..models import Supplier
from ..services import supplier_service
from ..validation import SUPPLIER_POLICY, ConflictError, ValidationError, validate_payload

suppliers_bp = Blueprint("suppliers", __name__, url_prefix="/api/suppliers")


@suppliers_bp.get("")
def list_suppliers():
    suppliers = supplier_service.list_suppliers()
    return {"items": [s.to_dict() for s in suppliers], "count": len(suppliers)}


@suppliers_bp.post("")
@require_actor
def create_supplier():
    try:
        patch = validate_payload(
            model=Supplier,
            payload=request.get_json(silent=True),
            policy=SUPPLIER_POLICY,
            partial=False,
        )
        supplier = supplier_service.create_supplier(**patch)
        return {"supplier": supplier.to_dict()}, 201
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409
