# Overview: Flask API routes for supplier records.

from flask import Blueprint, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import ServiceError, error_response, unexpected_error_response
from ..models.auth import ROLE_STOCK_CLERK
from ..services import supplier_service

suppliers_bp = Blueprint("suppliers", __name__, url_prefix="/api/suppliers")


@suppliers_bp.get("")
@require_auth
def list_suppliers_route():
    suppliers = supplier_service.list_suppliers(search=request.args.get("search"))
    return jsonify({"items": [s.to_dict() for s in suppliers], "count": len(suppliers)}), 200


@suppliers_bp.get("/<int:supplier_id>")
@require_auth
def get_supplier_route(supplier_id: int):
    try:
        return jsonify({"supplier": supplier_service.get_supplier(supplier_id).to_dict()}), 200
    except ServiceError as e:
        return error_response(e)


@suppliers_bp.post("")
@require_auth
@require_role(ROLE_STOCK_CLERK)
def create_supplier_route():
    try:
        supplier = supplier_service.create_supplier(request.get_json(silent=True) or {})
        return jsonify({"supplier": supplier.to_dict()}), 201
    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "create supplier")


@suppliers_bp.put("/<int:supplier_id>")
@require_auth
@require_role(ROLE_STOCK_CLERK)
def update_supplier_route(supplier_id: int):
    try:
        supplier = supplier_service.update_supplier(supplier_id, request.get_json(silent=True) or {})
        return jsonify({"supplier": supplier.to_dict()}), 200
    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "update supplier")


@suppliers_bp.delete("/<int:supplier_id>")
@require_auth
@require_role(ROLE_STOCK_CLERK)
def delete_supplier_route(supplier_id: int):
    try:
        supplier_service.delete_supplier(supplier_id)
        return jsonify({"message": "Supplier deleted"}), 200
    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "delete supplier")
