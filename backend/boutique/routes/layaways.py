# Overview: Flask API routes for layaway orders (items put aside for a client).

from flask import Blueprint, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import ServiceError, error_response, unexpected_error_response
from ..models.auth import ROLE_SALESPERSON
from ..services import customer_service

layaways_bp = Blueprint("layaways", __name__, url_prefix="/api/layaways")


def _bool_arg(name: str):
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    return raw.strip().lower() in ("1", "true", "yes")


@layaways_bp.get("")
@require_auth
def list_layaways_route():
    orders = customer_service.list_layaways(
        fulfilled=_bool_arg("fulfilled"),
        client_id=request.args.get("client_id", type=int),
    )
    return jsonify({"items": [o.to_dict() for o in orders], "count": len(orders)}), 200


@layaways_bp.get("/<int:order_id>")
@require_auth
def get_layaway_route(order_id: int):
    try:
        return jsonify({"layaway": customer_service.get_layaway(order_id).to_dict()}), 200
    except ServiceError as e:
        return error_response(e)


@layaways_bp.post("")
@require_auth
@require_role(ROLE_SALESPERSON)
def create_layaway_route():
    try:
        order = customer_service.create_layaway(request.get_json(silent=True) or {})
        return jsonify({"layaway": order.to_dict()}), 201
    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "create layaway order")


@layaways_bp.put("/<int:order_id>")
@require_auth
@require_role(ROLE_SALESPERSON)
def update_layaway_route(order_id: int):
    try:
        order = customer_service.update_layaway(order_id, request.get_json(silent=True) or {})
        return jsonify({"layaway": order.to_dict()}), 200
    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "update layaway order")


@layaways_bp.delete("/<int:order_id>")
@require_auth
@require_role(ROLE_SALESPERSON)
def delete_layaway_route(order_id: int):
    try:
        customer_service.delete_layaway(order_id)
        return jsonify({"message": "Layaway order deleted"}), 200
    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "delete layaway order")
