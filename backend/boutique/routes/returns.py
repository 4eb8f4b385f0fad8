# Overview: Flask API routes for returns; approval restores stock and issues client credit.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import ServiceError, error_response, unexpected_error_response
from ..models.auth import ROLE_ADMIN, ROLE_SALESPERSON
from ..services import return_service
from .params import date_range_args, page_args

returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")


@returns_bp.post("")
@require_auth
@require_role(ROLE_SALESPERSON)
def create_return_route():
    """
    Body: {sale_id, client_id, reason, items: [{sale_item_id, quantity}]}

    Creates a PENDING return. Nothing moves until approval.
    """
    data = request.get_json(silent=True) or {}
    try:
        ret = return_service.create_return(
            sale_id=data.get("sale_id"),
            client_id=data.get("client_id"),
            reason=data.get("reason"),
            items=data.get("items"),
            user_id=g.current_user.id,
        )
        return jsonify({"return": ret.to_dict(include_items=True)}), 201
    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "create return")


@returns_bp.get("")
@require_auth
def list_returns_route():
    try:
        start, end = date_range_args()
        page, per_page = page_args()
        result = return_service.list_returns(
            client_name=request.args.get("client_name"),
            status=request.args.get("status"),
            start=start,
            end=end,
            page=page,
            per_page=per_page,
        )
        return jsonify(result), 200
    except ServiceError as e:
        return error_response(e)


@returns_bp.get("/<int:return_id>")
@require_auth
def get_return_route(return_id: int):
    try:
        return jsonify({"return": return_service.get_return(return_id).to_dict(include_items=True)}), 200
    except ServiceError as e:
        return error_response(e)


@returns_bp.post("/<int:return_id>/approve")
@require_auth
@require_role(ROLE_ADMIN)
def approve_return_route(return_id: int):
    """Restore stock for every item and credit the client with the return total."""
    try:
        ret = return_service.approve_return(return_id, g.current_user.id)
        return jsonify({"return": ret.to_dict(include_items=True)}), 200
    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "approve return")


@returns_bp.post("/<int:return_id>/reject")
@require_auth
@require_role(ROLE_ADMIN)
def reject_return_route(return_id: int):
    data = request.get_json(silent=True) or {}
    try:
        ret = return_service.reject_return(return_id, data.get("rejection_reason"), g.current_user.id)
        return jsonify({"return": ret.to_dict(include_items=True)}), 200
    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "reject return")
