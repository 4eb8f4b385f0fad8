# Overview: Flask API routes for client store credit.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import ServiceError, error_response, unexpected_error_response
from ..models.auth import ROLE_ADMIN, ROLE_SALESPERSON
from ..services import credit_service
from ..validation import coerce_int
from .params import datetime_arg

credits_bp = Blueprint("credits", __name__, url_prefix="/api/credits")


@credits_bp.get("/client/<int:client_id>")
@require_auth
def client_credits_route(client_id: int):
    try:
        return jsonify(credit_service.list_client_credits(client_id)), 200
    except ServiceError as e:
        return error_response(e)


@credits_bp.post("/apply")
@require_auth
@require_role(ROLE_SALESPERSON)
def apply_credit_route():
    """
    Body: {client_id, sale_id, credit_id, amount_cents}

    Partial use issues a remainder credit linked to the original.
    """
    data = request.get_json(silent=True) or {}
    try:
        result = credit_service.apply_credit(
            client_id=coerce_int(data.get("client_id"), "client_id"),
            sale_id=coerce_int(data.get("sale_id"), "sale_id"),
            credit_id=coerce_int(data.get("credit_id"), "credit_id"),
            amount_cents=data.get("amount_cents"),
            user_id=g.current_user.id,
        )
        return jsonify({
            "usage": result["usage"].to_dict(),
            "credit": result["credit"].to_dict(),
            "remainder": result["remainder"].to_dict() if result["remainder"] else None,
            "sale": result["sale"].to_dict(),
        }), 200
    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "apply credit")


@credits_bp.post("")
@require_auth
@require_role(ROLE_ADMIN)
def grant_credit_route():
    """Body: {client_id, amount_cents, expires_at?} (expires_at as ISO datetime)."""
    data = request.get_json(silent=True) or {}
    try:
        expires_at = None
        if data.get("expires_at"):
            expires_at = datetime_arg("expires_at", str(data["expires_at"]))
        credit = credit_service.grant_credit(
            coerce_int(data.get("client_id"), "client_id"),
            data.get("amount_cents"),
            g.current_user.id,
            expires_at=expires_at,
        )
        return jsonify({"credit": credit.to_dict()}), 201
    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "grant credit")
