# Overview: Flask API routes for store settings.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import ServiceError, error_response, unexpected_error_response
from ..models.auth import ROLE_ADMIN
from ..services import settings_service

settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@settings_bp.get("")
@require_auth
def get_settings_route():
    return jsonify({"settings": settings_service.current_settings().to_dict()}), 200


@settings_bp.put("")
@settings_bp.post("")
@require_auth
@require_role(ROLE_ADMIN)
def update_settings_route():
    """
    Partial update of store settings (admin only).

    Body: any of store_name, address, phone, email, instagram, whatsapp,
    show_low_stock, low_stock_threshold, medium_stock_threshold,
    max_installments, installment_due_days.
    """
    try:
        settings = settings_service.update_settings(request.get_json(silent=True) or {}, g.current_user.id)
        return jsonify({"settings": settings.to_dict()}), 200
    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "update settings")
