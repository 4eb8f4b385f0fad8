# Overview: Flask API routes for physical inventory counts.

# backend/boutique/routes/counts.py
"""
Inventory count routes.

Flow: start -> record items (repeatable) -> finalize, or adjust to apply the
counted quantities through the ledger. Only one count may be open.
Writes require the stock_clerk role.
"""
from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import ServiceError, error_response, unexpected_error_response
from ..models.auth import ROLE_STOCK_CLERK
from ..services import count_service
from .params import page_args

counts_bp = Blueprint("counts", __name__, url_prefix="/api/counts")


@counts_bp.get("/current")
@require_auth
def current_count_route():
    try:
        count = count_service.current_count()
        return jsonify({"count": count.to_dict(include_items=True)}), 200
    except ServiceError as e:
        return error_response(e)


@counts_bp.post("/start")
@require_auth
@require_role(ROLE_STOCK_CLERK)
def start_count_route():
    """409 if a count is already in progress."""
    try:
        count = count_service.start_count(g.current_user.id)
        return jsonify({"count": count.to_dict(include_items=True)}), 201
    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "start inventory count")


@counts_bp.post("/items")
@require_auth
@require_role(ROLE_STOCK_CLERK)
def record_counts_route():
    """Body: {items: [{product_id, physical_quantity, note?}]}"""
    data = request.get_json(silent=True) or {}
    try:
        count = count_service.record_counts(data.get("items"))
        return jsonify({"count": count.to_dict(include_items=True)}), 200
    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "record inventory count")


@counts_bp.post("/finalize")
@require_auth
@require_role(ROLE_STOCK_CLERK)
def finalize_count_route():
    try:
        count = count_service.finalize_count(g.current_user.id)
        return jsonify({"count": count.to_dict()}), 200
    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "finalize inventory count")


@counts_bp.post("/adjust")
@require_auth
@require_role(ROLE_STOCK_CLERK)
def apply_adjustments_route():
    """Body: {adjustments: [{product_id, new_quantity}]}. Closes the count."""
    data = request.get_json(silent=True) or {}
    try:
        count = count_service.apply_adjustments(data.get("adjustments"), g.current_user.id)
        return jsonify({"count": count.to_dict()}), 200
    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "apply inventory adjustments")


@counts_bp.get("/history")
@require_auth
def count_history_route():
    page, per_page = page_args()
    try:
        return jsonify(count_service.count_history(page, per_page)), 200
    except ServiceError as e:
        return error_response(e)


@counts_bp.get("/<int:count_id>")
@require_auth
def count_detail_route(count_id: int):
    try:
        return jsonify({"count": count_service.count_detail(count_id)}), 200
    except ServiceError as e:
        return error_response(e)
