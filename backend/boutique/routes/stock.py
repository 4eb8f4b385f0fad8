# Overview: Flask API routes for stock levels and manual stock entry / exit.

# backend/boutique/routes/stock.py
"""
Stock routes.

Every quantity change goes through the ledger: one movement row per change,
and the product quantity never goes negative.
"""
from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import ServiceError, ValidationError, error_response, unexpected_error_response
from ..models.auth import ROLE_STOCK_CLERK
from ..services import ledger_service
from ..validation import coerce_int
from .params import date_range_args, page_args

stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.get("")
@require_auth
def stock_overview_route():
    """All products with quantity, stock level (low/medium/adequate) and stock value."""
    items = ledger_service.stock_overview()
    return jsonify({"items": items, "count": len(items)}), 200


@stock_bp.get("/low")
@require_auth
def low_stock_route():
    items = ledger_service.low_stock()
    return jsonify({"items": items, "count": len(items)}), 200


@stock_bp.get("/movements")
@require_auth
def list_movements_route():
    """
    Query params:
    - product_id, product_name, kind (inbound|outbound)
    - start / end: ISO date or datetime
    - page / per_page
    """
    try:
        start, end = date_range_args()
        page, per_page = page_args()
        result = ledger_service.list_movements(
            product_id=request.args.get("product_id", type=int),
            kind=request.args.get("kind"),
            product_name=request.args.get("product_name"),
            start=start,
            end=end,
            page=page,
            per_page=per_page,
        )
        return jsonify(result), 200
    except ServiceError as e:
        return error_response(e)


def _movement_payload() -> dict:
    data = request.get_json(silent=True) or {}
    if data.get("product_id") is None:
        raise ValidationError("product_id is required")
    data["product_id"] = coerce_int(data["product_id"], "product_id")
    return data


@stock_bp.post("/add")
@require_auth
@require_role(ROLE_STOCK_CLERK)
def add_stock_route():
    """Body: {product_id, quantity, reason}"""
    try:
        data = _movement_payload()
        movement = ledger_service.add_stock(
            data["product_id"], data.get("quantity"), data.get("reason"), g.current_user.id
        )
        return jsonify({"movement": movement.to_dict()}), 201
    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "add stock")


@stock_bp.post("/remove")
@require_auth
@require_role(ROLE_STOCK_CLERK)
def remove_stock_route():
    """Body: {product_id, quantity, reason}. 409 when stock is insufficient."""
    try:
        data = _movement_payload()
        movement = ledger_service.remove_stock(
            data["product_id"], data.get("quantity"), data.get("reason"), g.current_user.id
        )
        return jsonify({"movement": movement.to_dict()}), 201
    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "remove stock")
