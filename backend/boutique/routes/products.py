# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/boutique/routes/products.py
"""
Product catalog routes.

Reads are open to any authenticated user; writes require the stock_clerk role.
Quantity is never written here: opening stock on create is booked through the
ledger, later changes go through /api/stock.
"""
from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import ServiceError, error_response, unexpected_error_response
from ..models.auth import ROLE_STOCK_CLERK
from ..services import ledger_service, products_service
from .params import date_range_args, page_args

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products_route():
    """
    Query params:
    - search: substring of the product name
    - size: exact size code
    - page / per_page: pagination (default 20, max 100)
    """
    try:
        page, per_page = page_args()
        result = products_service.list_products(
            search=request.args.get("search"),
            size=request.args.get("size"),
            page=page,
            per_page=per_page,
        )
        return jsonify(result), 200
    except ServiceError as e:
        return error_response(e)


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    try:
        return jsonify({"product": products_service.get_product(product_id).to_dict()}), 200
    except ServiceError as e:
        return error_response(e)


@products_bp.post("")
@require_auth
@require_role(ROLE_STOCK_CLERK)
def create_product_route():
    payload = request.get_json(silent=True) or {}
    try:
        product = products_service.create_product(payload, actor_id=g.current_user.id)
        return jsonify({"product": product.to_dict()}), 201
    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "create product")


@products_bp.put("/<int:product_id>")
@require_auth
@require_role(ROLE_STOCK_CLERK)
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        product = products_service.update_product(product_id, payload)
        return jsonify({"product": product.to_dict()}), 200
    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "update product")


@products_bp.delete("/<int:product_id>")
@require_auth
@require_role(ROLE_STOCK_CLERK)
def delete_product_route(product_id: int):
    """Refused with 409 once the product has stock, sales or count history."""
    try:
        products_service.delete_product(product_id)
        return jsonify({"message": "Product deleted"}), 200
    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "delete product")


@products_bp.get("/<int:product_id>/movements")
@require_auth
def product_movements_route(product_id: int):
    try:
        products_service.get_product(product_id)
        start, end = date_range_args()
        page, per_page = page_args()
        result = ledger_service.list_movements(
            product_id=product_id,
            kind=request.args.get("kind"),
            start=start,
            end=end,
            page=page,
            per_page=per_page,
        )
        return jsonify(result), 200
    except ServiceError as e:
        return error_response(e)


@products_bp.get("/<int:product_id>/ledger-check")
@require_auth
def ledger_check_route(product_id: int):
    """Compare the stored quantity with the sum of the product's movements."""
    try:
        return jsonify(ledger_service.verify_ledger(product_id)), 200
    except ServiceError as e:
        return error_response(e)
