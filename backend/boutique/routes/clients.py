# Overview: Flask API routes for clients; parses input and returns JSON responses.

from flask import Blueprint, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import ServiceError, error_response, unexpected_error_response
from ..models.auth import ROLE_SALESPERSON
from ..services import credit_service, customer_service
from .params import page_args

clients_bp = Blueprint("clients", __name__, url_prefix="/api/clients")


@clients_bp.get("")
@require_auth
def list_clients_route():
    """
    Query params:
    - search: matches name or whatsapp
    - page / per_page
    """
    try:
        page, per_page = page_args()
        return jsonify(customer_service.list_clients(request.args.get("search"), page, per_page)), 200
    except ServiceError as e:
        return error_response(e)


@clients_bp.get("/<int:client_id>")
@require_auth
def get_client_route(client_id: int):
    try:
        return jsonify({"client": customer_service.get_client(client_id).to_dict()}), 200
    except ServiceError as e:
        return error_response(e)


@clients_bp.post("")
@require_auth
@require_role(ROLE_SALESPERSON)
def create_client_route():
    try:
        client = customer_service.create_client(request.get_json(silent=True) or {})
        return jsonify({"client": client.to_dict()}), 201
    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "create client")


@clients_bp.put("/<int:client_id>")
@require_auth
@require_role(ROLE_SALESPERSON)
def update_client_route(client_id: int):
    try:
        client = customer_service.update_client(client_id, request.get_json(silent=True) or {})
        return jsonify({"client": client.to_dict()}), 200
    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "update client")


@clients_bp.delete("/<int:client_id>")
@require_auth
@require_role(ROLE_SALESPERSON)
def delete_client_route(client_id: int):
    try:
        customer_service.delete_client(client_id)
        return jsonify({"message": "Client deleted"}), 200
    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "delete client")


@clients_bp.get("/<int:client_id>/sales")
@require_auth
def client_sales_route(client_id: int):
    try:
        sales = customer_service.client_sales(client_id)
        return jsonify({"items": [s.to_dict() for s in sales], "count": len(sales)}), 200
    except ServiceError as e:
        return error_response(e)


@clients_bp.get("/<int:client_id>/credits")
@require_auth
def client_credits_route(client_id: int):
    try:
        return jsonify(credit_service.list_client_credits(client_id)), 200
    except ServiceError as e:
        return error_response(e)
