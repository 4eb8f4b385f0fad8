# Overview: Flask API routes for user administration (admin only).

from flask import Blueprint, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import ServiceError, error_response, unexpected_error_response
from ..models.auth import ROLE_ADMIN
from ..services import auth_service

users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("")
@require_auth
@require_role(ROLE_ADMIN)
def list_users_route():
    include_inactive = request.args.get("include_inactive", "true").lower() != "false"
    users = auth_service.list_users(include_inactive=include_inactive)
    return jsonify({"items": [u.to_dict() for u in users], "count": len(users)}), 200


@users_bp.post("")
@require_auth
@require_role(ROLE_ADMIN)
def create_user_route():
    try:
        data = request.get_json(silent=True) or {}
        user = auth_service.create_user(
            username=data.get("username"),
            name=data.get("name"),
            password=data.get("password"),
            role=data.get("role"),
        )
        return jsonify({"user": user.to_dict()}), 201
    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "create user")


@users_bp.get("/<int:user_id>")
@require_auth
@require_role(ROLE_ADMIN)
def get_user_route(user_id: int):
    try:
        return jsonify({"user": auth_service.get_user(user_id).to_dict()}), 200
    except ServiceError as e:
        return error_response(e)


@users_bp.patch("/<int:user_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_user_route(user_id: int):
    try:
        data = request.get_json(silent=True) or {}
        user = auth_service.update_user(
            user_id,
            name=data.get("name"),
            role=data.get("role"),
            password=data.get("password"),
            is_active=data.get("is_active"),
        )
        return jsonify({"user": user.to_dict()}), 200
    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "update user")


@users_bp.delete("/<int:user_id>")
@require_auth
@require_role(ROLE_ADMIN)
def deactivate_user_route(user_id: int):
    try:
        user = auth_service.deactivate_user(user_id)
        return jsonify({"user": user.to_dict()}), 200
    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "deactivate user")
