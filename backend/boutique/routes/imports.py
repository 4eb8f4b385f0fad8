# Overview: Flask API routes for imports; parses input and returns JSON responses.

"""
Import Routes

Supports CSV, JSON, and Excel (.xlsx) uploads as multipart "file", or a JSON
body of {"rows": [...]}. Valid rows are applied; invalid rows come back with
their row numbers.
"""

import io

from flask import Blueprint, g, jsonify, request, send_file

from ..decorators import require_auth, require_role
from ..errors import ServiceError, ValidationError, error_response, unexpected_error_response
from ..models.auth import ROLE_ADMIN, ROLE_SALESPERSON, ROLE_STOCK_CLERK
from ..services import import_service

imports_bp = Blueprint("imports", __name__, url_prefix="/api/imports")

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _rows_from_request() -> list[dict]:
    if "file" in request.files:
        file = request.files["file"]
        return import_service.parse_upload(file.filename or "", io.BytesIO(file.read()))

    data = request.get_json(silent=True)
    rows = data.get("rows") if isinstance(data, dict) else data
    if not isinstance(rows, list):
        raise ValidationError("file upload or a JSON list of rows is required")
    return rows


@imports_bp.post("/products")
@require_auth
@require_role(ROLE_STOCK_CLERK)
def import_products_route():
    try:
        result = import_service.import_products(_rows_from_request(), actor_id=g.current_user.id)
        return jsonify(result), 200
    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "import products")


@imports_bp.post("/clients")
@require_auth
@require_role(ROLE_SALESPERSON)
def import_clients_route():
    try:
        return jsonify(import_service.import_clients(_rows_from_request())), 200
    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "import clients")


@imports_bp.post("/users")
@require_auth
@require_role(ROLE_ADMIN)
def import_users_route():
    try:
        return jsonify(import_service.import_users(_rows_from_request())), 200
    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "import users")


@imports_bp.get("/templates/<kind>")
@require_auth
def download_template_route(kind: str):
    """Spreadsheet with the header row each import expects (products, clients, users)."""
    try:
        data = import_service.build_template(kind)
        return send_file(
            io.BytesIO(data),
            mimetype=XLSX_MIMETYPE,
            as_attachment=True,
            download_name=f"{kind}_template.xlsx",
        )
    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "build import template")
