# Overview: Flask API routes for reports; read-only aggregates over sales and stock.

from flask import Blueprint, jsonify, request

from ..decorators import require_auth
from ..errors import ServiceError, ValidationError, error_response
from ..services import reporting_service
from .params import date_range_args

reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")

MAX_REPORT_LIMIT = 100


def _limit_arg() -> int:
    limit = request.args.get("limit", default=10, type=int)
    if limit < 1 or limit > MAX_REPORT_LIMIT:
        raise ValidationError(f"limit must be between 1 and {MAX_REPORT_LIMIT}")
    return limit


@reports_bp.get("/sales")
@require_auth
def sales_report_route():
    try:
        start, end = date_range_args()
        return jsonify(reporting_service.sales_period_report(start, end)), 200
    except ServiceError as e:
        return error_response(e)


@reports_bp.get("/top-products")
@require_auth
def top_products_route():
    try:
        start, end = date_range_args()
        items = reporting_service.top_products_report(start, end, _limit_arg())
        return jsonify({"items": items, "count": len(items)}), 200
    except ServiceError as e:
        return error_response(e)


@reports_bp.get("/top-clients")
@require_auth
def top_clients_route():
    try:
        start, end = date_range_args()
        items = reporting_service.top_clients_report(start, end, _limit_arg())
        return jsonify({"items": items, "count": len(items)}), 200
    except ServiceError as e:
        return error_response(e)


@reports_bp.get("/stock")
@require_auth
def stock_report_route():
    return jsonify(reporting_service.stock_report()), 200


@reports_bp.get("/pending-balances")
@require_auth
def pending_balances_route():
    items = reporting_service.pending_balances_report()
    return jsonify({"items": items, "count": len(items)}), 200


@reports_bp.get("/dashboard")
@require_auth
def dashboard_route():
    """Query params: period = today|week|month|year (default month)."""
    try:
        return jsonify(reporting_service.dashboard(request.args.get("period", "month"))), 200
    except ServiceError as e:
        return error_response(e)
