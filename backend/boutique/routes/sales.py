# Overview: Flask API routes for sales, payments and installments.

# backend/boutique/routes/sales.py
"""
Sales routes.

LIFECYCLE:
- POST /api/sales creates a pending sale and debits stock atomically
- POST /api/sales/<id>/payments records payments; the sale completes when fully paid
- POST /api/sales/<id>/cancel restores stock and closes the sale

Writes require the salesperson role.
"""
from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import ServiceError, error_response, unexpected_error_response
from ..models.auth import ROLE_SALESPERSON
from ..services import payment_service, sales_service
from .params import date_range_args, page_args

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@require_auth
@require_role(ROLE_SALESPERSON)
def create_sale_route():
    """
    Body:
    {
      "items": [{"product_id": 1, "quantity": 2, "unit_price_cents": 4990?}],
      "payment_method": "credit_card|debit_card|pix|installment|check|cash",
      "client_id": 3?,
      "discount_cents": 500? | "discount_bps": 1000?,
      "installment_count": 3?, "first_due_date": "2026-11-10"?,
      "settle": false?,
      "notes": "..."?
    }

    Returns:
    - 201: sale with items
    - 400: validation error
    - 404: product or client not found
    - 409: insufficient stock (product_id, available, required)
    """
    data = request.get_json(silent=True) or {}
    try:
        sale = sales_service.create_sale(
            user_id=g.current_user.id,
            items=data.get("items"),
            payment_method=data.get("payment_method"),
            client_id=data.get("client_id"),
            notes=data.get("notes"),
            discount_cents=data.get("discount_cents"),
            discount_bps=data.get("discount_bps"),
            installment_count=data.get("installment_count"),
            first_due_date=data.get("first_due_date"),
            settle=bool(data.get("settle", False)),
        )
        return jsonify({"sale": sale.to_dict(include_items=True)}), 201
    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "create sale")


@sales_bp.get("")
@require_auth
def list_sales_route():
    """
    Query params:
    - client_name: substring of the client's name
    - status: pending|completed|cancelled
    - start / end: ISO date or datetime
    - page / per_page
    """
    try:
        start, end = date_range_args()
        page, per_page = page_args()
        result = sales_service.list_sales(
            client_name=request.args.get("client_name"),
            start=start,
            end=end,
            status=request.args.get("status"),
            page=page,
            per_page=per_page,
        )
        return jsonify(result), 200
    except ServiceError as e:
        return error_response(e)


@sales_bp.get("/by-product")
@require_auth
def sales_by_product_route():
    try:
        sales = sales_service.sales_by_product(request.args.get("term"), request.args.get("status"))
        return jsonify({"items": [s.to_dict(include_items=True) for s in sales], "count": len(sales)}), 200
    except ServiceError as e:
        return error_response(e)


@sales_bp.get("/<int:sale_id>")
@require_auth
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
        return jsonify({"sale": sale.to_dict(include_items=True)}), 200
    except ServiceError as e:
        return error_response(e)


@sales_bp.post("/<int:sale_id>/cancel")
@require_auth
@require_role(ROLE_SALESPERSON)
def cancel_sale_route(sale_id: int):
    """Body: {reason}. 409 if already cancelled or a return is pending."""
    data = request.get_json(silent=True) or {}
    try:
        sale = sales_service.cancel_sale(sale_id, data.get("reason"), g.current_user.id)
        return jsonify({"sale": sale.to_dict(include_items=True)}), 200
    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "cancel sale")


# ==============================
# Payments
# ==============================

@sales_bp.post("/<int:sale_id>/payments")
@require_auth
@require_role(ROLE_SALESPERSON)
def record_payment_route(sale_id: int):
    """
    Body: {amount_cents, method, notes?}

    Returns the payment plus the updated balance. 400 on overpayment.
    """
    data = request.get_json(silent=True) or {}
    try:
        payment = payment_service.record_payment(
            sale_id,
            data.get("amount_cents"),
            data.get("method"),
            g.current_user.id,
            notes=data.get("notes"),
        )
        return jsonify({
            "payment": payment.to_dict(),
            "summary": payment_service.payment_summary(sale_id),
        }), 201
    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "record payment")


@sales_bp.get("/<int:sale_id>/payments")
@require_auth
def list_payments_route(sale_id: int):
    try:
        payments = payment_service.list_payments(sale_id)
        return jsonify({"items": [p.to_dict() for p in payments], "count": len(payments)}), 200
    except ServiceError as e:
        return error_response(e)


@sales_bp.get("/<int:sale_id>/summary")
@require_auth
def payment_summary_route(sale_id: int):
    try:
        return jsonify(payment_service.payment_summary(sale_id)), 200
    except ServiceError as e:
        return error_response(e)


@sales_bp.get("/<int:sale_id>/installments")
@require_auth
def list_installments_route(sale_id: int):
    try:
        installments = payment_service.list_installments(sale_id)
        return jsonify({"items": [i.to_dict() for i in installments], "count": len(installments)}), 200
    except ServiceError as e:
        return error_response(e)
