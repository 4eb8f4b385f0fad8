# Overview: Service-layer operations for sales; creates and cancels sales and drives their stock movements.

from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, timedelta

from flask import current_app
from sqlalchemy import func

from ..errors import AlreadyCancelled, InsufficientStock, InvalidStateError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Client, Installment, Product, Return, ReturnItem, Sale, SaleItem
from ..models.returns import RETURN_STATUS_APPROVED, RETURN_STATUS_PENDING
from ..models.sales import (
    METHOD_INSTALLMENT,
    SALE_PAYMENT_METHODS,
    SALE_STATUS_CANCELLED,
    SALE_STATUSES,
)
from ..time_utils import add_months, parse_iso_date, utcnow
from ..validation import (
    coerce_int,
    require_choice,
    require_non_negative_int,
    require_positive_int,
    require_text,
)
from . import ledger_service, payment_service, settings_service
from .pagination import paginate
from .transaction import transaction_scope

BPS_DENOMINATOR = 10_000
SETTLED_AT_CHECKOUT_NOTE = "Paid in full at checkout"


def _normalize_items(items) -> list[dict]:
    """
    Validate requested items before anything is written.
    Each item: {product_id, quantity, unit_price_cents?}; an explicit unit price
    overrides the product's current price.
    """
    if not items or not isinstance(items, list):
        raise ValidationError("items must be a non-empty list")

    lines = []
    for idx, raw in enumerate(items, start=1):
        if not isinstance(raw, dict):
            raise ValidationError(f"Item {idx} must be an object")
        if raw.get("product_id") is None:
            raise ValidationError(f"Item {idx}: product_id is required")
        line = {
            "product_id": coerce_int(raw["product_id"], f"items[{idx}].product_id"),
            "quantity": require_positive_int(raw.get("quantity"), f"items[{idx}].quantity"),
            "unit_price_cents": None,
        }
        if raw.get("unit_price_cents") is not None:
            line["unit_price_cents"] = require_positive_int(raw["unit_price_cents"], f"items[{idx}].unit_price_cents")
        lines.append(line)
    return lines


def compute_discount(subtotal_cents: int, discount_cents=None, discount_bps=None) -> tuple[int, int | None]:
    """
    Resolve the sale discount to (effective cents, bps or None).

    An absolute discount_cents takes precedence when both are supplied;
    a percentage is rounded half-up to the cent.
    """
    if discount_cents is not None:
        amount = require_non_negative_int(discount_cents, "discount_cents")
        if amount > subtotal_cents:
            raise ValidationError("discount_cents cannot exceed the subtotal")
        return amount, None

    if discount_bps is not None:
        bps = require_non_negative_int(discount_bps, "discount_bps")
        if bps > BPS_DENOMINATOR:
            raise ValidationError("discount_bps cannot exceed 10000 (100%)")
        amount = (subtotal_cents * bps + BPS_DENOMINATOR // 2) // BPS_DENOMINATOR
        return amount, bps

    return 0, None


def _installment_plan(installment_count, first_due_date) -> tuple[int, date]:
    """Validate the plan; a missing first due date defaults to the store's due-days offset."""
    settings = settings_service.current_settings()
    count = require_positive_int(installment_count, "installment_count")
    if count > settings.max_installments:
        raise ValidationError(f"installment_count must be between 1 and {settings.max_installments}")

    if first_due_date is None or first_due_date == "":
        return count, utcnow().date() + timedelta(days=settings.installment_due_days)
    if isinstance(first_due_date, date):
        return count, first_due_date
    try:
        return count, parse_iso_date(str(first_due_date))
    except ValueError:
        raise ValidationError("first_due_date must be an ISO-8601 date")


def _build_installments(sale: Sale) -> None:
    """Even split; the last installment absorbs the rounding remainder."""
    n = sale.installment_count
    base = sale.total_cents // n
    for number in range(1, n + 1):
        amount = base if number < n else sale.total_cents - base * (n - 1)
        sale.installments.append(
            Installment(
                number=number,
                amount_cents=amount,
                due_date=add_months(sale.first_due_date, number - 1),
            )
        )


def create_sale(
    *,
    user_id: int,
    items,
    payment_method: str,
    client_id: int | None = None,
    notes: str | None = None,
    discount_cents=None,
    discount_bps=None,
    installment_count=None,
    first_due_date=None,
    settle: bool = False,
) -> Sale:
    """
    Create a pending sale and debit its stock in one transaction.

    Nothing is written if any item is missing or short on stock.
    settle=True records a full payment in the same transaction (checkout paid
    in full); it is refused for installment sales.

    Raises:
        ValidationError, NotFoundError, InsufficientStock
    """
    lines = _normalize_items(items)
    require_choice(payment_method, "payment_method", SALE_PAYMENT_METHODS)

    is_installment = payment_method == METHOD_INSTALLMENT
    due_date = None
    if is_installment:
        if client_id is None:
            raise ValidationError("client_id is required for installment sales")
        installment_count, due_date = _installment_plan(installment_count, first_due_date)
        if settle:
            raise ValidationError("Installment sales cannot be settled at checkout")
    else:
        installment_count = None

    with transaction_scope() as session:
        if client_id is not None and not session.get(Client, client_id):
            raise NotFoundError(f"Client {client_id} not found")

        products: dict[int, Product] = {}
        requested: dict[int, int] = defaultdict(int)
        for line in lines:
            product = products.get(line["product_id"]) or session.get(Product, line["product_id"])
            if not product:
                raise NotFoundError(f"Product {line['product_id']} not found")
            products[product.id] = product
            requested[product.id] += line["quantity"]

        for product_id, qty in requested.items():
            product = products[product_id]
            if product.quantity < qty:
                raise InsufficientStock(product.id, product.quantity, qty, product.name)

        subtotal = 0
        for line in lines:
            unit_price = line["unit_price_cents"] or products[line["product_id"]].price_cents
            line["unit_price_cents"] = unit_price
            subtotal += unit_price * line["quantity"]

        discount, bps = compute_discount(subtotal, discount_cents, discount_bps)

        sale = Sale(
            client_id=client_id,
            user_id=user_id,
            subtotal_cents=subtotal,
            discount_cents=discount,
            discount_bps=bps,
            total_cents=max(subtotal - discount, 0),
            payment_method=payment_method,
            installment_count=installment_count,
            first_due_date=due_date,
            notes=(notes or "").strip() or None,
        )
        for line in lines:
            sale.items.append(
                SaleItem(
                    product_id=line["product_id"],
                    quantity=line["quantity"],
                    unit_price_cents=line["unit_price_cents"],
                    subtotal_cents=line["unit_price_cents"] * line["quantity"],
                )
            )
        session.add(sale)
        session.flush()

        for item in sale.items:
            ledger_service.adjust_quantity(
                session,
                product_id=item.product_id,
                delta=-item.quantity,
                reason=f"sale #{sale.id}",
                actor_id=user_id,
                sale_id=sale.id,
            )

        if is_installment and sale.total_cents > 0:
            _build_installments(sale)

        if settle:
            if sale.total_cents > 0:
                payment_service.record_payment_inner(
                    session, sale, sale.total_cents, payment_method, user_id, SETTLED_AT_CHECKOUT_NOTE
                )
            else:
                payment_service.complete_if_paid(sale, 0)

    current_app.logger.info(
        "Sale created: id=%s items=%s total=%s method=%s", sale.id, len(lines), sale.total_cents, payment_method
    )
    return sale


def _returned_quantities(session, sale_id: int, statuses) -> dict[int, int]:
    rows = (
        session.query(ReturnItem.sale_item_id, func.sum(ReturnItem.quantity))
        .join(Return, ReturnItem.return_id == Return.id)
        .filter(Return.sale_id == sale_id, Return.status.in_(statuses))
        .group_by(ReturnItem.sale_item_id)
        .all()
    )
    return {sale_item_id: int(qty) for sale_item_id, qty in rows}


def cancel_sale(sale_id: int, reason: str, user_id: int) -> Sale:
    """
    Cancel a pending or completed sale and put its stock back.

    Restoration is compensating: one inbound movement per item, for the
    quantity not already restored by an approved return. Payments are kept.
    A sale with a pending return must have that return resolved first.
    """
    reason = require_text(reason, "reason")

    with transaction_scope() as session:
        sale = payment_service.locked_sale(session, sale_id)
        if sale.status == SALE_STATUS_CANCELLED:
            raise AlreadyCancelled(f"Sale {sale_id} is already cancelled")

        if _returned_quantities(session, sale.id, (RETURN_STATUS_PENDING,)):
            raise InvalidStateError("Sale has a pending return; approve or reject it before cancelling")
        already_returned = _returned_quantities(session, sale.id, (RETURN_STATUS_APPROVED,))

        sale.status = SALE_STATUS_CANCELLED
        sale.cancelled_at = utcnow()
        sale.cancelled_by_id = user_id
        note = f"Cancelled: {reason}"
        sale.notes = f"{sale.notes}\n{note}" if sale.notes else note

        for item in sale.items:
            restore = item.quantity - already_returned.get(item.id, 0)
            if restore <= 0:
                continue
            ledger_service.adjust_quantity(
                session,
                product_id=item.product_id,
                delta=restore,
                reason=f"sale #{sale.id} cancelled",
                actor_id=user_id,
                sale_id=sale.id,
            )

        payment_service.cancel_pending_installments(sale)

    current_app.logger.info("Sale cancelled: id=%s by=%s", sale_id, user_id)
    return sale


# ==============================
# Read paths
# ==============================

def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if not sale:
        raise NotFoundError(f"Sale {sale_id} not found")
    return sale


def list_sales(
    *,
    client_name: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    status: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """Sales newest first; the total is counted from the same filtered query."""
    query = db.session.query(Sale).outerjoin(Client, Sale.client_id == Client.id)
    if client_name:
        query = query.filter(Client.name.ilike(f"%{client_name.strip()}%"))
    if status:
        require_choice(status, "status", SALE_STATUSES)
        query = query.filter(Sale.status == status)
    if start is not None:
        query = query.filter(Sale.created_at >= start)
    if end is not None:
        query = query.filter(Sale.created_at <= end)
    query = query.order_by(Sale.created_at.desc(), Sale.id.desc())
    return paginate(query, page, per_page, lambda s: s.to_dict())


def sales_by_product(term: str, status: str | None = None) -> list[Sale]:
    term = require_text(term, "term")
    query = (
        db.session.query(Sale)
        .join(SaleItem, SaleItem.sale_id == Sale.id)
        .join(Product, SaleItem.product_id == Product.id)
        .filter(Product.name.ilike(f"%{term}%"))
    )
    if status:
        require_choice(status, "status", SALE_STATUSES)
        query = query.filter(Sale.status == status)
    return query.distinct().order_by(Sale.created_at.desc(), Sale.id.desc()).all()
