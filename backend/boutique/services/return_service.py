# Overview: Service-layer operations for returns; approval restores stock and issues the client credit.

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import func

from ..errors import InvalidQuantity, InvalidStateError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Client, Credit, Return, ReturnItem, Sale, SaleItem
from ..models.returns import (
    CREDIT_ORIGIN_RETURN,
    RETURN_STATUS_APPROVED,
    RETURN_STATUS_PENDING,
    RETURN_STATUS_REJECTED,
    RETURN_STATUSES,
)
from ..models.sales import SALE_STATUS_COMPLETED
from ..time_utils import utcnow
from ..validation import coerce_int, require_text
from . import ledger_service
from .pagination import paginate
from .transaction import lock_for_update, transaction_scope


def _normalize_items(items) -> list[dict]:
    if not items or not isinstance(items, list):
        raise ValidationError("items must be a non-empty list")
    lines = []
    for idx, raw in enumerate(items, start=1):
        if not isinstance(raw, dict) or raw.get("sale_item_id") is None:
            raise ValidationError(f"Item {idx}: sale_item_id is required")
        if raw.get("quantity") is None:
            raise ValidationError(f"Item {idx}: quantity is required")
        lines.append({
            "sale_item_id": coerce_int(raw["sale_item_id"], f"items[{idx}].sale_item_id"),
            "quantity": coerce_int(raw["quantity"], f"items[{idx}].quantity"),
        })
    return lines


def _already_returned(session, sale_item_id: int) -> int:
    """Quantity of a sale item already on pending or approved returns."""
    total = (
        session.query(func.coalesce(func.sum(ReturnItem.quantity), 0))
        .join(Return, ReturnItem.return_id == Return.id)
        .filter(
            ReturnItem.sale_item_id == sale_item_id,
            Return.status.in_((RETURN_STATUS_PENDING, RETURN_STATUS_APPROVED)),
        )
        .scalar()
    )
    return int(total or 0)


def _locked_return(session, return_id: int) -> Return:
    ret = (
        lock_for_update(session.query(Return).filter(Return.id == return_id))
        .populate_existing()
        .first()
    )
    if not ret:
        raise NotFoundError(f"Return {return_id} not found")
    return ret


def create_return(*, sale_id: int, client_id: int, reason: str, items, user_id: int) -> Return:
    """
    Open a pending return against a completed sale. No stock or credit moves yet.

    Each item references a sale item of this sale; its quantity must satisfy
    0 < quantity <= sold quantity minus what is already on pending/approved returns.
    Item value is the original unit price times the returned quantity.
    """
    reason = require_text(reason, "reason")
    if client_id is None:
        raise ValidationError("client_id is required")
    lines = _normalize_items(items)

    with transaction_scope() as session:
        sale = session.get(Sale, sale_id)
        if not sale:
            raise NotFoundError(f"Sale {sale_id} not found")
        if sale.status != SALE_STATUS_COMPLETED:
            raise InvalidStateError(f"Only completed sales can be returned (sale is {sale.status})")
        if not session.get(Client, client_id):
            raise NotFoundError(f"Client {client_id} not found")

        ret = Return(sale_id=sale.id, client_id=client_id, reason=reason, user_id=user_id)
        total = 0
        requested: dict[int, int] = {}
        for line in lines:
            sale_item = (
                session.query(SaleItem)
                .filter(SaleItem.id == line["sale_item_id"], SaleItem.sale_id == sale.id)
                .first()
            )
            if not sale_item:
                raise NotFoundError(f"Sale item {line['sale_item_id']} does not belong to sale {sale.id}")

            qty = line["quantity"]
            requested[sale_item.id] = requested.get(sale_item.id, 0) + qty
            available = sale_item.quantity - _already_returned(session, sale_item.id)
            if qty <= 0 or requested[sale_item.id] > available:
                raise InvalidQuantity(
                    f"Return quantity for sale item {sale_item.id} must be between 1 and {available}",
                    {"sale_item_id": sale_item.id, "available": available, "requested": requested[sale_item.id]},
                )

            subtotal = sale_item.unit_price_cents * qty
            total += subtotal
            ret.items.append(
                ReturnItem(
                    sale_item_id=sale_item.id,
                    product_id=sale_item.product_id,
                    quantity=qty,
                    unit_price_cents=sale_item.unit_price_cents,
                    subtotal_cents=subtotal,
                )
            )

        ret.total_cents = total
        session.add(ret)

    current_app.logger.info("Return created: id=%s sale=%s total=%s", ret.id, sale_id, ret.total_cents)
    return ret


def approve_return(return_id: int, user_id: int) -> Return:
    """
    pending -> approved. Restores stock for every item and issues exactly one
    credit of the return total to the client, in the same transaction.
    """
    with transaction_scope() as session:
        ret = _locked_return(session, return_id)
        if ret.status != RETURN_STATUS_PENDING:
            raise InvalidStateError(f"Only pending returns can be approved (return is {ret.status})")

        ret.status = RETURN_STATUS_APPROVED
        ret.approved_by_id = user_id
        ret.approved_at = utcnow()

        for item in ret.items:
            ledger_service.adjust_quantity(
                session,
                product_id=item.product_id,
                delta=item.quantity,
                reason=f"return #{ret.id}",
                actor_id=user_id,
                sale_id=ret.sale_id,
                return_id=ret.id,
            )

        if ret.total_cents > 0:
            session.add(
                Credit(
                    client_id=ret.client_id,
                    amount_cents=ret.total_cents,
                    origin=CREDIT_ORIGIN_RETURN,
                    return_id=ret.id,
                    created_by_id=user_id,
                )
            )

    current_app.logger.info("Return approved: id=%s credit=%s", return_id, ret.total_cents)
    return ret


def reject_return(return_id: int, rejection_reason: str, user_id: int) -> Return:
    rejection_reason = require_text(rejection_reason, "rejection_reason")
    with transaction_scope() as session:
        ret = _locked_return(session, return_id)
        if ret.status != RETURN_STATUS_PENDING:
            raise InvalidStateError(f"Only pending returns can be rejected (return is {ret.status})")
        ret.status = RETURN_STATUS_REJECTED
        ret.rejection_reason = rejection_reason
        ret.rejected_by_id = user_id
        ret.rejected_at = utcnow()

    current_app.logger.info("Return rejected: id=%s", return_id)
    return ret


# ==============================
# Read paths
# ==============================

def get_return(return_id: int) -> Return:
    ret = db.session.get(Return, return_id)
    if not ret:
        raise NotFoundError(f"Return {return_id} not found")
    return ret


def list_returns(
    *,
    client_name: str | None = None,
    status: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(Return).join(Client, Return.client_id == Client.id)
    if client_name:
        query = query.filter(Client.name.ilike(f"%{client_name.strip()}%"))
    if status:
        if status not in RETURN_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(RETURN_STATUSES)}")
        query = query.filter(Return.status == status)
    if start is not None:
        query = query.filter(Return.created_at >= start)
    if end is not None:
        query = query.filter(Return.created_at <= end)
    query = query.order_by(Return.created_at.desc(), Return.id.desc())
    return paginate(query, page, per_page, lambda r: r.to_dict())
