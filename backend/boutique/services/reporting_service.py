# Overview: Read-only report queries over sales, stock and balances.

from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import func

from ..errors import ValidationError
from ..extensions import db
from ..models import Client, Payment, Product, Sale, SaleItem
from ..models.sales import SALE_STATUS_CANCELLED, SALE_STATUS_PENDING
from ..time_utils import to_utc_z, utcnow
from . import ledger_service, settings_service

DASHBOARD_PERIODS = ("today", "week", "month", "year")


def _live_sales(start: datetime | None, end: datetime | None):
    query = db.session.query(Sale).filter(Sale.status != SALE_STATUS_CANCELLED)
    if start is not None:
        query = query.filter(Sale.created_at >= start)
    if end is not None:
        query = query.filter(Sale.created_at <= end)
    return query


def sales_period_report(start: datetime | None = None, end: datetime | None = None) -> dict:
    """Non-cancelled sales in the window, with totals by status and payment method."""
    sales = _live_sales(start, end).order_by(Sale.created_at.desc(), Sale.id.desc()).all()
    total = sum(s.total_cents for s in sales)

    by_method: dict[str, dict] = {}
    by_status: dict[str, int] = {}
    for s in sales:
        bucket = by_method.setdefault(s.payment_method, {"count": 0, "total_cents": 0})
        bucket["count"] += 1
        bucket["total_cents"] += s.total_cents
        by_status[s.status] = by_status.get(s.status, 0) + 1

    return {
        "start": to_utc_z(start),
        "end": to_utc_z(end),
        "summary": {
            "sale_count": len(sales),
            "total_cents": total,
            "discount_cents": sum(s.discount_cents for s in sales),
            "average_ticket_cents": total // len(sales) if sales else 0,
            "by_status": by_status,
            "by_payment_method": by_method,
        },
        "sales": [s.to_dict() for s in sales],
    }


def top_products_report(start: datetime | None = None, end: datetime | None = None, limit: int = 10) -> list[dict]:
    qty = func.sum(SaleItem.quantity).label("quantity_sold")
    revenue = func.sum(SaleItem.subtotal_cents).label("revenue_cents")
    query = (
        db.session.query(Product.id, Product.name, Product.size, qty, revenue)
        .join(SaleItem, SaleItem.product_id == Product.id)
        .join(Sale, SaleItem.sale_id == Sale.id)
        .filter(Sale.status != SALE_STATUS_CANCELLED)
    )
    if start is not None:
        query = query.filter(Sale.created_at >= start)
    if end is not None:
        query = query.filter(Sale.created_at <= end)
    rows = query.group_by(Product.id, Product.name, Product.size).order_by(qty.desc(), Product.name.asc()).limit(limit).all()
    return [
        {
            "product_id": r.id,
            "name": r.name,
            "size": r.size,
            "quantity_sold": int(r.quantity_sold or 0),
            "revenue_cents": int(r.revenue_cents or 0),
        }
        for r in rows
    ]


def top_clients_report(start: datetime | None = None, end: datetime | None = None, limit: int = 10) -> list[dict]:
    count = func.count(Sale.id).label("sale_count")
    spent = func.sum(Sale.total_cents).label("total_cents")
    query = (
        db.session.query(Client.id, Client.name, Client.whatsapp, count, spent)
        .join(Sale, Sale.client_id == Client.id)
        .filter(Sale.status != SALE_STATUS_CANCELLED)
    )
    if start is not None:
        query = query.filter(Sale.created_at >= start)
    if end is not None:
        query = query.filter(Sale.created_at <= end)
    rows = query.group_by(Client.id, Client.name, Client.whatsapp).order_by(spent.desc()).limit(limit).all()
    return [
        {
            "client_id": r.id,
            "name": r.name,
            "whatsapp": r.whatsapp,
            "sale_count": int(r.sale_count),
            "total_cents": int(r.total_cents or 0),
        }
        for r in rows
    ]


def stock_report() -> dict:
    products = ledger_service.stock_overview()
    return {
        "items": products,
        "summary": {
            "product_count": len(products),
            "total_units": sum(p["quantity"] for p in products),
            "stock_value_cents": sum(p["stock_value_cents"] for p in products),
            "low_stock_count": sum(1 for p in products if p["level"] == ledger_service.LEVEL_LOW),
        },
    }


def pending_balances_report() -> list[dict]:
    """Pending sales that still have money outstanding, largest balance first."""
    paid = (
        db.session.query(Payment.sale_id, func.sum(Payment.amount_cents).label("paid_cents"))
        .group_by(Payment.sale_id)
        .subquery()
    )
    rows = (
        db.session.query(Sale, func.coalesce(paid.c.paid_cents, 0))
        .outerjoin(paid, paid.c.sale_id == Sale.id)
        .filter(Sale.status == SALE_STATUS_PENDING)
        .all()
    )
    out = []
    for sale, paid_cents in rows:
        remaining = sale.total_cents - int(paid_cents)
        if remaining <= 0:
            continue
        out.append({
            "sale_id": sale.id,
            "client_id": sale.client_id,
            "client_name": sale.client.name if sale.client else None,
            "total_cents": sale.total_cents,
            "paid_cents": int(paid_cents),
            "remaining_cents": remaining,
            "created_at": to_utc_z(sale.created_at),
        })
    out.sort(key=lambda r: r["remaining_cents"], reverse=True)
    return out


def _period_start(period: str, now: datetime) -> datetime:
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == "today":
        return today
    if period == "week":
        return today - timedelta(days=today.weekday())
    if period == "month":
        return today.replace(day=1)
    return today.replace(month=1, day=1)


def dashboard(period: str = "month") -> dict:
    if period not in DASHBOARD_PERIODS:
        raise ValidationError(f"period must be one of: {', '.join(DASHBOARD_PERIODS)}")
    now = utcnow()
    start = _period_start(period, now)

    sales = _live_sales(start, now)
    sale_count = sales.count()
    total = sales.with_entities(func.coalesce(func.sum(Sale.total_cents), 0)).scalar()

    day = func.date(Sale.created_at)
    per_day = (
        _live_sales(start, now)
        .with_entities(day.label("day"), func.count(Sale.id), func.sum(Sale.total_cents))
        .group_by(day)
        .order_by(day)
        .all()
    )

    by_size = (
        db.session.query(Product.size, func.sum(SaleItem.quantity))
        .join(SaleItem, SaleItem.product_id == Product.id)
        .join(Sale, SaleItem.sale_id == Sale.id)
        .filter(Sale.status != SALE_STATUS_CANCELLED, Sale.created_at >= start)
        .group_by(Product.size)
        .all()
    )

    settings = settings_service.current_settings()
    stock_value = db.session.query(func.coalesce(func.sum(Product.quantity * Product.price_cents), 0)).scalar()
    low_count = (
        db.session.query(func.count(Product.id))
        .filter(Product.quantity <= settings.low_stock_threshold)
        .scalar()
    )

    return {
        "period": period,
        "start": to_utc_z(start),
        "sale_count": sale_count,
        "total_cents": int(total or 0),
        "average_ticket_cents": int(total or 0) // sale_count if sale_count else 0,
        "stock_value_cents": int(stock_value or 0),
        "low_stock_count": int(low_count or 0),
        # Alert list is only surfaced when the store wants it
        "low_stock": ledger_service.low_stock() if settings.show_low_stock else [],
        "sales_per_day": [
            {"day": str(d), "sale_count": int(c), "total_cents": int(t or 0)} for d, c, t in per_day
        ],
        "units_by_size": {size: int(q or 0) for size, q in by_size},
    }
