# Overview: Service-layer operations for the stock ledger; the only writer of Product.quantity.

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import case, func, update

from ..extensions import db
from ..errors import ConflictError, InsufficientStock, NotFoundError, ValidationError
from ..models import Product, StockMovement, StoreSettings
from ..models.inventory import MOVEMENT_INBOUND, MOVEMENT_KINDS, MOVEMENT_OUTBOUND
from ..validation import coerce_int, require_choice, require_non_negative_int, require_positive_int, require_text
from . import settings_service
from .pagination import paginate
from .transaction import lock_for_update, transaction_scope
"""
Stock Ledger Invariants (authoritative)

- Product.quantity changes only here, and every change appends exactly one
  StockMovement in the same transaction.
- For every product: quantity == sum(inbound) - sum(outbound).
- Quantity never goes below zero. The availability check and the debit are a
  single conditional UPDATE, so two concurrent debits cannot both pass the
  check against the same units.
- Movements are never updated or deleted.
"""

LEVEL_LOW = "low"
LEVEL_MEDIUM = "medium"
LEVEL_ADEQUATE = "adequate"


def _locked_product(session, product_id: int) -> Product:
    product = (
        lock_for_update(session.query(Product).filter(Product.id == product_id))
        .populate_existing()
        .first()
    )
    if not product:
        raise NotFoundError(f"Product {product_id} not found")
    return product


def adjust_quantity(
    session,
    *,
    product_id: int,
    delta: int,
    reason: str,
    actor_id: int | None,
    kind: str | None = None,
    sale_id: int | None = None,
    return_id: int | None = None,
    count_id: int | None = None,
) -> StockMovement:
    """
    Apply a signed quantity change and append its movement. Does NOT commit.

    kind is optional; when given it must agree with the sign of delta.
    Raises InsufficientStock (quantity untouched) if the result would be negative.
    """
    delta = coerce_int(delta, "delta")
    if delta == 0:
        raise ValidationError("delta must be non-zero")
    expected_kind = MOVEMENT_INBOUND if delta > 0 else MOVEMENT_OUTBOUND
    if kind is not None and kind != expected_kind:
        raise ValidationError(f"kind {kind!r} does not match a delta of {delta}")
    reason = require_text(reason, "reason")

    product = _locked_product(session, product_id)

    result = session.execute(
        update(Product)
        .where(Product.id == product_id, Product.quantity + delta >= 0)
        .values(quantity=Product.quantity + delta)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        session.refresh(product, ["quantity"])
        raise InsufficientStock(product.id, product.quantity, -delta, product.name)
    session.refresh(product, ["quantity"])

    movement = StockMovement(
        product_id=product_id,
        quantity=abs(delta),
        kind=expected_kind,
        reason=reason,
        actor_id=actor_id,
        sale_id=sale_id,
        return_id=return_id,
        count_id=count_id,
    )
    session.add(movement)
    session.flush()
    return movement


def set_quantity(
    session,
    *,
    product_id: int,
    new_quantity: int,
    reason: str,
    actor_id: int | None,
    count_id: int | None = None,
) -> StockMovement | None:
    """
    Set Product.quantity absolutely, recording the equivalent delta movement.

    Used by count reconciliation only. The write is a compare-and-set on the
    quantity read under lock; if another writer moved stock in between, the
    adjustment fails with ConflictError rather than overwrite it.
    Returns None when the quantity already matches (no movement is recorded).
    """
    new_quantity = require_non_negative_int(new_quantity, "new_quantity")
    reason = require_text(reason, "reason")

    product = _locked_product(session, product_id)
    previous = product.quantity
    delta = new_quantity - previous
    if delta == 0:
        return None

    result = session.execute(
        update(Product)
        .where(Product.id == product_id, Product.quantity == previous)
        .values(quantity=new_quantity)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise ConflictError(
            f"Stock for product {product_id} changed during adjustment",
            {"product_id": product_id},
        )
    session.refresh(product, ["quantity"])

    movement = StockMovement(
        product_id=product_id,
        quantity=abs(delta),
        kind=MOVEMENT_INBOUND if delta > 0 else MOVEMENT_OUTBOUND,
        reason=reason,
        actor_id=actor_id,
        count_id=count_id,
    )
    session.add(movement)
    session.flush()
    return movement


# ==============================
# Public stock entry / exit
# ==============================

def add_stock(product_id: int, quantity: int, reason: str, actor_id: int | None) -> StockMovement:
    quantity = require_positive_int(quantity, "quantity")
    reason = require_text(reason, "reason")
    with transaction_scope() as session:
        movement = adjust_quantity(
            session, product_id=product_id, delta=quantity, reason=reason, actor_id=actor_id
        )
    current_app.logger.info("Stock added: product=%s qty=%s", product_id, quantity)
    return movement


def remove_stock(product_id: int, quantity: int, reason: str, actor_id: int | None) -> StockMovement:
    quantity = require_positive_int(quantity, "quantity")
    reason = require_text(reason, "reason")
    with transaction_scope() as session:
        movement = adjust_quantity(
            session, product_id=product_id, delta=-quantity, reason=reason, actor_id=actor_id
        )
    current_app.logger.info("Stock removed: product=%s qty=%s", product_id, quantity)
    return movement


# ==============================
# Read paths
# ==============================

def list_movements(
    *,
    product_id: int | None = None,
    kind: str | None = None,
    product_name: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """Movements newest first, filtered and paginated."""
    query = db.session.query(StockMovement).join(Product, StockMovement.product_id == Product.id)
    if product_id is not None:
        query = query.filter(StockMovement.product_id == product_id)
    if kind:
        require_choice(kind, "kind", MOVEMENT_KINDS)
        query = query.filter(StockMovement.kind == kind)
    if product_name:
        query = query.filter(Product.name.ilike(f"%{product_name.strip()}%"))
    if start is not None:
        query = query.filter(StockMovement.created_at >= start)
    if end is not None:
        query = query.filter(StockMovement.created_at <= end)

    query = query.order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
    return paginate(query, page, per_page, lambda m: m.to_dict())


def movement_total(session, product_id: int) -> int:
    signed = case(
        (StockMovement.kind == MOVEMENT_INBOUND, StockMovement.quantity),
        else_=-StockMovement.quantity,
    )
    total = (
        session.query(func.coalesce(func.sum(signed), 0))
        .filter(StockMovement.product_id == product_id)
        .scalar()
    )
    return int(total or 0)


def verify_ledger(product_id: int) -> dict:
    """Compare a product's quantity with the signed sum of its movements."""
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError(f"Product {product_id} not found")
    total = movement_total(db.session, product_id)
    return {
        "product_id": product_id,
        "quantity": product.quantity,
        "movement_total": total,
        "consistent": total == product.quantity,
    }


def stock_level(quantity: int, settings: StoreSettings | None = None) -> str:
    settings = settings or settings_service.current_settings()
    if quantity <= settings.low_stock_threshold:
        return LEVEL_LOW
    if quantity <= settings.medium_stock_threshold:
        return LEVEL_MEDIUM
    return LEVEL_ADEQUATE


def stock_overview() -> list[dict]:
    settings = settings_service.current_settings()
    products = db.session.query(Product).order_by(Product.quantity.asc(), Product.name.asc()).all()
    out = []
    for p in products:
        row = p.to_dict()
        row["level"] = stock_level(p.quantity, settings)
        row["stock_value_cents"] = p.quantity * p.price_cents
        out.append(row)
    return out


def low_stock() -> list[dict]:
    threshold = settings_service.current_settings().low_stock_threshold
    products = (
        db.session.query(Product)
        .filter(Product.quantity <= threshold)
        .order_by(Product.quantity.asc(), Product.name.asc())
        .all()
    )
    return [p.to_dict() for p in products]
