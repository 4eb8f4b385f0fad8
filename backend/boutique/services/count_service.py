# backend/boutique/services/count_service.py
"""
Physical inventory count cycle.

LIFECYCLE:
1. IN_PROGRESS: snapshot of every product's system quantity; physical
   quantities are filled in (repeatable, last write wins)
2. FINISHED: closed, either as-is (finalize) or after applying absolute
   stock adjustments through the ledger (apply_adjustments)

Only one count may be in progress at a time.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import case

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import InventoryCount, InventoryCountItem, Product
from ..models.inventory import COUNT_STATUS_FINISHED, COUNT_STATUS_IN_PROGRESS
from ..time_utils import utcnow
from ..validation import coerce_int, require_non_negative_int
from . import ledger_service
from .pagination import paginate
from .transaction import lock_for_update, transaction_scope

ADJUSTMENT_REASON = "inventory adjustment"


def _in_progress(session, lock: bool = False) -> InventoryCount | None:
    query = session.query(InventoryCount).filter(InventoryCount.status == COUNT_STATUS_IN_PROGRESS)
    if lock:
        query = lock_for_update(query).populate_existing()
    return query.first()


def _require_in_progress(session) -> InventoryCount:
    count = _in_progress(session, lock=True)
    if not count:
        raise NotFoundError("No inventory count in progress")
    return count


def current_count() -> InventoryCount:
    count = _in_progress(db.session)
    if not count:
        raise NotFoundError("No inventory count in progress")
    return count


def start_count(user_id: int) -> InventoryCount:
    """
    Open a count and snapshot every product's current quantity.

    Raises ConflictError if a count is already in progress (also enforced by a
    partial unique index, which covers two concurrent starts).
    """
    with transaction_scope() as session:
        if _in_progress(session):
            raise ConflictError("An inventory count is already in progress")

        count = InventoryCount(status=COUNT_STATUS_IN_PROGRESS, actor_id=user_id)
        for product in session.query(Product).order_by(Product.name.asc(), Product.size.asc()).all():
            count.items.append(
                InventoryCountItem(product_id=product.id, system_quantity=product.quantity)
            )
        session.add(count)

    current_app.logger.info("Inventory count started: id=%s items=%s", count.id, len(count.items))
    return count


def record_counts(items) -> InventoryCount:
    """
    Write physical quantities (and notes) into the open count.

    Each entry: {product_id, physical_quantity?, note?}. Re-recording a product
    overwrites the previous value; an entry without physical_quantity only
    touches the note.
    """
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")

    entries = []
    for idx, raw in enumerate(items, start=1):
        if not isinstance(raw, dict) or raw.get("product_id") is None:
            raise ValidationError(f"Item {idx}: product_id is required")
        entry = {
            "product_id": coerce_int(raw["product_id"], f"items[{idx}].product_id"),
            "note": raw.get("note"),
        }
        # An explicit null clears the count; an absent key leaves it alone
        if "physical_quantity" in raw:
            physical = raw["physical_quantity"]
            entry["physical_quantity"] = (
                None if physical is None
                else require_non_negative_int(physical, f"items[{idx}].physical_quantity")
            )
        entries.append(entry)

    with transaction_scope() as session:
        count = _require_in_progress(session)
        by_product = {item.product_id: item for item in count.items}
        for entry in entries:
            item = by_product.get(entry["product_id"])
            if not item:
                raise NotFoundError(f"Product {entry['product_id']} is not part of the current count")
            if "physical_quantity" in entry:
                item.physical_quantity = entry["physical_quantity"]
            if entry["note"] is not None:
                item.note = str(entry["note"]).strip() or None

    return count


def finalize_count(user_id: int) -> InventoryCount:
    """Close the open count without touching stock."""
    with transaction_scope() as session:
        count = _require_in_progress(session)
        _finish(count, user_id)

    current_app.logger.info("Inventory count finalized: id=%s", count.id)
    return count


def apply_adjustments(adjustments, user_id: int) -> InventoryCount:
    """
    Set each listed product's quantity absolutely and close the count.

    Each adjustment is {product_id, new_quantity}; the ledger records the delta
    as one movement (none when nothing changed). All or nothing.
    """
    if adjustments is None:
        adjustments = []
    if not isinstance(adjustments, list):
        raise ValidationError("adjustments must be a list")

    parsed = []
    for idx, raw in enumerate(adjustments, start=1):
        if not isinstance(raw, dict) or raw.get("product_id") is None:
            raise ValidationError(f"Adjustment {idx}: product_id is required")
        parsed.append((
            coerce_int(raw["product_id"], f"adjustments[{idx}].product_id"),
            require_non_negative_int(raw.get("new_quantity"), f"adjustments[{idx}].new_quantity"),
        ))

    with transaction_scope() as session:
        count = _require_in_progress(session)
        for product_id, new_quantity in parsed:
            ledger_service.set_quantity(
                session,
                product_id=product_id,
                new_quantity=new_quantity,
                reason=ADJUSTMENT_REASON,
                actor_id=user_id,
                count_id=count.id,
            )
        _finish(count, user_id)

    current_app.logger.info("Inventory count adjusted: id=%s adjustments=%s", count.id, len(parsed))
    return count


def _finish(count: InventoryCount, user_id: int) -> None:
    count.status = COUNT_STATUS_FINISHED
    count.finished_at = utcnow()
    count.finished_by_id = user_id


# ==============================
# Read paths
# ==============================

def count_history(page: int | None = None, per_page: int | None = None) -> dict:
    query = db.session.query(InventoryCount).order_by(InventoryCount.started_at.desc(), InventoryCount.id.desc())
    return paginate(query, page, per_page, lambda c: c.to_dict())


def count_detail(count_id: int) -> dict:
    """Header plus items: not yet counted first, then mismatches, then matches."""
    count = db.session.get(InventoryCount, count_id)
    if not count:
        raise NotFoundError(f"Inventory count {count_id} not found")

    rank = case(
        (InventoryCountItem.physical_quantity.is_(None), 0),
        (InventoryCountItem.physical_quantity != InventoryCountItem.system_quantity, 1),
        else_=2,
    )
    items = (
        db.session.query(InventoryCountItem)
        .join(Product, InventoryCountItem.product_id == Product.id)
        .filter(InventoryCountItem.count_id == count_id)
        .order_by(rank, Product.name.asc(), Product.size.asc(), InventoryCountItem.id.asc())
        .all()
    )
    data = count.to_dict()
    data["items"] = [item.to_dict() for item in items]
    return data
