# backend/boutique/services/products_service.py
"""
Products Service

Catalog writes never touch quantity directly: a product's opening stock is
booked through the ledger as an inbound "initial stock" movement, and later
changes go through ledger_service.
"""
from __future__ import annotations

from flask import current_app

from ..errors import ConflictError, NotFoundError
from ..extensions import db
from ..models import InventoryCountItem, Product, SaleItem, StockMovement, Supplier
from ..validation import ModelValidationPolicy, enforce_rules_product, validate_payload
from . import ledger_service
from .pagination import paginate
from .transaction import transaction_scope

INITIAL_STOCK_REASON = "initial stock"

PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "size", "quantity", "price_cents", "supplier_id"},
    required_on_create={"name", "size", "price_cents"},
)
PRODUCT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "size", "price_cents", "supplier_id"},
)

PRODUCT_MUTABLE_FIELDS = {"name", "size", "price_cents", "supplier_id"}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _ensure_unique(session, name: str, size: str, exclude_id: int | None = None) -> None:
    query = session.query(Product).filter(Product.name == name, Product.size == size)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first():
        raise ConflictError(
            f"A product named {name!r} in size {size} already exists",
            {"suggestion": "Update the existing product's stock instead"},
        )


def _ensure_supplier(session, supplier_id: int | None) -> None:
    if supplier_id is not None and not session.get(Supplier, supplier_id):
        raise NotFoundError(f"Supplier {supplier_id} not found")


def list_products(
    *,
    search: str | None = None,
    size: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Product listing with optional name search and size filter.
    Without page, returns all items.
    """
    query = db.session.query(Product)
    if search:
        query = query.filter(Product.name.ilike(f"%{search.strip()}%"))
    if size:
        query = query.filter(Product.size == size)
    query = query.order_by(Product.name.asc(), Product.id.asc())

    if page is None:
        products = query.all()
        return {"items": [p.to_dict() for p in products], "count": len(products)}
    return paginate(query, page, per_page, lambda p: p.to_dict())


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError(f"Product {product_id} not found")
    return product


def create_product_inner(session, patch: dict, actor_id: int | None, reason: str = INITIAL_STOCK_REASON) -> Product:
    """Create inside the caller's transaction. Opening stock becomes one inbound movement."""
    _ensure_unique(session, patch["name"], patch["size"])
    _ensure_supplier(session, patch.get("supplier_id"))

    opening = patch.get("quantity") or 0
    product = Product(quantity=0)
    apply_product_patch(product, patch)
    session.add(product)
    session.flush()

    if opening > 0:
        ledger_service.adjust_quantity(
            session, product_id=product.id, delta=opening, reason=reason, actor_id=actor_id
        )
    return product


def create_product(payload: dict, actor_id: int | None) -> Product:
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_CREATE_POLICY, partial=False)
    enforce_rules_product(patch)

    with transaction_scope() as session:
        product = create_product_inner(session, patch, actor_id)
    current_app.logger.info("Product created: id=%s name=%s size=%s", product.id, product.name, product.size)
    return product


def update_product(product_id: int, payload: dict) -> Product:
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_UPDATE_POLICY, partial=True)
    enforce_rules_product(patch)

    with transaction_scope() as session:
        product = session.get(Product, product_id)
        if not product:
            raise NotFoundError(f"Product {product_id} not found")
        name = patch.get("name", product.name)
        size = patch.get("size", product.size)
        if (name, size) != (product.name, product.size):
            _ensure_unique(session, name, size, exclude_id=product.id)
        if "supplier_id" in patch:
            _ensure_supplier(session, patch["supplier_id"])
        apply_product_patch(product, patch)
    return product


def delete_product(product_id: int) -> None:
    """Only products that never had stock history or sales can be deleted."""
    with transaction_scope() as session:
        product = session.get(Product, product_id)
        if not product:
            raise NotFoundError(f"Product {product_id} not found")
        has_history = (
            session.query(StockMovement.id).filter(StockMovement.product_id == product_id).first()
            or session.query(SaleItem.id).filter(SaleItem.product_id == product_id).first()
            or session.query(InventoryCountItem.id).filter(InventoryCountItem.product_id == product_id).first()
        )
        if has_history:
            raise ConflictError("Product has stock or sales history and cannot be deleted")
        session.delete(product)
