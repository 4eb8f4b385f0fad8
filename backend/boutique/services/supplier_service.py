from __future__ import annotations

from ..errors import ConflictError, NotFoundError
from ..extensions import db
from ..models import Product, Supplier
from ..validation import ModelValidationPolicy, validate_payload
from .transaction import transaction_scope

SUPPLIER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "phone", "reference", "notes"},
    required_on_create={"name"},
)


def list_suppliers(search: str | None = None) -> list[Supplier]:
    query = db.session.query(Supplier)
    if search:
        query = query.filter(Supplier.name.ilike(f"%{search.strip()}%"))
    return query.order_by(Supplier.name.asc()).all()


def get_supplier(supplier_id: int) -> Supplier:
    supplier = db.session.get(Supplier, supplier_id)
    if not supplier:
        raise NotFoundError(f"Supplier {supplier_id} not found")
    return supplier


def create_supplier(payload: dict) -> Supplier:
    patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=False)
    with transaction_scope() as session:
        supplier = Supplier(**patch)
        session.add(supplier)
    return supplier


def update_supplier(supplier_id: int, payload: dict) -> Supplier:
    patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=True)
    with transaction_scope() as session:
        supplier = session.get(Supplier, supplier_id)
        if not supplier:
            raise NotFoundError(f"Supplier {supplier_id} not found")
        for k, v in patch.items():
            setattr(supplier, k, v)
    return supplier


def delete_supplier(supplier_id: int) -> None:
    with transaction_scope() as session:
        supplier = session.get(Supplier, supplier_id)
        if not supplier:
            raise NotFoundError(f"Supplier {supplier_id} not found")
        if session.query(Product.id).filter(Product.supplier_id == supplier_id).first():
            raise ConflictError("Supplier is referenced by products and cannot be deleted")
        session.delete(supplier)
