# Overview: Client and layaway order records.

from __future__ import annotations

from sqlalchemy import or_

from ..errors import ConflictError, NotFoundError
from ..extensions import db
from ..models import Client, Credit, LayawayOrder, Return, Sale
from ..validation import ModelValidationPolicy, enforce_rules_layaway, validate_payload
from .pagination import paginate
from .transaction import transaction_scope

CLIENT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "whatsapp", "instagram", "cpf", "birth_date", "address", "notes"},
    required_on_create={"name", "whatsapp"},
)

LAYAWAY_POLICY = ModelValidationPolicy(
    writable_fields={"client_id", "size", "notes", "fulfilled"},
    required_on_create={"client_id", "size"},
)


# ==============================
# Clients
# ==============================

def list_clients(search: str | None = None, page: int | None = None, per_page: int | None = None) -> dict:
    query = db.session.query(Client)
    if search:
        term = f"%{search.strip()}%"
        query = query.filter(or_(Client.name.ilike(term), Client.whatsapp.ilike(term)))
    query = query.order_by(Client.name.asc(), Client.id.asc())
    if page is None:
        clients = query.all()
        return {"items": [c.to_dict() for c in clients], "count": len(clients)}
    return paginate(query, page, per_page, lambda c: c.to_dict())


def get_client(client_id: int) -> Client:
    client = db.session.get(Client, client_id)
    if not client:
        raise NotFoundError(f"Client {client_id} not found")
    return client


def create_client_inner(session, patch: dict) -> Client:
    client = Client(**patch)
    session.add(client)
    session.flush()
    return client


def create_client(payload: dict) -> Client:
    patch = validate_payload(model=Client, payload=payload, policy=CLIENT_POLICY, partial=False)
    with transaction_scope() as session:
        client = create_client_inner(session, patch)
    return client


def update_client(client_id: int, payload: dict) -> Client:
    patch = validate_payload(model=Client, payload=payload, policy=CLIENT_POLICY, partial=True)
    with transaction_scope() as session:
        client = session.get(Client, client_id)
        if not client:
            raise NotFoundError(f"Client {client_id} not found")
        for k, v in patch.items():
            setattr(client, k, v)
    return client


def delete_client(client_id: int) -> None:
    """Clients with sales, returns or credits are kept for history; their layaway orders go with them."""
    with transaction_scope() as session:
        client = session.get(Client, client_id)
        if not client:
            raise NotFoundError(f"Client {client_id} not found")
        if session.query(Sale.id).filter(Sale.client_id == client_id).first():
            raise ConflictError("Client has sales and cannot be deleted")
        if (
            session.query(Return.id).filter(Return.client_id == client_id).first()
            or session.query(Credit.id).filter(Credit.client_id == client_id).first()
        ):
            raise ConflictError("Client has returns or credits and cannot be deleted")
        session.query(LayawayOrder).filter(LayawayOrder.client_id == client_id).delete(synchronize_session=False)
        session.delete(client)


def client_sales(client_id: int) -> list[Sale]:
    get_client(client_id)
    return (
        db.session.query(Sale)
        .filter(Sale.client_id == client_id)
        .order_by(Sale.created_at.desc(), Sale.id.desc())
        .all()
    )


# ==============================
# Layaway orders
# ==============================

def list_layaways(fulfilled: bool | None = None, client_id: int | None = None) -> list[LayawayOrder]:
    query = db.session.query(LayawayOrder)
    if fulfilled is not None:
        query = query.filter(LayawayOrder.fulfilled == fulfilled)
    if client_id is not None:
        query = query.filter(LayawayOrder.client_id == client_id)
    return query.order_by(LayawayOrder.created_at.desc(), LayawayOrder.id.desc()).all()


def get_layaway(order_id: int) -> LayawayOrder:
    order = db.session.get(LayawayOrder, order_id)
    if not order:
        raise NotFoundError(f"Layaway order {order_id} not found")
    return order


def create_layaway(payload: dict) -> LayawayOrder:
    patch = validate_payload(model=LayawayOrder, payload=payload, policy=LAYAWAY_POLICY, partial=False)
    enforce_rules_layaway(patch)
    with transaction_scope() as session:
        if not session.get(Client, patch["client_id"]):
            raise NotFoundError(f"Client {patch['client_id']} not found")
        order = LayawayOrder(**patch)
        session.add(order)
    return order


def update_layaway(order_id: int, payload: dict) -> LayawayOrder:
    patch = validate_payload(model=LayawayOrder, payload=payload, policy=LAYAWAY_POLICY, partial=True)
    enforce_rules_layaway(patch)
    with transaction_scope() as session:
        order = session.get(LayawayOrder, order_id)
        if not order:
            raise NotFoundError(f"Layaway order {order_id} not found")
        if "client_id" in patch and not session.get(Client, patch["client_id"]):
            raise NotFoundError(f"Client {patch['client_id']} not found")
        for k, v in patch.items():
            setattr(order, k, v)
    return order


def delete_layaway(order_id: int) -> None:
    with transaction_scope() as session:
        order = session.get(LayawayOrder, order_id)
        if not order:
            raise NotFoundError(f"Layaway order {order_id} not found")
        session.delete(order)
