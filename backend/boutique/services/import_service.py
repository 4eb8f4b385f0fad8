# Overview: Bulk import of products, clients and users from CSV / XLSX / JSON uploads.

"""
Import flow: parse the upload into row dicts, validate every row, then apply
all valid rows in one transaction. Invalid rows are reported with their
spreadsheet row number (header is row 1) and skipped.

Products that already exist with the same (name, size) are merged: quantity
is incremented through the ledger and the price is updated.
"""

from __future__ import annotations

import csv
import io
import json

from flask import current_app
from openpyxl import Workbook, load_workbook
from openpyxl.utils import get_column_letter

from ..errors import ServiceError, ValidationError
from ..extensions import db
from ..models import Client, Product, User
from ..models.auth import ROLES
from ..validation import (
    SIZES,
    coerce_int,
    parse_money_cents,
    validate_payload,
)
from . import ledger_service
from .auth_service import hash_password
from .customer_service import CLIENT_POLICY, create_client_inner
from .products_service import create_product_inner
from .transaction import transaction_scope

IMPORT_REASON = "import"
XLSX_EXTENSIONS = {"xlsx", "xlsm", "xltx", "xltm"}

# Header row and sample lines for the downloadable spreadsheets
TEMPLATES = {
    "products": (
        ["name", "size", "quantity", "price"],
        [["Basic Tee", "M", 10, 49.90], ["Denim Trousers", "G", 5, 89.90]],
    ),
    "clients": (
        ["name", "whatsapp", "instagram", "cpf", "birth_date", "address", "notes"],
        [["Joana Silva", "+55 11 98765-4321", "@joanasilva", "", "1990-04-12", "", "Regular client"]],
    ),
    "users": (
        ["username", "name", "password", "role"],
        [["vendor1", "Store Vendor", "ChangeMe123!", "salesperson"]],
    ),
}


def parse_upload(filename: str, stream) -> list[dict]:
    ext = (filename or "").rsplit(".", 1)[-1].lower()

    if ext == "csv":
        text = stream.read()
        if isinstance(text, bytes):
            text = text.decode("utf-8-sig")
        return [dict(row) for row in csv.DictReader(io.StringIO(text))]

    if ext == "json":
        rows = json.load(stream)
        if isinstance(rows, dict):
            rows = rows.get("rows", [])
        if not isinstance(rows, list):
            raise ValidationError("JSON upload must be a list of rows")
        return rows

    if ext in XLSX_EXTENSIONS:
        wb = load_workbook(stream, data_only=True, read_only=True)
        data = list(wb.active.values)
        wb.close()
        if not data:
            return []
        headers = [str(h).strip() if h is not None else "" for h in data[0]]
        return [
            {headers[i]: row[i] for i in range(len(headers)) if headers[i]}
            for row in data[1:]
            if any(cell is not None and str(cell).strip() for cell in row)
        ]

    raise ValidationError("Unsupported file format (use .csv, .xlsx or .json)")


def build_template(kind: str) -> bytes:
    """An .xlsx with the expected header row and sample lines for an import kind."""
    if kind not in TEMPLATES:
        raise ValidationError(f"template must be one of: {', '.join(TEMPLATES)}")
    headers, samples = TEMPLATES[kind]

    wb = Workbook()
    ws = wb.active
    ws.title = kind.capitalize()
    ws.append(headers)
    for row in samples:
        ws.append(row)
    for i, _ in enumerate(headers, 1):
        ws.column_dimensions[get_column_letter(i)].width = 18

    out = io.BytesIO()
    wb.save(out)
    return out.getvalue()


def _clean(row: dict) -> dict:
    return {
        str(k).strip().lower(): (v.strip() if isinstance(v, str) else v)
        for k, v in row.items()
        if k is not None
    }


def _result(imported: int, updated: int, errors: list) -> dict:
    return {"imported": imported, "updated": updated, "errors": errors, "error_count": len(errors)}


# ==============================
# Products
# ==============================

def _validate_product_row(row: dict) -> dict:
    messages = []
    name = row.get("name")
    if not name:
        messages.append("name is required")

    size = str(row.get("size") or "").upper()
    if size not in SIZES:
        messages.append(f"size must be one of: {', '.join(SIZES)}")

    quantity = None
    try:
        quantity = coerce_int(row.get("quantity") if row.get("quantity") not in (None, "") else 0, "quantity")
        if quantity < 0:
            messages.append("quantity must be >= 0")
    except ValidationError as e:
        messages.append(e.message)

    price = None
    raw_price = row.get("price_cents") if row.get("price_cents") not in (None, "") else row.get("price")
    if raw_price in (None, ""):
        messages.append("price is required")
    else:
        try:
            price = (
                coerce_int(raw_price, "price_cents")
                if row.get("price_cents") not in (None, "")
                else parse_money_cents(str(raw_price), "price")
            )
            if price <= 0:
                messages.append("price must be > 0")
        except ValidationError as e:
            messages.append(e.message)

    if messages:
        raise ValidationError("; ".join(messages), {"messages": messages})
    return {"name": str(name), "size": size, "quantity": quantity, "price_cents": price}


def import_products(rows: list[dict], actor_id: int | None) -> dict:
    errors, valid = [], []
    for idx, raw in enumerate(rows):
        try:
            valid.append((idx + 2, _validate_product_row(_clean(raw))))
        except ValidationError as e:
            errors.append({"row": idx + 2, "messages": e.details.get("messages", [e.message])})

    imported = updated = 0
    with transaction_scope() as session:
        for _row_number, patch in valid:
            existing = (
                session.query(Product)
                .filter(Product.name == patch["name"], Product.size == patch["size"])
                .first()
            )
            if existing is None:
                create_product_inner(session, patch, actor_id, reason=IMPORT_REASON)
                imported += 1
                continue

            existing.price_cents = patch["price_cents"]
            if patch["quantity"] > 0:
                ledger_service.adjust_quantity(
                    session,
                    product_id=existing.id,
                    delta=patch["quantity"],
                    reason=IMPORT_REASON,
                    actor_id=actor_id,
                )
            updated += 1

    current_app.logger.info("Products imported: new=%s merged=%s errors=%s", imported, updated, len(errors))
    return _result(imported, updated, errors)


# ==============================
# Clients
# ==============================

def import_clients(rows: list[dict]) -> dict:
    errors, valid = [], []
    for idx, raw in enumerate(rows):
        row = {k: v for k, v in _clean(raw).items() if k in CLIENT_POLICY.writable_fields and v not in (None, "")}
        try:
            valid.append(validate_payload(model=Client, payload=row, policy=CLIENT_POLICY, partial=False))
        except ServiceError as e:
            errors.append({"row": idx + 2, "messages": [e.message]})

    with transaction_scope() as session:
        for patch in valid:
            create_client_inner(session, patch)

    current_app.logger.info("Clients imported: new=%s errors=%s", len(valid), len(errors))
    return _result(len(valid), 0, errors)


# ==============================
# Users
# ==============================

def import_users(rows: list[dict]) -> dict:
    errors, valid = [], []
    seen: set[str] = set()
    for idx, raw in enumerate(rows):
        row = _clean(raw)
        messages = []
        username = str(row.get("username") or "").strip()
        name = str(row.get("name") or "").strip()
        role = str(row.get("role") or "").strip().lower()
        if not username:
            messages.append("username is required")
        elif username in seen or db.session.query(User).filter_by(username=username).first():
            messages.append(f"username {username!r} already exists")
        if not name:
            messages.append("name is required")
        if role not in ROLES:
            messages.append(f"role must be one of: {', '.join(ROLES)}")
        password_hash = None
        try:
            password_hash = hash_password(str(row.get("password") or ""))
        except ValidationError as e:
            messages.append(e.message)

        if messages:
            errors.append({"row": idx + 2, "messages": messages})
            continue
        seen.add(username)
        valid.append(User(username=username, name=name, role=role, password_hash=password_hash, is_active=True))

    with transaction_scope() as session:
        session.add_all(valid)

    current_app.logger.info("Users imported: new=%s errors=%s", len(valid), len(errors))
    return _result(len(valid), 0, errors)
