# Overview: Service-layer operations for client store credit.

"""
Credit rules:

- A credit's amount is fixed at insert. Using part of it marks it used and
  issues a new credit for the remainder (same client, origin and expiry,
  parent_credit_id pointing back), so every credit has a clean origin chain.
- Credits apply only to pending sales and lower the sale total by at most the
  balance still unpaid, so payments never exceed the total.
- Expired credits (expires_at in the past) are never listed or applied.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import or_

from ..errors import ExceedsCredit, InvalidStateError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Client, Credit, CreditUsage
from ..models.returns import CREDIT_ORIGIN_MANUAL, CREDIT_STATUS_AVAILABLE, CREDIT_STATUS_USED
from ..models.sales import SALE_STATUS_PENDING
from ..time_utils import utcnow
from ..validation import coerce_int, require_positive_int
from . import payment_service
from .transaction import lock_for_update, transaction_scope


def _is_spendable(credit: Credit, client_id: int, now: datetime) -> bool:
    return (
        credit.client_id == client_id
        and credit.status == CREDIT_STATUS_AVAILABLE
        and (credit.expires_at is None or credit.expires_at > now)
    )


def list_client_credits(client_id: int) -> dict:
    """Available, unexpired credits newest first, with their sum."""
    if not db.session.get(Client, client_id):
        raise NotFoundError(f"Client {client_id} not found")
    now = utcnow()
    credits = (
        db.session.query(Credit)
        .filter(
            Credit.client_id == client_id,
            Credit.status == CREDIT_STATUS_AVAILABLE,
            or_(Credit.expires_at.is_(None), Credit.expires_at > now),
        )
        .order_by(Credit.created_at.desc(), Credit.id.desc())
        .all()
    )
    return {
        "client_id": client_id,
        "items": [c.to_dict() for c in credits],
        "total_cents": sum(c.amount_cents for c in credits),
    }


def grant_credit(client_id: int, amount_cents, user_id: int, expires_at: datetime | None = None) -> Credit:
    amount_cents = require_positive_int(amount_cents, "amount_cents")
    if expires_at is not None and expires_at <= utcnow():
        raise ValidationError("expires_at must be in the future")
    with transaction_scope() as session:
        if not session.get(Client, client_id):
            raise NotFoundError(f"Client {client_id} not found")
        credit = Credit(
            client_id=client_id,
            amount_cents=amount_cents,
            origin=CREDIT_ORIGIN_MANUAL,
            expires_at=expires_at,
            created_by_id=user_id,
        )
        session.add(credit)
    current_app.logger.info("Credit granted: client=%s amount=%s", client_id, amount_cents)
    return credit


def apply_credit(*, client_id: int, sale_id: int, credit_id: int, amount_cents, user_id: int) -> dict:
    """
    Spend (part of) a client's credit on a pending sale.

    Raises:
        ValidationError: amount <= 0
        NotFoundError: credit missing, not the client's, not available or expired; sale missing
        ExceedsCredit: amount greater than the credit or the sale's remaining balance
        InvalidStateError: sale not pending

    Returns {"usage", "credit", "remainder", "sale"} (remainder is None on full use).
    """
    if amount_cents is None:
        raise ValidationError("amount_cents is required")
    amount_cents = coerce_int(amount_cents, "amount_cents")
    if amount_cents <= 0:
        raise ValidationError("amount_cents must be > 0")

    with transaction_scope() as session:
        credit = (
            lock_for_update(session.query(Credit).filter(Credit.id == credit_id))
            .populate_existing()
            .first()
        )
        if not credit or not _is_spendable(credit, client_id, utcnow()):
            raise NotFoundError("Credit not found, not available, or expired")
        if amount_cents > credit.amount_cents:
            raise ExceedsCredit(
                f"Amount {amount_cents} exceeds the available credit of {credit.amount_cents}",
                {"available_cents": credit.amount_cents},
            )

        sale = payment_service.locked_sale(session, sale_id)
        if sale.status != SALE_STATUS_PENDING:
            raise InvalidStateError(f"Credit can only be applied to pending sales (sale is {sale.status})")
        paid = payment_service.paid_total(session, sale.id)
        remaining = max(sale.total_cents - paid, 0)
        if amount_cents > remaining:
            raise ExceedsCredit(
                f"Amount {amount_cents} exceeds the remaining balance of {remaining}",
                {"remaining_cents": remaining},
            )

        usage = CreditUsage(credit_id=credit.id, sale_id=sale.id, amount_cents=amount_cents, user_id=user_id)
        session.add(usage)

        credit.status = CREDIT_STATUS_USED
        credit.used_at = utcnow()

        remainder = None
        if amount_cents < credit.amount_cents:
            remainder = Credit(
                client_id=credit.client_id,
                amount_cents=credit.amount_cents - amount_cents,
                origin=credit.origin,
                return_id=credit.return_id,
                parent_credit_id=credit.id,
                expires_at=credit.expires_at,
                created_by_id=user_id,
            )
            session.add(remainder)

        sale.total_cents -= amount_cents
        sale.credit_applied_cents += amount_cents
        if sale.installments:
            payment_service.reduce_pending_installments(sale, amount_cents)
        payment_service.complete_if_paid(sale, paid)
        session.flush()

    current_app.logger.info(
        "Credit applied: credit=%s sale=%s amount=%s remainder=%s",
        credit_id,
        sale_id,
        amount_cents,
        remainder.amount_cents if remainder else 0,
    )
    return {"usage": usage, "credit": credit, "remainder": remainder, "sale": sale}
