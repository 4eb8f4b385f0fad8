# Overview: Service-layer operations for payments; keeps sale balances and the completion transition consistent.

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..errors import InvalidStateError, NotFoundError, OverPayment
from ..extensions import db
from ..models import Installment, Payment, Sale
from ..models.sales import (
    INSTALLMENT_STATUS_CANCELLED,
    INSTALLMENT_STATUS_PAID,
    INSTALLMENT_STATUS_PENDING,
    PAYMENT_METHODS,
    SALE_STATUS_CANCELLED,
    SALE_STATUS_COMPLETED,
    SALE_STATUS_PENDING,
)
from ..time_utils import utcnow
from ..validation import require_choice, require_positive_int
from .transaction import lock_for_update, transaction_scope


def paid_total(session, sale_id: int) -> int:
    total = (
        session.query(func.coalesce(func.sum(Payment.amount_cents), 0))
        .filter(Payment.sale_id == sale_id)
        .scalar()
    )
    return int(total or 0)


def locked_sale(session, sale_id: int) -> Sale:
    sale = (
        lock_for_update(session.query(Sale).filter(Sale.id == sale_id))
        .populate_existing()
        .first()
    )
    if not sale:
        raise NotFoundError(f"Sale {sale_id} not found")
    return sale


def complete_if_paid(sale: Sale, paid_cents: int) -> bool:
    """pending -> completed once payments cover the total. Returns True on transition."""
    if sale.status != SALE_STATUS_PENDING or paid_cents < sale.total_cents:
        return False
    sale.status = SALE_STATUS_COMPLETED
    sale.completed_at = utcnow()
    current_app.logger.info("Sale completed: id=%s total=%s", sale.id, sale.total_cents)
    return True


# ==============================
# Installments
# ==============================

def _pending_installments(sale: Sale) -> list[Installment]:
    return sorted(
        (i for i in sale.installments if i.status == INSTALLMENT_STATUS_PENDING),
        key=lambda i: (i.due_date, i.number, i.id or 0),
    )


def _allocate_to_installments(sale: Sale, payment: Payment) -> None:
    """
    Settle pending installments oldest due date first. A partially covered
    installment is split: the covered part is marked paid and the rest becomes
    a new pending installment with the same number and due date.
    """
    remaining = payment.amount_cents
    now = utcnow()
    for inst in _pending_installments(sale):
        if remaining <= 0:
            break
        if remaining < inst.amount_cents:
            leftover = inst.amount_cents - remaining
            inst.amount_cents = remaining
            sale.installments.append(
                Installment(
                    number=inst.number,
                    amount_cents=leftover,
                    due_date=inst.due_date,
                    status=INSTALLMENT_STATUS_PENDING,
                    notes=f"Remainder of installment {inst.number}",
                )
            )
        remaining -= inst.amount_cents
        inst.status = INSTALLMENT_STATUS_PAID
        inst.payment_id = payment.id
        inst.paid_at = now


def reduce_pending_installments(sale: Sale, amount_cents: int) -> None:
    """Take a reduction of the sale total off the latest pending installments first."""
    remaining = amount_cents
    for inst in reversed(_pending_installments(sale)):
        if remaining <= 0:
            break
        cut = min(inst.amount_cents, remaining)
        inst.amount_cents -= cut
        remaining -= cut
        if inst.amount_cents == 0:
            inst.status = INSTALLMENT_STATUS_CANCELLED


def cancel_pending_installments(sale: Sale) -> None:
    for inst in sale.installments:
        if inst.status == INSTALLMENT_STATUS_PENDING:
            inst.status = INSTALLMENT_STATUS_CANCELLED


# ==============================
# Payments
# ==============================

def record_payment_inner(
    session,
    sale: Sale,
    amount_cents: int,
    method: str,
    user_id: int,
    notes: str | None = None,
) -> Payment:
    """
    Insert a payment against a locked, non-cancelled sale. Does NOT commit.

    The overpayment check, the insert and the completion transition happen in
    the caller's transaction.
    """
    prior = paid_total(session, sale.id)
    if prior + amount_cents > sale.total_cents:
        remaining = max(sale.total_cents - prior, 0)
        raise OverPayment(
            f"Payment of {amount_cents} exceeds the remaining balance of {remaining}",
            {"remaining_cents": remaining, "paid_cents": prior, "total_cents": sale.total_cents},
        )

    payment = Payment(
        sale_id=sale.id,
        amount_cents=amount_cents,
        method=method,
        user_id=user_id,
        notes=notes,
    )
    session.add(payment)
    session.flush()

    if sale.installments:
        _allocate_to_installments(sale, payment)

    complete_if_paid(sale, prior + amount_cents)
    session.flush()
    return payment


def record_payment(
    sale_id: int,
    amount_cents: int,
    method: str,
    user_id: int,
    notes: str | None = None,
) -> Payment:
    """
    Record a (possibly partial) payment against a sale.

    Raises:
        ValidationError: amount not a positive integer, unknown method
        NotFoundError: sale does not exist
        InvalidStateError: sale is cancelled
        OverPayment: paid so far + amount would exceed the sale total
    """
    amount_cents = require_positive_int(amount_cents, "amount_cents")
    require_choice(method, "method", PAYMENT_METHODS)

    with transaction_scope() as session:
        sale = locked_sale(session, sale_id)
        if sale.status == SALE_STATUS_CANCELLED:
            raise InvalidStateError("Cannot record a payment on a cancelled sale")
        payment = record_payment_inner(session, sale, amount_cents, method, user_id, notes)

    current_app.logger.info("Payment recorded: sale=%s amount=%s method=%s", sale_id, amount_cents, method)
    return payment


def payment_summary(sale_id: int) -> dict:
    sale = db.session.get(Sale, sale_id)
    if not sale:
        raise NotFoundError(f"Sale {sale_id} not found")
    paid = paid_total(db.session, sale_id)
    return {
        "sale_id": sale.id,
        "status": sale.status,
        "total_cents": sale.total_cents,
        "paid_cents": paid,
        "remaining_cents": max(sale.total_cents - paid, 0),
    }


def list_payments(sale_id: int) -> list[Payment]:
    if not db.session.get(Sale, sale_id):
        raise NotFoundError(f"Sale {sale_id} not found")
    return (
        db.session.query(Payment)
        .filter(Payment.sale_id == sale_id)
        .order_by(Payment.created_at.asc(), Payment.id.asc())
        .all()
    )


def list_installments(sale_id: int) -> list[Installment]:
    if not db.session.get(Sale, sale_id):
        raise NotFoundError(f"Sale {sale_id} not found")
    return (
        db.session.query(Installment)
        .filter(Installment.sale_id == sale_id)
        .order_by(Installment.due_date.asc(), Installment.number.asc(), Installment.id.asc())
        .all()
    )
