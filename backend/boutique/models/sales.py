from __future__ import annotations

from ..extensions import db
from ..time_utils import to_iso_date, to_utc_z

SALE_STATUS_PENDING = "pending"
SALE_STATUS_COMPLETED = "completed"
SALE_STATUS_CANCELLED = "cancelled"
SALE_STATUSES = (SALE_STATUS_PENDING, SALE_STATUS_COMPLETED, SALE_STATUS_CANCELLED)

METHOD_CREDIT_CARD = "credit_card"
METHOD_DEBIT_CARD = "debit_card"
METHOD_PIX = "pix"
METHOD_INSTALLMENT = "installment"
METHOD_CHECK = "check"
METHOD_CASH = "cash"

# Methods a sale may be opened with
SALE_PAYMENT_METHODS = (
    METHOD_CREDIT_CARD,
    METHOD_DEBIT_CARD,
    METHOD_PIX,
    METHOD_INSTALLMENT,
    METHOD_CHECK,
    METHOD_CASH,
)
# Methods money can actually be received with
PAYMENT_METHODS = (METHOD_CREDIT_CARD, METHOD_DEBIT_CARD, METHOD_PIX, METHOD_CHECK, METHOD_CASH)

INSTALLMENT_STATUS_PENDING = "pending"
INSTALLMENT_STATUS_PAID = "paid"
INSTALLMENT_STATUS_CANCELLED = "cancelled"


class Sale(db.Model):
    """
    Sale header.

    Lifecycle: pending -> completed (fully paid), pending|completed -> cancelled.
    total_cents = subtotal_cents - discount_cents - credit_applied_cents, floored at 0.
    Payments are never stored on the header; the paid amount is summed from Payment rows.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    # discount_cents is always the effective reduction; discount_bps is kept when
    # the caller expressed it as a percentage
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_bps = db.Column(db.Integer, nullable=True)
    credit_applied_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    payment_method = db.Column(db.String(16), nullable=False)
    installment_count = db.Column(db.Integer, nullable=True)
    first_due_date = db.Column(db.Date, nullable=True)

    status = db.Column(db.String(16), nullable=False, default=SALE_STATUS_PENDING, index=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    client = db.relationship("Client", backref=db.backref("sales", lazy=True))
    user = db.relationship("User", foreign_keys=[user_id])
    items = db.relationship(
        "SaleItem",
        backref="sale",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="SaleItem.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "client_id": self.client_id,
            "client_name": self.client.name if self.client else None,
            "user_id": self.user_id,
            "user_name": self.user.name if self.user else None,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "discount_bps": self.discount_bps,
            "credit_applied_cents": self.credit_applied_cents,
            "total_cents": self.total_cents,
            "payment_method": self.payment_method,
            "installment_count": self.installment_count,
            "first_due_date": to_iso_date(self.first_due_date),
            "status": self.status,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SaleItem(db.Model):
    """Immutable once written; corrections go through cancellation or returns."""
    __tablename__ = "sale_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    subtotal_cents = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "product_size": self.product.size if self.product else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "subtotal_cents": self.subtotal_cents,
        }


class Payment(db.Model):
    """Money received against a sale. The sum over a sale never exceeds its total."""
    __tablename__ = "payments"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_payments_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    method = db.Column(db.String(16), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    sale = db.relationship("Sale", backref=db.backref("payments", lazy=True, order_by="Payment.id"))
    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "amount_cents": self.amount_cents,
            "method": self.method,
            "user_id": self.user_id,
            "user_name": self.user.name if self.user else None,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }


class Installment(db.Model):
    """One scheduled instalment of an installment-plan sale."""
    __tablename__ = "installments"
    __table_args__ = (
        db.Index("ix_installments_sale_due", "sale_id", "due_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    number = db.Column(db.Integer, nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    due_date = db.Column(db.Date, nullable=False)
    status = db.Column(db.String(16), nullable=False, default=INSTALLMENT_STATUS_PENDING)
    payment_id = db.Column(db.Integer, db.ForeignKey("payments.id"), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    sale = db.relationship("Sale", backref=db.backref("installments", lazy=True, order_by="Installment.due_date"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "number": self.number,
            "amount_cents": self.amount_cents,
            "due_date": to_iso_date(self.due_date),
            "status": self.status,
            "payment_id": self.payment_id,
            "paid_at": to_utc_z(self.paid_at),
            "notes": self.notes,
        }
