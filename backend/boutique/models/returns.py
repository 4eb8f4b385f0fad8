from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

RETURN_STATUS_PENDING = "pending"
RETURN_STATUS_APPROVED = "approved"
RETURN_STATUS_REJECTED = "rejected"
RETURN_STATUSES = (RETURN_STATUS_PENDING, RETURN_STATUS_APPROVED, RETURN_STATUS_REJECTED)

CREDIT_STATUS_AVAILABLE = "available"
CREDIT_STATUS_USED = "used"

CREDIT_ORIGIN_RETURN = "return"
CREDIT_ORIGIN_MANUAL = "manual"


class Return(db.Model):
    """
    Return against a completed sale.

    Nothing moves while the return is pending. Approval restores stock and
    issues one credit for total_cents in the same transaction.
    """
    __tablename__ = "returns"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False, index=True)
    reason = db.Column(db.Text, nullable=False)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default=RETURN_STATUS_PENDING, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    approved_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejected_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    version_id = db.Column(db.Integer, nullable=False, default=1)

    sale = db.relationship("Sale", backref=db.backref("returns", lazy=True))
    client = db.relationship("Client")
    user = db.relationship("User", foreign_keys=[user_id])
    items = db.relationship(
        "ReturnItem",
        backref="return_doc",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="ReturnItem.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "sale_id": self.sale_id,
            "client_id": self.client_id,
            "client_name": self.client.name if self.client else None,
            "reason": self.reason,
            "total_cents": self.total_cents,
            "status": self.status,
            "user_id": self.user_id,
            "approved_by_id": self.approved_by_id,
            "approved_at": to_utc_z(self.approved_at),
            "rejected_by_id": self.rejected_by_id,
            "rejected_at": to_utc_z(self.rejected_at),
            "rejection_reason": self.rejection_reason,
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class ReturnItem(db.Model):
    __tablename__ = "return_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_return_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    return_id = db.Column(db.Integer, db.ForeignKey("returns.id"), nullable=False, index=True)
    sale_item_id = db.Column(db.Integer, db.ForeignKey("sale_items.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    subtotal_cents = db.Column(db.Integer, nullable=False)

    sale_item = db.relationship("SaleItem")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "return_id": self.return_id,
            "sale_item_id": self.sale_item_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "product_size": self.product.size if self.product else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "subtotal_cents": self.subtotal_cents,
        }


class Credit(db.Model):
    """
    Client store credit.

    amount_cents never changes after insert. Partial use marks the credit used
    and issues a new remainder credit pointing back through parent_credit_id.
    """
    __tablename__ = "credits"
    __table_args__ = (
        db.Index("ix_credits_client_status", "client_id", "status"),
        db.CheckConstraint("amount_cents > 0", name="ck_credits_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    origin = db.Column(db.String(16), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=CREDIT_STATUS_AVAILABLE)
    return_id = db.Column(db.Integer, db.ForeignKey("returns.id"), nullable=True, index=True)
    parent_credit_id = db.Column(db.Integer, db.ForeignKey("credits.id"), nullable=True)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    used_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    client = db.relationship("Client", backref=db.backref("credits", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "client_id": self.client_id,
            "amount_cents": self.amount_cents,
            "origin": self.origin,
            "status": self.status,
            "return_id": self.return_id,
            "parent_credit_id": self.parent_credit_id,
            "expires_at": to_utc_z(self.expires_at),
            "created_at": to_utc_z(self.created_at),
            "used_at": to_utc_z(self.used_at),
        }


class CreditUsage(db.Model):
    __tablename__ = "credit_usages"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    credit_id = db.Column(db.Integer, db.ForeignKey("credits.id"), nullable=False, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    credit = db.relationship("Credit", backref=db.backref("usages", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "credit_id": self.credit_id,
            "sale_id": self.sale_id,
            "amount_cents": self.amount_cents,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
        }
