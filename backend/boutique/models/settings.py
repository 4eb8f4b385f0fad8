from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class StoreSettings(db.Model):
    """
    Single-row store configuration.

    The row is created on the first admin update; until then reads fall back
    to defaults built from the app config.
    """
    __tablename__ = "store_settings"
    __table_args__ = (
        db.CheckConstraint("low_stock_threshold >= 0", name="ck_store_settings_low_non_negative"),
        db.CheckConstraint(
            "medium_stock_threshold >= low_stock_threshold",
            name="ck_store_settings_medium_above_low",
        ),
        db.CheckConstraint("max_installments >= 1", name="ck_store_settings_max_installments"),
        db.CheckConstraint("installment_due_days >= 1", name="ck_store_settings_due_days"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Store identity (receipts, client messages)
    store_name = db.Column(db.String(255), nullable=False)
    address = db.Column(db.Text, nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    instagram = db.Column(db.String(128), nullable=True)
    whatsapp = db.Column(db.String(32), nullable=True)

    show_low_stock = db.Column(db.Boolean, nullable=False, default=True)
    low_stock_threshold = db.Column(db.Integer, nullable=False)
    medium_stock_threshold = db.Column(db.Integer, nullable=False)

    max_installments = db.Column(db.Integer, nullable=False)
    # Days from the sale to the first installment when no date is given
    installment_due_days = db.Column(db.Integer, nullable=False)

    updated_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "store_name": self.store_name,
            "address": self.address,
            "phone": self.phone,
            "email": self.email,
            "instagram": self.instagram,
            "whatsapp": self.whatsapp,
            "show_low_stock": bool(self.show_low_stock),
            "low_stock_threshold": self.low_stock_threshold,
            "medium_stock_threshold": self.medium_stock_threshold,
            "max_installments": self.max_installments,
            "installment_due_days": self.installment_due_days,
            "updated_by_id": self.updated_by_id,
            "updated_at": to_utc_z(self.updated_at),
        }
