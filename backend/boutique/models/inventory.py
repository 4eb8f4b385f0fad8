from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

MOVEMENT_INBOUND = "inbound"
MOVEMENT_OUTBOUND = "outbound"
MOVEMENT_KINDS = (MOVEMENT_INBOUND, MOVEMENT_OUTBOUND)

COUNT_STATUS_IN_PROGRESS = "in_progress"
COUNT_STATUS_FINISHED = "finished"


class StockMovement(db.Model):
    """
    Append-only stock ledger entry.

    quantity is the magnitude (> 0); kind carries the sign. Rows are never
    updated or deleted: a correction is a new movement in the other direction.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_product_created", "product_id", "created_at"),
        db.CheckConstraint("quantity > 0", name="ck_stock_movements_quantity_positive"),
        db.CheckConstraint("kind IN ('inbound', 'outbound')", name="ck_stock_movements_kind"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    kind = db.Column(db.String(16), nullable=False)
    reason = db.Column(db.String(255), nullable=False)
    actor_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    # Optional links back to the document that caused the movement
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    return_id = db.Column(db.Integer, db.ForeignKey("returns.id"), nullable=True, index=True)
    count_id = db.Column(db.Integer, db.ForeignKey("inventory_counts.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("movements", lazy=True))
    actor = db.relationship("User")

    @property
    def signed_quantity(self) -> int:
        return self.quantity if self.kind == MOVEMENT_INBOUND else -self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "product_size": self.product.size if self.product else None,
            "quantity": self.quantity,
            "signed_quantity": self.signed_quantity,
            "kind": self.kind,
            "reason": self.reason,
            "actor_id": self.actor_id,
            "actor_name": self.actor.name if self.actor else None,
            "sale_id": self.sale_id,
            "return_id": self.return_id,
            "count_id": self.count_id,
            "created_at": to_utc_z(self.created_at),
        }


class InventoryCount(db.Model):
    """
    Physical count cycle header.

    At most one count may be in_progress; the partial unique index enforces it
    at the store level as well as in the service.
    """
    __tablename__ = "inventory_counts"
    __table_args__ = (
        db.Index(
            "uq_inventory_counts_single_in_progress",
            "status",
            unique=True,
            sqlite_where=db.text("status = 'in_progress'"),
            postgresql_where=db.text("status = 'in_progress'"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    status = db.Column(db.String(16), nullable=False, default=COUNT_STATUS_IN_PROGRESS, index=True)
    actor_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    finished_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    started_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    finished_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    actor = db.relationship("User", foreign_keys=[actor_id])
    items = db.relationship(
        "InventoryCountItem",
        backref="count",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="InventoryCountItem.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "status": self.status,
            "actor_id": self.actor_id,
            "actor_name": self.actor.name if self.actor else None,
            "finished_by_id": self.finished_by_id,
            "started_at": to_utc_z(self.started_at),
            "finished_at": to_utc_z(self.finished_at),
            "total_items": len(self.items),
            "counted_items": sum(1 for i in self.items if i.physical_quantity is not None),
        }
        if include_items:
            data["items"] = [i.to_dict() for i in self.items]
        return data


class InventoryCountItem(db.Model):
    """Snapshot of one product's system quantity plus the physically counted value."""
    __tablename__ = "inventory_count_items"
    __table_args__ = (
        db.UniqueConstraint("count_id", "product_id", name="uq_inventory_count_items_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    count_id = db.Column(db.Integer, db.ForeignKey("inventory_counts.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    system_quantity = db.Column(db.Integer, nullable=False)
    physical_quantity = db.Column(db.Integer, nullable=True)
    note = db.Column(db.Text, nullable=True)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product")

    @property
    def difference(self) -> int | None:
        if self.physical_quantity is None:
            return None
        return self.physical_quantity - self.system_quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "count_id": self.count_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "product_size": self.product.size if self.product else None,
            "system_quantity": self.system_quantity,
            "physical_quantity": self.physical_quantity,
            "difference": self.difference,
            "note": self.note,
        }
