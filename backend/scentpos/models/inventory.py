from __future__ import annotations

from ..extensions import db
from scentpos.time_utils import to_utc_z


class InventoryBatch(db.Model):
    """
    One stock receipt: a quantity of a variant received into a store at a
    fixed unit cost.

    INVARIANTS:
    - 0 <= remaining_qty <= quantity
    - unit_cost_cents is the cost basis of every unit drawn from this batch;
      OrderItem copies it at allocation time so later edits never rewrite COGS.
    - FIFO order is (received_at, id). The autoincrement id is the arrival
      sequence that breaks ties between receipts with the same timestamp.
    - A batch referenced by any OrderItem is never deleted.
    """
    __tablename__ = "inventory_batches"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_batches_quantity_pos"),
        db.CheckConstraint("remaining_qty >= 0", name="ck_batches_remaining_nonneg"),
        db.CheckConstraint("remaining_qty <= quantity", name="ck_batches_remaining_le_quantity"),
        db.CheckConstraint("unit_cost_cents > 0", name="ck_batches_cost_pos"),
        db.Index("ix_batches_store_variant_received", "store_id", "variant_id", "received_at", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("variants.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    remaining_qty = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False)

    vendor = db.Column(db.String(255), nullable=False)
    received_at = db.Column(db.DateTime(timezone=True), nullable=False)
    manufacture_date = db.Column(db.Date, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    variant = db.relationship("Variant", backref=db.backref("batches", lazy=True))
    store = db.relationship("Store")

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return (
            f"<InventoryBatch id={self.id} variant_id={self.variant_id} "
            f"remaining={self.remaining_qty}/{self.quantity}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "variant_id": self.variant_id,
            "quantity": self.quantity,
            "remaining_qty": self.remaining_qty,
            "unit_cost_cents": self.unit_cost_cents,
            "vendor": self.vendor,
            "received_at": to_utc_z(self.received_at),
            "manufacture_date": self.manufacture_date.isoformat() if self.manufacture_date else None,
            "version_id": self.version_id,
        }


class Inventory(db.Model):
    """
    Stock aggregate: quantity on hand per (variant, store).

    quantity is a maintained counter, not a projection. Every batch mutation
    adjusts it in the same DB transaction (see services/stock_service.py),
    and `flask inventory reconcile` checks it against SUM(remaining_qty).
    Created on first receipt, never deleted; zero is a valid state.
    """
    __tablename__ = "inventory"
    __table_args__ = (
        db.UniqueConstraint("variant_id", "store_id", name="uq_inventory_variant_store"),
        db.CheckConstraint("quantity >= 0", name="ck_inventory_quantity_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("variants.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    min_stock = db.Column(db.Integer, nullable=False, default=10)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    variant = db.relationship("Variant")

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_low_stock(self) -> bool:
        return self.quantity < self.min_stock

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "variant_id": self.variant_id,
            "quantity": self.quantity,
            "min_stock": self.min_stock,
            "is_low_stock": self.is_low_stock,
            "updated_at": to_utc_z(self.updated_at),
        }
