from __future__ import annotations

from ..extensions import db
from scentpos.time_utils import to_utc_z


ORDER_COMPLETED = "COMPLETED"
ORDER_ON_HOLD = "ON_HOLD"
ORDER_CANCELLED = "CANCELLED"

PAYMENT_COMPLETED = "COMPLETED"
PAYMENT_PENDING = "PENDING"
PAYMENT_CANCELLED = "CANCELLED"

PAYMENT_METHODS = ("CASH", "CARD", "MOBILE")


class Order(db.Model):
    """
    A sale at the terminal.

    COMPLETED orders are written together with their OrderItems in one
    transaction and are never edited afterwards. ON_HOLD orders carry their
    cart in HeldOrderLine and draw no stock until resumed.

    Money invariants (all integer minor units):
    - total_cents == subtotal_cents - discount_cents + tax_cents
    - tax_cents == round_half_up((subtotal_cents - discount_cents) * tax_rate_bps / 10000)
    tax_rate_bps is the store rate in effect when the order was settled.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_store_status_created", "store_id", "status", "created_at"),
        db.CheckConstraint("discount_cents >= 0", name="ck_orders_discount_nonneg"),
        db.CheckConstraint(
            "total_cents = subtotal_cents - discount_cents + tax_cents",
            name="ck_orders_total_balances",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(64), nullable=False, unique=True)

    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    cashier_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)

    subtotal_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False)
    total_cents = db.Column(db.Integer, nullable=False)

    payment_method = db.Column(db.String(16), nullable=False)
    payment_status = db.Column(db.String(16), nullable=False, default=PAYMENT_COMPLETED, index=True)
    status = db.Column(db.String(16), nullable=False, default=ORDER_COMPLETED, index=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    store = db.relationship("Store", backref=db.backref("orders", lazy=True))
    cashier = db.relationship("User")
    customer = db.relationship("Customer", backref=db.backref("orders", lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_on_hold(self) -> bool:
        return self.status == ORDER_ON_HOLD

    def __repr__(self) -> str:
        return f"<Order id={self.id} number={self.order_number!r} status={self.status}>"

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "store_id": self.store_id,
            "cashier_id": self.cashier_id,
            "customer_id": self.customer_id,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "tax_rate_bps": self.tax_rate_bps,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "status": self.status,
            "is_on_hold": self.is_on_hold,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
            data["held_lines"] = [line.to_dict() for line in self.held_lines]
            data["customer"] = self.customer.to_dict() if self.customer else None
            data["cashier"] = self.cashier.to_dict() if self.cashier else None
        return data


class OrderItem(db.Model):
    """
    Units of one variant drawn from exactly one batch.

    A cart line that spans several batches becomes several OrderItems.
    unit_cost_cents is copied from the batch at allocation time. Rows are
    immutable once committed.
    """
    __tablename__ = "order_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_order_items_quantity_pos"),
        db.Index("ix_order_items_batch", "batch_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("variants.id"), nullable=False, index=True)
    batch_id = db.Column(db.Integer, db.ForeignKey("inventory_batches.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False)
    total_price_cents = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship(
        "Order",
        backref=db.backref("items", lazy=True, order_by="OrderItem.id"),
    )
    variant = db.relationship("Variant")
    batch = db.relationship("InventoryBatch", backref=db.backref("order_items", lazy=True))

    @property
    def cost_cents(self) -> int:
        return self.unit_cost_cents * self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "variant_id": self.variant_id,
            "batch_id": self.batch_id,
            "sku": self.variant.sku if self.variant else None,
            "name": self.variant.display_name if self.variant else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "unit_cost_cents": self.unit_cost_cents,
            "total_price_cents": self.total_price_cents,
        }


class HeldOrderLine(db.Model):
    """Cart line of an ON_HOLD order; replayed through FIFO allocation on resume."""
    __tablename__ = "held_order_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("variants.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)

    order = db.relationship(
        "Order",
        backref=db.backref("held_lines", lazy=True, order_by="HeldOrderLine.id"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "variant_id": self.variant_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
        }
