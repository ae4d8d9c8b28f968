from __future__ import annotations

from ..extensions import db
from scentpos.time_utils import to_utc_z


class Product(db.Model):
    """
    A fragrance line (brand + name). Sellable units are its Variants.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_brand_name", "brand", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    brand = db.Column(db.String(120), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(64), nullable=True, index=True)
    description = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    @property
    def display_name(self) -> str:
        return f"{self.brand} {self.name}"

    def __repr__(self) -> str:
        return f"<Product id={self.id} {self.display_name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "brand": self.brand,
            "name": self.name,
            "category": self.category,
            "description": self.description,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Variant(db.Model):
    """
    One sellable size/concentration of a product.

    SKU is globally unique; barcode is unique when present. The retail price
    may change at any time without touching cost history, which lives on
    InventoryBatch / OrderItem.
    """
    __tablename__ = "variants"
    __table_args__ = (
        db.CheckConstraint("retail_price_cents >= 0", name="ck_variants_price_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False, unique=True)
    barcode = db.Column(db.String(64), nullable=True, unique=True)

    size = db.Column(db.String(32), nullable=True)  # e.g. "50ml"
    concentration = db.Column(db.String(16), nullable=True)  # EDP, EDT, PARFUM, ...
    retail_price_cents = db.Column(db.Integer, nullable=False)
    is_tester = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("variants", lazy=True))

    @property
    def display_name(self) -> str:
        parts = [self.product.display_name] if self.product else []
        if self.size:
            parts.append(self.size)
        if self.concentration:
            parts.append(self.concentration)
        return " ".join(parts)

    def __repr__(self) -> str:
        return f"<Variant id={self.id} sku={self.sku!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "sku": self.sku,
            "barcode": self.barcode,
            "size": self.size,
            "concentration": self.concentration,
            "retail_price_cents": self.retail_price_cents,
            "is_tester": self.is_tester,
            "display_name": self.display_name,
        }
