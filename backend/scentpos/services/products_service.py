"""
Catalog lookups and creation.

Only the slice of catalog management the stock and settlement flows depend
on lives here: creating a product with its variants, and resolving a
variant by id, SKU or barcode (what the scanner and import paths send).
"""
from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Product, Variant
from ..validation import ConflictError, NotFoundError, ValidationError
from .concurrency import run_with_retry


def _clean_variant(raw) -> dict:
    if not isinstance(raw, dict):
        raise ValidationError("each variant must be an object")
    sku = (raw.get("sku") or "").strip()
    if not sku:
        raise ValidationError("variant sku is required")
    price = raw.get("retail_price_cents")
    if isinstance(price, bool) or not isinstance(price, int) or price < 0:
        raise ValidationError("retail_price_cents must be an integer >= 0")
    barcode = (raw.get("barcode") or "").strip() or None
    return {
        "sku": sku,
        "barcode": barcode,
        "size": raw.get("size"),
        "concentration": raw.get("concentration"),
        "retail_price_cents": price,
        "is_tester": bool(raw.get("is_tester", False)),
    }


def create_product(
    *,
    brand: str,
    name: str,
    category: str | None = None,
    description: str | None = None,
    variants: list[dict] | None = None,
) -> Product:
    if not brand or not name:
        raise ValidationError("brand and name are required")
    clean = [_clean_variant(v) for v in (variants or [])]
    skus = [v["sku"] for v in clean]
    if len(set(skus)) != len(skus):
        raise ValidationError("duplicate sku in request")

    def _op():
        product = Product(brand=brand.strip(), name=name.strip(), category=category, description=description)
        db.session.add(product)
        db.session.flush()
        for data in clean:
            db.session.add(Variant(product_id=product.id, **data))
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError("sku or barcode already exists", details={"skus": skus})
        return product

    return run_with_retry(_op)


def get_variant(variant_id: int) -> Variant:
    variant = db.session.get(Variant, variant_id)
    if variant is None:
        raise NotFoundError(f"Variant {variant_id} not found")
    return variant


def find_variant(*, sku: str | None = None, barcode: str | None = None) -> Variant:
    if not sku and not barcode:
        raise ValidationError("sku or barcode is required")
    q = db.session.query(Variant)
    if sku:
        q = q.filter(Variant.sku == sku.strip())
    if barcode:
        q = q.filter(Variant.barcode == barcode.strip())
    variant = q.first()
    if variant is None:
        raise NotFoundError(f"No variant for sku={sku!r} barcode={barcode!r}")
    return variant
