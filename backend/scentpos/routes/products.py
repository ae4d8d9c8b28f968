# Overview: Variant lookup for the terminal's scan-to-cart flow.

"""
Scanner / SKU lookup.

GET /api/products/lookup?barcode=...  or  ?sku=...
Optional store_id adds the quantity on hand for that store.
"""
from flask import Blueprint, jsonify, request

from ..decorators import json_errors
from ..services import products_service, stock_service


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("/lookup")
@json_errors
def lookup_variant_route():
    variant = products_service.find_variant(
        sku=request.args.get("sku"),
        barcode=request.args.get("barcode"),
    )
    store_id = request.args.get("store_id", type=int)
    return jsonify({
        "variant": variant.to_dict(),
        "product": variant.product.to_dict(),
        "stock_quantity": stock_service.get_quantity(store_id, variant.id) if store_id else None,
    }), 200
