# backend/scentpos/routes/orders.py
"""POS order routes: settle, hold, resume, cancel, read."""

from flask import Blueprint, jsonify, request

from ..decorators import json_errors, require_json
from ..services import order_service
from ..validation import ValidationError


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _order_args(payload: dict) -> dict:
    for key in ("store_id", "cashier_id"):
        if not payload.get(key):
            raise ValidationError(f"{key} is required")
    return {
        "store_id": payload["store_id"],
        "cashier_id": payload["cashier_id"],
        "lines": payload.get("lines"),
        "discount_cents": payload.get("discount_cents", 0),
        "payment_method": payload.get("payment_method", "CASH"),
        "customer_id": payload.get("customer_id"),
        "notes": payload.get("notes"),
    }


@orders_bp.post("")
@require_json
@json_errors
def settle_order_route():
    """
    Settle a cart.

    On 409 INSUFFICIENT_STOCK the details name the variant that could not
    be filled; nothing was written and the terminal keeps its cart.
    """
    order = order_service.settle_order(**_order_args(request.get_json()))
    return jsonify({"order": order.to_dict(include_items=True)}), 201


@orders_bp.post("/hold")
@require_json
@json_errors
def hold_order_route():
    order = order_service.hold_order(**_order_args(request.get_json()))
    return jsonify({"order": order.to_dict(include_items=True)}), 201


@orders_bp.post("/<int:order_id>/resume")
@json_errors
def resume_order_route(order_id: int):
    payload = request.get_json(silent=True) or {}
    order = order_service.resume_held_order(order_id, payment_method=payload.get("payment_method"))
    return jsonify({"order": order.to_dict(include_items=True)}), 200


@orders_bp.post("/<int:order_id>/cancel")
@json_errors
def cancel_order_route(order_id: int):
    order = order_service.cancel_held_order(order_id)
    return jsonify({"order": order.to_dict()}), 200


@orders_bp.get("/<int:order_id>")
@json_errors
def get_order_route(order_id: int):
    order = order_service.get_order(order_id)
    return jsonify({"order": order.to_dict(include_items=True)}), 200


@orders_bp.get("")
@json_errors
def list_orders_route():
    store_id = request.args.get("store_id", type=int)
    if not store_id:
        raise ValidationError("store_id is required")
    orders = order_service.list_orders(
        store_id=store_id,
        status=request.args.get("status"),
        limit=min(request.args.get("limit", 50, type=int), 200),
    )
    return jsonify({"orders": [o.to_dict() for o in orders], "count": len(orders)}), 200
