# backend/scentpos/routes/inventory.py
"""
Stock receiving and batch maintenance routes.

Time semantics:
- received_at accepts ISO-8601 datetimes with Z/offsets; the backend
  normalizes to UTC-naive internally. Omitted means "now".
- manufacture_date is a plain YYYY-MM-DD date.
"""
from flask import Blueprint, jsonify, request

from ..decorators import json_errors, require_json
from ..models import InventoryBatch
from ..services import inventory_service, stock_service
from ..validation import (
    ValidationError,
    enforce_rules_batch_receive,
    validate_payload,
)
from ..services.inventory_service import BATCH_RECEIVE_POLICY, BATCH_UPDATE_POLICY


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


def _store_id_arg() -> int:
    store_id = request.args.get("store_id", type=int)
    if not store_id:
        raise ValidationError("store_id is required")
    return store_id


@inventory_bp.post("/receive")
@require_json
@json_errors
def receive_batch_route():
    """Receive one batch. Body: store_id, variant_id, quantity, unit_cost_cents, vendor[, manufacture_date, received_at]."""
    payload = dict(request.get_json())
    store_id = payload.pop("store_id", None)
    if not store_id:
        raise ValidationError("store_id is required")

    patch = validate_payload(
        model=InventoryBatch,
        payload=payload,
        policy=BATCH_RECEIVE_POLICY,
        partial=False,
    )
    enforce_rules_batch_receive(patch)

    batch = inventory_service.receive_batch(
        store_id=store_id,
        variant_id=patch["variant_id"],
        quantity=patch["quantity"],
        unit_cost_cents=patch["unit_cost_cents"],
        vendor=patch["vendor"],
        manufacture_date=patch.get("manufacture_date"),
        received_at=patch.get("received_at"),
    )
    return jsonify({
        "batch": batch.to_dict(),
        "stock_quantity": stock_service.get_quantity(batch.store_id, batch.variant_id),
    }), 201


@inventory_bp.post("/receive-stock")
@require_json
@json_errors
def receive_stock_route():
    """
    Receive a parsed import. Each item is an independent receipt; the
    response reports how many of the items made it.
    """
    payload = request.get_json()
    store_id = payload.get("store_id")
    if not store_id:
        raise ValidationError("store_id is required")

    result = inventory_service.receive_stock_items(store_id=store_id, items=payload.get("items"))
    status = 201 if result["imported"] else 400
    return jsonify(result), status


@inventory_bp.patch("/batches/<int:batch_id>")
@require_json
@json_errors
def update_batch_route(batch_id: int):
    patch = validate_payload(
        model=InventoryBatch,
        payload=request.get_json(),
        policy=BATCH_UPDATE_POLICY,
        partial=True,
    )
    batch = inventory_service.update_batch(batch_id, **patch)
    return jsonify({"batch": batch.to_dict()}), 200


@inventory_bp.delete("/batches/<int:batch_id>")
@json_errors
def delete_batch_route(batch_id: int):
    inventory_service.delete_batch(batch_id)
    return jsonify({"deleted": batch_id}), 200


@inventory_bp.get("")
@json_errors
def list_inventory_route():
    store_id = _store_id_arg()
    return jsonify({"items": inventory_service.list_inventory(store_id=store_id)}), 200


@inventory_bp.get("/low-stock")
@json_errors
def low_stock_route():
    store_id = _store_id_arg()
    limit = request.args.get("limit", type=int)
    rows = inventory_service.list_low_stock(store_id=store_id, limit=limit)
    return jsonify({
        "items": [
            dict(row.to_dict(), variant=row.variant.to_dict() if row.variant else None)
            for row in rows
        ],
        "count": len(rows),
    }), 200


@inventory_bp.put("/min-stock")
@require_json
@json_errors
def set_min_stock_route():
    payload = request.get_json()
    row = inventory_service.set_min_stock(
        store_id=payload.get("store_id"),
        variant_id=payload.get("variant_id"),
        min_stock=payload.get("min_stock"),
    )
    return jsonify({"inventory": row.to_dict()}), 200
