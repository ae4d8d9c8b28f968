# Overview: Batch ledger: stock receipts, batch edits/deletes, and inventory listings.

# backend/scentpos/services/inventory_service.py

"""
ScentPOS Inventory Invariants & Time Semantics (authoritative)

Canonical time handling:
- All internal datetimes are UTC-naive (tzinfo=None).
- API accepts ISO-8601 with 'Z' or offsets; inputs are normalized to UTC-naive.

Batch ledger:
- Every receipt is an InventoryBatch with its own immutable-by-default
  unit_cost_cents. remaining_qty only goes down through sales.
- 0 <= remaining_qty <= quantity, always.
- used quantity of a batch = SUM(OrderItem.quantity) referencing it, and
  remaining_qty == quantity - used.

Stock aggregate coupling:
- Every change to a batch's remaining_qty is paired with the same delta on
  the (variant, store) Inventory row, inside the same transaction. That
  includes update_batch(): when quantity changes, the aggregate follows.

Transactions:
- Each public mutator is one unit of work: begin_write_transaction(), the
  writes, commit. Any error rolls everything back (run_with_retry).
"""

from __future__ import annotations

from datetime import date, datetime, timedelta

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Inventory, InventoryBatch, OrderItem, Store, Variant
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    enforce_rules_batch_receive,
    enforce_rules_batch_update,
    validate_payload,
)
from scentpos.time_utils import coerce_datetime, utcnow
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry
from .stock_service import adjust_stock, decrement_stock, increment_stock


BATCH_RECEIVE_POLICY = ModelValidationPolicy(
    writable_fields={"variant_id", "quantity", "unit_cost_cents", "vendor", "manufacture_date", "received_at"},
    required_on_create={"variant_id", "quantity", "unit_cost_cents", "vendor"},
)

BATCH_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"quantity", "unit_cost_cents", "vendor", "manufacture_date"},
)

MIN_STOCK_POLICY = ModelValidationPolicy(
    writable_fields={"store_id", "variant_id", "min_stock"},
    required_on_create={"store_id", "variant_id", "min_stock"},
)


def _ensure_store(store_id: int) -> Store:
    store = db.session.get(Store, store_id)
    if store is None:
        raise NotFoundError(f"Store {store_id} not found")
    return store


def _ensure_variant(variant_id: int) -> Variant:
    variant = db.session.get(Variant, variant_id)
    if variant is None:
        raise NotFoundError(f"Variant {variant_id} not found")
    return variant


def _parse_received_at(value) -> datetime:
    """None -> now; otherwise normalized UTC-naive, not in the future."""
    if value is None:
        return utcnow()
    try:
        received = coerce_datetime(value)
    except ValueError:
        raise ValidationError("received_at must be an ISO-8601 datetime")
    if received is None:
        return utcnow()
    if received > utcnow() + timedelta(minutes=2):
        raise ValidationError("received_at cannot be in the future")
    return received


def _parse_manufacture_date(value) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            raise ValidationError("manufacture_date must be an ISO-8601 date")
    raise ValidationError("manufacture_date must be a date")


def get_used_quantity(batch_id: int) -> int:
    """Units already sold out of this batch (committed OrderItems)."""
    used = (
        db.session.query(func.coalesce(func.sum(OrderItem.quantity), 0))
        .filter(OrderItem.batch_id == batch_id)
        .scalar()
    )
    return int(used or 0)


def get_batch(batch_id: int, *, lock: bool = False) -> InventoryBatch:
    query = db.session.query(InventoryBatch).filter_by(id=batch_id)
    if lock:
        query = lock_for_update(query)
    batch = query.first()
    if batch is None:
        raise NotFoundError(f"Batch {batch_id} not found")
    return batch


def list_batches(
    *, store_id: int, variant_id: int | None = None, only_available: bool = False
) -> list[InventoryBatch]:
    q = db.session.query(InventoryBatch).filter(InventoryBatch.store_id == store_id)
    if variant_id is not None:
        q = q.filter(InventoryBatch.variant_id == variant_id)
    if only_available:
        q = q.filter(InventoryBatch.remaining_qty > 0)
    return q.order_by(InventoryBatch.received_at.asc(), InventoryBatch.id.asc()).all()


def _receive_batch_inner(
    *,
    store_id: int,
    variant_id: int,
    quantity: int,
    unit_cost_cents: int,
    vendor: str,
    received_dt: datetime,
    manufacture_date: date | None = None,
) -> InventoryBatch:
    """Core receipt logic without transaction control: batch row + aggregate increment."""
    _ensure_store(store_id)
    _ensure_variant(variant_id)

    batch = InventoryBatch(
        store_id=store_id,
        variant_id=variant_id,
        quantity=quantity,
        remaining_qty=quantity,
        unit_cost_cents=unit_cost_cents,
        vendor=vendor.strip(),
        received_at=received_dt,
        manufacture_date=manufacture_date,
    )
    db.session.add(batch)
    db.session.flush()

    increment_stock(store_id, variant_id, quantity)
    return batch


def receive_batch(
    *,
    store_id: int,
    variant_id: int,
    quantity: int,
    unit_cost_cents: int,
    vendor: str,
    manufacture_date=None,
    received_at=None,
) -> InventoryBatch:
    """
    Receive stock as a new cost-bearing batch.

    quantity and unit_cost_cents must be positive and vendor non-blank
    (ValidationError); unknown store/variant raise NotFoundError. The batch
    insert and the aggregate increment commit together or not at all.
    """
    enforce_rules_batch_receive(
        {"quantity": quantity, "unit_cost_cents": unit_cost_cents, "vendor": vendor}
    )
    received_dt = _parse_received_at(received_at)
    mfg_date = _parse_manufacture_date(manufacture_date)

    def _op():
        begin_write_transaction()
        batch = _receive_batch_inner(
            store_id=store_id,
            variant_id=variant_id,
            quantity=quantity,
            unit_cost_cents=unit_cost_cents,
            vendor=vendor,
            received_dt=received_dt,
            manufacture_date=mfg_date,
        )
        db.session.commit()
        current_app.logger.info(
            "Received batch %s: store=%s variant=%s qty=%s unit_cost=%s vendor=%r",
            batch.id, store_id, variant_id, quantity, unit_cost_cents, batch.vendor,
        )
        return batch

    return run_with_retry(_op)


def receive_stock_items(*, store_id: int, items: list[dict]) -> dict:
    """
    Receive a parsed import (CSV/Excel/manual/scan) item by item.

    Each item is its own receipt transaction; failures are collected rather
    than aborting the rest. Returns {"imported", "total", "errors", "batches"}.
    """
    if not isinstance(items, list) or not items:
        raise ValidationError("No items provided")

    _ensure_store(store_id)

    imported = []
    errors = []
    for index, item in enumerate(items):
        try:
            patch = validate_payload(
                model=InventoryBatch,
                payload=item,
                policy=BATCH_RECEIVE_POLICY,
                partial=False,
            )
            batch = receive_batch(
                store_id=store_id,
                variant_id=patch["variant_id"],
                quantity=patch["quantity"],
                unit_cost_cents=patch["unit_cost_cents"],
                vendor=patch["vendor"],
                manufacture_date=patch.get("manufacture_date"),
                received_at=patch.get("received_at"),
            )
            imported.append(batch)
        except (ValidationError, NotFoundError, ConflictError, SQLAlchemyError) as exc:
            variant_id = item.get("variant_id") if isinstance(item, dict) else None
            current_app.logger.warning(
                "Failed to receive item %s (variant %s): %s", index, variant_id, exc
            )
            errors.append({"index": index, "variant_id": variant_id, "error": str(exc)})

    return {
        "imported": len(imported),
        "total": len(items),
        "errors": errors,
        "batches": [b.to_dict() for b in imported],
    }


def update_batch(
    batch_id: int,
    *,
    quantity: int | None = None,
    unit_cost_cents: int | None = None,
    vendor: str | None = None,
    manufacture_date=None,
) -> InventoryBatch:
    """
    Edit a batch's received quantity, cost, vendor or manufacture date.

    remaining_qty is recomputed as quantity - used; shrinking below the
    units already sold raises ConflictError. The aggregate moves by the same
    delta as remaining_qty. A cost edit only affects future allocations:
    OrderItem.unit_cost_cents already written keeps its value.
    """
    changes = {
        k: v
        for k, v in {"quantity": quantity, "unit_cost_cents": unit_cost_cents, "vendor": vendor}.items()
        if v is not None
    }
    enforce_rules_batch_update(changes)
    mfg_date = _parse_manufacture_date(manufacture_date)

    def _op():
        begin_write_transaction()
        batch = get_batch(batch_id, lock=True)

        if quantity is not None:
            used = get_used_quantity(batch.id)
            if quantity < used:
                raise ConflictError(
                    f"Cannot reduce quantity below {used} (already used in orders)",
                    details={"batch_id": batch.id, "used_quantity": used, "requested_quantity": quantity},
                )
            new_remaining = quantity - used
            delta = new_remaining - batch.remaining_qty
            batch.quantity = quantity
            batch.remaining_qty = new_remaining
            db.session.flush()
            adjust_stock(batch.store_id, batch.variant_id, delta)

        if unit_cost_cents is not None:
            batch.unit_cost_cents = unit_cost_cents
        if vendor is not None:
            batch.vendor = vendor.strip()
        if mfg_date is not None:
            batch.manufacture_date = mfg_date

        db.session.commit()
        current_app.logger.info("Updated batch %s: %s", batch.id, changes)
        return batch

    return run_with_retry(_op)


def delete_batch(batch_id: int) -> None:
    """
    Remove an unused batch.

    Refused with ConflictError if any OrderItem references it or if any of
    its units have been drawn. The aggregate drops by the batch's units.
    """
    def _op():
        begin_write_transaction()
        batch = get_batch(batch_id, lock=True)

        referenced = (
            db.session.query(func.count(OrderItem.id))
            .filter(OrderItem.batch_id == batch.id)
            .scalar()
        )
        if referenced:
            raise ConflictError(
                "Cannot delete batch that has been used in orders",
                details={"batch_id": batch.id, "order_items": int(referenced)},
            )
        if batch.remaining_qty != batch.quantity:
            raise ConflictError(
                "Cannot delete a partially consumed batch",
                details={"batch_id": batch.id, "remaining_qty": batch.remaining_qty, "quantity": batch.quantity},
            )

        decrement_stock(batch.store_id, batch.variant_id, batch.remaining_qty)
        db.session.delete(batch)
        db.session.commit()
        current_app.logger.info("Deleted batch %s", batch_id)

    run_with_retry(_op)


def draw_from_batch(batch: InventoryBatch, quantity: int) -> InventoryBatch:
    """
    Consume quantity units from a locked batch and the matching aggregate.

    Transaction-internal helper for settlement: flushes, never commits.
    """
    if quantity <= 0:
        raise ValidationError("draw quantity must be > 0")
    if quantity > batch.remaining_qty:
        raise ConflictError(
            "batch does not hold enough units",
            details={"batch_id": batch.id, "remaining_qty": batch.remaining_qty, "requested_quantity": quantity},
        )
    batch.remaining_qty -= quantity
    db.session.flush()
    decrement_stock(batch.store_id, batch.variant_id, quantity)
    return batch


def set_min_stock(*, store_id: int, variant_id: int, min_stock: int) -> Inventory:
    patch = validate_payload(
        model=Inventory,
        payload={"store_id": store_id, "variant_id": variant_id, "min_stock": min_stock},
        policy=MIN_STOCK_POLICY,
        partial=False,
    )
    store_id, variant_id, min_stock = patch["store_id"], patch["variant_id"], patch["min_stock"]
    if min_stock < 0:
        raise ValidationError("min_stock must be >= 0")

    def _op():
        row = lock_for_update(
            db.session.query(Inventory).filter_by(store_id=store_id, variant_id=variant_id)
        ).first()
        if row is None:
            raise NotFoundError("No stock record for this variant in this store")
        row.min_stock = min_stock
        db.session.commit()
        return row

    return run_with_retry(_op)


def list_inventory(*, store_id: int) -> list[dict]:
    """
    Stock rows for a store with the latest receipt's cost/vendor and all batches.
    """
    _ensure_store(store_id)

    rows = (
        db.session.query(Inventory)
        .filter(Inventory.store_id == store_id)
        .order_by(Inventory.variant_id.asc())
        .all()
    )
    batches = list_batches(store_id=store_id)
    by_variant: dict[int, list[InventoryBatch]] = {}
    for batch in batches:
        by_variant.setdefault(batch.variant_id, []).append(batch)

    result = []
    for row in rows:
        variant_batches = by_variant.get(row.variant_id, [])
        latest = variant_batches[-1] if variant_batches else None
        entry = row.to_dict()
        entry.update({
            "variant": row.variant.to_dict() if row.variant else None,
            "latest_unit_cost_cents": latest.unit_cost_cents if latest else None,
            "latest_vendor": latest.vendor if latest else None,
            "batches": [b.to_dict() for b in reversed(variant_batches)],
        })
        result.append(entry)
    return result


def list_low_stock(*, store_id: int, limit: int | None = None) -> list[Inventory]:
    """Aggregates below their minStock threshold, emptiest first."""
    q = (
        db.session.query(Inventory)
        .filter(
            Inventory.store_id == store_id,
            Inventory.quantity < Inventory.min_stock,
        )
        .order_by(Inventory.quantity.asc(), Inventory.variant_id.asc())
    )
    if limit:
        q = q.limit(limit)
    return q.all()
