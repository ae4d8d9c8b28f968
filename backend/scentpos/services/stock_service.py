# Overview: Stock aggregate (quantity on hand per variant/store) and its reconciliation.

"""
Stock aggregate invariants (authoritative)

- Inventory.quantity == SUM(InventoryBatch.remaining_qty) for the same
  (variant_id, store_id), at every commit.
- The aggregate is a maintained counter. It is never recomputed on the hot
  path; instead every function that changes a batch's remaining_qty calls
  increment_stock()/decrement_stock() in the same transaction.
- Functions here flush but never commit. The caller owns the transaction.
- reconcile_stock() is the repair path: it recomputes the counter from the
  batches and reports every correction it makes.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Inventory, InventoryBatch
from ..validation import ConflictError, ValidationError
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry


@dataclass(frozen=True)
class StockDrift:
    store_id: int
    variant_id: int
    aggregate_quantity: int
    batch_quantity: int

    @property
    def delta(self) -> int:
        return self.batch_quantity - self.aggregate_quantity

    def to_dict(self) -> dict:
        return {
            "store_id": self.store_id,
            "variant_id": self.variant_id,
            "aggregate_quantity": self.aggregate_quantity,
            "batch_quantity": self.batch_quantity,
            "delta": self.delta,
        }


def _get_stock_row(store_id: int, variant_id: int, *, lock: bool = False) -> Inventory | None:
    query = db.session.query(Inventory).filter_by(store_id=store_id, variant_id=variant_id)
    if lock:
        query = lock_for_update(query)
    return query.first()


def increment_stock(store_id: int, variant_id: int, qty: int) -> Inventory:
    """Add qty to the aggregate, creating the row with the default minStock if absent."""
    if qty < 0:
        raise ValidationError("increment quantity must be >= 0")

    row = _get_stock_row(store_id, variant_id, lock=True)
    if row is None:
        try:
            with db.session.begin_nested():
                row = Inventory(
                    store_id=store_id,
                    variant_id=variant_id,
                    quantity=0,
                    min_stock=current_app.config.get("DEFAULT_MIN_STOCK", 10),
                )
                db.session.add(row)
        except IntegrityError:
            # A concurrent first receipt created the row; add to that one.
            row = _get_stock_row(store_id, variant_id, lock=True)
            if row is None:
                raise
    row.quantity = (row.quantity or 0) + qty
    db.session.flush()
    return row


def decrement_stock(store_id: int, variant_id: int, qty: int) -> Inventory:
    """Subtract qty from the aggregate; the result may never go negative."""
    if qty < 0:
        raise ValidationError("decrement quantity must be >= 0")

    row = _get_stock_row(store_id, variant_id, lock=True)
    current = row.quantity if row is not None else 0
    if current - qty < 0:
        raise ConflictError(
            "stock aggregate would go negative",
            details={"store_id": store_id, "variant_id": variant_id, "quantity": current, "decrement": qty},
        )
    if row is None:
        # qty == 0 against a missing row: nothing to record
        return row
    row.quantity = current - qty
    db.session.flush()
    return row


def adjust_stock(store_id: int, variant_id: int, delta: int) -> Inventory | None:
    if delta > 0:
        return increment_stock(store_id, variant_id, delta)
    if delta < 0:
        return decrement_stock(store_id, variant_id, -delta)
    return _get_stock_row(store_id, variant_id)


def get_quantity(store_id: int, variant_id: int) -> int:
    """Quantity on hand from the aggregate (0 when the pair has never been received)."""
    qty = (
        db.session.query(Inventory.quantity)
        .filter_by(store_id=store_id, variant_id=variant_id)
        .scalar()
    )
    return int(qty or 0)


def get_batch_quantity(store_id: int, variant_id: int) -> int:
    """SUM(remaining_qty) over the pair's batches: the value the aggregate must equal."""
    qty = (
        db.session.query(func.coalesce(func.sum(InventoryBatch.remaining_qty), 0))
        .filter(
            InventoryBatch.store_id == store_id,
            InventoryBatch.variant_id == variant_id,
        )
        .scalar()
    )
    return int(qty or 0)


def find_stock_drift(store_id: int | None = None) -> list[StockDrift]:
    """Every (store, variant) pair whose aggregate disagrees with its batches."""
    batch_sums = db.session.query(
        InventoryBatch.store_id.label("store_id"),
        InventoryBatch.variant_id.label("variant_id"),
        func.coalesce(func.sum(InventoryBatch.remaining_qty), 0).label("qty"),
    )
    if store_id is not None:
        batch_sums = batch_sums.filter(InventoryBatch.store_id == store_id)
    batch_map = {
        (row.store_id, row.variant_id): int(row.qty or 0)
        for row in batch_sums.group_by(InventoryBatch.store_id, InventoryBatch.variant_id).all()
    }

    rows_query = db.session.query(Inventory)
    if store_id is not None:
        rows_query = rows_query.filter(Inventory.store_id == store_id)
    aggregate_map = {(row.store_id, row.variant_id): row.quantity for row in rows_query.all()}

    drift = []
    for key in sorted(set(batch_map) | set(aggregate_map)):
        aggregate_qty = aggregate_map.get(key, 0)
        batch_qty = batch_map.get(key, 0)
        if aggregate_qty != batch_qty:
            drift.append(StockDrift(key[0], key[1], aggregate_qty, batch_qty))
    return drift


def reconcile_stock(store_id: int | None = None, *, dry_run: bool = False) -> list[StockDrift]:
    """
    Rewrite drifted aggregates to SUM(remaining_qty).

    Runs under the same write lock as settlement so it cannot interleave
    with a sale. Returns the corrections (applied unless dry_run).
    """
    def _op():
        begin_write_transaction()
        drift = find_stock_drift(store_id)
        if dry_run:
            db.session.rollback()
            return drift

        for item in drift:
            row = _get_stock_row(item.store_id, item.variant_id, lock=True)
            if row is None:
                row = Inventory(
                    store_id=item.store_id,
                    variant_id=item.variant_id,
                    quantity=0,
                    min_stock=current_app.config.get("DEFAULT_MIN_STOCK", 10),
                )
                db.session.add(row)
            current_app.logger.warning(
                "Stock drift corrected store=%s variant=%s aggregate=%s batches=%s",
                item.store_id, item.variant_id, item.aggregate_quantity, item.batch_quantity,
            )
            row.quantity = item.batch_quantity

        db.session.commit()
        return drift

    return run_with_retry(_op)
