# Overview: FIFO allocation planning over a variant's inventory batches.

"""
FIFO allocation (authoritative)

- Batches are consumed oldest-received first: ORDER BY received_at, id.
  The id tie-break makes the order total even for identical timestamps.
- Planning is pure: plan_fifo() only reads the batch snapshot it is given
  and returns an AllocationPlan. Nothing is written here.
- allocate() reads the snapshot inside the caller's transaction with row
  locks, so the plan stays valid until the caller commits its decrements.
- unit_cost_cents is captured from the batch into each Allocation; that is
  the cost OrderItem records, regardless of later batch edits.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from ..extensions import db
from ..models import InventoryBatch
from ..validation import ValidationError
from .concurrency import lock_for_update


@dataclass(frozen=True)
class Allocation:
    batch_id: int
    quantity: int
    unit_cost_cents: int

    @property
    def cost_cents(self) -> int:
        return self.quantity * self.unit_cost_cents


@dataclass(frozen=True)
class AllocationPlan:
    variant_id: int | None
    requested: int
    allocations: tuple[Allocation, ...] = field(default_factory=tuple)
    shortfall: int = 0

    @property
    def is_feasible(self) -> bool:
        return self.shortfall == 0

    @property
    def allocated_quantity(self) -> int:
        return sum(a.quantity for a in self.allocations)

    @property
    def cost_cents(self) -> int:
        return sum(a.cost_cents for a in self.allocations)

    def to_dict(self) -> dict:
        return {
            "variant_id": self.variant_id,
            "requested": self.requested,
            "allocated": self.allocated_quantity,
            "shortfall": self.shortfall,
            "cost_cents": self.cost_cents,
            "allocations": [
                {"batch_id": a.batch_id, "quantity": a.quantity, "unit_cost_cents": a.unit_cost_cents}
                for a in self.allocations
            ],
        }


def plan_fifo(requested_qty: int, batches: Iterable, *, variant_id: int | None = None) -> AllocationPlan:
    """
    Split requested_qty across batches in the order given.

    Each batch needs id, remaining_qty and unit_cost_cents. Empty batches are
    skipped. If the batches run out first, the plan carries the shortfall.
    """
    if requested_qty <= 0:
        raise ValidationError("requested quantity must be > 0")

    remaining = requested_qty
    allocations = []
    for batch in batches:
        if remaining <= 0:
            break
        take = min(remaining, batch.remaining_qty)
        if take <= 0:
            continue
        allocations.append(Allocation(batch.id, take, batch.unit_cost_cents))
        remaining -= take

    return AllocationPlan(
        variant_id=variant_id,
        requested=requested_qty,
        allocations=tuple(allocations),
        shortfall=remaining,
    )


def available_batches(store_id: int, variant_id: int, *, lock: bool = True) -> list[InventoryBatch]:
    """Batches with stock left for the pair, oldest receipt first."""
    query = (
        db.session.query(InventoryBatch)
        .filter(
            InventoryBatch.store_id == store_id,
            InventoryBatch.variant_id == variant_id,
            InventoryBatch.remaining_qty > 0,
        )
        .order_by(InventoryBatch.received_at.asc(), InventoryBatch.id.asc())
    )
    if lock:
        query = lock_for_update(query)
    return query.all()


def allocate(store_id: int, variant_id: int, requested_qty: int) -> AllocationPlan:
    """
    Plan a FIFO draw of requested_qty units for (variant, store).

    Must be called inside the settlement transaction; the caller applies the
    decrements and aborts on an infeasible plan.
    """
    batches = available_batches(store_id, variant_id, lock=True)
    return plan_fifo(requested_qty, batches, variant_id=variant_id)
