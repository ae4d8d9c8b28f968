"""
Order settlement: turns a terminal cart into a persisted Order plus stock draws.

Settlement is one unit of work. Inside a single transaction it snapshots the
store tax rate, prices the cart, mints the order number, inserts the order,
allocates every line FIFO, writes one OrderItem per batch touched and
decrements both the batch and the stock aggregate. Any failure (most often
InsufficientStockError) rolls all of it back; there is no partial order.

Held orders store the cart only. They reserve nothing; stock is drawn when
the order is resumed, at the tax rate in effect at that moment.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..extensions import db
from ..models import Customer, HeldOrderLine, InventoryBatch, Order, OrderItem, Store, User, Variant
from ..models.sales import (
    ORDER_CANCELLED,
    ORDER_COMPLETED,
    ORDER_ON_HOLD,
    PAYMENT_CANCELLED,
    PAYMENT_COMPLETED,
    PAYMENT_METHODS,
    PAYMENT_PENDING,
)
from ..validation import (
    ConflictError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
    normalize_order_lines,
)
from ..time_utils import utcnow
from .allocation_service import allocate
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry
from .document_service import HOLD_DOCUMENT, ORDER_DOCUMENT, next_document_number
from .inventory_service import draw_from_batch


@dataclass(frozen=True)
class OrderTotals:
    subtotal_cents: int
    discount_cents: int
    tax_rate_bps: int
    tax_cents: int
    total_cents: int


def compute_tax_cents(taxable_cents: int, tax_rate_bps: int) -> int:
    """Tax on a non-negative amount, rounded half-up to a whole minor unit."""
    return (taxable_cents * tax_rate_bps + 5000) // 10000


def compute_totals(lines: list[dict], discount_cents: int, tax_rate_bps: int) -> OrderTotals:
    """
    subtotal = sum(quantity * unit_price); tax = (subtotal - discount) * rate;
    total = subtotal - discount + tax.
    """
    subtotal = sum(line["quantity"] * line["unit_price_cents"] for line in lines)
    if discount_cents < 0:
        raise ValidationError("discount_cents must be >= 0")
    if discount_cents > subtotal:
        raise ValidationError("discount cannot exceed the subtotal")
    tax = compute_tax_cents(subtotal - discount_cents, tax_rate_bps)
    return OrderTotals(
        subtotal_cents=subtotal,
        discount_cents=discount_cents,
        tax_rate_bps=tax_rate_bps,
        tax_cents=tax,
        total_cents=subtotal - discount_cents + tax,
    )


def _validate_payment_method(payment_method: str) -> str:
    method = (payment_method or "").strip().upper()
    if method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}")
    return method


def _validate_discount(discount_cents) -> int:
    if discount_cents is None:
        return 0
    if isinstance(discount_cents, bool) or not isinstance(discount_cents, int):
        raise ValidationError("discount_cents must be an integer")
    if discount_cents < 0:
        raise ValidationError("discount_cents must be >= 0")
    return discount_cents


def _load_parties(store_id: int, cashier_id: int, customer_id: int | None) -> Store:
    store = db.session.get(Store, store_id)
    if store is None:
        raise NotFoundError(f"Store {store_id} not found")

    cashier = db.session.get(User, cashier_id)
    if cashier is None:
        raise NotFoundError(f"Cashier {cashier_id} not found")
    if not cashier.is_active:
        raise ValidationError("Cashier account is inactive")

    if customer_id is not None and db.session.get(Customer, customer_id) is None:
        raise NotFoundError(f"Customer {customer_id} not found")
    return store


def _load_variants(lines: list[dict]) -> dict[int, Variant]:
    ids = {line["variant_id"] for line in lines}
    variants = {v.id: v for v in db.session.query(Variant).filter(Variant.id.in_(ids)).all()}
    missing = sorted(ids - set(variants))
    if missing:
        raise NotFoundError(f"Variant {missing[0]} not found")
    return variants


def _allocate_lines(order: Order, lines: list[dict], variants: dict[int, Variant]) -> None:
    """
    FIFO-draw every cart line for the order. Lines for the same variant are
    planned one after another against the already-decremented batches.
    """
    for line in lines:
        variant = variants[line["variant_id"]]
        plan = allocate(order.store_id, variant.id, line["quantity"])
        if not plan.is_feasible:
            raise InsufficientStockError(
                variant_id=variant.id,
                sku=variant.sku,
                requested_quantity=line["quantity"],
                available_quantity=plan.allocated_quantity,
            )

        for allocation in plan.allocations:
            batch = db.session.get(InventoryBatch, allocation.batch_id)
            db.session.add(OrderItem(
                order_id=order.id,
                variant_id=variant.id,
                batch_id=batch.id,
                quantity=allocation.quantity,
                unit_price_cents=line["unit_price_cents"],
                unit_cost_cents=allocation.unit_cost_cents,
                total_price_cents=allocation.quantity * line["unit_price_cents"],
            ))
            draw_from_batch(batch, allocation.quantity)


def settle_order(
    *,
    store_id: int,
    cashier_id: int,
    lines: list[dict],
    discount_cents: int = 0,
    payment_method: str = "CASH",
    customer_id: int | None = None,
    notes: str | None = None,
) -> Order:
    """
    Complete a sale atomically.

    lines: [{"variant_id", "quantity", "unit_price_cents"}, ...]

    Raises ValidationError (bad cart/discount/method), NotFoundError
    (unknown store/cashier/customer/variant) or InsufficientStockError
    (names the variant). On any error nothing is persisted.
    """
    clean_lines = normalize_order_lines(lines)
    discount = _validate_discount(discount_cents)
    method = _validate_payment_method(payment_method)

    def _op():
        begin_write_transaction()
        store = _load_parties(store_id, cashier_id, customer_id)
        variants = _load_variants(clean_lines)
        totals = compute_totals(clean_lines, discount, store.tax_rate_bps)

        now = utcnow()
        order = Order(
            order_number=next_document_number(
                store_id=store.id, document_type=ORDER_DOCUMENT, prefix="ORD"
            ),
            store_id=store.id,
            cashier_id=cashier_id,
            customer_id=customer_id,
            subtotal_cents=totals.subtotal_cents,
            discount_cents=totals.discount_cents,
            tax_rate_bps=totals.tax_rate_bps,
            tax_cents=totals.tax_cents,
            total_cents=totals.total_cents,
            payment_method=method,
            payment_status=PAYMENT_COMPLETED,
            status=ORDER_COMPLETED,
            notes=notes,
            created_at=now,
            completed_at=now,
        )
        db.session.add(order)
        db.session.flush()

        _allocate_lines(order, clean_lines, variants)

        db.session.commit()
        return order

    try:
        order = run_with_retry(_op)
    except InsufficientStockError as exc:
        current_app.logger.warning("Settlement rejected for store %s: %s", store_id, exc)
        raise

    current_app.logger.info(
        "Settled order %s: store=%s lines=%s total=%s",
        order.order_number, store_id, len(clean_lines), order.total_cents,
    )
    return order


def hold_order(
    *,
    store_id: int,
    cashier_id: int,
    lines: list[dict],
    discount_cents: int = 0,
    payment_method: str = "CASH",
    customer_id: int | None = None,
    notes: str | None = None,
) -> Order:
    """Park a cart as an ON_HOLD order (payment PENDING). No stock is drawn or reserved."""
    clean_lines = normalize_order_lines(lines)
    discount = _validate_discount(discount_cents)
    method = _validate_payment_method(payment_method)

    def _op():
        begin_write_transaction()
        store = _load_parties(store_id, cashier_id, customer_id)
        _load_variants(clean_lines)
        totals = compute_totals(clean_lines, discount, store.tax_rate_bps)

        order = Order(
            order_number=next_document_number(
                store_id=store.id, document_type=HOLD_DOCUMENT, prefix="HLD"
            ),
            store_id=store.id,
            cashier_id=cashier_id,
            customer_id=customer_id,
            subtotal_cents=totals.subtotal_cents,
            discount_cents=totals.discount_cents,
            tax_rate_bps=totals.tax_rate_bps,
            tax_cents=totals.tax_cents,
            total_cents=totals.total_cents,
            payment_method=method,
            payment_status=PAYMENT_PENDING,
            status=ORDER_ON_HOLD,
            notes=notes,
            created_at=utcnow(),
        )
        db.session.add(order)
        db.session.flush()

        for line in clean_lines:
            db.session.add(HeldOrderLine(
                order_id=order.id,
                variant_id=line["variant_id"],
                quantity=line["quantity"],
                unit_price_cents=line["unit_price_cents"],
            ))

        db.session.commit()
        return order

    order = run_with_retry(_op)
    current_app.logger.info("Held order %s for store %s", order.order_number, store_id)
    return order


def _lock_held_order(order_id: int) -> Order:
    order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
    if order is None:
        raise NotFoundError(f"Order {order_id} not found")
    if order.status != ORDER_ON_HOLD:
        raise ConflictError(
            f"Only ON_HOLD orders can be resumed or cancelled (order is {order.status})",
            details={"order_id": order.id, "status": order.status},
        )
    return order


def resume_held_order(order_id: int, *, payment_method: str | None = None) -> Order:
    """
    Settle a held order now: re-price tax at the current store rate, draw
    stock FIFO, mark COMPLETED. Same all-or-nothing semantics as
    settle_order(); on failure the order stays ON_HOLD.
    """
    method = _validate_payment_method(payment_method) if payment_method else None

    def _op():
        begin_write_transaction()
        order = _lock_held_order(order_id)
        lines = [
            {"variant_id": l.variant_id, "quantity": l.quantity, "unit_price_cents": l.unit_price_cents}
            for l in order.held_lines
        ]
        if not lines:
            raise ConflictError("Held order has no lines", details={"order_id": order.id})

        store = db.session.get(Store, order.store_id)
        variants = _load_variants(lines)
        totals = compute_totals(lines, order.discount_cents, store.tax_rate_bps)

        now = utcnow()
        order.subtotal_cents = totals.subtotal_cents
        order.tax_rate_bps = totals.tax_rate_bps
        order.tax_cents = totals.tax_cents
        order.total_cents = totals.total_cents
        if method:
            order.payment_method = method
        order.status = ORDER_COMPLETED
        order.payment_status = PAYMENT_COMPLETED
        order.completed_at = now
        db.session.flush()

        _allocate_lines(order, lines, variants)

        db.session.commit()
        return order

    try:
        order = run_with_retry(_op)
    except InsufficientStockError as exc:
        current_app.logger.warning("Resume of held order %s rejected: %s", order_id, exc)
        raise

    current_app.logger.info("Resumed held order %s", order.order_number)
    return order


def cancel_held_order(order_id: int) -> Order:
    def _op():
        order = _lock_held_order(order_id)
        order.status = ORDER_CANCELLED
        order.payment_status = PAYMENT_CANCELLED
        db.session.commit()
        return order

    return run_with_retry(_op)


def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError(f"Order {order_id} not found")
    return order


def list_orders(*, store_id: int, status: str | None = None, limit: int = 50) -> list[Order]:
    q = db.session.query(Order).filter(Order.store_id == store_id)
    if status:
        q = q.filter(Order.status == status.upper())
    return q.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).all()
