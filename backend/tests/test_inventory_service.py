"""Batch ledger: receipts, edits, deletion and the stock aggregate they maintain."""

from datetime import date, timedelta

import pytest

from scentpos.extensions import db
from scentpos.models import Inventory, InventoryBatch, OrderItem
from scentpos.services import inventory_service, order_service, stock_service
from scentpos.time_utils import utcnow
from scentpos.validation import ConflictError, NotFoundError, ValidationError


def _conserved(store_id, variant_id):
    return stock_service.get_quantity(store_id, variant_id) == stock_service.get_batch_quantity(store_id, variant_id)


def _sell(store, cashier, variant, qty):
    return order_service.settle_order(
        store_id=store.id,
        cashier_id=cashier.id,
        lines=[{"variant_id": variant.id, "quantity": qty, "unit_price_cents": variant.retail_price_cents}],
    )


class TestReceiveBatch:
    def test_creates_batch_and_aggregate(self, db_session, app, store, variant_a):
        batch = inventory_service.receive_batch(
            store_id=store.id,
            variant_id=variant_a.id,
            quantity=12,
            unit_cost_cents=300000,
            vendor="  Acme Fragrances ",
            manufacture_date="2026-03-01",
        )

        assert batch.remaining_qty == 12
        assert batch.vendor == "Acme Fragrances"
        assert batch.manufacture_date == date(2026, 3, 1)

        row = db_session.query(Inventory).filter_by(store_id=store.id, variant_id=variant_a.id).one()
        assert row.quantity == 12
        assert row.min_stock == app.config["DEFAULT_MIN_STOCK"]

    def test_second_receipt_increments_existing_row(self, db_session, store, variant_a, receive):
        receive(variant_a, 5, 1000, days_ago=2)
        receive(variant_a, 7, 1100)

        assert db_session.query(Inventory).filter_by(variant_id=variant_a.id).count() == 1
        assert stock_service.get_quantity(store.id, variant_a.id) == 12
        assert _conserved(store.id, variant_a.id)

    @pytest.mark.parametrize("quantity,cost,vendor", [
        (0, 1000, "V"),
        (-1, 1000, "V"),
        (5, 0, "V"),
        (5, -10, "V"),
        (5, 1000, "   "),
        (5, 1000, None),
    ])
    def test_rejects_invalid_input(self, db_session, store, variant_a, quantity, cost, vendor):
        with pytest.raises(ValidationError):
            inventory_service.receive_batch(
                store_id=store.id, variant_id=variant_a.id,
                quantity=quantity, unit_cost_cents=cost, vendor=vendor,
            )
        assert db_session.query(InventoryBatch).count() == 0
        assert stock_service.get_quantity(store.id, variant_a.id) == 0

    def test_unknown_variant_is_not_found(self, db_session, store):
        with pytest.raises(NotFoundError):
            inventory_service.receive_batch(
                store_id=store.id, variant_id=9999, quantity=1, unit_cost_cents=1, vendor="V",
            )
        assert db_session.query(Inventory).count() == 0

    def test_future_receipt_rejected(self, db_session, store, variant_a):
        with pytest.raises(ValidationError):
            inventory_service.receive_batch(
                store_id=store.id, variant_id=variant_a.id, quantity=1, unit_cost_cents=1,
                vendor="V", received_at=utcnow() + timedelta(days=1),
            )


class TestReceiveStockItems:
    def test_partial_success_is_reported(self, db_session, store, variant_a, variant_b):
        result = inventory_service.receive_stock_items(
            store_id=store.id,
            items=[
                {"variant_id": variant_a.id, "quantity": 3, "unit_cost_cents": 1000, "vendor": "V"},
                {"variant_id": variant_b.id, "quantity": 0, "unit_cost_cents": 1000, "vendor": "V"},
                {"variant_id": 4242, "quantity": 1, "unit_cost_cents": 1000, "vendor": "V"},
                {"variant_id": variant_b.id, "quantity": "4", "unit_cost_cents": "2000", "vendor": "V"},
            ],
        )

        assert result["imported"] == 2
        assert result["total"] == 4
        assert [e["index"] for e in result["errors"]] == [1, 2]
        assert stock_service.get_quantity(store.id, variant_a.id) == 3
        assert stock_service.get_quantity(store.id, variant_b.id) == 4

    def test_empty_items_rejected(self, db_session, store):
        with pytest.raises(ValidationError):
            inventory_service.receive_stock_items(store_id=store.id, items=[])


class TestUpdateBatch:
    def test_shrink_below_used_is_rejected(self, db_session, store, cashier, variant_a, receive):
        batch = receive(variant_a, 10, 1000)
        _sell(store, cashier, variant_a, 6)

        with pytest.raises(ConflictError) as exc:
            inventory_service.update_batch(batch.id, quantity=5)

        assert "Cannot reduce quantity below 6" in str(exc.value)
        batch = db.session.get(InventoryBatch, batch.id)
        assert (batch.quantity, batch.remaining_qty) == (10, 4)
        assert stock_service.get_quantity(store.id, variant_a.id) == 4

    def test_shrink_to_used_recomputes_remaining_and_aggregate(self, db_session, store, cashier, variant_a, receive):
        batch = receive(variant_a, 10, 1000)
        _sell(store, cashier, variant_a, 6)

        updated = inventory_service.update_batch(batch.id, quantity=8)

        assert updated.remaining_qty == 2
        assert stock_service.get_quantity(store.id, variant_a.id) == 2
        assert _conserved(store.id, variant_a.id)

    def test_grow_quantity_raises_aggregate(self, db_session, store, variant_a, receive):
        batch = receive(variant_a, 10, 1000)

        inventory_service.update_batch(batch.id, quantity=15)

        assert stock_service.get_quantity(store.id, variant_a.id) == 15
        assert _conserved(store.id, variant_a.id)

    def test_cost_edit_leaves_sold_cost_untouched(self, db_session, store, cashier, variant_a, receive):
        batch = receive(variant_a, 10, 1000)
        order = _sell(store, cashier, variant_a, 2)

        inventory_service.update_batch(batch.id, unit_cost_cents=2500, vendor="New Vendor")

        item = db_session.query(OrderItem).filter_by(order_id=order.id).one()
        assert item.unit_cost_cents == 1000
        refreshed = db.session.get(InventoryBatch, batch.id)
        assert refreshed.unit_cost_cents == 2500
        assert refreshed.vendor == "New Vendor"

    def test_missing_batch(self, db_session):
        with pytest.raises(NotFoundError):
            inventory_service.update_batch(12345, quantity=3)


class TestDeleteBatch:
    def test_unused_batch_is_removed_and_aggregate_drops(self, db_session, store, variant_a, receive):
        keep = receive(variant_a, 4, 1000, days_ago=1)
        drop = receive(variant_a, 6, 1000)

        inventory_service.delete_batch(drop.id)

        assert db.session.get(InventoryBatch, drop.id) is None
        assert db.session.get(InventoryBatch, keep.id) is not None
        assert stock_service.get_quantity(store.id, variant_a.id) == 4
        assert _conserved(store.id, variant_a.id)

    def test_referenced_batch_cannot_be_deleted(self, db_session, store, cashier, variant_a, receive):
        batch = receive(variant_a, 10, 1000)
        _sell(store, cashier, variant_a, 1)

        with pytest.raises(ConflictError) as exc:
            inventory_service.delete_batch(batch.id)

        assert "used in orders" in str(exc.value)
        assert db.session.get(InventoryBatch, batch.id) is not None
        assert stock_service.get_quantity(store.id, variant_a.id) == 9


class TestStockAggregate:
    def test_reconcile_repairs_drift(self, db_session, store, variant_a, receive):
        receive(variant_a, 5, 1000)
        row = db_session.query(Inventory).filter_by(variant_id=variant_a.id).one()
        row.quantity = 9
        db_session.commit()

        preview = stock_service.reconcile_stock(dry_run=True)
        assert [d.delta for d in preview] == [-4]
        assert stock_service.get_quantity(store.id, variant_a.id) == 9

        fixed = stock_service.reconcile_stock(store.id)
        assert len(fixed) == 1
        assert stock_service.get_quantity(store.id, variant_a.id) == 5
        assert stock_service.find_stock_drift() == []

    def test_decrement_never_goes_negative(self, db_session, store, variant_a, receive):
        receive(variant_a, 2, 1000)
        with pytest.raises(ConflictError):
            stock_service.decrement_stock(store.id, variant_a.id, 3)
        db_session.rollback()
        assert stock_service.get_quantity(store.id, variant_a.id) == 2

    def test_first_receipt_race_adds_to_existing_row(self, db_session, store, variant_a, receive, monkeypatch):
        receive(variant_a, 2, 1000)

        real_get = stock_service._get_stock_row
        calls = []

        def stale_first_read(store_id, variant_id, *, lock=False):
            # The first read misses the row another receipt just committed.
            calls.append(variant_id)
            if len(calls) == 1:
                return None
            return real_get(store_id, variant_id, lock=lock)

        monkeypatch.setattr(stock_service, "_get_stock_row", stale_first_read)
        receive(variant_a, 3, 1000)

        assert len(calls) == 2
        assert db_session.query(Inventory).filter_by(variant_id=variant_a.id).count() == 1
        assert stock_service.get_quantity(store.id, variant_a.id) == 5
        assert _conserved(store.id, variant_a.id)

    def test_low_stock_listing(self, db_session, store, variant_a, variant_b, receive):
        receive(variant_a, 3, 1000)
        receive(variant_b, 25, 1000)

        low = inventory_service.list_low_stock(store_id=store.id)
        assert [row.variant_id for row in low] == [variant_a.id]

        inventory_service.set_min_stock(store_id=store.id, variant_id=variant_b.id, min_stock=30)
        low = inventory_service.list_low_stock(store_id=store.id)
        assert {row.variant_id for row in low} == {variant_a.id, variant_b.id}

    def test_list_inventory_shows_latest_batch(self, db_session, store, variant_a, receive):
        receive(variant_a, 3, 1000, days_ago=5, vendor="Old Vendor")
        receive(variant_a, 4, 1300, vendor="New Vendor")

        rows = inventory_service.list_inventory(store_id=store.id)

        assert len(rows) == 1
        assert rows[0]["quantity"] == 7
        assert rows[0]["latest_unit_cost_cents"] == 1300
        assert rows[0]["latest_vendor"] == "New Vendor"
        assert len(rows[0]["batches"]) == 2
