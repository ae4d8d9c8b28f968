"""HTTP surface: payload handling and error-to-status mapping."""


def _order_payload(store, cashier, variant, quantity, price=10000, **extra):
    payload = {
        "store_id": store.id,
        "cashier_id": cashier.id,
        "lines": [{"variant_id": variant.id, "quantity": quantity, "unit_price_cents": price}],
    }
    payload.update(extra)
    return payload


class TestSystemRoutes:
    def test_health(self, client, db_session, store):
        response = client.get('/health')
        assert response.status_code == 200
        assert response.json["checks"]["database"]["details"]["stores"] == 1


class TestInventoryRoutes:
    def test_receive_single_batch(self, client, db_session, store, variant_a):
        response = client.post('/api/inventory/receive', json={
            "store_id": store.id,
            "variant_id": variant_a.id,
            "quantity": 6,
            "unit_cost_cents": 250000,
            "vendor": "Acme Fragrances",
            "manufacture_date": "2026-02-01",
        })

        assert response.status_code == 201
        assert response.json["batch"]["remaining_qty"] == 6
        assert response.json["stock_quantity"] == 6

    def test_receive_validation_error(self, client, db_session, store, variant_a):
        response = client.post('/api/inventory/receive', json={
            "store_id": store.id,
            "variant_id": variant_a.id,
            "quantity": 0,
            "unit_cost_cents": 1000,
            "vendor": "V",
        })
        assert response.status_code == 400
        assert "quantity" in response.json["error"]

    def test_receive_unknown_field(self, client, db_session, store, variant_a):
        response = client.post('/api/inventory/receive', json={
            "store_id": store.id,
            "variant_id": variant_a.id,
            "quantity": 1,
            "unit_cost_cents": 1000,
            "vendor": "V",
            "remaining_qty": 50,
        })
        assert response.status_code == 400

    def test_non_object_body(self, client, db_session):
        response = client.post('/api/inventory/receive', json=[1, 2])
        assert response.status_code == 400

    def test_receive_stock_reports_counts(self, client, db_session, store, variant_a, variant_b):
        response = client.post('/api/inventory/receive-stock', json={
            "store_id": store.id,
            "items": [
                {"variant_id": variant_a.id, "quantity": 2, "unit_cost_cents": 1000, "vendor": "V"},
                {"variant_id": variant_b.id, "quantity": 2, "unit_cost_cents": 1000},
            ],
        })

        assert response.status_code == 201
        assert response.json["imported"] == 1
        assert response.json["total"] == 2
        assert "vendor" in response.json["errors"][0]["error"]

    def test_batch_shrink_conflict(self, client, db_session, store, cashier, variant_a, receive):
        batch = receive(variant_a, 10, 1000)
        assert client.post('/api/orders', json=_order_payload(store, cashier, variant_a, 6)).status_code == 201

        response = client.patch(f'/api/inventory/batches/{batch.id}', json={"quantity": 5})

        assert response.status_code == 409
        assert response.json["details"]["used_quantity"] == 6

    def test_batch_delete(self, client, db_session, store, cashier, variant_a, receive):
        used = receive(variant_a, 3, 1000, days_ago=1)
        unused = receive(variant_a, 3, 1000)
        client.post('/api/orders', json=_order_payload(store, cashier, variant_a, 1))

        assert client.delete(f'/api/inventory/batches/{used.id}').status_code == 409
        assert client.delete(f'/api/inventory/batches/{unused.id}').status_code == 200
        assert client.delete(f'/api/inventory/batches/{unused.id}').status_code == 404

    def test_inventory_listing(self, client, db_session, store, variant_a, receive):
        receive(variant_a, 4, 1000)

        response = client.get(f'/api/inventory?store_id={store.id}')
        assert response.status_code == 200
        assert response.json["items"][0]["quantity"] == 4

        low = client.get(f'/api/inventory/low-stock?store_id={store.id}')
        assert low.json["count"] == 1
        assert low.json["items"][0]["variant"]["sku"] == variant_a.sku

        assert client.get('/api/inventory').status_code == 400

    def test_min_stock_input_is_coerced_or_rejected(self, client, db_session, store, variant_a, receive):
        receive(variant_a, 4, 1000)
        body = {"store_id": store.id, "variant_id": variant_a.id}

        ok = client.put('/api/inventory/min-stock', json=dict(body, min_stock="3"))
        assert ok.status_code == 200
        assert ok.json["inventory"]["min_stock"] == 3

        for bad in ("five", 2.5, -1, None):
            response = client.put('/api/inventory/min-stock', json=dict(body, min_stock=bad))
            assert response.status_code == 400, bad
        assert client.put('/api/inventory/min-stock', json={"min_stock": 5}).status_code == 400
        assert client.put('/api/inventory/min-stock', json=dict(body, variant_id="x", min_stock=5)).status_code == 400

        missing = client.put('/api/inventory/min-stock', json=dict(body, variant_id=9999, min_stock=5))
        assert missing.status_code == 404


class TestOrderRoutes:
    def test_settle_and_fetch(self, client, db_session, store, cashier, variant_a, receive):
        receive(variant_a, 5, 1000)

        response = client.post('/api/orders', json=_order_payload(
            store, cashier, variant_a, 1, price=100000, discount_cents=10000, payment_method="MOBILE",
        ))

        assert response.status_code == 201
        order = response.json["order"]
        assert order["tax_cents"] == 16200
        assert order["total_cents"] == 106200
        assert order["items"][0]["unit_cost_cents"] == 1000

        fetched = client.get(f'/api/orders/{order["id"]}')
        assert fetched.status_code == 200
        assert fetched.json["order"]["order_number"] == order["order_number"]

    def test_insufficient_stock_names_variant(self, client, db_session, store, cashier, variant_a, receive):
        receive(variant_a, 1, 1000)

        response = client.post('/api/orders', json=_order_payload(store, cashier, variant_a, 3))

        assert response.status_code == 409
        assert response.json["code"] == "INSUFFICIENT_STOCK"
        assert response.json["details"]["variant_id"] == variant_a.id
        assert response.json["details"]["sku"] == variant_a.sku

    def test_missing_cashier(self, client, db_session, store, variant_a):
        payload = {"store_id": store.id, "lines": [{"variant_id": variant_a.id, "quantity": 1, "unit_price_cents": 1}]}
        assert client.post('/api/orders', json=payload).status_code == 400

    def test_hold_resume_cancel(self, client, db_session, store, cashier, variant_a, receive):
        receive(variant_a, 5, 1000)

        held = client.post('/api/orders/hold', json=_order_payload(store, cashier, variant_a, 2))
        assert held.status_code == 201
        held_id = held.json["order"]["id"]
        assert held.json["order"]["status"] == "ON_HOLD"

        resumed = client.post(f'/api/orders/{held_id}/resume', json={"payment_method": "CARD"})
        assert resumed.status_code == 200
        assert resumed.json["order"]["status"] == "COMPLETED"
        assert len(resumed.json["order"]["items"]) == 1

        assert client.post(f'/api/orders/{held_id}/cancel').status_code == 409

    def test_unknown_order(self, client, db_session):
        assert client.get('/api/orders/99999').status_code == 404


class TestReportRoutes:
    def test_summary_and_series(self, client, db_session, store, cashier, variant_a, receive):
        receive(variant_a, 5, 1000)
        client.post('/api/orders', json=_order_payload(store, cashier, variant_a, 2))

        summary = client.get('/api/reports/summary')
        assert summary.status_code == 200
        assert summary.json["revenue_cents"] == 23600
        assert summary.json["cogs_cents"] == 2000

        series = client.get('/api/reports/sales?period=day')
        assert series.status_code == 200
        assert series.json["rows"][0]["revenue_cents"] == 23600

    def test_invalid_period(self, client, db_session):
        assert client.get('/api/reports/sales?period=decade').status_code == 400

    def test_dashboard(self, client, db_session, store, cashier, variant_a, receive):
        receive(variant_a, 5, 1000)
        client.post('/api/orders', json=_order_payload(store, cashier, variant_a, 1))

        response = client.get(f'/api/reports/dashboard?store_id={store.id}')
        assert response.status_code == 200
        assert response.json["stats"]["today_orders"] == 1
        assert response.json["stats"]["today_sales_cents"] == 11800
        assert len(response.json["sales_trend"]) == 7

        assert client.get('/api/reports/dashboard?days=0').status_code == 400


class TestProductRoutes:
    def test_lookup_by_barcode_and_sku(self, client, db_session, store, variant_a, receive):
        receive(variant_a, 4, 1000)

        by_barcode = client.get(f'/api/products/lookup?barcode=BC-SAUV-EDP-60&store_id={store.id}')
        assert by_barcode.status_code == 200
        assert by_barcode.json["variant"]["id"] == variant_a.id
        assert by_barcode.json["product"]["brand"] == "Dior"
        assert by_barcode.json["stock_quantity"] == 4

        by_sku = client.get('/api/products/lookup?sku=SAUV-EDP-60')
        assert by_sku.json["stock_quantity"] is None

        assert client.get('/api/products/lookup?sku=UNKNOWN').status_code == 404
        assert client.get('/api/products/lookup').status_code == 400


class TestExpenseAndSettingsRoutes:
    def test_expenses(self, client, db_session):
        created = client.post('/api/expenses', json={
            "category": "UTILITIES", "amount_cents": 12000, "vendor": "Power Co", "date": "2026-06-01",
        })
        assert created.status_code == 201
        assert created.json["expense"]["description"] == "No description"

        bad = client.post('/api/expenses', json={"category": "TRAVEL", "amount_cents": 1, "vendor": "X"})
        assert bad.status_code == 400
        assert "Invalid category" in bad.json["error"]

        listed = client.get('/api/expenses')
        assert listed.json["count"] == 1

    def test_settings(self, client, db_session, store):
        got = client.get(f'/api/settings/{store.id}')
        assert got.json["store"]["tax_rate_bps"] == 1800

        updated = client.put(f'/api/settings/{store.id}', json={"tax_rate": 0.16, "phone": "+256 700 000000"})
        assert updated.status_code == 200
        assert updated.json["store"]["tax_rate_bps"] == 1600

        assert client.put(f'/api/settings/{store.id}', json={"tax_rate": 1.5}).status_code == 400
        assert client.get('/api/settings/9999').status_code == 404
