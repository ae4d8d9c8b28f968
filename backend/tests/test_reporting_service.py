"""Financial summary and time-bucketed sales series."""

from datetime import datetime

import pytest

from scentpos.services import expense_service, order_service, reporting_service
from scentpos.validation import ValidationError


def _line(variant, quantity, price):
    return {"variant_id": variant.id, "quantity": quantity, "unit_price_cents": price}


@pytest.fixture
def sell_at(monkeypatch, store, cashier):
    """sell_at(when, lines) settles an order stamped at `when`."""
    def _sell(when, lines, **kwargs):
        monkeypatch.setattr(order_service, "utcnow", lambda: when)
        return order_service.settle_order(store_id=store.id, cashier_id=cashier.id, lines=lines, **kwargs)

    return _sell


class TestFinancialReport:
    def test_zero_revenue_has_zero_margin(self, db_session, store):
        expense_service.create_expense(
            category="RENT", amount_cents=5000, vendor="Landlord", date="2026-01-10",
        )

        report = reporting_service.financial_report(start="2026-01-01", end="2026-01-31")

        assert report["revenue_cents"] == 0
        assert report["expenses_cents"] == 5000
        assert report["net_profit_cents"] == -5000
        assert report["profit_margin"] == 0
        assert report["order_count"] == 0
        assert report["top_products"] == []

    def test_summary_figures(self, db_session, store, variant_a, receive, sell_at):
        receive(variant_a, 5, 1000, days_ago=400)
        sell_at(datetime(2026, 1, 15, 10, 0), [_line(variant_a, 2, 10000)])
        expense_service.create_expense(
            category="rent", amount_cents=5000, vendor="Landlord", date="2026-01-20",
        )
        expense_service.create_expense(
            category="MARKETING", amount_cents=700, vendor="Radio", date="2026-02-03",
        )

        report = reporting_service.financial_report(start="2026-01-01", end="2026-01-31")

        # subtotal 20000 + 18% tax
        assert report["revenue_cents"] == 23600
        assert report["cogs_cents"] == 2000
        assert report["gross_profit_cents"] == 21600
        assert report["expenses_cents"] == 5000
        assert report["net_profit_cents"] == 16600
        assert report["profit_margin"] == 70.34
        assert report["order_count"] == 1
        assert report["expenses_by_category"] == {"RENT": 5000}

    def test_end_date_includes_whole_day(self, db_session, store, variant_a, receive, sell_at):
        receive(variant_a, 5, 1000, days_ago=400)
        sell_at(datetime(2026, 1, 31, 23, 30), [_line(variant_a, 1, 10000)])

        report = reporting_service.financial_report(start="2026-01-31", end="2026-01-31")
        assert report["order_count"] == 1

        report = reporting_service.financial_report(start="2026-02-01", end="2026-02-28")
        assert report["order_count"] == 0

    def test_top_products_grouped_by_product(
        self, db_session, store, variant_a, variant_b, variant_c, receive, sell_at
    ):
        for v in (variant_a, variant_b, variant_c):
            receive(v, 10, 1000, days_ago=400)
        sell_at(datetime(2026, 3, 1, 12), [_line(variant_a, 2, 10000), _line(variant_b, 1, 30000)])
        sell_at(datetime(2026, 3, 2, 12), [_line(variant_c, 1, 40000)])

        report = reporting_service.financial_report(start="2026-03-01", end="2026-03-31")

        assert [(p["name"], p["quantity"], p["revenue_cents"]) for p in report["top_products"]] == [
            ("Dior Sauvage", 3, 50000),
            ("Chanel No 5", 1, 40000),
        ]
        categories = {row["category"]: row["revenue_cents"] for row in report["sales_by_category"]}
        assert categories == {"Men": 50000, "Women": 40000}

    def test_top_products_limit(self, db_session, store, variant_a, variant_c, receive, sell_at):
        receive(variant_a, 10, 1000, days_ago=400)
        receive(variant_c, 10, 1000, days_ago=400)
        sell_at(datetime(2026, 3, 1, 12), [_line(variant_a, 1, 100), _line(variant_c, 1, 200)])

        report = reporting_service.financial_report(start="2026-03-01", end="2026-03-01", top_limit=1)
        assert [p["name"] for p in report["top_products"]] == ["Chanel No 5"]

    def test_held_orders_are_not_revenue(self, db_session, store, cashier, variant_a, receive, sell_at):
        receive(variant_a, 5, 1000, days_ago=400)
        sell_at(datetime(2026, 4, 2, 9), [_line(variant_a, 1, 10000)])
        order_service.hold_order(
            store_id=store.id, cashier_id=cashier.id, lines=[_line(variant_a, 3, 10000)],
        )

        report = reporting_service.financial_report(start="2026-04-01", end="2026-04-30")

        assert report["order_count"] == 1
        assert report["revenue_cents"] == 11800

    def test_store_filter(self, db_session, store, variant_a, receive, sell_at):
        receive(variant_a, 5, 1000, days_ago=400)
        sell_at(datetime(2026, 5, 5, 9), [_line(variant_a, 1, 10000)])

        assert reporting_service.financial_report(store_id=store.id)["order_count"] == 1
        assert reporting_service.financial_report(store_id=store.id + 100)["order_count"] == 0

    def test_expenses_stay_shop_wide_under_store_filter(self, db_session, store, variant_a, receive, sell_at):
        receive(variant_a, 5, 1000, days_ago=400)
        sell_at(datetime(2026, 5, 5, 9), [_line(variant_a, 1, 10000)])
        expense_service.create_expense(category="RENT", amount_cents=3000, vendor="Landlord", date="2026-05-06")

        mine = reporting_service.financial_report(start="2026-05-01", end="2026-05-31", store_id=store.id)
        other = reporting_service.financial_report(start="2026-05-01", end="2026-05-31", store_id=store.id + 100)

        assert mine["expenses_scope"] == other["expenses_scope"] == "shop"
        assert mine["expenses_cents"] == other["expenses_cents"] == 3000
        assert mine["net_profit_cents"] == 11800 - 1000 - 3000
        assert other["net_profit_cents"] == -3000

    def test_bad_range(self, db_session):
        with pytest.raises(ValidationError):
            reporting_service.financial_report(start="2026-02-01", end="2026-01-01")
        with pytest.raises(ValidationError):
            reporting_service.financial_report(start="yesterday")


class TestSalesSeries:
    def test_weeks_keyed_by_sunday(self, db_session, store, variant_a, receive, sell_at):
        receive(variant_a, 10, 1000, days_ago=400)
        sell_at(datetime(2026, 10, 14, 10), [_line(variant_a, 1, 10000)])  # Wednesday
        sell_at(datetime(2026, 10, 17, 10), [_line(variant_a, 1, 10000)])  # Saturday
        sell_at(datetime(2026, 10, 18, 10), [_line(variant_a, 1, 10000)])  # Sunday

        rows = reporting_service.sales_series(period="week", start="2026-10-01", end="2026-10-31")

        assert [r["period"] for r in rows] == ["2026-10-11", "2026-10-18"]
        assert rows[0]["revenue_cents"] == 23600
        assert rows[0]["cogs_cents"] == 2000
        assert rows[0]["profit_cents"] == 21600
        assert rows[1]["revenue_cents"] == 11800

    def test_month_and_year_buckets_sorted(self, db_session, store, variant_a, receive, sell_at):
        receive(variant_a, 10, 1000, days_ago=400)
        sell_at(datetime(2026, 3, 5, 10), [_line(variant_a, 1, 10000)])
        sell_at(datetime(2026, 1, 20, 10), [_line(variant_a, 1, 10000)])
        sell_at(datetime(2026, 1, 2, 10), [_line(variant_a, 1, 10000)])

        months = reporting_service.sales_series(period="month", start="2026-01-01", end="2026-12-31")
        assert [(r["period"], r["revenue_cents"]) for r in months] == [
            ("2026-01", 23600),
            ("2026-03", 11800),
        ]

        years = reporting_service.sales_series(period="year", start="2026-01-01", end="2026-12-31")
        assert [(r["period"], r["cogs_cents"]) for r in years] == [("2026", 3000)]

        days = reporting_service.sales_series(period="day", start="2026-01-01", end="2026-01-31")
        assert [r["period"] for r in days] == ["2026-01-02", "2026-01-20"]

    def test_invalid_period(self, db_session):
        with pytest.raises(ValidationError):
            reporting_service.sales_series(period="quarter")


class TestDashboard:
    NOW = datetime(2026, 10, 19, 15, 0)

    def test_rollup(self, db_session, store, cashier, variant_a, variant_c, receive, sell_at, monkeypatch):
        receive(variant_a, 10, 1000, days_ago=400)
        receive(variant_c, 5, 2000, days_ago=400)
        sell_at(datetime(2026, 10, 1, 12), [_line(variant_a, 1, 10000)])
        sell_at(datetime(2026, 10, 17, 12), [_line(variant_c, 1, 20000)])
        sell_at(datetime(2026, 10, 19, 9), [_line(variant_a, 1, 10000)])
        monkeypatch.setattr(order_service, "utcnow", lambda: datetime(2026, 10, 19, 10))
        held = order_service.hold_order(store_id=store.id, cashier_id=cashier.id, lines=[_line(variant_a, 1, 10000)])

        dash = reporting_service.dashboard_stats(now=self.NOW)

        assert dash["stats"] == {
            "today_sales_cents": 11800,
            "today_orders": 1,
            "low_stock": 2,
            "held_orders": 1,
            "total_products": 2,
            "total_customers": 0,
        }
        assert [o["order_number"] for o in dash["recent_orders"]][0] == held.order_number
        assert dash["recent_orders"][0]["customer"] == "Walk-in Customer"
        assert len(dash["recent_orders"]) == 4

        trend = dash["sales_trend"]
        assert [row["date"] for row in trend] == [f"2026-10-{d}" for d in range(13, 20)]
        assert {row["date"]: row["revenue_cents"] for row in trend if row["revenue_cents"]} == {
            "2026-10-17": 23600,
            "2026-10-19": 11800,
        }
        assert [(c["category"], c["revenue_cents"]) for c in dash["category_distribution"]] == [
            ("Women", 20000),
            ("Men", 10000),
        ]
        assert {item["variant_id"] for item in dash["low_stock_items"]} == {variant_a.id, variant_c.id}

    def test_store_filter_and_days(self, db_session, store, variant_a, receive, sell_at):
        receive(variant_a, 10, 1000, days_ago=400)
        sell_at(datetime(2026, 10, 19, 9), [_line(variant_a, 1, 10000)])

        other = reporting_service.dashboard_stats(store_id=store.id + 100, now=self.NOW)
        assert other["stats"]["today_orders"] == 0
        assert other["stats"]["low_stock"] == 0
        assert other["recent_orders"] == []

        one_day = reporting_service.dashboard_stats(store_id=store.id, now=self.NOW, days=1)
        assert one_day["sales_trend"] == [{"date": "2026-10-19", "revenue_cents": 11800}]

        with pytest.raises(ValidationError):
            reporting_service.dashboard_stats(days=0)
