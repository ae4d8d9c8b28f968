# Overview: Read-only financial reporting over settled orders and expenses.

from __future__ import annotations

from collections import OrderedDict
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import func

from scentpos.extensions import db
from scentpos.models import Customer, Expense, Inventory, Order, OrderItem, Product, Variant
from scentpos.models.sales import ORDER_COMPLETED, ORDER_ON_HOLD
from scentpos.time_utils import (
    PERIODS,
    coerce_datetime,
    default_period_start,
    end_of_day,
    period_key,
    start_of_day,
    to_utc_z,
    utcnow,
)
from scentpos.validation import ValidationError


def _parse_range(start, end) -> tuple[datetime | None, datetime | None]:
    """The window is [start, end-of-day(end)]; either bound may be open."""
    try:
        start_dt = coerce_datetime(start)
        end_dt = coerce_datetime(end)
    except ValueError:
        raise ValidationError("start/end must be ISO-8601 dates or datetimes")
    if end_dt is not None:
        end_dt = end_of_day(end_dt)
    if start_dt and end_dt and start_dt > end_dt:
        raise ValidationError("start must be on or before end")
    return start_dt, end_dt


def _sale_time():
    return func.coalesce(Order.completed_at, Order.created_at)


def _settled(query, start_dt, end_dt, store_id):
    """Restrict a query that already involves Order to completed, in-window sales."""
    sale_time = _sale_time()
    query = query.filter(Order.status == ORDER_COMPLETED)
    if store_id is not None:
        query = query.filter(Order.store_id == store_id)
    if start_dt:
        query = query.filter(sale_time >= start_dt)
    if end_dt:
        query = query.filter(sale_time <= end_dt)
    return query


def _expenses_in(query, start_dt, end_dt):
    if start_dt:
        query = query.filter(Expense.date >= start_dt)
    if end_dt:
        query = query.filter(Expense.date <= end_dt)
    return query


def profit_margin(net_profit_cents: int, revenue_cents: int) -> float:
    """Net margin in percent, 2 dp; 0.0 when there is no revenue."""
    if not revenue_cents:
        return 0.0
    return round(net_profit_cents / revenue_cents * 100.0, 2)


def _sales_by_category(start_dt, end_dt, store_id) -> list[dict]:
    line_revenue = func.coalesce(func.sum(OrderItem.total_price_cents), 0)
    category = func.coalesce(Product.category, "Uncategorized")
    rows = _settled(
        db.session.query(
            category.label("category"),
            func.coalesce(func.sum(OrderItem.quantity), 0).label("quantity"),
            line_revenue.label("revenue_cents"),
        )
        .join(Variant, OrderItem.variant_id == Variant.id)
        .join(Product, Variant.product_id == Product.id)
        .join(Order, OrderItem.order_id == Order.id),
        start_dt, end_dt, store_id,
    ).group_by(category).order_by(line_revenue.desc()).all()
    return [
        {
            "category": row.category,
            "quantity": int(row.quantity or 0),
            "revenue_cents": int(row.revenue_cents or 0),
        }
        for row in rows
    ]


def financial_report(*, start=None, end=None, store_id: int | None = None, top_limit: int | None = None) -> dict:
    """
    Profit summary for completed orders in the window.

    store_id narrows revenue, COGS and the product/category splits. Expenses
    carry no store and are always shop-wide, so a per-store net profit
    subtracts every store's expenses; expenses_scope says so in the response.
    """
    start_dt, end_dt = _parse_range(start, end)
    if top_limit is None:
        top_limit = current_app.config.get("TOP_PRODUCTS_LIMIT", 10)

    revenue_cents, order_count = _settled(
        db.session.query(
            func.coalesce(func.sum(Order.total_cents), 0),
            func.count(Order.id),
        ),
        start_dt, end_dt, store_id,
    ).one()
    revenue_cents = int(revenue_cents or 0)

    cogs_cents = int(
        _settled(
            db.session.query(
                func.coalesce(func.sum(OrderItem.quantity * OrderItem.unit_cost_cents), 0)
            ).join(Order, OrderItem.order_id == Order.id),
            start_dt, end_dt, store_id,
        ).scalar() or 0
    )

    expenses_cents = int(
        _expenses_in(
            db.session.query(func.coalesce(func.sum(Expense.amount_cents), 0)),
            start_dt, end_dt,
        ).scalar() or 0
    )

    line_revenue = func.coalesce(func.sum(OrderItem.total_price_cents), 0)
    product_rows = _settled(
        db.session.query(
            Product.id.label("product_id"),
            Product.brand.label("brand"),
            Product.name.label("name"),
            func.coalesce(func.sum(OrderItem.quantity), 0).label("quantity"),
            line_revenue.label("revenue_cents"),
        )
        .join(Variant, OrderItem.variant_id == Variant.id)
        .join(Product, Variant.product_id == Product.id)
        .join(Order, OrderItem.order_id == Order.id),
        start_dt, end_dt, store_id,
    ).group_by(Product.id, Product.brand, Product.name).order_by(
        line_revenue.desc(), Product.id.asc()
    ).limit(top_limit).all()

    expense_rows = _expenses_in(
        db.session.query(
            Expense.category.label("category"),
            func.coalesce(func.sum(Expense.amount_cents), 0).label("amount_cents"),
        ),
        start_dt, end_dt,
    ).group_by(Expense.category).order_by(Expense.category.asc()).all()

    gross_profit_cents = revenue_cents - cogs_cents
    net_profit_cents = gross_profit_cents - expenses_cents

    return {
        "store_id": store_id,
        "start": to_utc_z(start_dt) if start_dt else None,
        "end": to_utc_z(end_dt) if end_dt else None,
        "revenue_cents": revenue_cents,
        "cogs_cents": cogs_cents,
        "gross_profit_cents": gross_profit_cents,
        "expenses_cents": expenses_cents,
        "expenses_scope": "shop",
        "net_profit_cents": net_profit_cents,
        "profit_margin": profit_margin(net_profit_cents, revenue_cents),
        "order_count": int(order_count or 0),
        "top_products": [
            {
                "product_id": row.product_id,
                "name": f"{row.brand} {row.name}",
                "quantity": int(row.quantity or 0),
                "revenue_cents": int(row.revenue_cents or 0),
            }
            for row in product_rows
        ],
        "sales_by_category": _sales_by_category(start_dt, end_dt, store_id),
        "expenses_by_category": {
            row.category: int(row.amount_cents or 0) for row in expense_rows
        },
    }


def sales_series(*, period: str = "month", start=None, end=None, store_id: int | None = None) -> list[dict]:
    """
    Revenue / COGS / gross profit per day, week, month or year, oldest bucket first.

    Without a start the window reaches back a period-dependent default.
    Only buckets that contain at least one sale are returned.
    """
    if period not in PERIODS:
        raise ValidationError(f"period must be one of: {', '.join(PERIODS)}")
    start_dt, end_dt = _parse_range(start, end)
    if start_dt is None:
        start_dt = default_period_start(period)

    sale_time = _sale_time()
    orders = _settled(
        db.session.query(
            Order.id.label("order_id"),
            sale_time.label("sold_at"),
            Order.total_cents.label("total_cents"),
        ),
        start_dt, end_dt, store_id,
    ).order_by(sale_time.asc(), Order.id.asc()).all()

    cogs_by_order = dict(
        _settled(
            db.session.query(
                OrderItem.order_id,
                func.coalesce(func.sum(OrderItem.quantity * OrderItem.unit_cost_cents), 0),
            ).join(Order, OrderItem.order_id == Order.id),
            start_dt, end_dt, store_id,
        ).group_by(OrderItem.order_id).all()
    )

    buckets: OrderedDict[str, dict] = OrderedDict()
    for row in orders:
        key = period_key(row.sold_at, period)
        bucket = buckets.setdefault(
            key, {"period": key, "revenue_cents": 0, "cogs_cents": 0, "profit_cents": 0}
        )
        cogs = int(cogs_by_order.get(row.order_id) or 0)
        bucket["revenue_cents"] += int(row.total_cents or 0)
        bucket["cogs_cents"] += cogs
        bucket["profit_cents"] += int(row.total_cents or 0) - cogs

    return [buckets[key] for key in sorted(buckets)]


def dashboard_stats(*, store_id: int | None = None, now: datetime | None = None, days: int = 7) -> dict:
    """
    Front-page rollup: today's completed sales, stock alerts, the latest
    orders, a daily revenue trend over the last `days` days (today included)
    and the category split over the same days.
    """
    if days < 1:
        raise ValidationError("days must be >= 1")
    now = now or utcnow()
    today = start_of_day(now)
    window_end = end_of_day(now)
    trend_start = today - timedelta(days=days - 1)

    today_sales, today_orders = _settled(
        db.session.query(
            func.coalesce(func.sum(Order.total_cents), 0),
            func.count(Order.id),
        ),
        today, window_end, store_id,
    ).one()

    low_stock = db.session.query(Inventory).filter(Inventory.quantity < Inventory.min_stock)
    held = db.session.query(func.count(Order.id)).filter(Order.status == ORDER_ON_HOLD)
    recent = db.session.query(Order)
    if store_id is not None:
        low_stock = low_stock.filter(Inventory.store_id == store_id)
        held = held.filter(Order.store_id == store_id)
        recent = recent.filter(Order.store_id == store_id)
    low_stock_rows = low_stock.order_by(Inventory.quantity.asc(), Inventory.variant_id.asc()).limit(10).all()
    recent_orders = recent.order_by(Order.created_at.desc(), Order.id.desc()).limit(5).all()

    sale_time = _sale_time()
    trend = OrderedDict(
        (period_key(trend_start + timedelta(days=i), "day"), 0) for i in range(days)
    )
    for sold_at, total in _settled(
        db.session.query(sale_time, Order.total_cents), trend_start, window_end, store_id
    ).all():
        trend[period_key(sold_at, "day")] += int(total or 0)

    return {
        "store_id": store_id,
        "stats": {
            "today_sales_cents": int(today_sales or 0),
            "today_orders": int(today_orders or 0),
            "low_stock": low_stock.count(),
            "held_orders": int(held.scalar() or 0),
            "total_products": db.session.query(func.count(Product.id)).scalar(),
            "total_customers": db.session.query(func.count(Customer.id)).scalar(),
        },
        "recent_orders": [
            {
                "order_number": order.order_number,
                "customer": order.customer.name if order.customer else "Walk-in Customer",
                "total_cents": order.total_cents,
                "status": order.status,
                "created_at": to_utc_z(order.created_at),
            }
            for order in recent_orders
        ],
        "low_stock_items": [
            {
                "variant_id": row.variant_id,
                "name": row.variant.display_name if row.variant else None,
                "stock": row.quantity,
                "min_stock": row.min_stock,
            }
            for row in low_stock_rows
        ],
        "sales_trend": [{"date": key, "revenue_cents": value} for key, value in trend.items()],
        "category_distribution": _sales_by_category(trend_start, window_end, store_id),
    }
