from __future__ import annotations

from flask import current_app

from scentpos.extensions import db
from scentpos.models import Expense
from scentpos.models.expenses import EXPENSE_CATEGORIES
from scentpos.services.concurrency import run_with_retry
from scentpos.time_utils import coerce_datetime, end_of_day, utcnow
from scentpos.validation import (
    ModelValidationPolicy,
    ValidationError,
    enforce_rules_expense,
    validate_payload,
)


EXPENSE_POLICY = ModelValidationPolicy(
    writable_fields={"category", "amount_cents", "description", "vendor", "date"},
    required_on_create={"category", "amount_cents", "vendor"},
)


def create_expense(
    *,
    category: str,
    amount_cents: int,
    vendor: str,
    date=None,
    description: str | None = None,
) -> Expense:
    try:
        date = coerce_datetime(date)
    except ValueError:
        raise ValidationError("date must be an ISO-8601 date or datetime")

    raw = {
        "category": (category or "").strip().upper() if isinstance(category, str) else category,
        "amount_cents": amount_cents,
        "vendor": vendor,
        "date": date,
        "description": description,
    }
    patch = validate_payload(
        model=Expense,
        payload={k: v for k, v in raw.items() if v is not None},
        policy=EXPENSE_POLICY,
        partial=False,
    )
    enforce_rules_expense(patch, EXPENSE_CATEGORIES)
    if not patch.get("description"):
        patch["description"] = "No description"
    patch.setdefault("date", utcnow())

    def _op():
        expense = Expense(**patch)
        db.session.add(expense)
        db.session.commit()
        return expense

    expense = run_with_retry(_op)
    current_app.logger.info(
        "Recorded expense %s: %s %s", expense.id, expense.category, expense.amount_cents
    )
    return expense


def list_expenses(*, start=None, end=None, category: str | None = None) -> list[Expense]:
    try:
        start_dt = coerce_datetime(start)
        end_dt = coerce_datetime(end)
    except ValueError:
        raise ValidationError("start/end must be ISO-8601 dates or datetimes")

    q = db.session.query(Expense)
    if start_dt:
        q = q.filter(Expense.date >= start_dt)
    if end_dt:
        q = q.filter(Expense.date <= end_of_day(end_dt))
    if category:
        q = q.filter(Expense.category == category.upper())
    return q.order_by(Expense.date.desc(), Expense.id.desc()).all()
