from __future__ import annotations

from ..extensions import db
from scentpos.time_utils import to_utc_z


EXPENSE_CATEGORIES = ("RENT", "SALARIES", "UTILITIES", "MARKETING", "SUPPLIES", "OTHER")


class Expense(db.Model):
    """Operating expense; independent of inventory, read only by reports."""
    __tablename__ = "expenses"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_expenses_amount_pos"),
        db.Index("ix_expenses_date", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    category = db.Column(db.String(32), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(255), nullable=False, default="No description")
    vendor = db.Column(db.String(255), nullable=True)
    date = db.Column(db.DateTime(timezone=True), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category": self.category,
            "amount_cents": self.amount_cents,
            "description": self.description,
            "vendor": self.vendor,
            "date": to_utc_z(self.date),
            "created_at": to_utc_z(self.created_at),
        }
