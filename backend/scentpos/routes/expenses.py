from flask import Blueprint, jsonify, request

from scentpos.decorators import json_errors, require_json
from scentpos.models.expenses import EXPENSE_CATEGORIES
from scentpos.services import expense_service


expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")


@expenses_bp.get("")
@json_errors
def list_expenses_route():
    expenses = expense_service.list_expenses(
        start=request.args.get("start"),
        end=request.args.get("end"),
        category=request.args.get("category"),
    )
    return jsonify({
        "expenses": [e.to_dict() for e in expenses],
        "count": len(expenses),
        "categories": list(EXPENSE_CATEGORIES),
    }), 200


@expenses_bp.post("")
@require_json
@json_errors
def create_expense_route():
    payload = request.get_json()
    expense = expense_service.create_expense(
        category=payload.get("category"),
        amount_cents=payload.get("amount_cents"),
        vendor=payload.get("vendor"),
        date=payload.get("date"),
        description=payload.get("description"),
    )
    return jsonify({"expense": expense.to_dict()}), 201
