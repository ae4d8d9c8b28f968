from flask import Blueprint, jsonify, request

from scentpos.decorators import json_errors
from scentpos.services import reporting_service


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/summary")
@json_errors
def summary_report():
    report = reporting_service.financial_report(
        start=request.args.get("start"),
        end=request.args.get("end"),
        store_id=request.args.get("store_id", type=int),
    )
    return jsonify(report), 200


@reports_bp.get("/sales")
@json_errors
def sales_series_report():
    period = request.args.get("period", "month")
    rows = reporting_service.sales_series(
        period=period,
        start=request.args.get("start"),
        end=request.args.get("end"),
        store_id=request.args.get("store_id", type=int),
    )
    return jsonify({"period": period, "rows": rows}), 200


@reports_bp.get("/dashboard")
@json_errors
def dashboard_report():
    stats = reporting_service.dashboard_stats(
        store_id=request.args.get("store_id", type=int),
        days=request.args.get("days", 7, type=int),
    )
    return jsonify(stats), 200
