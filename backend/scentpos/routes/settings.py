from flask import Blueprint, jsonify, request

from scentpos.decorators import json_errors, require_json
from scentpos.services import store_service


settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@settings_bp.get("/<int:store_id>")
@json_errors
def get_settings(store_id: int):
    return jsonify({"store": store_service.get_store(store_id).to_dict()}), 200


@settings_bp.put("/<int:store_id>")
@require_json
@json_errors
def update_settings(store_id: int):
    """Body may carry name, address, phone and tax_rate (fraction in [0, 1])."""
    payload = request.get_json()
    store = store_service.update_store_settings(
        store_id,
        name=payload.get("name"),
        address=payload.get("address"),
        phone=payload.get("phone"),
        tax_rate=payload.get("tax_rate"),
    )
    return jsonify({"store": store.to_dict()}), 200
