from __future__ import annotations
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from scentpos.time_utils import parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Date, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta


# Upper bound for any single money amount (minor units). Guards against
# overflow and obviously mistyped prices/costs.
MAX_AMOUNT_CENTS = 999_999_999_999


class ValidationError(ValueError):
    """400-level input problem."""


class NotFoundError(LookupError):
    """404-level: referenced store/variant/batch/order does not exist."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., shrinking a batch below sold units)."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class InsufficientStockError(ConflictError):
    """
    Raised when a sale asks for more units than the batches hold.

    details names the variant so the terminal can show which cart line failed.
    """

    def __init__(
        self,
        *,
        variant_id: int,
        requested_quantity: int,
        available_quantity: int,
        sku: str | None = None,
    ):
        label = sku or f"variant {variant_id}"
        super().__init__(
            f"Insufficient stock for {label}: requested {requested_quantity}, available {available_quantity}",
            details={
                "variant_id": variant_id,
                "sku": sku,
                "requested_quantity": requested_quantity,
                "available_quantity": available_quantity,
            },
        )
        self.variant_id = variant_id
        self.requested_quantity = requested_quantity
        self.available_quantity = available_quantity


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_int(key: str, value: Any) -> int:
    # bool is a subclass of int and never a valid quantity/amount
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        if 'e' in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return _coerce_int(col.key, value)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        return bool(value)

    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    if isinstance(coltype, Date):
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        if isinstance(value, str):
            try:
                return date.fromisoformat(value.strip()[:10])
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 date")
        raise ValidationError(f"{col.key} must be a date")

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def _require_positive(patch: dict, key: str) -> None:
    value = patch.get(key)
    if value is None or value <= 0:
        raise ValidationError(f"{key} must be > 0")


def enforce_rules_batch_receive(patch: dict) -> None:
    _require_positive(patch, "quantity")
    _require_positive(patch, "unit_cost_cents")
    if patch["unit_cost_cents"] > MAX_AMOUNT_CENTS:
        raise ValidationError(f"unit_cost_cents cannot exceed {MAX_AMOUNT_CENTS}")
    vendor = patch.get("vendor")
    if vendor is None or str(vendor).strip() == "":
        raise ValidationError("vendor is required")


def enforce_rules_batch_update(patch: dict) -> None:
    if "quantity" in patch:
        _require_positive(patch, "quantity")
    if "unit_cost_cents" in patch:
        _require_positive(patch, "unit_cost_cents")
        if patch["unit_cost_cents"] > MAX_AMOUNT_CENTS:
            raise ValidationError(f"unit_cost_cents cannot exceed {MAX_AMOUNT_CENTS}")
    if "vendor" in patch and (patch["vendor"] is None or str(patch["vendor"]).strip() == ""):
        raise ValidationError("vendor cannot be blank")


def normalize_order_lines(lines: Any) -> list[dict]:
    """
    Validate a cart payload: a non-empty list of
    {variant_id, quantity > 0, unit_price_cents >= 0}. Returns clean dicts.
    """
    if not isinstance(lines, (list, tuple)) or not lines:
        raise ValidationError("Order must contain at least one line")

    clean = []
    for index, line in enumerate(lines):
        if not isinstance(line, dict):
            raise ValidationError(f"line {index}: must be an object")
        for key in ("variant_id", "quantity", "unit_price_cents"):
            if line.get(key) is None:
                raise ValidationError(f"line {index}: {key} is required")
        variant_id = _coerce_int(f"line {index}: variant_id", line["variant_id"])
        quantity = _coerce_int(f"line {index}: quantity", line["quantity"])
        unit_price = _coerce_int(f"line {index}: unit_price_cents", line["unit_price_cents"])
        if quantity <= 0:
            raise ValidationError(f"line {index}: quantity must be > 0")
        if unit_price < 0:
            raise ValidationError(f"line {index}: unit_price_cents must be >= 0")
        if unit_price > MAX_AMOUNT_CENTS:
            raise ValidationError(f"line {index}: unit_price_cents cannot exceed {MAX_AMOUNT_CENTS}")
        clean.append({
            "variant_id": variant_id,
            "quantity": quantity,
            "unit_price_cents": unit_price,
        })
    return clean


def enforce_rules_expense(patch: dict, categories) -> None:
    _require_positive(patch, "amount_cents")
    if patch.get("category") not in categories:
        raise ValidationError(
            f"Invalid category. Valid categories are: {', '.join(categories)}"
        )
    vendor = patch.get("vendor")
    if vendor is None or str(vendor).strip() == "":
        raise ValidationError("vendor is required")


def parse_tax_rate_bps(tax_rate: Any) -> int:
    """Convert a fractional tax rate in [0, 1] (e.g. 0.18) to basis points."""
    if isinstance(tax_rate, bool) or tax_rate is None:
        raise ValidationError("tax_rate must be a number between 0 and 1")
    try:
        rate = Decimal(str(tax_rate))
    except InvalidOperation:
        raise ValidationError("tax_rate must be a number between 0 and 1")
    if not rate.is_finite() or rate < 0 or rate > 1:
        raise ValidationError("Tax rate must be between 0 and 1")
    return int((rate * 10000).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
