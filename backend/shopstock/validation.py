from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text

from .errors import ValidationError


# Maximum price: $9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku", "name", "description", "unit_price_cents",
        "total_stock", "min_stock_level", "is_active",
    },
    required_on_create={"sku", "name"},
)

SHOP_INVENTORY_POLICY = ModelValidationPolicy(
    writable_fields={"current_stock", "min_stock_per_item", "low_stock_alerts_enabled", "is_active"},
)


def _columns_by_key(model) -> dict[str, Any]:
    return {c.key: c for c in model.__mapper__.columns}


def coerce_int(value: Any, field: str) -> int:
    """Strict integer coercion: rejects bools, floats, decimals and scientific notation."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer", field=field)
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)", field=field)
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)", field=field)
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer", field=field) from None
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal", field=field)
    raise ValidationError(f"{field} must be an integer", field=field)


def coerce_bool(value: Any, field: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in {"true", "1", "yes"}:
        return True
    if isinstance(value, str) and value.strip().lower() in {"false", "0", "no"}:
        return False
    raise ValidationError(f"{field} must be a boolean", field=field)


def _coerce_value(col, value: Any):
    if value is None:
        return None

    coltype = col.type
    if isinstance(coltype, Boolean):
        return coerce_bool(value, col.key)
    if isinstance(coltype, Integer):
        return coerce_int(value, col.key)
    if isinstance(coltype, (String, Text)):
        return str(value).strip()
    return value


def validate_payload(*, model, payload: dict, policy: ModelValidationPolicy, partial: bool) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", fields=missing)

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}", field=k)
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}", field=k)

    patch: dict = {}
    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null", field=k)
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable and val == "":
            raise ValidationError(f"{k} cannot be blank", field=k)

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}", field=k)

        patch[k] = val

    return patch


def enforce_rules_product(patch: dict) -> None:
    """Business rules that are not captured by SQLAlchemy metadata alone."""
    price = patch.get("unit_price_cents")
    if price is not None:
        if price < 0:
            raise ValidationError("unit_price_cents must be >= 0", field="unit_price_cents")
        if price > MAX_PRICE_CENTS:
            raise ValidationError(
                f"unit_price_cents cannot exceed {MAX_PRICE_CENTS} (${MAX_PRICE_CENTS / 100:,.2f})",
                field="unit_price_cents",
            )

    for key in ("total_stock", "min_stock_level"):
        if patch.get(key) is not None and patch[key] < 0:
            raise ValidationError(f"{key} must be >= 0", field=key)


def enforce_rules_shop_inventory(patch: dict) -> None:
    for key in ("current_stock", "min_stock_per_item"):
        if patch.get(key) is not None and patch[key] < 0:
            raise ValidationError(f"{key} must be >= 0", field=key)


def parse_restock_create(payload: dict | None) -> dict:
    """
    Normalize a restock request creation body.

    Expected keys: shop_id, product_id, requested_amount; optional request_type, notes.
    Amount positivity and request_type membership are enforced by the workflow.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    missing = [k for k in ("shop_id", "product_id", "requested_amount") if payload.get(k) is None]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}", fields=missing)

    notes = payload.get("notes")
    return {
        "shop_id": coerce_int(payload["shop_id"], "shop_id"),
        "product_id": coerce_int(payload["product_id"], "product_id"),
        "requested_amount": coerce_int(payload["requested_amount"], "requested_amount"),
        "request_type": payload.get("request_type") or "RESTOCK",
        "notes": str(notes).strip() if notes is not None else None,
    }


def parse_stock_edit(payload: dict | None, *, absolute_key: str) -> tuple[int | None, int | None]:
    """Returns (delta, absolute) with exactly one set."""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    has_delta = payload.get("delta") is not None
    has_absolute = payload.get(absolute_key) is not None
    if has_delta == has_absolute:
        raise ValidationError(f"Provide exactly one of delta or {absolute_key}")

    if has_delta:
        delta = coerce_int(payload["delta"], "delta")
        if delta == 0:
            raise ValidationError("delta must be non-zero", field="delta")
        return delta, None

    absolute = coerce_int(payload[absolute_key], absolute_key)
    if absolute < 0:
        raise ValidationError(f"{absolute_key} must be >= 0", field=absolute_key)
    return None, absolute
