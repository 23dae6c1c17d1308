from __future__ import annotations
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from pharmasys.time_utils import parse_iso_date, parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Date, DateTime, Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError


# Maximum price: 99,999,999.99 (Numeric(10, 2))
MAX_PRICE = Decimal("99999999.99")


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - aliases: incoming key -> column key (camelCase clients)
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore
    aliases: dict[str, str] | None = None


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(key: str, value: Any) -> int:
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    # Reject floats explicitly
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def coerce_decimal(key: str, value: Any, scale: int = 2) -> Decimal:
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be a number")
    if isinstance(value, (int, Decimal)):
        dec = Decimal(value)
    elif isinstance(value, float):
        # go through str() so 12.1 does not become 12.0999999...
        dec = Decimal(str(value))
    elif isinstance(value, str):
        try:
            dec = Decimal(value.strip())
        except InvalidOperation:
            raise ValidationError(f"{key} must be a number")
    else:
        raise ValidationError(f"{key} must be a number")

    if not dec.is_finite():
        raise ValidationError(f"{key} must be a number")
    return dec.quantize(Decimal(1).scaleb(-scale))


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(col.key, value)

    if isinstance(coltype, Numeric):
        return coerce_decimal(col.key, value, scale=coltype.scale or 2)

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        # fallback: truthiness
        return bool(value)

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
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

    # Dates ("YYYY-MM-DD")
    if isinstance(coltype, Date):
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        if isinstance(value, str):
            try:
                d = parse_iso_date(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 date")
            if d is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 date")
            return d
        raise ValidationError(f"{col.key} must be a date")

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # Default: leave as-is
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

    aliases = policy.aliases or {}
    payload = {aliases.get(k, k): v for k, v in payload.items()}

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        # NULL handling
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def _check_price(key: str, value) -> None:
    if value is None:
        return
    if value < 0:
        raise ValidationError(f"{key} must be >= 0")
    if value > MAX_PRICE:
        raise ValidationError(f"{key} cannot exceed {MAX_PRICE}")


def enforce_rules_medicine(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    if patch.get("stock_quantity") is not None and patch["stock_quantity"] < 0:
        raise ValidationError("stock_quantity must be >= 0")
    if patch.get("reorder_level") is not None and patch["reorder_level"] < 0:
        raise ValidationError("reorder_level must be >= 0")
    _check_price("unit_price", patch.get("unit_price"))


def enforce_rules_amount(patch: dict, key: str = "total_amount") -> None:
    _check_price(key, patch.get(key))


def validate_line_items(
    items: Any,
    *,
    require_unit_price: bool,
    allow_empty: bool = True,
    extra_fields: set[str] | None = None,
) -> list[dict]:
    """
    Normalize the "items" array of a transaction, order or prescription.

    Each item needs medicine_id and a positive integer quantity; unit_price is
    required (and must be >= 0) when require_unit_price is set. Accepts the
    camelCase keys older clients send (medicineId, unitPrice).
    """
    if items is None:
        items = []
    if not isinstance(items, list):
        raise ValidationError("items must be a list")
    if not items and not allow_empty:
        raise ValidationError("At least one item is required")

    extra_fields = extra_fields or set()
    cleaned: list[dict] = []

    for index, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")

        medicine_id = raw.get("medicine_id", raw.get("medicineId"))
        quantity = raw.get("quantity")
        if medicine_id is None:
            raise ValidationError(f"items[{index}].medicine_id is required")
        if quantity is None:
            raise ValidationError(f"items[{index}].quantity is required")

        item = {
            "medicine_id": coerce_int(f"items[{index}].medicine_id", medicine_id),
            "quantity": coerce_int(f"items[{index}].quantity", quantity),
        }
        if item["quantity"] <= 0:
            raise ValidationError(f"items[{index}].quantity must be > 0")

        unit_price = raw.get("unit_price", raw.get("unitPrice"))
        if require_unit_price and unit_price is None:
            raise ValidationError(f"items[{index}].unit_price is required")
        if unit_price is not None:
            item["unit_price"] = coerce_decimal(f"items[{index}].unit_price", unit_price)
            _check_price(f"items[{index}].unit_price", item["unit_price"])

        for field in extra_fields:
            if raw.get(field) is not None:
                item[field] = str(raw[field]).strip()

        cleaned.append(item)

    return cleaned
