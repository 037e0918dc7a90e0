from __future__ import annotations
from datetime import date, datetime
from .time_utils import parse_iso_datetime, parse_iso_date

from dataclasses import dataclass, field
from typing import Any, Callable

from sqlalchemy import Boolean, Date, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError


# Maximum price: $9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Which columns of a model a client may write.
    - writable_fields: allowlist; anything else in the body is rejected
    - required_on_create: must be present when partial=False
    """
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)


def coerce_int(value: Any, field: str) -> int:
    """Strict integer coercion: rejects bools, floats, decimals and scientific notation."""
    if isinstance(value, bool) or isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not {type(value).__name__}")
    if isinstance(value, int):
        return value
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} must be an integer")

    text = value.strip()
    if "e" in text.lower():
        raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
    if "." in text:
        raise ValidationError(f"{field} must be an integer (no decimals)")
    try:
        return int(text)
    except ValueError:
        raise ValidationError(f"{field} must be an integer")


def require_positive_int(value: Any, field: str = "quantity") -> int:
    n = coerce_int(value, field)
    if n <= 0:
        raise ValidationError(f"{field} must be > 0")
    return n


def require_non_negative_int(value: Any, field: str = "quantity") -> int:
    n = coerce_int(value, field)
    if n < 0:
        raise ValidationError(f"{field} must be >= 0")
    return n


def coerce_bool(value: Any, key: str) -> bool:
    """Accepts JSON booleans and the strings true/false/1/0."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false", "1", "0"):
        return value.strip().lower() in ("true", "1")
    raise ValidationError(f"{key} must be a boolean")


def _to_datetime(value: Any, key: str) -> datetime:
    if isinstance(value, datetime):
        return value
    try:
        dt = parse_iso_datetime(value) if isinstance(value, str) else None
    except ValueError:
        dt = None
    if dt is None:
        raise ValidationError(f"{key} must be an ISO-8601 datetime")
    return dt


def _to_date(value: Any, key: str) -> date:
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    try:
        return parse_iso_date(str(value))
    except ValueError:
        raise ValidationError(f"{key} must be an ISO-8601 date")


def _to_text(value: Any, key: str) -> str:
    if isinstance(value, (dict, list)):
        raise ValidationError(f"{key} must be a string")
    return str(value).strip()


# Checked in order: DateTime before Date, String covers Text subclasses too
_COERCERS: list[tuple[type, Callable[[Any, str], Any]]] = [
    (Boolean, coerce_bool),
    (Integer, coerce_int),
    (DateTime, _to_datetime),
    (Date, _to_date),
    (String, _to_text),
    (Text, _to_text),
]


def _check_column_value(col, raw: Any) -> Any:
    """Coerce one raw JSON value to the column's Python type and apply column constraints."""
    if raw is None:
        if not col.nullable:
            raise ValidationError(f"{col.key} cannot be null")
        return None

    val = raw
    for coltype, coerce in _COERCERS:
        if isinstance(col.type, coltype):
            val = coerce(raw, col.key)
            break

    if isinstance(val, str):
        if val == "" and not col.nullable:
            raise ValidationError(f"{col.key} cannot be blank")
        max_len = getattr(col.type, "length", None)
        if max_len and len(val) > max_len:
            raise ValidationError(f"{col.key} exceeds max length {max_len}")
    return val


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Turn a JSON body into a patch dict for model.

    Keys must be in policy.writable_fields and be real columns. Values are
    coerced per column type; nullability and String(n) lengths are enforced.
    partial=False also requires every policy.required_on_create key.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    columns = {c.key: c for c in model.__mapper__.columns}

    unknown = [k for k in payload if k not in policy.writable_fields]
    if unknown:
        raise ValidationError(f"Field not allowed: {unknown[0]}")
    not_columns = [k for k in payload if k not in columns]
    if not_columns:
        raise ValidationError(f"Unknown field: {not_columns[0]}")

    if not partial:
        missing = sorted(policy.required_on_create - set(payload))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    return {key: _check_column_value(columns[key], raw) for key, raw in payload.items()}


def enforce_rules_product(patch: dict) -> None:
    """Product rules beyond column metadata. Mutates patch (blank barcode -> None)."""
    for money_field in ("unit_price_cents", "unit_cost_cents"):
        cents = patch.get(money_field)
        if cents is None:
            continue
        if cents < 0:
            raise ValidationError(f"{money_field} must be >= 0")
        if cents > MAX_PRICE_CENTS:
            raise ValidationError(f"{money_field} cannot exceed {MAX_PRICE_CENTS} (${MAX_PRICE_CENTS / 100:,.2f})")

    if patch.get("minimum_stock") is not None and patch["minimum_stock"] < 0:
        raise ValidationError("minimum_stock must be >= 0")

    if patch.get("case_size") is not None and patch["case_size"] <= 0:
        raise ValidationError("case_size must be > 0")

    # NULL barcodes are exempt from the unique index
    if patch.get("barcode") == "":
        patch["barcode"] = None


def parse_date_field(value: Any, field: str) -> date | None:
    """Optional 'YYYY-MM-DD' request field -> date."""
    if value is None or value == "":
        return None
    try:
        return parse_iso_date(str(value))
    except ValueError:
        raise ValidationError(f"{field} must be YYYY-MM-DD")
