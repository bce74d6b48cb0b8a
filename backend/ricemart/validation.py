from __future__ import annotations

import re

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeMeta

from ricemart.money import to_money
from ricemart.time_utils import parse_iso_datetime


# Upper bound for a single product price (fits Numeric(12, 2) with headroom)
MAX_PRICE = Decimal("99999999.99")

METADATA_STRING_KEYS = ("variety", "weight")

_INT_RE = re.compile(r"-?\d+")
_TRUE_STRINGS = {"1", "true", "yes", "on"}
_FALSE_STRINGS = {"0", "false", "no", "off", ""}


class ValidationError(ValueError):
    """400-level input problem. `details` holds per-field messages."""

    def __init__(self, message: str, details: list[dict] | None = None):
        super().__init__(message)
        self.details = details or []


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate SKU)."""


class NotFoundError(LookupError):
    """404-level: entity absent or hidden from the caller."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - aliases: incoming key -> model attribute (e.g. "metadata" -> "meta")
    """
    writable_fields: frozenset[str]
    required_on_create: frozenset[str] = frozenset()
    aliases: tuple[tuple[str, str], ...] = ()


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {prop.key: prop.columns[0] for prop in mapper.column_attrs}


def coerce_bool(value: Any, field: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise ValidationError(f"{field} must be a boolean", [{"field": field, "message": "must be a boolean"}])


def coerce_int(value: Any, field: str) -> int:
    # Strict: rejects floats, bools and scientific notation
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if _INT_RE.fullmatch(stripped):
            return int(stripped)
    raise ValidationError(f"{field} must be an integer", [{"field": field, "message": "must be an integer"}])


def coerce_decimal(value: Any, field: str) -> Decimal:
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number", [{"field": field, "message": "must be a number"}])
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError(f"{field} must be a number", [{"field": field, "message": "must be a number"}])
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a number", [{"field": field, "message": "must be a number"}])
    return to_money(amount)


def _coerce_value(key: str, col, value: Any):
    coltype = col.type

    if isinstance(coltype, Integer):
        return coerce_int(value, key)

    if isinstance(coltype, Boolean):
        return coerce_bool(value, key)

    if isinstance(coltype, Numeric):
        return coerce_decimal(value, key)

    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                dt = None
            if dt is not None:
                return dt
        raise ValidationError(f"{key} must be an ISO-8601 datetime")

    if isinstance(coltype, (String, Text)):
        if isinstance(value, (dict, list)):
            raise ValidationError(f"{key} must be a string")
        return str(value).strip()

    # JSON columns are checked by the enforce_rules_* helpers
    if isinstance(coltype, JSON):
        return value

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
    Returns a cleaned patch dict keyed by model attribute.

    All field problems are collected and raised together as one
    ValidationError whose `details` lists {field, message}.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    aliases = dict(policy.aliases)
    incoming = {aliases.get(k, k): v for k, v in payload.items()}
    reverse = {v: k for k, v in aliases.items()}

    details: list[dict] = []

    if not partial:
        for f in sorted(policy.required_on_create):
            if f not in incoming or incoming[f] in (None, ""):
                details.append({"field": reverse.get(f, f), "message": "is required"})

    cols = _columns_by_key(model)
    patch: dict = {}

    for k, raw in incoming.items():
        label = reverse.get(k, k)
        if k not in policy.writable_fields or k not in cols:
            details.append({"field": label, "message": "is not allowed"})
            continue
        col = cols[k]

        if raw is None:
            if not col.nullable:
                details.append({"field": label, "message": "cannot be null"})
            else:
                patch[k] = None
            continue

        try:
            val = _coerce_value(label, col, raw)
        except ValidationError as exc:
            details.append({"field": label, "message": str(exc)})
            continue

        if isinstance(col.type, (String, Text)) and not col.nullable and val == "":
            details.append({"field": label, "message": "cannot be blank"})
            continue

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                details.append({"field": label, "message": f"exceeds max length {col.type.length}"})
                continue

        # Blank optional strings are stored as NULL
        if isinstance(val, str) and val == "" and col.nullable:
            val = None

        patch[k] = val

    if details:
        raise ValidationError("Validation failed", details)

    return patch


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    details: list[dict] = []

    if patch.get("price") is not None:
        price = patch["price"]
        if price < 0:
            details.append({"field": "price", "message": "must be >= 0"})
        elif price > MAX_PRICE:
            details.append({"field": "price", "message": f"cannot exceed {MAX_PRICE}"})

    if "images" in patch:
        images = patch["images"]
        if images is None:
            patch["images"] = []
        elif not isinstance(images, list) or not all(isinstance(i, str) and i.strip() for i in images):
            details.append({"field": "images", "message": "must be a list of URLs"})

    if "meta" in patch:
        meta = patch["meta"]
        if meta is None:
            patch["meta"] = {}
        elif not isinstance(meta, dict):
            details.append({"field": "metadata", "message": "must be an object"})
        else:
            for key, value in meta.items():
                if value is not None and not isinstance(value, (str, int, float, bool)):
                    details.append({"field": f"metadata.{key}", "message": "must be a scalar value"})
            for key in METADATA_STRING_KEYS:
                if key in meta and meta[key] is not None and not isinstance(meta[key], str):
                    details.append({"field": f"metadata.{key}", "message": "must be a string"})

    if details:
        raise ValidationError("Validation failed", details)


def require_object(payload: Any) -> dict:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def parse_optional_int(value: Any, field: str, *, minimum: int | None = None) -> int | None:
    if value is None or value == "":
        return None
    result = coerce_int(value, field)
    if minimum is not None and result < minimum:
        raise ValidationError(
            f"{field} must be >= {minimum}",
            [{"field": field, "message": f"must be >= {minimum}"}],
        )
    return result


def parse_optional_bool(value: Any, field: str) -> bool | None:
    if value is None or value == "":
        return None
    return coerce_bool(value, field)


def parse_optional_decimal(value: Any, field: str) -> Decimal | None:
    if value is None or value == "":
        return None
    return coerce_decimal(value, field)


def parse_pagination(args, *, default_limit: int, max_limit: int) -> tuple[int, int]:
    """Read page/limit query params; limit is clamped to max_limit."""
    page = parse_optional_int(args.get("page"), "page", minimum=1) or 1
    limit = parse_optional_int(args.get("limit"), "limit", minimum=1) or default_limit
    return page, min(limit, max_limit)
