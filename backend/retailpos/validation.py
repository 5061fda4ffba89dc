from __future__ import annotations
from datetime import datetime
import math

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Boolean, Float, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .time_utils import parse_iso_datetime


# Upper bound for any single money amount or quantity accepted from clients.
# Prevents nonsensical values and float overflow in aggregates.
MAX_AMOUNT = 999_999_999.0

DISCOUNT_TYPES = ("percentage", "fixed")
UNIT_TYPES = ("weight", "volume", "piece", "custom")
CUSTOMER_TYPES = ("retail", "wholesale", "vip")
PAYMENT_METHODS = ("cash", "card", "d17", "flouci", "edinar", "bank_transfer", "credit")


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate SKU)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - allow_null_fields: extra allowlist for setting null on non-nullable columns
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore
    allow_null_fields: set[str] | None = None


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_number(name: str, value: Any) -> float:
    """Accept ints, floats and numeric strings; reject bools, NaN and infinity."""
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be a number")
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        stripped = value.strip()
        try:
            number = float(stripped)
        except ValueError:
            raise ValidationError(f"{name} must be a number")
    else:
        raise ValidationError(f"{name} must be a number")

    if math.isnan(number) or math.isinf(number):
        raise ValidationError(f"{name} must be a finite number")
    if abs(number) > MAX_AMOUNT:
        raise ValidationError(f"{name} cannot exceed {MAX_AMOUNT:,.0f}")
    return number


def coerce_int(name: str, value: Any) -> int:
    # Integers - strict validation to reject floats and scientific notation
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{name} must be an integer")
        if 'e' in stripped.lower():
            raise ValidationError(f"{name} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{name} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{name} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{name} must be an integer, not a decimal")
    raise ValidationError(f"{name} must be an integer")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(col.key, value)

    if isinstance(coltype, Float):
        return coerce_number(col.key, value)

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

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)
    allow_null = policy.allow_null_fields or set()

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
            if not col.nullable and k not in allow_null:
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


# -- Products --

def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    for key in ("price", "cost", "stock_quantity", "min_stock", "max_stock", "reorder_point"):
        if patch.get(key) is not None and patch[key] < 0:
            raise ValidationError(f"{key} must be >= 0")

    if patch.get("tax_rate") is not None and not 0 <= patch["tax_rate"] <= 100:
        raise ValidationError("tax_rate must be between 0 and 100")

    if patch.get("unit_type") is not None and patch["unit_type"] not in UNIT_TYPES:
        raise ValidationError(f"unit_type must be one of: {', '.join(UNIT_TYPES)}")

    if patch.get("discount_type") is not None and patch["discount_type"] not in DISCOUNT_TYPES:
        raise ValidationError(f"discount_type must be one of: {', '.join(DISCOUNT_TYPES)}")

    value = patch.get("discount_value")
    if value is not None:
        if value < 0:
            raise ValidationError("discount_value must be >= 0")
        if patch.get("discount_type") == "percentage" and value > 100:
            raise ValidationError("percentage discount_value cannot exceed 100")

    start, end = patch.get("discount_start"), patch.get("discount_end")
    if start is not None and end is not None and end < start:
        raise ValidationError("discount_end must be after discount_start")


def parse_unit_conversions(raw: Any, *, base_unit: str) -> list[tuple[str, float]]:
    """
    Parse a product's unit table.

    Accepts a list of {"unit", "conversion_factor"} objects or a
    {unit: factor} mapping. Factors must be > 0, units unique and distinct
    from the base unit (which is implicitly 1).
    """
    if raw is None:
        return []
    if isinstance(raw, dict):
        items = [{"unit": k, "conversion_factor": v} for k, v in raw.items()]
    elif isinstance(raw, list):
        items = raw
    else:
        raise ValidationError("unit_conversions must be a list or an object")

    seen = set()
    parsed = []
    for entry in items:
        if not isinstance(entry, dict):
            raise ValidationError("unit_conversions entries must be objects")
        unit = str(entry.get("unit") or "").strip()
        if not unit:
            raise ValidationError("unit_conversions entries require a unit")
        if unit == base_unit:
            raise ValidationError(f"{unit} is the base unit and cannot have a conversion")
        if unit in seen:
            raise ValidationError(f"Duplicate unit in unit_conversions: {unit}")
        if entry.get("conversion_factor") is None:
            raise ValidationError(f"conversion_factor is required for unit {unit}")
        factor = coerce_number("conversion_factor", entry["conversion_factor"])
        if factor <= 0:
            raise ValidationError(f"conversion_factor for unit {unit} must be > 0")
        seen.add(unit)
        parsed.append((unit, factor))
    return parsed


def parse_unit_prices(raw: Any, *, allowed_units: list[str]) -> list[tuple[str, float]]:
    """Parse a product's fixed per-unit prices; every unit must be sellable."""
    if raw is None:
        return []
    if isinstance(raw, dict):
        items = [{"unit": k, "price": v} for k, v in raw.items()]
    elif isinstance(raw, list):
        items = raw
    else:
        raise ValidationError("price_by_unit must be a list or an object")

    seen = set()
    parsed = []
    for entry in items:
        if not isinstance(entry, dict):
            raise ValidationError("price_by_unit entries must be objects")
        unit = str(entry.get("unit") or "").strip()
        if not unit:
            raise ValidationError("price_by_unit entries require a unit")
        if unit not in allowed_units:
            raise ValidationError(f"price_by_unit references unknown unit: {unit}")
        if unit in seen:
            raise ValidationError(f"Duplicate unit in price_by_unit: {unit}")
        if entry.get("price") is None:
            raise ValidationError(f"price is required for unit {unit}")
        price = coerce_number("price", entry["price"])
        if price < 0:
            raise ValidationError(f"price for unit {unit} must be >= 0")
        seen.add(unit)
        parsed.append((unit, price))
    return parsed


def parse_positive_quantity(raw: Any, name: str = "quantity") -> float:
    if raw is None:
        raise ValidationError(f"{name} is required")
    quantity = coerce_number(name, raw)
    if quantity <= 0:
        raise ValidationError(f"{name} must be > 0")
    return quantity


# -- Customers --

def enforce_rules_customer(patch: dict) -> None:
    if patch.get("type") is not None and patch["type"] not in CUSTOMER_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(CUSTOMER_TYPES)}")
    if patch.get("credit_limit") is not None and patch["credit_limit"] < 0:
        raise ValidationError("credit_limit must be >= 0")
    method = patch.get("preferred_payment_method")
    if method is not None and method not in PAYMENT_METHODS:
        raise ValidationError(f"preferred_payment_method must be one of: {', '.join(PAYMENT_METHODS)}")


# -- Carts --

@dataclass(frozen=True)
class CartLine:
    product_id: int
    quantity: float
    unit: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class CartPayment:
    method: str
    amount: float
    reference: str | None = None


@dataclass(frozen=True)
class Cart:
    """Normalized checkout input (see parse_cart)."""
    lines: list[CartLine] = field(default_factory=list)
    payments: list[CartPayment] = field(default_factory=list)
    customer_id: int | None = None
    discount_type: str | None = None
    discount_value: float | None = None
    discount_reason: str | None = None
    notes: str | None = None
    held_sale_id: int | None = None


def _parse_cart_lines(raw_items: Any) -> list[CartLine]:
    if not isinstance(raw_items, list):
        raise ValidationError("items must be a list")

    lines = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        if raw.get("product_id") is None:
            raise ValidationError(f"items[{index}].product_id is required")
        product_id = coerce_int(f"items[{index}].product_id", raw["product_id"])
        quantity = parse_positive_quantity(raw.get("quantity"), f"items[{index}].quantity")

        unit = raw.get("unit")
        if unit is not None:
            unit = str(unit).strip() or None

        notes = raw.get("notes")
        lines.append(CartLine(
            product_id=product_id,
            quantity=quantity,
            unit=unit,
            notes=str(notes).strip() if notes else None,
        ))
    return lines


def _parse_cart_payments(raw_payments: Any) -> list[CartPayment]:
    if raw_payments is None:
        return []
    if not isinstance(raw_payments, list):
        raise ValidationError("payments must be a list")

    payments = []
    for index, raw in enumerate(raw_payments):
        if not isinstance(raw, dict):
            raise ValidationError(f"payments[{index}] must be an object")
        method = str(raw.get("method") or "").strip().lower()
        if method not in PAYMENT_METHODS:
            raise ValidationError(f"payments[{index}].method must be one of: {', '.join(PAYMENT_METHODS)}")
        if raw.get("amount") is None:
            raise ValidationError(f"payments[{index}].amount is required")
        amount = coerce_number(f"payments[{index}].amount", raw["amount"])
        if amount < 0:
            raise ValidationError(f"payments[{index}].amount must be >= 0")
        reference = raw.get("reference")
        payments.append(CartPayment(
            method=method,
            amount=amount,
            reference=str(reference).strip() if reference else None,
        ))
    return payments


def parse_cart(payload: Any, *, require_items: bool = True) -> Cart:
    """
    Validate a POS cart payload:

        {items: [{product_id, quantity, unit?, notes?}], customer_id?,
         discount?: {type, value, reason?}, payments: [{method, amount, reference?}],
         notes?, held_sale_id?}

    A line without a unit is sold in the product's base unit (resolved later,
    once the product is loaded).
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    held_sale_id = payload.get("held_sale_id")
    if held_sale_id is not None:
        held_sale_id = coerce_int("held_sale_id", held_sale_id)

    lines = _parse_cart_lines(payload.get("items") or [])
    if require_items and not lines and held_sale_id is None:
        raise ValidationError("Cart must contain at least one item")

    customer_id = payload.get("customer_id")
    if customer_id is not None:
        customer_id = coerce_int("customer_id", customer_id)

    discount_type = discount_value = discount_reason = None
    discount = payload.get("discount")
    if discount is not None:
        if not isinstance(discount, dict):
            raise ValidationError("discount must be an object")
        if discount.get("value") not in (None, 0):
            discount_type = discount.get("type")
            if discount_type not in DISCOUNT_TYPES:
                raise ValidationError(f"discount.type must be one of: {', '.join(DISCOUNT_TYPES)}")
            discount_value = coerce_number("discount.value", discount["value"])
            if discount_value < 0:
                raise ValidationError("discount.value must be >= 0")
            if discount_type == "percentage" and discount_value > 100:
                raise ValidationError("percentage discount cannot exceed 100")
            discount_reason = discount.get("reason")

    notes = payload.get("notes")
    return Cart(
        lines=lines,
        payments=_parse_cart_payments(payload.get("payments")),
        customer_id=customer_id,
        discount_type=discount_type,
        discount_value=discount_value,
        discount_reason=str(discount_reason).strip() if discount_reason else None,
        notes=str(notes).strip() if notes else None,
        held_sale_id=held_sale_id,
    )
