from __future__ import annotations

import json
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import Boolean, Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError
from .models import Order, ORDER_STATUSES


# Maximum money amount accepted on any field: 99,999,999.99
MAX_AMOUNT = Decimal("99999999.99")

# Statuses a caller may supply when placing an order
INITIAL_ORDER_STATUSES = ("pending", "awaiting_payment", "paid", "payment_failed")


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


def _coerce_amount(key: str, value: Any) -> Decimal:
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be a number")
    if isinstance(value, (int, float, str)):
        try:
            amount = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValidationError(f"{key} must be a number")
        if not amount.is_finite():
            raise ValidationError(f"{key} must be a finite number")
        if amount < 0:
            raise ValidationError(f"{key} must be >= 0")
        if amount > MAX_AMOUNT:
            raise ValidationError(f"{key} cannot exceed {MAX_AMOUNT}")
        return amount
    raise ValidationError(f"{key} must be a number")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return _coerce_int(col.key, value)

    if isinstance(coltype, Numeric):
        return _coerce_amount(col.key, value)

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        # fallback: truthiness
        return bool(value)

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
        missing = sorted(f for f in required if payload.get(f) in (None, ""))
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
            if not col.nullable and col.default is None:
                raise ValidationError(f"{k} cannot be null")
            if col.nullable:
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


# =============================================================================
# ORDER REQUESTS
# =============================================================================

ORDER_POLICY = ModelValidationPolicy(
    writable_fields={
        "order_id",
        "customer_name",
        "customer_email",
        "customer_phone",
        "customer_address",
        "subtotal",
        "delivery_fee",
        "rewards_discount",
        "total",
        "payment_method",
        "payment_provider",
        "transaction_id",
        "payment_status",
        "usd_amount",
        "exchange_rate",
        "delivery_option",
        "delivery_parish",
        "order_status",
    },
    required_on_create={"order_id", "customer_name", "total"},
)

ORDER_ITEM_FIELDS = {
    "product_id",
    "product_name",
    "variant_type",
    "variant_value",
    "variants",
    "quantity",
    "unit_price",
    "total_price",
}


@dataclass(frozen=True)
class OrderLine:
    product_id: int
    variant_type: str
    variant_value: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    product_name: str | None = None
    variant_details: str | None = None


@dataclass(frozen=True)
class OrderRequest:
    header: dict
    items: list[OrderLine] = field(default_factory=list)

    @property
    def order_id(self) -> str:
        return self.header["order_id"]

    @property
    def customer_name(self) -> str:
        return self.header["customer_name"]


def _validate_order_line(index: int, raw: Any) -> OrderLine:
    where = f"items[{index}]"
    if not isinstance(raw, dict):
        raise ValidationError(f"{where} must be an object")

    unknown = sorted(set(raw) - ORDER_ITEM_FIELDS)
    if unknown:
        raise ValidationError(f"{where}: field not allowed: {', '.join(unknown)}")

    for key in ("product_id", "variant_type", "variant_value", "quantity", "unit_price"):
        if raw.get(key) in (None, ""):
            raise ValidationError(f"{where}.{key} is required")

    quantity = _coerce_int(f"{where}.quantity", raw["quantity"])
    if quantity <= 0:
        raise ValidationError(f"{where}.quantity must be > 0")

    unit_price = _coerce_amount(f"{where}.unit_price", raw["unit_price"])
    if raw.get("total_price") is None:
        total_price = unit_price * quantity
    else:
        total_price = _coerce_amount(f"{where}.total_price", raw["total_price"])

    variants = raw.get("variants")
    if variants is None:
        variants = {str(raw["variant_type"]).strip(): str(raw["variant_value"]).strip()}

    product_name = raw.get("product_name")
    return OrderLine(
        product_id=_coerce_int(f"{where}.product_id", raw["product_id"]),
        variant_type=str(raw["variant_type"]).strip(),
        variant_value=str(raw["variant_value"]).strip(),
        quantity=quantity,
        unit_price=unit_price,
        total_price=total_price,
        product_name=str(product_name).strip() if product_name else None,
        variant_details=json.dumps(variants, sort_keys=True),
    )


def validate_order_request(payload: Any) -> OrderRequest:
    """
    Validate a place-order body: header fields against the Order columns and a
    non-empty list of line items. Item order is preserved.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    payload = dict(payload)
    items = payload.pop("items", None)

    header = validate_payload(model=Order, payload=payload, policy=ORDER_POLICY, partial=False)

    status = header.get("order_status")
    if status is not None and status not in INITIAL_ORDER_STATUSES:
        raise ValidationError(
            f"order_status must be one of: {', '.join(INITIAL_ORDER_STATUSES)}"
        )

    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")

    lines = [_validate_order_line(i, raw) for i, raw in enumerate(items)]
    return OrderRequest(header=header, items=lines)


def validate_status(value: Any) -> str:
    if not isinstance(value, str) or value.strip() not in ORDER_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(ORDER_STATUSES)}")
    return value.strip()


# =============================================================================
# CATALOG RULES
# =============================================================================

def enforce_rules_variant(patch: dict) -> None:
    """Business rules that are not captured by SQLAlchemy metadata alone."""
    if "stock_quantity" in patch and patch["stock_quantity"] is not None:
        if patch["stock_quantity"] < 0:
            raise ValidationError("stock_quantity must be >= 0")
    if "low_stock_threshold" in patch and patch["low_stock_threshold"] is not None:
        if patch["low_stock_threshold"] < 0:
            raise ValidationError("low_stock_threshold must be >= 0")


def require_positive_int(key: str, value: Any) -> int:
    if value is None:
        raise ValidationError(f"{key} is required")
    number = _coerce_int(key, value)
    if number <= 0:
        raise ValidationError(f"{key} must be > 0")
    return number


def require_int(key: str, value: Any) -> int:
    if value is None:
        raise ValidationError(f"{key} is required")
    return _coerce_int(key, value)


def require_amount(key: str, value: Any) -> Decimal:
    if value is None:
        raise ValidationError(f"{key} is required")
    return _coerce_amount(key, value)
