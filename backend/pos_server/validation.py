from __future__ import annotations

from typing import Any

from pos_server.models import PAYMENT_METHODS
from pos_server.time_utils import parse_iso_datetime


# Maximum price: $9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999
MAX_LOCAL_ID_LENGTH = 64


class ValidationError(ValueError):
    """400-level input problem."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def coerce_int(value: Any, field: str, *, minimum: int | None = None, maximum: int | None = None) -> int:
    """
    Strict integer coercion for JSON and query-string input.

    Accepts ints and plain digit strings. Rejects bools, floats, decimals
    and scientific notation.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    elif isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    else:
        raise ValidationError(f"{field} must be an integer")

    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be >= {minimum}")
    if maximum is not None and result > maximum:
        raise ValidationError(f"{field} must be <= {maximum}")
    return result


def optional_int(value: Any, field: str, **kwargs) -> int | None:
    if value is None or value == "":
        return None
    return coerce_int(value, field, **kwargs)


def parse_bool(value: Any, field: str) -> bool | None:
    """Query-string boolean: true/false/1/0, or None when absent."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in ("true", "1", "yes"):
        return True
    if lowered in ("false", "0", "no"):
        return False
    raise ValidationError(f"{field} must be true or false")


def _optional_text(value: Any, field: str, max_length: int | None = None) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    value = value.strip()
    if not value:
        return None
    if max_length is not None and len(value) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return value


def validate_sale_item(raw: Any, index: int) -> dict:
    if not isinstance(raw, dict):
        raise ValidationError(f"items[{index}] must be an object")

    if raw.get("product_id") is None:
        raise ValidationError(f"items[{index}].product_id is required")
    product_id = coerce_int(raw.get("product_id"), f"items[{index}].product_id", minimum=1)
    quantity = coerce_int(raw.get("quantity"), f"items[{index}].quantity", minimum=1)
    price_cents = coerce_int(raw.get("price_cents"), f"items[{index}].price_cents", minimum=0, maximum=MAX_PRICE_CENTS)
    discount_cents = optional_int(raw.get("discount_cents"), f"items[{index}].discount_cents", minimum=0) or 0

    if discount_cents > price_cents * quantity:
        raise ValidationError(
            f"items[{index}].discount_cents exceeds line subtotal",
            details={"index": index, "discount_cents": discount_cents, "line_subtotal_cents": price_cents * quantity},
        )

    return {
        "product_id": product_id,
        "quantity": quantity,
        "price_cents": price_cents,
        "discount_cents": discount_cents,
        "notes": _optional_text(raw.get("notes"), f"items[{index}].notes", 255),
    }


def validate_sale_payload(data: Any) -> dict:
    """
    Validate a POST /api/sales body.

    Returns a normalized dict: customer_id, items, payment_method,
    amount_paid_cents, notes, offline_created_at (datetime), local_id.
    """
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")

    items = data.get("items")
    if not isinstance(items, list) or not items:
        raise ValidationError("At least one item is required")

    payment_method = data.get("payment_method")
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(
            "Invalid payment_method",
            details={"allowed": list(PAYMENT_METHODS)},
        )

    if data.get("amount_paid_cents") is None:
        raise ValidationError("amount_paid_cents is required")

    offline_created_at = None
    raw_created = data.get("offline_created_at")
    if raw_created:
        try:
            offline_created_at = parse_iso_datetime(raw_created)
        except (TypeError, ValueError):
            raise ValidationError("offline_created_at must be an ISO-8601 datetime")

    return {
        "customer_id": optional_int(data.get("customer_id"), "customer_id", minimum=1),
        "items": [validate_sale_item(raw, i) for i, raw in enumerate(items)],
        "payment_method": payment_method,
        "amount_paid_cents": coerce_int(data.get("amount_paid_cents"), "amount_paid_cents", minimum=0),
        "notes": _optional_text(data.get("notes"), "notes"),
        "offline_created_at": offline_created_at,
        "local_id": _optional_text(data.get("local_id"), "local_id", MAX_LOCAL_ID_LENGTH),
    }


def validate_refund_payload(data: Any) -> dict:
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")

    if data.get("amount_cents") is None:
        raise ValidationError("amount_cents is required")
    reason = _optional_text(data.get("reason"), "reason", 255)
    if not reason:
        raise ValidationError("reason is required")

    return {
        "amount_cents": coerce_int(data.get("amount_cents"), "amount_cents", minimum=1),
        "reason": reason,
        "notes": _optional_text(data.get("notes"), "notes"),
    }


def validate_sale_ids(data: Any) -> list[int]:
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    sale_ids = data.get("sale_ids")
    if not isinstance(sale_ids, list) or not sale_ids:
        raise ValidationError("sale_ids must be a non-empty list")
    return [coerce_int(sid, "sale_ids", minimum=1) for sid in sale_ids]


def optional_reason(data: Any) -> str | None:
    if not isinstance(data, dict):
        return None
    return _optional_text(data.get("reason"), "reason", 255)
