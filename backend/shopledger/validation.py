from __future__ import annotations

from typing import Any

from flask import request

from .services.errors import InvalidAmountError, ValidationError


# Largest amount accepted from a request (VND, whole units)
MAX_AMOUNT = 999_999_999_999


def require_json() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def coerce_int(value: Any, field: str, *, required: bool = False, default: int | None = None) -> int | None:
    """
    Strict integer coercion for request fields.

    Accepts ints and plain digit strings (optional leading minus). Rejects
    bools, floats, decimals and scientific notation.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(f"{field} is required")
        return default

    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    if isinstance(value, str):
        stripped = value.strip()
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    raise ValidationError(f"{field} must be an integer")


def coerce_amount(value: Any, field: str, *, required: bool = False, default: int | None = None) -> int | None:
    amount = coerce_int(value, field, required=required, default=default)
    if amount is not None and abs(amount) > MAX_AMOUNT:
        raise InvalidAmountError(f"{field} is out of range", details={field: amount})
    return amount


def coerce_str(value: Any, field: str, *, required: bool = False, max_length: int = 255) -> str | None:
    if value is None:
        if required:
            raise ValidationError(f"{field} is required")
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    value = value.strip()
    if required and not value:
        raise ValidationError(f"{field} is required")
    if len(value) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return value or None


def coerce_lines(value: Any) -> list[dict]:
    """Normalize order lines to {product_id, quantity, price} with integer fields."""
    if not isinstance(value, list):
        raise ValidationError("lines must be a list")
    lines = []
    for index, raw in enumerate(value):
        if not isinstance(raw, dict):
            raise ValidationError(f"lines[{index}] must be an object")
        lines.append({
            "product_id": coerce_int(raw.get("product_id"), f"lines[{index}].product_id", required=True),
            "quantity": coerce_int(raw.get("quantity"), f"lines[{index}].quantity", required=True),
            "price": coerce_amount(raw.get("price"), f"lines[{index}].price"),
        })
    return lines


def query_int(name: str, default: int | None = None) -> int | None:
    return coerce_int(request.args.get(name), name, default=default)
