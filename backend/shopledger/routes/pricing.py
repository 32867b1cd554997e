# Overview: Flask API routes for price quotes and customer wholesale price tables.

from __future__ import annotations

from flask import Blueprint, current_app

from ..extensions import db
from ..models import Customer, Product
from ..services import pricing_service
from ..services.errors import NotFoundError, ShopLedgerError, ValidationError
from ..validation import coerce_amount, coerce_int, coerce_str, query_int, require_json
from .responses import error_response, internal_error, ok


pricing_bp = Blueprint("pricing", __name__, url_prefix="/api/pricing")


@pricing_bp.get("/quote")
def quote_route():
    """
    Effective unit price for a product.

    Query: product_id, quantity (base units), customer_id?
    """
    try:
        product_id = query_int("product_id")
        quantity = query_int("quantity", 1)
        customer_id = query_int("customer_id")
        if product_id is None:
            raise ValidationError("product_id is required")

        product = db.session.get(Product, product_id)
        if product is None:
            raise NotFoundError(f"Product {product_id} not found")
        customer = None
        if customer_id is not None:
            customer = db.session.get(Customer, customer_id)
            if customer is None:
                raise NotFoundError(f"Customer {customer_id} not found")

        quote = pricing_service.quote_price(product, customer, quantity)
        data = quote.to_dict()
        data["sale_unit"] = product.sale_unit
        data["sale_unit_price"] = pricing_service.price_per_sale_unit(product, quote.unit_price)
        return ok(data)

    except ShopLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to quote price")
        return internal_error()


@pricing_bp.get("/customers/<int:customer_id>/entries")
def list_entries_route(customer_id: int):
    try:
        return ok(pricing_service.list_price_entries(customer_id))
    except ShopLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list price entries")
        return internal_error()


@pricing_bp.post("/entries")
def put_entry_route():
    """
    Body: customer_id, product_id, price, valid_to, valid_from?, mode? (CREATE|REPLACE)

    CREATE answers 409 when the customer already has a price for the product.
    """
    try:
        data = require_json()
        mode = (coerce_str(data.get("mode"), "mode", max_length=16) or pricing_service.MODE_CREATE).upper()
        entry = pricing_service.create_or_replace_price_entry(
            coerce_int(data.get("customer_id"), "customer_id", required=True),
            coerce_int(data.get("product_id"), "product_id", required=True),
            coerce_amount(data.get("price"), "price", required=True),
            data.get("valid_to"),
            valid_from=data.get("valid_from"),
            mode=mode,
        )
        return ok(entry.to_dict(), 201)

    except ShopLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to save price entry")
        return internal_error()


@pricing_bp.put("/entries/<int:entry_id>")
def update_entry_route(entry_id: int):
    try:
        data = require_json()
        entry = pricing_service.update_price_entry(
            entry_id,
            coerce_amount(data.get("price"), "price", required=True),
            valid_from=data.get("valid_from"),
            valid_to=data.get("valid_to"),
        )
        return ok(entry.to_dict())

    except ShopLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update price entry")
        return internal_error()


@pricing_bp.delete("/entries/<int:entry_id>")
def delete_entry_route(entry_id: int):
    try:
        pricing_service.delete_price_entry(entry_id)
        return ok({"id": entry_id})
    except ShopLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete price entry")
        return internal_error()


@pricing_bp.post("/customers/<int:customer_id>/margin")
def apply_margin_route(customer_id: int):
    """
    Price = cost marked up by margin_percent.

    Body: margin_percent, valid_to, valid_from?, product_id? (all active products when omitted)
    """
    try:
        data = require_json()
        margin = data.get("margin_percent")
        if isinstance(margin, bool) or not isinstance(margin, (int, float)):
            raise ValidationError("margin_percent must be a number")
        product_id = coerce_int(data.get("product_id"), "product_id")

        if product_id is None:
            count = pricing_service.apply_profit_margin_all(
                customer_id, margin, data.get("valid_to"), valid_from=data.get("valid_from")
            )
            return ok({"customer_id": customer_id, "updated": count})

        entry = pricing_service.apply_profit_margin(
            customer_id, product_id, margin, data.get("valid_to"), valid_from=data.get("valid_from")
        )
        return ok(entry.to_dict())

    except ShopLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to apply profit margin")
        return internal_error()


@pricing_bp.post("/customers/<int:customer_id>/copy")
def copy_table_route(customer_id: int):
    """Replace this customer's price table with a copy of from_customer_id's."""
    try:
        data = require_json()
        count = pricing_service.copy_price_table(
            coerce_int(data.get("from_customer_id"), "from_customer_id", required=True),
            customer_id,
        )
        return ok({"customer_id": customer_id, "copied": count})

    except ShopLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to copy price table")
        return internal_error()
