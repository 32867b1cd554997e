# Overview: Flask API routes for sale and purchase orders; parses input and returns JSON responses.

"""Order API routes"""

from flask import Blueprint, current_app, request

from ..services import order_service
from ..services.errors import ShopLedgerError
from ..validation import coerce_amount, coerce_int, coerce_lines, coerce_str, query_int, require_json
from .responses import error_response, internal_error, result_response


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("/sales")
def create_sale_order_route():
    """
    Create a PENDING sale order.

    Body: customer_id?, lines: [{product_id, quantity, price?}], paid_amount?,
          payment_method?, note?
    """
    try:
        data = require_json()
        result = order_service.create_sale_order(
            coerce_int(data.get("customer_id"), "customer_id"),
            coerce_lines(data.get("lines")),
            paid_amount=coerce_amount(data.get("paid_amount"), "paid_amount", default=0),
            payment_method=coerce_str(data.get("payment_method"), "payment_method", max_length=32),
            note=coerce_str(data.get("note"), "note"),
        )
        return result_response(result, 201)

    except ShopLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create sale order")
        return internal_error()


@orders_bp.post("/purchases")
def create_purchase_order_route():
    """
    Receive a purchase order; stock, cost, supplier debt and cash move together.

    Body: supplier_id?, lines: [{product_id, quantity, price}], paid_amount?,
          shipping_fee?, payment_method?, note?
    """
    try:
        data = require_json()
        result = order_service.create_purchase_order(
            coerce_int(data.get("supplier_id"), "supplier_id"),
            coerce_lines(data.get("lines")),
            paid_amount=coerce_amount(data.get("paid_amount"), "paid_amount", default=0),
            shipping_fee=coerce_amount(data.get("shipping_fee"), "shipping_fee", default=0),
            payment_method=coerce_str(data.get("payment_method"), "payment_method", max_length=32),
            note=coerce_str(data.get("note"), "note"),
        )
        return result_response(result, 201)

    except ShopLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create purchase order")
        return internal_error()


@orders_bp.get("")
def list_orders_route():
    try:
        result = order_service.list_orders(
            order_type=request.args.get("type"),
            status=request.args.get("status"),
            supplier_id=query_int("supplier_id"),
            customer_id=query_int("customer_id"),
            limit=min(query_int("limit", 100), 500),
        )
        return result_response(result)

    except ShopLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return internal_error()


@orders_bp.get("/<int:order_id>")
def get_order_route(order_id: int):
    return result_response(order_service.get_order(order_id))


@orders_bp.post("/<int:order_id>/status")
def update_order_status_route(order_id: int):
    """
    Move a sale order: PENDING -> CONFIRMED -> COMPLETED, or CANCELLED.
    Purchase orders can only be CANCELLED, which reverses their receipt.

    Body: status, paid_amount? (COMPLETED only)
    """
    try:
        data = require_json()
        result = order_service.update_order_status(
            order_id,
            coerce_str(data.get("status"), "status", required=True, max_length=16),
            paid_amount=coerce_amount(data.get("paid_amount"), "paid_amount"),
        )
        return result_response(result)

    except ShopLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return internal_error()
