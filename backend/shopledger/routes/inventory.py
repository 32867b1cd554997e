# backend/shopledger/routes/inventory.py
"""
Inventory routes.

- Movements are append-only; a correction is a new ADJUSTMENT movement.
- OUT / LOST / DAMAGED take a positive quantity and subtract it.
- ADJUSTMENT takes a signed, non-zero quantity.
- Stock may go negative; the summary flags it.
"""
from flask import Blueprint, current_app, request

from ..services import inventory_service, order_service, reconciliation_service
from ..services.errors import ShopLedgerError
from ..validation import coerce_int, coerce_str, query_int, require_json
from .responses import error_response, internal_error, ok, result_response


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.post("/movements")
def create_movement_route():
    """Body: product_id, kind (IN|OUT|LOST|DAMAGED|ADJUSTMENT), quantity, note?"""
    try:
        data = require_json()
        result = order_service.adjust_stock(
            coerce_int(data.get("product_id"), "product_id", required=True),
            (coerce_str(data.get("kind"), "kind", required=True, max_length=16) or "").upper(),
            coerce_int(data.get("quantity"), "quantity", required=True),
            note=coerce_str(data.get("note"), "note"),
        )
        return result_response(result, 201)

    except ShopLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record stock movement")
        return internal_error()


@inventory_bp.get("/products/<int:product_id>/movements")
def list_movements_route(product_id: int):
    try:
        limit = min(query_int("limit", 200), 1000)
        return ok(inventory_service.list_stock_movements(product_id, limit=limit))
    except ShopLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list stock movements")
        return internal_error()


@inventory_bp.get("/products/<int:product_id>/summary")
def stock_summary_route(product_id: int):
    try:
        return ok(inventory_service.get_stock_summary(product_id))
    except ShopLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load stock summary")
        return internal_error()


@inventory_bp.post("/products/<int:product_id>/recalculate")
def recalculate_stock_route(product_id: int):
    return result_response(reconciliation_service.recalculate_stock(product_id))


@inventory_bp.get("/verify")
def verify_stock_route():
    """Report products whose cached stock differs from the movement history. ?fix=true repairs them."""
    fix = request.args.get("fix", "false").lower() == "true"
    return result_response(reconciliation_service.verify_stock(fix=fix))
