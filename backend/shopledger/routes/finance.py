# Overview: Flask API routes for debt settlement, cash movements and reconciliation.

"""Finance API routes"""

from flask import Blueprint, current_app, request

from ..services import debt_service, order_service, reconciliation_service
from ..services.errors import ShopLedgerError
from ..validation import coerce_amount, coerce_int, coerce_str, query_int, require_json
from .responses import error_response, internal_error, ok, result_response


finance_bp = Blueprint("finance", __name__, url_prefix="/api/finance")


def _party_type(value: str) -> str:
    return (value or "").upper()


@finance_bp.post("/settlements")
def settle_debt_route():
    """
    Collect customer debt or pay supplier debt.

    Body: party_type (CUSTOMER|SUPPLIER), counterparty_id, amount,
          description?, payment_method?
    """
    try:
        data = require_json()
        result = order_service.settle_debt(
            _party_type(coerce_str(data.get("party_type"), "party_type", required=True)),
            coerce_int(data.get("counterparty_id"), "counterparty_id", required=True),
            coerce_amount(data.get("amount"), "amount", required=True),
            description=coerce_str(data.get("description"), "description"),
            payment_method=coerce_str(data.get("payment_method"), "payment_method", max_length=32),
        )
        return result_response(result, 201)

    except ShopLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to settle debt")
        return internal_error()


@finance_bp.post("/cash")
def record_cash_route():
    """Manual INCOME / EXPENSE. Body: kind, amount, description?, payment_method?"""
    try:
        data = require_json()
        result = order_service.record_cash_movement(
            coerce_str(data.get("kind"), "kind", required=True, max_length=16),
            coerce_amount(data.get("amount"), "amount", required=True),
            description=coerce_str(data.get("description"), "description"),
            payment_method=coerce_str(data.get("payment_method"), "payment_method", max_length=32),
        )
        return result_response(result, 201)

    except ShopLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record cash movement")
        return internal_error()


@finance_bp.get("/cash")
def list_cash_route():
    try:
        rows = debt_service.list_cash_movements(
            supplier_id=query_int("supplier_id"),
            customer_id=query_int("customer_id"),
            kind=request.args.get("kind"),
            limit=min(query_int("limit", 50), 500),
        )
        return ok(rows)

    except ShopLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list cash movements")
        return internal_error()


@finance_bp.get("/stats")
def finance_stats_route():
    try:
        return ok(debt_service.finance_stats())
    except Exception:
        current_app.logger.exception("Failed to load finance stats")
        return internal_error()


@finance_bp.get("/debtors")
def list_debtors_route():
    try:
        party_type = request.args.get("party_type")
        return ok(debt_service.list_debtors(_party_type(party_type) if party_type else None))

    except ShopLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list debtors")
        return internal_error()


@finance_bp.get("/debts/<party_type>/<int:counterparty_id>")
def audit_debt_route(party_type: str, counterparty_id: int):
    return result_response(reconciliation_service.audit_debt(_party_type(party_type), counterparty_id))


@finance_bp.post("/debts/<party_type>/<int:counterparty_id>/recalculate")
def recalculate_debt_route(party_type: str, counterparty_id: int):
    return result_response(reconciliation_service.recalculate_debt(_party_type(party_type), counterparty_id))
