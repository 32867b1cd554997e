# Overview: Service-layer operations for reconciliation; rebuilds cached balances from history.

"""
Reconciliation rules

Debt (not clamped; equals the cached balance whenever nothing drifted):
- SUPPLIER: SUM(total - paid) over non-cancelled PURCHASE orders
            - SUM(amount) over DEBT_PAYMENT movements.
- CUSTOMER: SUM(total - paid) over COMPLETED SALE orders
            - SUM(amount) over DEBT_COLLECTION movements.

Stock:
- Product.stock is rebuilt as SUM(StockMovement.quantity).

Recalculation takes the same write lock and row lock as a settlement, so it
never interleaves with one. Running it twice changes nothing the second time.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func, update

from ..extensions import db
from ..models import CashMovement, Order, Product, StockMovement
from .concurrency import lock_for_update
from .debt_service import PARTY_SUPPLIER, get_counterparty, party_model
from .errors import NotFoundError
from .inventory_service import ledger_stock
from .results import ServiceResult, run_read, run_unit


def _order_balance_total(party_type: str, counterparty_id: int) -> int:
    q = db.session.query(func.coalesce(func.sum(Order.total - Order.paid), 0))
    if party_type == PARTY_SUPPLIER:
        q = q.filter(
            Order.type == "PURCHASE",
            Order.supplier_id == counterparty_id,
            Order.status != "CANCELLED",
        )
    else:
        q = q.filter(
            Order.type == "SALE",
            Order.customer_id == counterparty_id,
            Order.status == "COMPLETED",
        )
    return int(q.scalar() or 0)


def _payments_total(party_type: str, counterparty_id: int) -> int:
    q = db.session.query(func.coalesce(func.sum(CashMovement.amount), 0))
    if party_type == PARTY_SUPPLIER:
        q = q.filter(CashMovement.kind == "DEBT_PAYMENT", CashMovement.supplier_id == counterparty_id)
    else:
        q = q.filter(CashMovement.kind == "DEBT_COLLECTION", CashMovement.customer_id == counterparty_id)
    return int(q.scalar() or 0)


def calculate_debt(party_type: str, counterparty_id: int) -> int:
    return _order_balance_total(party_type, counterparty_id) - _payments_total(party_type, counterparty_id)


def _recalculate_debt_inner(party_type: str, counterparty_id: int) -> dict:
    party = get_counterparty(party_type, counterparty_id, lock=True)
    calculated = calculate_debt(party_type, counterparty_id)
    cached = party.debt
    if calculated != cached:
        current_app.logger.info(
            "Corrected %s %s debt from %s to %s", party_type.lower(), party.id, cached, calculated
        )
        model = type(party)
        db.session.execute(
            update(model)
            .where(model.id == party.id)
            .values(debt=calculated)
            .execution_options(synchronize_session=False)
        )
        db.session.refresh(party, attribute_names=["debt"])
    return {
        "party_type": party_type,
        "counterparty_id": party.id,
        "previous_debt": cached,
        "debt": calculated,
        "corrected": calculated != cached,
    }


def recalculate_debt(party_type: str, counterparty_id: int) -> ServiceResult:
    """Rebuild the cached debt from orders and settlements; result.data['debt'] is the new balance."""
    return run_unit(
        lambda: _recalculate_debt_inner(party_type, counterparty_id),
        action="recalculate debt",
    )


def recalculate_all_debts(party_type: str) -> ServiceResult:
    def _op():
        model = party_model(party_type)
        ids = [row[0] for row in db.session.query(model.id).order_by(model.id.asc()).all()]
        rows = [_recalculate_debt_inner(party_type, pid) for pid in ids]
        return {
            "party_type": party_type,
            "checked": len(rows),
            "corrected": [r for r in rows if r["corrected"]],
        }

    return run_unit(_op, action="recalculate all debts")


def audit_debt(party_type: str, counterparty_id: int) -> ServiceResult:
    """Read-only breakdown of a counterparty's balance."""
    def _op():
        party = get_counterparty(party_type, counterparty_id)
        from_orders = _order_balance_total(party_type, counterparty_id)
        payments = _payments_total(party_type, counterparty_id)
        calculated = from_orders - payments
        return {
            "party_type": party_type,
            "counterparty_id": party.id,
            "name": party.name,
            "total_from_orders": from_orders,
            "total_payments": payments,
            "calculated_debt": calculated,
            "cached_debt": party.debt,
            "drift": party.debt - calculated,
        }

    return run_read(_op, action="audit debt")


def _recalculate_stock_inner(product_id: int) -> dict:
    product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")
    calculated = ledger_stock(product_id)
    cached = product.stock
    if calculated != cached:
        current_app.logger.info(
            "Corrected product %s stock from %s to %s", product.id, cached, calculated
        )
        db.session.execute(
            update(Product)
            .where(Product.id == product.id)
            .values(stock=calculated)
            .execution_options(synchronize_session=False)
        )
        db.session.refresh(product, attribute_names=["stock"])
    return {
        "product_id": product.id,
        "previous_stock": cached,
        "stock": calculated,
        "corrected": calculated != cached,
    }


def recalculate_stock(product_id: int) -> ServiceResult:
    return run_unit(lambda: _recalculate_stock_inner(product_id), action="recalculate stock")


def _ledger_totals() -> dict[int, int]:
    rows = (
        db.session.query(StockMovement.product_id, func.coalesce(func.sum(StockMovement.quantity), 0))
        .group_by(StockMovement.product_id)
        .all()
    )
    return {product_id: int(total or 0) for product_id, total in rows}


def verify_stock(fix: bool = False) -> ServiceResult:
    """
    Compare every product's cached stock with its movement history.

    With fix=True each drifting product is rebuilt in the same unit.
    """
    def _mismatches() -> list[dict]:
        ledger = _ledger_totals()
        mismatches = []
        for product in db.session.query(Product).order_by(Product.id.asc()).all():
            expected = ledger.get(product.id, 0)
            if product.stock != expected:
                mismatches.append({
                    "product_id": product.id,
                    "sku": product.sku,
                    "cached_stock": product.stock,
                    "ledger_stock": expected,
                })
        return mismatches

    if not fix:
        return run_read(lambda: {"mismatches": _mismatches(), "fixed": 0}, action="verify stock")

    def _op():
        mismatches = _mismatches()
        for row in mismatches:
            _recalculate_stock_inner(row["product_id"])
        return {"mismatches": mismatches, "fixed": len(mismatches)}

    return run_unit(_op, action="repair stock")
