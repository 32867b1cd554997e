# Overview: Service-layer operations for counterparty debt and the cash ledger.

"""
Debt invariants (authoritative)

Cash ledger:
- CashMovement rows are append-only; amount is always positive.
- INCOME / DEBT_COLLECTION add to cash on hand; EXPENSE / DEBT_PAYMENT subtract.

Debt:
- Customer.debt: what the customer owes the shop.
- Supplier.debt: what the shop owes the supplier.
- Both are cached, signed balances changed only here, as atomic SQL
  increments under a row lock, in the same transaction as the history row
  that explains them.
- DEBT_COLLECTION (customer) and DEBT_PAYMENT (supplier) decrement the
  counterparty's debt by the amount. Overpayment drives the balance negative
  (credit) and is not blocked.
- INCOME / EXPENSE never touch debt; a counterparty on them is attribution only.
"""

from __future__ import annotations

from sqlalchemy import case, func, update

from ..extensions import db
from ..models import CashMovement, Customer, Supplier, CASH_MOVEMENT_KINDS, CASH_INFLOW_KINDS
from .concurrency import lock_for_update, run_in_transaction
from .errors import (
    CustomerRequiredError,
    InvalidAmountError,
    NotFoundError,
    SupplierRequiredError,
    ValidationError,
)


PARTY_CUSTOMER = "CUSTOMER"
PARTY_SUPPLIER = "SUPPLIER"
PARTY_TYPES = (PARTY_CUSTOMER, PARTY_SUPPLIER)

_PARTY_MODELS = {PARTY_CUSTOMER: Customer, PARTY_SUPPLIER: Supplier}

DEFAULT_DESCRIPTIONS = {
    "DEBT_COLLECTION": "Customer debt collection",
    "DEBT_PAYMENT": "Supplier debt payment",
}


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def party_model(party_type: str):
    try:
        return _PARTY_MODELS[party_type]
    except KeyError:
        raise ValidationError(f"Unknown party type {party_type!r}")


def get_counterparty(party_type: str, counterparty_id: int, *, lock: bool = False):
    model = party_model(party_type)
    query = db.session.query(model).filter_by(id=counterparty_id)
    if lock:
        query = lock_for_update(query)
    party = query.first()
    if party is None:
        raise NotFoundError(f"{model.__name__} {counterparty_id} not found")
    return party


def _bump_debt(party, delta: int) -> int:
    """Atomic debt += delta on an already locked row. Returns the new balance."""
    model = type(party)
    db.session.execute(
        update(model)
        .where(model.id == party.id)
        .values(debt=model.debt + delta)
        .execution_options(synchronize_session=False)
    )
    db.session.refresh(party, attribute_names=["debt"])
    return party.debt


def _lock(party):
    return lock_for_update(db.session.query(type(party)).filter_by(id=party.id)).one()


def _apply_cash_movement_inner(kind, amount, counterparty, description, order_id, payment_method):
    if kind not in CASH_MOVEMENT_KINDS:
        raise ValidationError(f"Unknown cash movement kind {kind!r}")
    if not _is_int(amount) or amount <= 0:
        raise InvalidAmountError("amount must be a positive integer", details={"amount": amount})

    if kind == "DEBT_COLLECTION" and not isinstance(counterparty, Customer):
        raise CustomerRequiredError("Debt collection needs a customer")
    if kind == "DEBT_PAYMENT" and not isinstance(counterparty, Supplier):
        raise SupplierRequiredError("Debt payment needs a supplier")
    if counterparty is not None and not isinstance(counterparty, (Customer, Supplier)):
        raise ValidationError("counterparty must be a customer or a supplier")

    movement = CashMovement(
        kind=kind,
        amount=amount,
        description=description or DEFAULT_DESCRIPTIONS.get(kind),
        payment_method=payment_method,
        customer_id=counterparty.id if isinstance(counterparty, Customer) else None,
        supplier_id=counterparty.id if isinstance(counterparty, Supplier) else None,
        order_id=order_id,
    )

    new_balance = None
    if kind in ("DEBT_COLLECTION", "DEBT_PAYMENT"):
        _lock(counterparty)
        db.session.add(movement)
        db.session.flush()
        new_balance = _bump_debt(counterparty, -amount)
    else:
        db.session.add(movement)
        db.session.flush()
    return new_balance


def apply_cash_movement(
    kind: str,
    amount: int,
    counterparty=None,
    description: str | None = None,
    *,
    order_id: int | None = None,
    payment_method: str | None = None,
    commit: bool = True,
) -> int | None:
    """
    Append a cash movement; for debt kinds also decrement the counterparty's debt.

    Returns the counterparty's new debt for DEBT_COLLECTION / DEBT_PAYMENT,
    otherwise None.
    """
    def _op():
        return _apply_cash_movement_inner(kind, amount, counterparty, description, order_id, payment_method)

    if not commit:
        return _op()
    return run_in_transaction(_op)


def accrue_debt(counterparty, amount: int, *, commit: bool = True) -> int:
    """
    Increase the counterparty's debt (credit sale completion, credit purchase).

    The explaining history is the order itself (total - paid), so no cash
    movement is written.
    """
    if not isinstance(counterparty, (Customer, Supplier)):
        raise ValidationError("counterparty must be a customer or a supplier")
    if not _is_int(amount) or amount <= 0:
        raise InvalidAmountError("amount must be a positive integer", details={"amount": amount})

    def _op():
        _lock(counterparty)
        return _bump_debt(counterparty, amount)

    if not commit:
        return _op()
    return run_in_transaction(_op)


def release_debt(counterparty, amount: int, *, commit: bool = True) -> int:
    """Undo an earlier accrual when the order behind it is cancelled. No cash movement."""
    if not isinstance(counterparty, (Customer, Supplier)):
        raise ValidationError("counterparty must be a customer or a supplier")
    if not _is_int(amount) or amount <= 0:
        raise InvalidAmountError("amount must be a positive integer", details={"amount": amount})

    def _op():
        _lock(counterparty)
        return _bump_debt(counterparty, -amount)

    if not commit:
        return _op()
    return run_in_transaction(_op)


def _signed_amount_expr():
    return case(
        (CashMovement.kind.in_(CASH_INFLOW_KINDS), CashMovement.amount),
        else_=-CashMovement.amount,
    )


def cash_on_hand() -> int:
    total = db.session.query(func.coalesce(func.sum(_signed_amount_expr()), 0)).scalar()
    return int(total or 0)


def _sum_by_kind() -> dict[str, int]:
    rows = (
        db.session.query(CashMovement.kind, func.coalesce(func.sum(CashMovement.amount), 0))
        .group_by(CashMovement.kind)
        .all()
    )
    totals = {kind: 0 for kind in CASH_MOVEMENT_KINDS}
    for kind, total in rows:
        totals[kind] = int(total or 0)
    return totals


def finance_stats() -> dict:
    receivables = db.session.query(
        func.coalesce(func.sum(Customer.debt), 0)
    ).filter(Customer.debt > 0).scalar()
    payables = db.session.query(
        func.coalesce(func.sum(Supplier.debt), 0)
    ).filter(Supplier.debt > 0).scalar()
    totals = _sum_by_kind()
    return {
        "cash_on_hand": cash_on_hand(),
        "receivables": int(receivables or 0),
        "payables": int(payables or 0),
        "total_income": totals["INCOME"],
        "total_expense": totals["EXPENSE"],
        "total_debt_collected": totals["DEBT_COLLECTION"],
        "total_debt_paid": totals["DEBT_PAYMENT"],
    }


def list_debtors(party_type: str | None = None) -> dict:
    """Counterparties with a positive balance, largest first."""
    if party_type is not None and party_type not in PARTY_TYPES:
        raise ValidationError(f"Unknown party type {party_type!r}")
    result = {}
    if party_type in (None, PARTY_CUSTOMER):
        customers = (
            db.session.query(Customer)
            .filter(Customer.debt > 0)
            .order_by(Customer.debt.desc(), Customer.id.asc())
            .all()
        )
        result["customers"] = [c.to_dict() for c in customers]
    if party_type in (None, PARTY_SUPPLIER):
        suppliers = (
            db.session.query(Supplier)
            .filter(Supplier.debt > 0)
            .order_by(Supplier.debt.desc(), Supplier.id.asc())
            .all()
        )
        result["suppliers"] = [s.to_dict() for s in suppliers]
    return result


def list_cash_movements(
    *,
    supplier_id: int | None = None,
    customer_id: int | None = None,
    kind: str | None = None,
    limit: int = 50,
) -> list[dict]:
    q = db.session.query(CashMovement)
    if supplier_id is not None:
        q = q.filter(CashMovement.supplier_id == supplier_id)
    if customer_id is not None:
        q = q.filter(CashMovement.customer_id == customer_id)
    if kind is not None:
        if kind not in CASH_MOVEMENT_KINDS:
            raise ValidationError(f"Unknown cash movement kind {kind!r}")
        q = q.filter(CashMovement.kind == kind)
    rows = q.order_by(CashMovement.occurred_at.desc(), CashMovement.id.desc()).limit(limit).all()
    return [r.to_dict() for r in rows]
