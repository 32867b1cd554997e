import pytest

from shopledger.extensions import db
from shopledger.models import AppendOnlyViolation, CashMovement, Customer, Supplier
from shopledger.services import debt_service
from shopledger.services.errors import (
    CustomerRequiredError,
    InvalidAmountError,
    SupplierRequiredError,
    ValidationError,
)


def test_debt_collection_decrements_customer_debt(db_session, make_customer):
    customer = make_customer(debt=100)

    new_debt = debt_service.apply_cash_movement("DEBT_COLLECTION", 40, customer)

    assert new_debt == 60
    assert db.session.get(Customer, customer.id).debt == 60
    rows = db.session.query(CashMovement).all()
    assert len(rows) == 1
    assert (rows[0].kind, rows[0].amount, rows[0].customer_id) == ("DEBT_COLLECTION", 40, customer.id)
    assert rows[0].description == "Customer debt collection"


def test_debt_payment_decrements_supplier_debt(db_session, make_supplier):
    supplier = make_supplier(debt=500)

    new_debt = debt_service.apply_cash_movement("DEBT_PAYMENT", 200, supplier, "Paid half", payment_method="bank")

    assert new_debt == 300
    row = db.session.query(CashMovement).one()
    assert (row.supplier_id, row.description, row.payment_method) == (supplier.id, "Paid half", "bank")


def test_overpayment_goes_negative(db_session, make_customer):
    customer = make_customer(debt=10)
    assert debt_service.apply_cash_movement("DEBT_COLLECTION", 25, customer) == -15


@pytest.mark.parametrize("amount", [0, -5])
def test_non_positive_amount_rejected(db_session, make_customer, amount):
    customer = make_customer(debt=100)
    with pytest.raises(InvalidAmountError):
        debt_service.apply_cash_movement("DEBT_COLLECTION", amount, customer)
    assert db.session.get(Customer, customer.id).debt == 100
    assert db.session.query(CashMovement).count() == 0


def test_debt_kinds_need_matching_counterparty(db_session, make_customer, make_supplier):
    customer = make_customer(debt=100)
    supplier = make_supplier(debt=100)

    with pytest.raises(CustomerRequiredError):
        debt_service.apply_cash_movement("DEBT_COLLECTION", 10, None)
    with pytest.raises(CustomerRequiredError):
        debt_service.apply_cash_movement("DEBT_COLLECTION", 10, supplier)
    with pytest.raises(SupplierRequiredError):
        debt_service.apply_cash_movement("DEBT_PAYMENT", 10, customer)

    assert db.session.get(Customer, customer.id).debt == 100
    assert db.session.get(Supplier, supplier.id).debt == 100


def test_income_and_expense_never_touch_debt(db_session, make_customer):
    customer = make_customer(debt=100)

    assert debt_service.apply_cash_movement("INCOME", 70, customer, "Sale") is None
    assert debt_service.apply_cash_movement("EXPENSE", 20, None, "Electricity") is None

    assert db.session.get(Customer, customer.id).debt == 100
    assert debt_service.cash_on_hand() == 50


def test_unknown_kind_rejected(db_session):
    with pytest.raises(ValidationError):
        debt_service.apply_cash_movement("REFUND", 10)


def test_accrue_debt(db_session, make_supplier):
    supplier = make_supplier(debt=0)
    assert debt_service.accrue_debt(supplier, 250) == 250
    assert debt_service.accrue_debt(supplier, 50) == 300
    assert db.session.query(CashMovement).count() == 0

    with pytest.raises(InvalidAmountError):
        debt_service.accrue_debt(supplier, 0)


def test_cash_on_hand_is_signed_sum(db_session, make_customer, make_supplier):
    customer = make_customer(debt=100)
    supplier = make_supplier(debt=100)
    debt_service.apply_cash_movement("INCOME", 1000)
    debt_service.apply_cash_movement("DEBT_COLLECTION", 100, customer)
    debt_service.apply_cash_movement("EXPENSE", 300)
    debt_service.apply_cash_movement("DEBT_PAYMENT", 50, supplier)

    assert debt_service.cash_on_hand() == 750

    stats = debt_service.finance_stats()
    assert stats["cash_on_hand"] == 750
    assert stats["receivables"] == 0
    assert stats["payables"] == 50
    assert stats["total_income"] == 1000
    assert stats["total_debt_paid"] == 50


def test_list_debtors_only_positive_balances(db_session, make_customer, make_supplier):
    make_customer(name="Owes a lot", debt=500)
    make_customer(name="Owes a little", debt=20)
    make_customer(name="Settled", debt=0)
    make_supplier(name="Credit", debt=-10)

    debtors = debt_service.list_debtors()
    assert [c["name"] for c in debtors["customers"]] == ["Owes a lot", "Owes a little"]
    assert debtors["suppliers"] == []

    assert list(debt_service.list_debtors("CUSTOMER")) == ["customers"]
    with pytest.raises(ValidationError):
        debt_service.list_debtors("BANK")


def test_list_cash_movements_filters(db_session, make_customer, make_supplier):
    customer = make_customer(debt=100)
    supplier = make_supplier(debt=100)
    debt_service.apply_cash_movement("DEBT_COLLECTION", 10, customer)
    debt_service.apply_cash_movement("DEBT_PAYMENT", 20, supplier)
    debt_service.apply_cash_movement("INCOME", 30)

    by_supplier = debt_service.list_cash_movements(supplier_id=supplier.id)
    assert [(r["kind"], r["supplier_name"]) for r in by_supplier] == [("DEBT_PAYMENT", supplier.name)]
    assert [r["amount"] for r in debt_service.list_cash_movements(kind="INCOME")] == [30]
    assert len(debt_service.list_cash_movements(limit=2)) == 2


def test_cash_movements_are_append_only(db_session):
    debt_service.apply_cash_movement("INCOME", 30)
    row = db.session.query(CashMovement).one()

    row.amount = 3000
    with pytest.raises(AppendOnlyViolation):
        db.session.flush()
    db.session.rollback()
