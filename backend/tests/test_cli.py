"""
Ledger maintenance command tests.

Verifies:
- reconcile-debts prints a PASS line per side and each correction
- verify-stock exits 1 on drift and repairs it with --fix
"""

import pytest
from sqlalchemy import update

from shopledger.extensions import db
from shopledger.models import Customer, Product
from shopledger.services import inventory_service


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


def _stored(model, row_id, column):
    db.session.expire_all()
    return getattr(db.session.get(model, row_id), column)


class TestReconcileDebts:

    def test_corrects_stale_customer(self, runner, db_session, make_customer):
        make_customer(name="Clean", debt=0)
        stale = make_customer(name="Stale", debt=75)

        result = runner.invoke(args=["ledger", "reconcile-debts", "--customers"])

        assert result.exit_code == 0
        assert "PASS CUSTOMER: checked 2, corrected 1" in result.output
        assert f"#{stale.id}: 75 -> 0" in result.output
        assert "SUPPLIER" not in result.output
        assert _stored(Customer, stale.id, "debt") == 0

    def test_checks_both_sides_by_default(self, runner, db_session, make_supplier):
        make_supplier(debt=0)

        result = runner.invoke(args=["ledger", "reconcile-debts"])

        assert result.exit_code == 0
        assert "PASS CUSTOMER: checked 0, corrected 0" in result.output
        assert "PASS SUPPLIER: checked 1, corrected 0" in result.output

    def test_flags_are_exclusive(self, runner, db_session):
        result = runner.invoke(args=["ledger", "reconcile-debts", "--customers", "--suppliers"])

        assert result.exit_code == 2
        assert "at most one" in result.output


class TestVerifyStock:

    def test_clean_stock_passes(self, runner, db_session, make_product):
        product = make_product()
        inventory_service.apply_stock_movement(product.id, "IN", 4)

        result = runner.invoke(args=["ledger", "verify-stock"])

        assert result.exit_code == 0
        assert "PASS All product stock matches" in result.output

    def test_drift_is_reported_then_fixed(self, runner, db_session, make_product):
        product = make_product()
        inventory_service.apply_stock_movement(product.id, "IN", 4)
        db.session.execute(update(Product).where(Product.id == product.id).values(stock=9))
        db.session.commit()

        report = runner.invoke(args=["ledger", "verify-stock"])
        assert report.exit_code == 1
        assert f"{product.sku} (#{product.id})" in report.output
        assert "cached 9, ledger 4" in report.output
        assert "WARN 1 product(s) drifted" in report.output
        assert _stored(Product, product.id, "stock") == 9

        fixed = runner.invoke(args=["ledger", "verify-stock", "--fix"])
        assert fixed.exit_code == 0
        assert "PASS Repaired 1 product(s)." in fixed.output
        assert _stored(Product, product.id, "stock") == 4

        again = runner.invoke(args=["ledger", "verify-stock"])
        assert again.exit_code == 0
