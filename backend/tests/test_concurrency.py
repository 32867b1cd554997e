# Overview: Threaded tests against a file-backed SQLite database.

"""
Concurrency tests for the ledgers.

Each worker thread gets its own app context, session and connection, so
the write lock taken per unit of work is actually contended.
"""
import os
import tempfile
import threading
import unittest

from shopledger import create_app
from shopledger.extensions import db
from shopledger.models import CashMovement, Customer, Product, StockMovement
from shopledger.services import inventory_service, order_service


class ConcurrencyTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "concurrency.db")
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "LEDGER_RETRY_ATTEMPTS": 5,
            "LEDGER_RETRY_BACKOFF_SECONDS": 0.01,
        })

        with self.app.app_context():
            db.drop_all()
            db.create_all()

            product = Product(sku="CONCUR-1", name="Concurrent Product", price=100, cost=60)
            customer = Customer(name="Concurrent Customer", debt=100)
            db.session.add_all([product, customer])
            db.session.commit()
            self.product_id = product.id
            self.customer_id = customer.id

            inventory_service.apply_stock_movement(self.product_id, "IN", 1, "Seed inventory")

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _run_threads(self, target, count):
        results = []
        errors = []
        lock = threading.Lock()

        def worker():
            with self.app.app_context():
                try:
                    value = target()
                    with lock:
                        results.append(value)
                except Exception as exc:
                    with lock:
                        errors.append(exc)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=worker) for _ in range(count)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return results, errors

    def test_concurrent_out_movements_both_land(self):
        results, errors = self._run_threads(
            lambda: order_service.adjust_stock(self.product_id, "OUT", 1), 2
        )

        self.assertFalse(errors)
        self.assertTrue(all(r.success for r in results), [r.error for r in results])
        with self.app.app_context():
            self.assertEqual(db.session.get(Product, self.product_id).stock, -1)
            outs = db.session.query(StockMovement).filter_by(product_id=self.product_id, kind="OUT").count()
            self.assertEqual(outs, 2)
            self.assertEqual(inventory_service.ledger_stock(self.product_id), -1)

    def test_concurrent_settlements_sum(self):
        results, errors = self._run_threads(
            lambda: order_service.settle_debt("CUSTOMER", self.customer_id, 10), 10
        )

        self.assertFalse(errors)
        self.assertTrue(all(r.success for r in results), [r.error for r in results])
        with self.app.app_context():
            self.assertEqual(db.session.get(Customer, self.customer_id).debt, 0)
            rows = db.session.query(CashMovement).filter_by(kind="DEBT_COLLECTION").count()
            self.assertEqual(rows, 10)

    def test_document_codes_are_unique(self):
        line = [{"product_id": self.product_id, "quantity": 1}]
        results, errors = self._run_threads(lambda: order_service.create_sale_order(None, line), 10)

        self.assertFalse(errors)
        self.assertTrue(all(r.success for r in results), [r.error for r in results])
        codes = [r.data["code"] for r in results]
        self.assertEqual(len(codes), 10)
        self.assertEqual(len(codes), len(set(codes)))


if __name__ == "__main__":
    unittest.main()
