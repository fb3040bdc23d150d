"""
Concurrency tests against a file-backed SQLite database.

Each worker thread gets its own app context and session, like concurrent
requests would.
"""
import os
import tempfile
import threading
import unittest

from billing import create_app
from billing.extensions import db
from billing.models import Customer, Payment, Product
from billing.services import document_service, payment_service
from billing.services.inventory_service import get_stock
from billing.validation import ValidationError


class ConcurrencyTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "concurrency.db")
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
        })

        with self.app.app_context():
            db.drop_all()
            db.create_all()

            customer = Customer(name="Concurrent Customer")
            product = Product(sku="CONCUR-1", name="Concurrent Product", stock_quantity=100)
            db.session.add_all([customer, product])
            db.session.commit()
            self.customer_id = customer.id
            self.product_id = product.id

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _run_threads(self, target, count):
        threads = [threading.Thread(target=target) for _ in range(count)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

    def test_document_numbers_unique_under_concurrency(self):
        created = []
        errors = []
        lock = threading.Lock()

        def worker():
            with self.app.app_context():
                try:
                    invoice = document_service.create_invoice(
                        {"customer_id": self.customer_id, "document_date": "2026-01-15"},
                        [{"product_id": self.product_id, "quantity": 1, "unit_price_cents": 100}],
                    )
                    with lock:
                        created.append(invoice.number)
                except Exception as exc:
                    with lock:
                        errors.append(exc)
                finally:
                    db.session.remove()

        self._run_threads(worker, 10)

        self.assertFalse(errors)
        self.assertEqual(len(created), 10)
        self.assertEqual(len(created), len(set(created)))
        self.assertEqual(
            sorted(created),
            [f"INV-20260115-{n:04d}" for n in range(1, 11)],
        )

        with self.app.app_context():
            self.assertEqual(get_stock(self.product_id), 90)

    def test_concurrent_payments_never_overpay(self):
        with self.app.app_context():
            invoice = document_service.create_invoice(
                {"customer_id": self.customer_id, "payment_method": "Cash"},
                [{"product_id": self.product_id, "quantity": 10, "unit_price_cents": 10000}],
            )
            invoice_id = invoice.id

        results = []
        lock = threading.Lock()

        def worker():
            with self.app.app_context():
                try:
                    payment_service.record_payment("INVOICE", invoice_id, 60000, "Cash")
                    with lock:
                        results.append("paid")
                except ValidationError as exc:
                    with lock:
                        results.append(exc)
                finally:
                    db.session.remove()

        self._run_threads(worker, 2)

        paid_count = sum(1 for r in results if r == "paid")
        self.assertEqual(paid_count, 1)

        with self.app.app_context():
            total_paid = sum(p.amount_cents for p in db.session.query(Payment).all())
            self.assertEqual(total_paid, 60000)
            history = payment_service.get_payment_history("INVOICE", invoice_id)
            self.assertEqual(history["payment_status"], "PARTIAL")


if __name__ == "__main__":
    unittest.main()
