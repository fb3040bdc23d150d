"""
Reversal engine tests: document deletion and sales returns.

Stock conservation is checked end to end: create -> (return) -> delete
always lands back on the starting stock.
"""

import pytest

from billing.models import (
    Document,
    DocumentSequence,
    LineItem,
    Payment,
    ProductBatch,
    SalesReturn,
    SalesReturnLine,
)
from billing.services import document_service, payment_service, reversal_service
from billing.services.inventory_service import get_stock
from billing.validation import NotFoundError, ValidationError


@pytest.fixture
def invoice(db_session, customer, product_a, product_b):
    """3 x Product A @ 10000 + 1 x Product B @ 5000."""
    return document_service.create_invoice(
        {"customer_id": customer.id, "document_date": "2026-01-15", "payment_method": "Cash"},
        [
            {"product_id": product_a.id, "quantity": 3, "unit_price_cents": 10000},
            {"product_id": product_b.id, "quantity": 1, "unit_price_cents": 5000},
        ],
    )


def _line_for(document, product_id):
    return next(line for line in document.lines if line.product_id == product_id)


class TestDeleteDocument:
    def test_delete_invoice_restores_stock(self, db_session, invoice, product_a, product_b):
        assert get_stock(product_a.id) == 7
        assert get_stock(product_b.id) == 9

        result = reversal_service.delete_document("INVOICE", invoice.id)

        assert result["number"] == "INV-20260115-0001"
        assert get_stock(product_a.id) == 10
        assert get_stock(product_b.id) == 10
        assert db_session.query(Document).count() == 0
        assert db_session.query(LineItem).count() == 0

    def test_delete_removes_payments(self, db_session, invoice):
        payment_service.record_payment("INVOICE", invoice.id, 10000, "Cash")
        payment_service.record_payment("INVOICE", invoice.id, 5000, "Cash")

        result = reversal_service.delete_document("INVOICE", invoice.id)

        assert result["payments_deleted"] == 2
        assert db_session.query(Payment).count() == 0

    def test_delete_purchase_removes_stock_and_batches(self, db_session, supplier, product_a):
        purchase = document_service.create_purchase(
            {"supplier_id": supplier.id, "payment_status": "PAID"},
            [{
                "product_id": product_a.id,
                "quantity": 4,
                "unit_price_cents": 6000,
                "batch_number": "B-9",
                "expiry_date": "2027-06-30",
            }],
        )
        assert get_stock(product_a.id) == 14

        reversal_service.delete_document("PURCHASE", purchase.id)

        assert get_stock(product_a.id) == 10
        assert db_session.query(ProductBatch).count() == 0
        assert db_session.query(Payment).count() == 0

    def test_delete_missing(self, db_session):
        with pytest.raises(NotFoundError):
            reversal_service.delete_document("INVOICE", 12345)

    def test_delete_keeps_sequence_counter(self, db_session, invoice, customer, product_a):
        reversal_service.delete_document("INVOICE", invoice.id)
        assert db_session.query(DocumentSequence).one().last_number == 1

        again = document_service.create_invoice(
            {"customer_id": customer.id, "document_date": "2026-01-15"},
            [{"product_id": product_a.id, "quantity": 1, "unit_price_cents": 100}],
        )
        assert again.number == "INV-20260115-0002"


class TestProcessReturn:
    def test_return_restores_stock_at_original_price(self, db_session, invoice, product_a):
        line = _line_for(invoice, product_a.id)

        sales_return = reversal_service.process_return(
            invoice.id, [{"invoice_line_id": line.id, "quantity": 2}], reason="Damaged"
        )

        assert sales_return.total_cents == 20000
        assert sales_return.reason == "Damaged"
        assert sales_return.status == "PROCESSED"
        assert len(sales_return.lines) == 1
        assert sales_return.lines[0].unit_price_cents == 10000
        assert get_stock(product_a.id) == 9

        # The invoice itself is untouched
        refreshed = document_service.get_document("INVOICE", invoice.id)
        assert refreshed.total_cents == 35000
        assert refreshed.payment_status == "PENDING"

    def test_cumulative_bound(self, db_session, invoice, product_a):
        line = _line_for(invoice, product_a.id)

        reversal_service.process_return(invoice.id, [{"invoice_line_id": line.id, "quantity": 2}])
        reversal_service.process_return(invoice.id, [{"invoice_line_id": line.id, "quantity": 1}])
        assert get_stock(product_a.id) == 10

        with pytest.raises(ValidationError, match="remain returnable"):
            reversal_service.process_return(invoice.id, [{"invoice_line_id": line.id, "quantity": 1}])

        assert get_stock(product_a.id) == 10
        assert db_session.query(SalesReturn).count() == 2

    def test_duplicate_lines_in_one_request_are_summed(self, db_session, invoice, product_a):
        line = _line_for(invoice, product_a.id)

        with pytest.raises(ValidationError):
            reversal_service.process_return(
                invoice.id,
                [
                    {"invoice_line_id": line.id, "quantity": 2},
                    {"invoice_line_id": line.id, "quantity": 2},
                ],
            )
        assert get_stock(product_a.id) == 7
        assert db_session.query(SalesReturnLine).count() == 0

    def test_line_from_another_invoice(self, db_session, invoice, customer, product_a):
        other = document_service.create_invoice(
            {"customer_id": customer.id},
            [{"product_id": product_a.id, "quantity": 1, "unit_price_cents": 100}],
        )
        with pytest.raises(ValidationError, match="does not belong"):
            reversal_service.process_return(invoice.id, [{"invoice_line_id": other.lines[0].id, "quantity": 1}])

    def test_return_against_purchase_not_found(self, db_session, supplier, product_a):
        purchase = document_service.create_purchase(
            {"supplier_id": supplier.id},
            [{"product_id": product_a.id, "quantity": 1, "unit_price_cents": 100}],
        )
        with pytest.raises(NotFoundError):
            reversal_service.process_return(purchase.id, [{"invoice_line_id": purchase.lines[0].id, "quantity": 1}])

    @pytest.mark.parametrize(
        "items",
        [
            [],
            [{"quantity": 1}],
            [{"invoice_line_id": 1, "quantity": 0}],
            [{"invoice_line_id": 1, "quantity": 10**20}],
            [{"invoice_line_id": 10**20, "quantity": 1}],
        ],
    )
    def test_invalid_items(self, db_session, invoice, items):
        with pytest.raises(ValidationError):
            reversal_service.process_return(invoice.id, items)

    @pytest.mark.parametrize("return_date", [12345, ["2026-01-20"], "not-a-date"])
    def test_malformed_return_date(self, db_session, invoice, product_a, return_date):
        line = _line_for(invoice, product_a.id)
        with pytest.raises(ValidationError, match="return_date"):
            reversal_service.process_return(
                invoice.id, [{"invoice_line_id": line.id, "quantity": 1}], return_date=return_date
            )
        assert db_session.query(SalesReturn).count() == 0
        assert get_stock(product_a.id) == 7

    def test_get_returns(self, db_session, invoice, product_b):
        line = _line_for(invoice, product_b.id)
        reversal_service.process_return(invoice.id, [{"invoice_line_id": line.id, "quantity": 1}])

        returns = reversal_service.get_returns(invoice.id)
        assert len(returns) == 1
        assert returns[0].to_dict()["lines"][0]["quantity"] == 1

        with pytest.raises(NotFoundError):
            reversal_service.get_returns(99999)


class TestStockConservation:
    def test_return_then_delete_lands_on_starting_stock(self, db_session, invoice, product_a, product_b):
        line_a = _line_for(invoice, product_a.id)
        reversal_service.process_return(invoice.id, [{"invoice_line_id": line_a.id, "quantity": 2}])
        assert get_stock(product_a.id) == 9

        result = reversal_service.delete_document("INVOICE", invoice.id)

        assert result["returns_deleted"] == 1
        assert get_stock(product_a.id) == 10
        assert get_stock(product_b.id) == 10
        assert db_session.query(SalesReturn).count() == 0
        assert db_session.query(SalesReturnLine).count() == 0

    def test_unrelated_movements_survive_delete(self, db_session, invoice, supplier, product_a):
        document_service.create_purchase(
            {"supplier_id": supplier.id},
            [{"product_id": product_a.id, "quantity": 5, "unit_price_cents": 6000}],
        )
        assert get_stock(product_a.id) == 12

        reversal_service.delete_document("INVOICE", invoice.id)
        assert get_stock(product_a.id) == 15
