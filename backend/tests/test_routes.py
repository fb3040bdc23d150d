"""
HTTP tests for the invoice, purchase and system blueprints.

Verifies:
- Domain errors map to 400/404 with {"error": ...}
- Happy paths return serialized documents, payments and returns
"""

import pytest

from billing.services.inventory_service import get_stock


@pytest.fixture
def created_invoice(client, customer, product_a, product_b):
    response = client.post("/api/invoices", json={
        "invoice": {"customer_id": customer.id, "invoice_date": "2026-01-15", "payment_method": "Cash"},
        "items": [
            {"product_id": product_a.id, "quantity": 3, "unit_price_cents": 10000},
            {"product_id": product_b.id, "quantity": 1, "unit_price_cents": 5000},
        ],
    })
    assert response.status_code == 201
    return response.get_json()["invoice"]


class TestSystemRoutes:
    def test_health(self, client, db_session):
        response = client.get("/api/system/health")
        assert response.status_code == 200
        assert response.get_json()["checks"]["database"]["status"] == "healthy"

    def test_version(self, client):
        assert client.get("/api/system/version").get_json()["api_version"] == "1.0.0"


class TestInvoiceRoutes:
    def test_create_invoice(self, created_invoice, product_a):
        assert created_invoice["number"] == "INV-20260115-0001"
        assert created_invoice["total_cents"] == 35000
        assert created_invoice["payment_status"] == "PENDING"
        assert len(created_invoice["lines"]) == 2
        assert get_stock(product_a.id) == 7

    def test_create_invoice_validation_error(self, client, customer):
        response = client.post("/api/invoices", json={"invoice": {"customer_id": customer.id}, "items": []})
        assert response.status_code == 400
        assert response.get_json()["error"] == "At least one item is required"

    def test_create_invoice_unknown_product(self, client, customer, product_a):
        response = client.post("/api/invoices", json={
            "invoice": {"customer_id": customer.id},
            "items": [
                {"product_id": product_a.id, "quantity": 1, "unit_price_cents": 100},
                {"product_id": 987654, "quantity": 1, "unit_price_cents": 100},
            ],
        })
        assert response.status_code == 400
        assert "reference" in response.get_json()["error"]
        assert get_stock(product_a.id) == 10

    @pytest.mark.parametrize(
        "body,message",
        [
            ([1, 2], "Request body must be a JSON object"),
            ({"invoice": "abc", "items": []}, "invoice must be a JSON object"),
            ({"invoice": [1], "items": []}, "invoice must be a JSON object"),
        ],
    )
    def test_malformed_body_is_a_validation_error(self, client, db_session, body, message):
        response = client.post("/api/invoices", json=body)
        assert response.status_code == 400
        assert response.get_json()["error"] == message

    def test_huge_quantity_rejected(self, client, customer, product_a):
        response = client.post("/api/invoices", json={
            "invoice": {"customer_id": customer.id},
            "items": [{"product_id": product_a.id, "quantity": 10**20, "unit_price_cents": 100}],
        })
        assert response.status_code == 400
        assert "quantity cannot exceed" in response.get_json()["error"]
        assert get_stock(product_a.id) == 10

    def test_malformed_payment_and_return_dates(self, client, created_invoice):
        invoice_id = created_invoice["id"]

        response = client.post(f"/api/invoices/{invoice_id}/payments", json={
            "amount_cents": 100, "payment_method": "Cash", "payment_date": 12345,
        })
        assert response.status_code == 400
        assert "payment_date" in response.get_json()["error"]

        response = client.post(f"/api/invoices/{invoice_id}/returns", json={
            "items": [{"invoice_line_id": created_invoice["lines"][0]["id"], "quantity": 1}],
            "return_date": 12345,
        })
        assert response.status_code == 400
        assert "return_date" in response.get_json()["error"]

        assert client.post(f"/api/invoices/{invoice_id}/payments", json=[1, 2]).status_code == 400
        assert client.patch(f"/api/invoices/{invoice_id}/payment-status", json="PAID").status_code == 400

    def test_get_missing_invoice(self, client, db_session):
        response = client.get("/api/invoices/999")
        assert response.status_code == 404

    def test_payment_flow(self, client, created_invoice):
        invoice_id = created_invoice["id"]

        response = client.post(f"/api/invoices/{invoice_id}/payments", json={
            "amount_cents": 15000, "payment_method": "Cash",
        })
        assert response.status_code == 201
        body = response.get_json()
        assert body["payment_status"] == "PARTIAL"
        assert body["remaining_balance_cents"] == 20000
        assert body["payment"]["direction"] == "INCOMING"

        response = client.post(f"/api/invoices/{invoice_id}/payments", json={
            "amount_cents": 25000, "payment_method": "Cash",
        })
        assert response.status_code == 400
        assert response.get_json()["details"]["remaining_balance_cents"] == 20000

        history = client.get(f"/api/invoices/{invoice_id}/payment-history").get_json()
        assert history["total_paid_cents"] == 15000
        assert len(history["payments"]) == 1

        response = client.patch(f"/api/invoices/{invoice_id}/payment-status", json={"payment_status": "PAID"})
        assert response.status_code == 200
        assert response.get_json()["payment_status"] == "PAID"

        details = client.get(f"/api/invoices/{invoice_id}/details").get_json()["invoice"]
        assert details["remaining_balance_cents"] == 0
        assert len(details["payments"]) == 2

    def test_payment_requires_amount(self, client, created_invoice):
        response = client.post(f"/api/invoices/{created_invoice['id']}/payments", json={"payment_method": "Cash"})
        assert response.status_code == 400

    def test_unpaid_and_date_range(self, client, created_invoice):
        unpaid = client.get("/api/invoices/unpaid").get_json()
        assert unpaid["count"] == 1

        in_range = client.get("/api/invoices/date-range?start_date=2026-01-01&end_date=2026-01-31").get_json()
        assert [i["id"] for i in in_range["invoices"]] == [created_invoice["id"]]

        assert client.get("/api/invoices/date-range?start_date=2026-01-01").status_code == 400
        assert client.get("/api/invoices/date-range?start_date=nope&end_date=2026-01-31").status_code == 400

    def test_return_and_delete(self, client, created_invoice, product_a, product_b):
        invoice_id = created_invoice["id"]
        line_a = next(line for line in created_invoice["lines"] if line["product_id"] == product_a.id)

        response = client.post(f"/api/invoices/{invoice_id}/returns", json={
            "items": [{"invoice_line_id": line_a["id"], "quantity": 1}],
            "reason": "Wrong size",
        })
        assert response.status_code == 201
        assert response.get_json()["return"]["total_cents"] == 10000
        assert get_stock(product_a.id) == 8

        response = client.post(f"/api/invoices/{invoice_id}/returns", json={
            "items": [{"invoice_line_id": line_a["id"], "quantity": 3}],
        })
        assert response.status_code == 400

        returns = client.get(f"/api/invoices/{invoice_id}/returns").get_json()
        assert returns["count"] == 1

        response = client.delete(f"/api/invoices/{invoice_id}")
        assert response.status_code == 200
        assert get_stock(product_a.id) == 10
        assert get_stock(product_b.id) == 10

        assert client.delete(f"/api/invoices/{invoice_id}").status_code == 404


class TestPurchaseRoutes:
    def test_create_pay_and_delete_purchase(self, client, supplier, product_a):
        response = client.post("/api/purchases", json={
            "purchase": {"supplier_id": supplier.id, "purchase_date": "2026-01-15"},
            "items": [{
                "product_id": product_a.id,
                "quantity": 5,
                "unit_price_cents": 6000,
                "batch_number": "LOT-1",
                "expiry_date": "2027-01-01",
            }],
        })
        assert response.status_code == 201
        purchase = response.get_json()["purchase"]
        assert purchase["number"] == "PUR-20260115-0001"
        assert purchase["due_date"] == "2026-02-14"
        assert get_stock(product_a.id) == 15

        response = client.post(f"/api/purchases/{purchase['id']}/payments", json={"amount_cents": 10000})
        assert response.status_code == 201
        assert response.get_json()["payment"]["method"] == "Bank Transfer"

        by_supplier = client.get(f"/api/purchases/supplier/{supplier.id}").get_json()
        assert by_supplier["count"] == 1

        details = client.get(f"/api/purchases/{purchase['id']}").get_json()["purchase"]
        assert details["payment_status"] == "PARTIAL"
        assert details["total_paid_cents"] == 10000

        assert client.delete(f"/api/purchases/{purchase['id']}").status_code == 200
        assert get_stock(product_a.id) == 10

    def test_missing_supplier(self, client, db_session, product_a):
        response = client.post("/api/purchases", json={
            "purchase": {"supplier_id": 31337},
            "items": [{"product_id": product_a.id, "quantity": 1, "unit_price_cents": 1}],
        })
        assert response.status_code == 404

    def test_malformed_purchase_body(self, client, db_session):
        response = client.post("/api/purchases", json={"purchase": "abc", "items": []})
        assert response.status_code == 400
        assert response.get_json()["error"] == "purchase must be a JSON object"

        assert client.post("/api/purchases", json=[1, 2]).status_code == 400

    def test_invoice_id_is_not_a_purchase(self, client, created_invoice):
        assert client.get(f"/api/purchases/{created_invoice['id']}").status_code == 404
