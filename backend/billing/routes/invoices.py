# Overview: Flask API routes for sales invoices; parses input and returns JSON responses.

"""
Invoice API Routes

DESIGN:
- Thin layer: parse JSON/query args, call the ledger services, serialize
- Domain errors carry their own status code (400/404/409)
- Anything else is logged and returned as a generic 500
"""

from flask import Blueprint, request, jsonify, current_app

from ..services import document_service, payment_service, reversal_service
from ..validation import DOCUMENT_KIND_INVOICE, LedgerError, coerce_date, json_object


invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


# =============================================================================
# LISTINGS
# =============================================================================

@invoices_bp.get("")
def list_invoices_route():
    """
    List invoices, newest first.

    Query params:
        start_date, end_date: ISO dates (inclusive)
        customer_id: Filter by customer
        unpaid: "true" for PENDING/PARTIAL only
        limit, offset: Pagination
    """
    try:
        invoices = document_service.list_documents(
            DOCUMENT_KIND_INVOICE,
            start_date=coerce_date("start_date", request.args.get("start_date")),
            end_date=coerce_date("end_date", request.args.get("end_date")),
            party_id=request.args.get("customer_id", type=int),
            unpaid_only=request.args.get("unpaid", "false").lower() == "true",
            limit=request.args.get("limit", type=int),
            offset=request.args.get("offset", 0, type=int),
        )
        return jsonify({"invoices": [i.to_dict() for i in invoices], "count": len(invoices)}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list invoices")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.get("/unpaid")
def list_unpaid_invoices_route():
    try:
        invoices = document_service.list_documents(DOCUMENT_KIND_INVOICE, unpaid_only=True)
        return jsonify({"invoices": [i.to_dict() for i in invoices], "count": len(invoices)}), 200
    except Exception:
        current_app.logger.exception("Failed to list unpaid invoices")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.get("/date-range")
def list_invoices_by_date_route():
    try:
        start_date = coerce_date("start_date", request.args.get("start_date"))
        end_date = coerce_date("end_date", request.args.get("end_date"))
        if start_date is None or end_date is None:
            return jsonify({"error": "start_date and end_date are required"}), 400

        invoices = document_service.list_documents(
            DOCUMENT_KIND_INVOICE, start_date=start_date, end_date=end_date
        )
        return jsonify({"invoices": [i.to_dict() for i in invoices], "count": len(invoices)}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list invoices by date")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# SINGLE INVOICE
# =============================================================================

@invoices_bp.get("/<int:invoice_id>")
def get_invoice_route(invoice_id: int):
    try:
        invoice = document_service.get_document(DOCUMENT_KIND_INVOICE, invoice_id)
        return jsonify({"invoice": invoice.to_dict(include_lines=True)}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.get("/<int:invoice_id>/details")
def get_invoice_details_route(invoice_id: int):
    """Invoice with lines, payments, total paid, remaining balance and status."""
    try:
        details = document_service.get_document_details(DOCUMENT_KIND_INVOICE, invoice_id)
        return jsonify({"invoice": details}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get invoice details")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.post("")
def create_invoice_route():
    """
    Create an invoice with its items.

    Request body:
    {
        "invoice": {
            "customer_id": 1,
            "invoice_date": "2026-01-15",   (optional, default today)
            "due_date": "2026-02-14",       (optional)
            "shipping_cents": 500,          (optional)
            "payment_method": "Cash",       (required when payment_status is PAID)
            "payment_status": "PENDING",    (PENDING or PAID)
            "notes": "..."
        },
        "items": [
            {"product_id": 1, "quantity": 3, "unit_price_cents": 10000,
             "discount_bps": 0, "tax_rate_bps": 0}
        ]
    }

    Returns:
        201: Created invoice with lines
        400: Validation or reference error
        404: Customer not found
    """
    try:
        data = json_object(request.get_json(silent=True))
        header = dict(json_object(data.get("invoice"), "invoice"))
        if "document_date" not in header and "invoice_date" in header:
            header["document_date"] = header.pop("invoice_date")

        invoice = document_service.create_invoice(header, data.get("items"))
        return jsonify({"invoice": invoice.to_dict(include_lines=True)}), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.delete("/<int:invoice_id>")
def delete_invoice_route(invoice_id: int):
    try:
        result = reversal_service.delete_document(DOCUMENT_KIND_INVOICE, invoice_id)
        return jsonify({"message": "Invoice deleted successfully", "result": result}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete invoice")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# PAYMENTS
# =============================================================================

@invoices_bp.post("/<int:invoice_id>/payments")
def record_invoice_payment_route(invoice_id: int):
    """
    Record a payment against an invoice.

    Request body:
    {
        "amount_cents": 40000,
        "payment_method": "Cash",
        "payment_date": "2026-01-20T10:00:00Z",  (optional)
        "reference_number": "TXN-1",              (optional)
        "notes": "..."                             (optional)
    }
    """
    try:
        data = json_object(request.get_json(silent=True))
        if data.get("amount_cents") is None:
            return jsonify({"error": "amount_cents is required"}), 400

        result = payment_service.record_payment(
            DOCUMENT_KIND_INVOICE,
            invoice_id,
            amount_cents=data.get("amount_cents"),
            method=data.get("payment_method"),
            payment_date=data.get("payment_date"),
            reference_number=data.get("reference_number"),
            notes=data.get("notes"),
        )
        result["payment"] = result["payment"].to_dict()
        return jsonify(result), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record invoice payment")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.get("/<int:invoice_id>/payment-history")
def get_invoice_payment_history_route(invoice_id: int):
    try:
        history = payment_service.get_payment_history(DOCUMENT_KIND_INVOICE, invoice_id)
        return jsonify(history), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get invoice payment history")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.patch("/<int:invoice_id>/payment-status")
def update_invoice_payment_status_route(invoice_id: int):
    """Body: {"payment_status": "PAID" | "CANCELLED", "payment_method": "Cash"}"""
    try:
        data = json_object(request.get_json(silent=True))
        result = payment_service.update_payment_status(
            DOCUMENT_KIND_INVOICE,
            invoice_id,
            status=data.get("payment_status"),
            method=data.get("payment_method"),
        )
        return jsonify(result), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update invoice payment status")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# RETURNS
# =============================================================================

@invoices_bp.post("/<int:invoice_id>/returns")
def process_invoice_return_route(invoice_id: int):
    """
    Return goods against an invoice.

    Request body:
    {
        "items": [{"invoice_line_id": 10, "quantity": 1}],
        "reason": "Damaged in transit"
    }
    """
    try:
        data = json_object(request.get_json(silent=True))
        sales_return = reversal_service.process_return(
            invoice_id,
            data.get("items"),
            reason=data.get("reason"),
            return_date=data.get("return_date"),
        )
        return jsonify({"return": sales_return.to_dict()}), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to process return")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.get("/<int:invoice_id>/returns")
def list_invoice_returns_route(invoice_id: int):
    try:
        returns = reversal_service.get_returns(invoice_id)
        return jsonify({"returns": [r.to_dict() for r in returns], "count": len(returns)}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list returns")
        return jsonify({"error": "Internal server error"}), 500
