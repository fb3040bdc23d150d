# Overview: Flask API routes for supplier purchases; parses input and returns JSON responses.

# backend/billing/routes/purchases.py
"""
Purchase API Routes

Purchases receive stock from suppliers. Same ledger rules as invoices with
the stock movement reversed; paid-on-creation purchases default to the
configured purchase payment method.
"""

from flask import Blueprint, request, jsonify, current_app

from ..services import document_service, payment_service, reversal_service
from ..validation import DOCUMENT_KIND_PURCHASE, LedgerError, coerce_date, json_object


purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")


def _purchase_list_response(purchases):
    return jsonify({"purchases": [p.to_dict() for p in purchases], "count": len(purchases)}), 200


@purchases_bp.get("")
def list_purchases_route():
    """Query params: start_date, end_date, supplier_id, unpaid, limit, offset"""
    try:
        purchases = document_service.list_documents(
            DOCUMENT_KIND_PURCHASE,
            start_date=coerce_date("start_date", request.args.get("start_date")),
            end_date=coerce_date("end_date", request.args.get("end_date")),
            party_id=request.args.get("supplier_id", type=int),
            unpaid_only=request.args.get("unpaid", "false").lower() == "true",
            limit=request.args.get("limit", type=int),
            offset=request.args.get("offset", 0, type=int),
        )
        return _purchase_list_response(purchases)
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list purchases")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.get("/unpaid")
def list_unpaid_purchases_route():
    try:
        return _purchase_list_response(
            document_service.list_documents(DOCUMENT_KIND_PURCHASE, unpaid_only=True)
        )
    except Exception:
        current_app.logger.exception("Failed to list unpaid purchases")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.get("/date-range")
def list_purchases_by_date_route():
    try:
        start_date = coerce_date("start_date", request.args.get("start_date"))
        end_date = coerce_date("end_date", request.args.get("end_date"))
        if start_date is None or end_date is None:
            return jsonify({"error": "start_date and end_date are required"}), 400
        return _purchase_list_response(
            document_service.list_documents(DOCUMENT_KIND_PURCHASE, start_date=start_date, end_date=end_date)
        )
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list purchases by date")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.get("/supplier/<int:supplier_id>")
def list_purchases_by_supplier_route(supplier_id: int):
    try:
        return _purchase_list_response(
            document_service.list_documents(DOCUMENT_KIND_PURCHASE, party_id=supplier_id)
        )
    except Exception:
        current_app.logger.exception("Failed to list purchases by supplier")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.get("/<int:purchase_id>")
def get_purchase_route(purchase_id: int):
    try:
        purchase = document_service.get_document_details(DOCUMENT_KIND_PURCHASE, purchase_id)
        return jsonify({"purchase": purchase}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get purchase")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.post("")
def create_purchase_route():
    """
    Create a purchase with its items.

    Request body:
    {
        "purchase": {
            "supplier_id": 1,
            "purchase_date": "2026-01-15",  (optional, default today)
            "due_date": "2026-02-14",       (optional, default date + supplier terms)
            "payment_method": "Bank Transfer",
            "payment_status": "PENDING",
            "notes": "..."
        },
        "items": [
            {"product_id": 1, "quantity": 10, "unit_price_cents": 8000,
             "batch_number": "B-001", "expiry_date": "2027-01-01"}
        ]
    }
    """
    try:
        data = json_object(request.get_json(silent=True))
        header = dict(json_object(data.get("purchase"), "purchase"))
        if "document_date" not in header and "purchase_date" in header:
            header["document_date"] = header.pop("purchase_date")

        purchase = document_service.create_purchase(header, data.get("items"))
        return jsonify({"purchase": purchase.to_dict(include_lines=True)}), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create purchase")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.delete("/<int:purchase_id>")
def delete_purchase_route(purchase_id: int):
    try:
        result = reversal_service.delete_document(DOCUMENT_KIND_PURCHASE, purchase_id)
        return jsonify({"message": "Purchase deleted successfully", "result": result}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete purchase")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.post("/<int:purchase_id>/payments")
def record_purchase_payment_route(purchase_id: int):
    try:
        data = json_object(request.get_json(silent=True))
        if data.get("amount_cents") is None:
            return jsonify({"error": "amount_cents is required"}), 400

        result = payment_service.record_payment(
            DOCUMENT_KIND_PURCHASE,
            purchase_id,
            amount_cents=data.get("amount_cents"),
            method=data.get("payment_method") or current_app.config.get("PURCHASE_DEFAULT_PAYMENT_METHOD"),
            payment_date=data.get("payment_date"),
            reference_number=data.get("reference_number"),
            notes=data.get("notes"),
        )
        result["payment"] = result["payment"].to_dict()
        return jsonify(result), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record purchase payment")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.get("/<int:purchase_id>/payment-history")
def get_purchase_payment_history_route(purchase_id: int):
    try:
        return jsonify(payment_service.get_payment_history(DOCUMENT_KIND_PURCHASE, purchase_id)), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get purchase payment history")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.patch("/<int:purchase_id>/payment-status")
def update_purchase_payment_status_route(purchase_id: int):
    try:
        data = json_object(request.get_json(silent=True))
        result = payment_service.update_payment_status(
            DOCUMENT_KIND_PURCHASE,
            purchase_id,
            status=data.get("payment_status"),
            method=data.get("payment_method"),
        )
        return jsonify(result), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update purchase payment status")
        return jsonify({"error": "Internal server error"}), 500
