# Overview: Document transaction engine; creates and reads invoices and purchases.

"""
Document Transaction Engine

Creating a document is one unit of work:
1. Allocate the document number
2. Insert the header
3. Per line: insert the line, move stock, record purchase batches
4. When declared paid, insert one payment for the full total
5. Commit

If any step fails nothing is persisted: no header, no lines, no stock
movement, no payment and no consumed counter increment.

TOTALS:
Computed here from the lines; callers never supply totals.
    line_gross = quantity * unit_price_cents
    line_discount = round_half_up(line_gross * discount_bps / 10000)
    line_net = line_gross - line_discount
    line_tax = round_half_up(line_net * tax_rate_bps / 10000)
    subtotal = sum(line_net), total = subtotal + tax + shipping
"""

from __future__ import annotations

from datetime import date, timedelta

from flask import current_app

from ..extensions import db
from ..models import Document, LineItem, ProductBatch
from ..validation import (
    DOCUMENT_KIND_INVOICE,
    DOCUMENT_KIND_PURCHASE,
    PAYMENT_STATUS_CANCELLED,
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_PENDING,
    LedgerError,
    NotFoundError,
    ValidationError,
    normalize_kind,
    validate_document_payload,
)
from billing.time_utils import today
from .concurrency import begin_write, run_with_retry
from .inventory_service import adjust_stock
from .party_service import require_party
from .payment_service import (
    METHOD_BANK_TRANSFER,
    normalize_payment_method,
    post_payment,
    summarize_document_payments,
)
from .sequence_service import next_document_number


OVERSELL_WARN = "warn"
OVERSELL_REJECT = "reject"


# =============================================================================
# TOTALS
# =============================================================================

def apply_bps(amount_cents: int, bps: int) -> int:
    """amount * bps / 10000, rounded half-up to the cent (integer math only)."""
    return (amount_cents * bps + 5_000) // 10_000


def compute_line_amounts(line: dict) -> dict:
    gross = line["quantity"] * line["unit_price_cents"]
    discount = apply_bps(gross, line["discount_bps"])
    net = gross - discount
    tax = apply_bps(net, line["tax_rate_bps"])
    return {"gross_cents": gross, "discount_cents": discount, "net_cents": net, "tax_cents": tax}


def compute_totals(lines: list[dict], shipping_cents: int = 0) -> dict:
    subtotal = discount = tax = 0
    for line in lines:
        amounts = compute_line_amounts(line)
        subtotal += amounts["net_cents"]
        discount += amounts["discount_cents"]
        tax += amounts["tax_cents"]
    return {
        "subtotal_cents": subtotal,
        "discount_cents": discount,
        "tax_cents": tax,
        "shipping_cents": shipping_cents,
        "total_cents": subtotal + tax + shipping_cents,
    }


# =============================================================================
# CREATION
# =============================================================================

def _oversell_policy() -> str:
    policy = str(current_app.config.get("STOCK_OVERSELL_POLICY", OVERSELL_WARN)).strip().lower()
    return OVERSELL_REJECT if policy == OVERSELL_REJECT else OVERSELL_WARN


def _creation_payment_method(kind: str, header: dict) -> str | None:
    method = header["payment_method"]
    if not method and kind == DOCUMENT_KIND_PURCHASE:
        method = current_app.config.get("PURCHASE_DEFAULT_PAYMENT_METHOD", METHOD_BANK_TRANSFER)
    if method:
        return normalize_payment_method(method)
    if header["payment_status"] == PAYMENT_STATUS_PAID:
        raise ValidationError("payment_method is required when the document is created as PAID")
    return None


def create_document(kind: str, header: dict, lines: list) -> Document:
    """
    Create an invoice or purchase with its lines, stock movements and
    optional full payment, atomically.

    Args:
        kind: INVOICE or PURCHASE
        header: customer_id/supplier_id, document_date, due_date,
                shipping_cents (invoice), payment_method, payment_status, notes
        lines: [{product_id, quantity, unit_price_cents, discount_bps,
                 tax_rate_bps, product_name, batch_number, expiry_date}]

    Returns:
        Created Document (committed)

    Raises:
        ValidationError: Payload invalid, or oversell with the reject policy
        InvalidReferenceError: Unknown product (foreign key)
        NotFoundError: Unknown customer/supplier
    """
    kind = normalize_kind(kind)
    clean_header, clean_lines = validate_document_payload(kind, header, lines)
    method = _creation_payment_method(kind, clean_header)
    document_date = clean_header["document_date"] or today()
    totals = compute_totals(clean_lines, clean_header["shipping_cents"])
    declared_paid = clean_header["payment_status"] == PAYMENT_STATUS_PAID
    policy = _oversell_policy()

    def _op():
        begin_write()
        party = require_party(kind, clean_header["party_id"])

        due_date = clean_header["due_date"]
        if due_date is None and kind == DOCUMENT_KIND_PURCHASE and party.payment_terms_days:
            due_date = document_date + timedelta(days=party.payment_terms_days)

        number = next_document_number(kind, document_date)

        document = Document(
            kind=kind,
            number=number,
            customer_id=party.id if kind == DOCUMENT_KIND_INVOICE else None,
            supplier_id=party.id if kind == DOCUMENT_KIND_PURCHASE else None,
            document_date=document_date,
            due_date=due_date,
            payment_method=method,
            payment_status=PAYMENT_STATUS_PENDING,
            notes=clean_header["notes"],
            **totals,
        )
        db.session.add(document)
        db.session.flush()

        sign = -1 if kind == DOCUMENT_KIND_INVOICE else 1
        for line in clean_lines:
            amounts = compute_line_amounts(line)
            item = LineItem(
                document_id=document.id,
                product_id=line["product_id"],
                product_name=line["product_name"],
                quantity=line["quantity"],
                unit_price_cents=line["unit_price_cents"],
                discount_bps=line["discount_bps"],
                tax_rate_bps=line["tax_rate_bps"],
                tax_cents=amounts["tax_cents"],
                total_price_cents=amounts["net_cents"],
                batch_number=line["batch_number"],
                expiry_date=line["expiry_date"],
            )
            db.session.add(item)
            db.session.flush()

            new_stock = adjust_stock(line["product_id"], sign * line["quantity"])
            if new_stock < 0:
                if policy == OVERSELL_REJECT:
                    raise ValidationError(
                        f"Insufficient stock for product {line['product_id']}",
                        details={"product_id": line["product_id"], "resulting_stock": new_stock},
                    )
                current_app.logger.warning(
                    "Oversell on %s: product %s stock now %s", number, line["product_id"], new_stock
                )

            if kind == DOCUMENT_KIND_PURCHASE and line["batch_number"] and line["expiry_date"]:
                db.session.add(ProductBatch(
                    product_id=line["product_id"],
                    line_item_id=item.id,
                    batch_number=line["batch_number"],
                    expiry_date=line["expiry_date"],
                    quantity=line["quantity"],
                ))

        if declared_paid:
            if document.total_cents > 0:
                post_payment(
                    document,
                    amount_cents=document.total_cents,
                    method=method,
                    notes=f"Payment for {number}",
                )
            else:
                document.payment_status = PAYMENT_STATUS_PAID

        db.session.commit()
        current_app.logger.info(
            "Created %s %s: %s lines, total %s, status %s",
            kind, number, len(clean_lines), document.total_cents, document.payment_status,
        )
        return document

    try:
        return run_with_retry(_op)
    except LedgerError:
        raise
    except Exception:
        current_app.logger.exception("Failed to create %s", kind)
        raise


def create_invoice(header: dict, lines: list) -> Document:
    return create_document(DOCUMENT_KIND_INVOICE, header, lines)


def create_purchase(header: dict, lines: list) -> Document:
    return create_document(DOCUMENT_KIND_PURCHASE, header, lines)


# =============================================================================
# QUERIES
# =============================================================================

def get_document(kind: str, document_id: int) -> Document:
    kind = normalize_kind(kind)
    document = db.session.query(Document).filter_by(id=document_id, kind=kind).first()
    if document is None:
        label = "Invoice" if kind == DOCUMENT_KIND_INVOICE else "Purchase"
        raise NotFoundError(f"{label} {document_id} not found")
    return document


def get_document_details(kind: str, document_id: int) -> dict:
    """Header, lines, payments and the payment summary in one dict."""
    document = get_document(kind, document_id)
    data = document.to_dict(include_lines=True)
    data["payments"] = [p.to_dict() for p in document.payments]
    data.update(summarize_document_payments(document))
    return data


def list_documents(
    kind: str,
    start_date: date | None = None,
    end_date: date | None = None,
    party_id: int | None = None,
    unpaid_only: bool = False,
    limit: int | None = None,
    offset: int = 0,
) -> list[Document]:
    """
    Documents of one kind, newest first.

    unpaid_only keeps documents with an outstanding balance: PENDING or
    PARTIAL, never CANCELLED.
    """
    kind = normalize_kind(kind)
    query = db.session.query(Document).filter(Document.kind == kind)

    if start_date is not None:
        query = query.filter(Document.document_date >= start_date)
    if end_date is not None:
        query = query.filter(Document.document_date <= end_date)
    if party_id is not None:
        party_column = Document.customer_id if kind == DOCUMENT_KIND_INVOICE else Document.supplier_id
        query = query.filter(party_column == party_id)
    if unpaid_only:
        query = query.filter(Document.payment_status.notin_([PAYMENT_STATUS_PAID, PAYMENT_STATUS_CANCELLED]))

    query = query.order_by(Document.document_date.desc(), Document.id.desc())
    if offset:
        query = query.offset(offset)
    if limit is not None:
        query = query.limit(limit)
    return query.all()
