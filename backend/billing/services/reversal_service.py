# Overview: Reversal engine; deletes documents and processes sales returns.

"""
Reversal Engine

WHY: A document that was entered by mistake must disappear together with
everything it caused (stock movement, payments, batches, returns). Goods
that come back from a customer are a separate event: a return restores
stock but never edits the invoice.

STOCK CONSERVATION:
For every product, stock after a delete equals stock before the document
was created plus every unrelated movement in between.
- Deleting an invoice restores quantity minus units already returned
  (those units came back when the return was processed).
- Deleting a purchase removes the quantity it received.

RETURN BOUND:
Per invoice line, the units returned across all returns never exceed the
invoiced quantity.
"""

from __future__ import annotations

from collections import OrderedDict

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Document, LineItem, ProductBatch, SalesReturn, SalesReturnLine
from ..validation import (
    DOCUMENT_KIND_INVOICE,
    NotFoundError,
    ValidationError,
    coerce_datetime,
    normalize_kind,
    validate_return_items,
)
from billing.time_utils import utcnow
from .concurrency import begin_write, lock_for_update, run_with_retry
from .inventory_service import adjust_stock


RETURN_STATUS_PROCESSED = "PROCESSED"


def _load_for_update(kind: str, document_id: int) -> Document:
    query = db.session.query(Document).filter_by(id=document_id, kind=kind)
    document = lock_for_update(query).first()
    if document is None:
        label = "Invoice" if kind == DOCUMENT_KIND_INVOICE else "Purchase"
        raise NotFoundError(f"{label} {document_id} not found")
    return document


def returned_quantities(line_ids: list[int]) -> dict[int, int]:
    """Units already returned per invoice line id."""
    if not line_ids:
        return {}
    rows = (
        db.session.query(SalesReturnLine.invoice_line_id, func.sum(SalesReturnLine.quantity))
        .filter(SalesReturnLine.invoice_line_id.in_(line_ids))
        .group_by(SalesReturnLine.invoice_line_id)
        .all()
    )
    return {line_id: int(total or 0) for line_id, total in rows}


# =============================================================================
# DELETE
# =============================================================================

def delete_document(kind: str, document_id: int) -> dict:
    """
    Delete an invoice or purchase and undo its effects, atomically.

    Order: inverse stock deltas, then payments, purchase batches, return
    records, lines and finally the header. Each group is flushed before the
    next so foreign keys never point at a deleted row.

    Returns:
        {"id", "kind", "number", "stock_restored": [{product_id, delta}],
         "payments_deleted", "returns_deleted"}

    Raises:
        NotFoundError: If the document does not exist
    """
    kind = normalize_kind(kind)

    def _op():
        begin_write()
        document = _load_for_update(kind, document_id)
        number = document.number
        lines = list(document.lines)
        line_ids = [line.id for line in lines]

        already_returned = returned_quantities(line_ids) if kind == DOCUMENT_KIND_INVOICE else {}

        movements = []
        for line in lines:
            if kind == DOCUMENT_KIND_INVOICE:
                delta = line.quantity - already_returned.get(line.id, 0)
            else:
                delta = -line.quantity
            if delta:
                new_stock = adjust_stock(line.product_id, delta)
                if new_stock < 0:
                    current_app.logger.warning(
                        "Deleting %s leaves product %s at stock %s", number, line.product_id, new_stock
                    )
            movements.append({"product_id": line.product_id, "delta": delta})

        payments = list(document.payments)
        returns = list(document.returns) if kind == DOCUMENT_KIND_INVOICE else []

        batches = []
        if line_ids:
            batches = db.session.query(ProductBatch).filter(ProductBatch.line_item_id.in_(line_ids)).all()

        for batch in batches:
            db.session.delete(batch)
        for sales_return in returns:
            for return_line in sales_return.lines:
                db.session.delete(return_line)
        db.session.flush()

        for sales_return in returns:
            db.session.delete(sales_return)
        for payment in payments:
            db.session.delete(payment)
        db.session.flush()

        for line in lines:
            db.session.delete(line)
        db.session.flush()

        db.session.delete(document)
        db.session.commit()

        current_app.logger.info(
            "Deleted %s %s (%s lines, %s payments, %s returns)",
            kind, number, len(lines), len(payments), len(returns),
        )
        return {
            "id": document_id,
            "kind": kind,
            "number": number,
            "stock_restored": movements,
            "payments_deleted": len(payments),
            "returns_deleted": len(returns),
        }

    return run_with_retry(_op)


# =============================================================================
# SALES RETURNS
# =============================================================================

def process_return(
    invoice_id: int,
    return_items: list,
    reason: str | None = None,
    return_date=None,
) -> SalesReturn:
    """
    Take goods back against an invoice.

    Args:
        invoice_id: Invoice the goods were sold on
        return_items: [{"invoice_line_id": int, "quantity": int}]
        reason: Free text
        return_date: datetime or ISO string (default now)

    Unit price and product come from the original invoice line.

    Returns:
        Committed SalesReturn with its lines

    Raises:
        NotFoundError: Invoice not found
        ValidationError: Unknown line, or cumulative quantity above the invoiced quantity
    """
    items = validate_return_items(return_items)
    return_date = coerce_datetime("return_date", return_date)

    # Same line listed twice counts as one request
    requested = OrderedDict()
    for item in items:
        requested[item["invoice_line_id"]] = requested.get(item["invoice_line_id"], 0) + item["quantity"]

    def _op():
        begin_write()
        invoice = _load_for_update(DOCUMENT_KIND_INVOICE, invoice_id)
        lines_by_id = {line.id: line for line in invoice.lines}

        for line_id in requested:
            if line_id not in lines_by_id:
                raise ValidationError(
                    f"Invoice line {line_id} does not belong to {invoice.number}",
                    details={"invoice_line_id": line_id},
                )

        previous = returned_quantities(list(requested))
        for line_id, quantity in requested.items():
            line = lines_by_id[line_id]
            already = previous.get(line_id, 0)
            if already + quantity > line.quantity:
                raise ValidationError(
                    f"Cannot return {quantity} of invoice line {line_id}: "
                    f"{line.quantity - already} of {line.quantity} remain returnable",
                    details={
                        "invoice_line_id": line_id,
                        "invoiced_quantity": line.quantity,
                        "already_returned": already,
                        "requested": quantity,
                    },
                )

        sales_return = SalesReturn(
            invoice_id=invoice.id,
            return_date=return_date or utcnow(),
            reason=(reason or "").strip() or None,
            status=RETURN_STATUS_PROCESSED,
            total_cents=0,
        )
        db.session.add(sales_return)
        db.session.flush()

        total = 0
        for line_id, quantity in requested.items():
            line: LineItem = lines_by_id[line_id]
            line_total = quantity * line.unit_price_cents
            db.session.add(SalesReturnLine(
                return_id=sales_return.id,
                invoice_line_id=line.id,
                product_id=line.product_id,
                quantity=quantity,
                unit_price_cents=line.unit_price_cents,
                total_price_cents=line_total,
            ))
            adjust_stock(line.product_id, quantity)
            total += line_total

        sales_return.total_cents = total
        db.session.commit()

        current_app.logger.info(
            "Processed return %s on %s: %s units, total %s",
            sales_return.id, invoice.number, sum(requested.values()), total,
        )
        return sales_return

    return run_with_retry(_op)


def get_returns(invoice_id: int) -> list[SalesReturn]:
    """Returns recorded against an invoice, oldest first."""
    invoice = db.session.query(Document).filter_by(id=invoice_id, kind=DOCUMENT_KIND_INVOICE).first()
    if invoice is None:
        raise NotFoundError(f"Invoice {invoice_id} not found")
    return (
        db.session.query(SalesReturn)
        .filter_by(invoice_id=invoice_id)
        .order_by(SalesReturn.return_date, SalesReturn.id)
        .all()
    )
