# Overview: Payment ledger; records payments against documents and derives payment status.

"""
Payment Ledger

WHY: Invoices and purchases are settled over time (deposits, instalments,
final settlement). Each payment is an append-only row; the document's
payment_status is re-derived from the sum of its payments every time one
is posted.

DESIGN PRINCIPLES:
- One derivation function (derive_payment_status) for writes and reads
- A payment may never exceed the remaining balance (hard rule, not a warning)
- Read-validate-write happens in one transaction with the document row locked
- CANCELLED is terminal and only set by an explicit status change
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Document, Payment
from ..validation import (
    DOCUMENT_KIND_PURCHASE,
    PAYMENT_STATUS_CANCELLED,
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_PARTIAL,
    PAYMENT_STATUS_PENDING,
    PAYMENT_STATUSES,
    NotFoundError,
    ValidationError,
    coerce_datetime,
    coerce_int,
    normalize_kind,
)
from billing.time_utils import utcnow
from .concurrency import begin_write, lock_for_update, run_with_retry


# =============================================================================
# PAYMENT METHODS (CONSTANTS)
# =============================================================================

METHOD_CASH = "Cash"
METHOD_CREDIT_CARD = "Credit Card"
METHOD_DEBIT_CARD = "Debit Card"
METHOD_BANK_TRANSFER = "Bank Transfer"
METHOD_UPI = "UPI"
METHOD_CHEQUE = "Cheque"

VALID_PAYMENT_METHODS = [
    METHOD_CASH,
    METHOD_CREDIT_CARD,
    METHOD_DEBIT_CARD,
    METHOD_BANK_TRANSFER,
    METHOD_UPI,
    METHOD_CHEQUE,
]

_METHOD_ALIASES = {
    "credit": METHOD_CREDIT_CARD,
    "debit": METHOD_DEBIT_CARD,
    "check": METHOD_CHEQUE,
}


def normalize_payment_method(method: str | None) -> str:
    """Map user input onto a canonical method name (case-insensitive)."""
    if method is not None and not isinstance(method, str):
        raise ValidationError(f"Invalid payment method: {method!r}. Must be one of {VALID_PAYMENT_METHODS}")
    value = (method or "").strip()
    if not value:
        raise ValidationError("payment_method is required")
    lowered = value.lower()
    for candidate in VALID_PAYMENT_METHODS:
        if candidate.lower() == lowered:
            return candidate
    if lowered in _METHOD_ALIASES:
        return _METHOD_ALIASES[lowered]
    raise ValidationError(f"Invalid payment method: {value}. Must be one of {VALID_PAYMENT_METHODS}")


# =============================================================================
# STATUS DERIVATION
# =============================================================================

def derive_payment_status(total_cents: int, paid_cents: int, current_status: str) -> str:
    """
    The only place payment status is computed.

    - CANCELLED: terminal, never changed by payments
    - PAID: something was paid and it covers the total
    - PARTIAL: 0 < paid < total
    - otherwise: current status (PENDING, or PAID for a zero-total document
      declared paid at creation)
    """
    if current_status == PAYMENT_STATUS_CANCELLED:
        return PAYMENT_STATUS_CANCELLED
    if paid_cents > 0 and paid_cents >= total_cents:
        return PAYMENT_STATUS_PAID
    if 0 < paid_cents < total_cents:
        return PAYMENT_STATUS_PARTIAL
    return current_status


def total_paid_cents(document_id: int) -> int:
    total = db.session.query(
        func.coalesce(func.sum(Payment.amount_cents), 0)
    ).filter(Payment.document_id == document_id).scalar()
    return int(total or 0)


def summarize_document_payments(document: Document) -> dict:
    """Totals, derived status and remaining balance for read-only consumers."""
    paid = total_paid_cents(document.id)
    return {
        "total_cents": document.total_cents,
        "total_paid_cents": paid,
        "remaining_balance_cents": document.total_cents - paid,
        "payment_status": derive_payment_status(document.total_cents, paid, document.payment_status),
    }


# =============================================================================
# PAYMENT CREATION
# =============================================================================

def _load_document(kind: str, document_id: int, *, lock: bool = False) -> Document:
    query = db.session.query(Document).filter_by(id=document_id, kind=kind)
    if lock:
        query = lock_for_update(query)
    document = query.first()
    if document is None:
        label = "Invoice" if kind != DOCUMENT_KIND_PURCHASE else "Purchase"
        raise NotFoundError(f"{label} {document_id} not found")
    return document


def post_payment(
    document: Document,
    *,
    amount_cents: int,
    method: str,
    payment_date: datetime | None = None,
    reference_number: str | None = None,
    notes: str | None = None,
) -> tuple[Payment, int]:
    """
    Insert a payment and re-derive the document's status.

    Caller owns the transaction (no commit here) and must hold the document
    row. Returns (payment, new_total_paid_cents).
    """
    paid_so_far = total_paid_cents(document.id)
    remaining = document.total_cents - paid_so_far
    if amount_cents > remaining:
        raise ValidationError(
            f"Payment amount cannot exceed remaining balance of {remaining}",
            details={"remaining_balance_cents": remaining, "amount_cents": amount_cents},
        )

    payment = Payment(
        document_kind=document.kind,
        document_id=document.id,
        amount_cents=amount_cents,
        method=method,
        payment_date=payment_date or utcnow(),
        reference_number=reference_number,
        notes=notes,
    )
    db.session.add(payment)
    db.session.flush()

    new_total_paid = paid_so_far + amount_cents
    document.payment_status = derive_payment_status(
        document.total_cents, new_total_paid, document.payment_status
    )
    return payment, new_total_paid


def record_payment(
    kind: str,
    document_id: int,
    amount_cents: int,
    method: str,
    payment_date=None,
    reference_number: str | None = None,
    notes: str | None = None,
) -> dict:
    """
    Record a payment against an invoice or purchase.

    Args:
        kind: INVOICE or PURCHASE
        document_id: Document being paid
        amount_cents: Amount paid (must be > 0 and <= remaining balance)
        method: Cash, Credit Card, Debit Card, Bank Transfer, UPI, Cheque
        payment_date: When the money moved (datetime or ISO string; default now)
        reference_number: Bank/cheque reference (optional)
        notes: Free text (optional)

    Returns:
        {"payment", "payment_status", "total_paid_cents", "remaining_balance_cents"}

    Raises:
        ValidationError: Invalid amount/method, CANCELLED document, or amount over balance
        NotFoundError: Document not found
    """
    kind = normalize_kind(kind)
    amount_cents = coerce_int("amount_cents", amount_cents)
    if amount_cents <= 0:
        raise ValidationError("Payment amount must be greater than zero")
    method = normalize_payment_method(method)
    payment_date = coerce_datetime("payment_date", payment_date)

    def _op():
        begin_write()
        document = _load_document(kind, document_id, lock=True)

        if document.payment_status == PAYMENT_STATUS_CANCELLED:
            raise ValidationError(f"Cannot record payment on a CANCELLED document ({document.number})")

        payment, new_total_paid = post_payment(
            document,
            amount_cents=amount_cents,
            method=method,
            payment_date=payment_date,
            reference_number=reference_number,
            notes=notes,
        )

        db.session.commit()

        current_app.logger.info(
            "Recorded payment %s of %s on %s (status %s)",
            payment.id, amount_cents, document.number, document.payment_status,
        )
        return {
            "payment": payment,
            "payment_status": document.payment_status,
            "total_paid_cents": new_total_paid,
            "remaining_balance_cents": document.total_cents - new_total_paid,
        }

    return run_with_retry(_op)


# =============================================================================
# QUERIES
# =============================================================================

def get_document_payments(document_id: int) -> list[Payment]:
    """Payments for a document, oldest first."""
    return (
        db.session.query(Payment)
        .filter_by(document_id=document_id)
        .order_by(Payment.payment_date, Payment.id)
        .all()
    )


def get_payment_history(kind: str, document_id: int) -> dict:
    """
    Payment history for a document. Pure read.

    Returns:
        - document_number
        - total_cents
        - payments: list of payment dicts
        - total_paid_cents
        - remaining_balance_cents
        - payment_status
    """
    kind = normalize_kind(kind)
    document = _load_document(kind, document_id)
    payments = get_document_payments(document.id)
    summary = summarize_document_payments(document)

    return {
        "document_id": document.id,
        "document_number": document.number,
        "payments": [p.to_dict() for p in payments],
        **summary,
    }


# =============================================================================
# OUT-OF-BAND STATUS CHANGES
# =============================================================================

def update_payment_status(
    kind: str,
    document_id: int,
    status: str,
    method: str | None = None,
) -> dict:
    """
    Explicit status change requested by a user.

    - CANCELLED: terminal; once set, no further payments or status changes
    - PAID: posts a settling payment for the remaining balance, so stored
      and derived status keep agreeing
    - PENDING / PARTIAL: derived from payments; accepted only when they
      already match the derived value

    Returns:
        Payment summary dict with the updated document
    """
    kind = normalize_kind(kind)
    status = status.strip().upper() if isinstance(status, str) else ""
    if status not in PAYMENT_STATUSES:
        raise ValidationError(f"Payment status must be one of: {', '.join(PAYMENT_STATUSES)}")
    if method:
        method = normalize_payment_method(method)

    def _op():
        begin_write()
        document = _load_document(kind, document_id, lock=True)
        settlement = None

        if document.payment_status == PAYMENT_STATUS_CANCELLED:
            if status != PAYMENT_STATUS_CANCELLED:
                raise ValidationError(f"{document.number} is CANCELLED; its status can no longer change")
        elif status == PAYMENT_STATUS_CANCELLED:
            document.payment_status = PAYMENT_STATUS_CANCELLED
        elif status == PAYMENT_STATUS_PAID:
            remaining = document.total_cents - total_paid_cents(document.id)
            if remaining > 0:
                settle_method = method or document.payment_method
                if not settle_method and kind == DOCUMENT_KIND_PURCHASE:
                    settle_method = current_app.config.get("PURCHASE_DEFAULT_PAYMENT_METHOD", METHOD_BANK_TRANSFER)
                settlement, _ = post_payment(
                    document,
                    amount_cents=remaining,
                    method=normalize_payment_method(settle_method),
                    notes=f"Payment for {document.number}",
                )
            else:
                document.payment_status = PAYMENT_STATUS_PAID
        else:
            derived = derive_payment_status(
                document.total_cents, total_paid_cents(document.id), document.payment_status
            )
            if status != derived:
                raise ValidationError(
                    f"{status} is derived from payments; {document.number} is currently {derived}",
                    details={"derived_status": derived},
                )

        db.session.commit()
        current_app.logger.info("Payment status of %s set to %s", document.number, document.payment_status)

        result = summarize_document_payments(document)
        result["document"] = document.to_dict()
        result["settlement_payment"] = settlement.to_dict() if settlement else None
        return result

    return run_with_retry(_op)
