from __future__ import annotations

from datetime import date, datetime
from typing import Any

from billing.time_utils import parse_iso_date, parse_iso_datetime


# Maximum price: 9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999
MAX_BPS = 10_000
# Units per line; keeps stock arithmetic inside SQLite INTEGER
MAX_QUANTITY = 1_000_000
# SQLite INTEGER primary keys are signed 64-bit
MAX_ID = 2**63 - 1

DOCUMENT_KIND_INVOICE = "INVOICE"
DOCUMENT_KIND_PURCHASE = "PURCHASE"
DOCUMENT_KINDS = (DOCUMENT_KIND_INVOICE, DOCUMENT_KIND_PURCHASE)

PAYMENT_STATUS_PENDING = "PENDING"
PAYMENT_STATUS_PARTIAL = "PARTIAL"
PAYMENT_STATUS_PAID = "PAID"
PAYMENT_STATUS_CANCELLED = "CANCELLED"
PAYMENT_STATUSES = (
    PAYMENT_STATUS_PENDING,
    PAYMENT_STATUS_PARTIAL,
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_CANCELLED,
)


class LedgerError(Exception):
    """Base class for domain errors raised by the ledger services."""

    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(LedgerError):
    """400-level input problem."""


class InvalidReferenceError(ValidationError):
    """400-level foreign-key problem (unknown customer, supplier or product)."""


class ConflictError(ValidationError):
    """409-level uniqueness conflict (e.g., duplicate document number)."""

    status_code = 409


class NotFoundError(LedgerError):
    """404-level missing document or party."""

    status_code = 404


def normalize_kind(kind: str) -> str:
    value = (kind or "").strip().upper()
    if value not in DOCUMENT_KINDS:
        raise ValidationError(f"Invalid document kind: {kind}. Must be one of {list(DOCUMENT_KINDS)}")
    return value


def coerce_int(field: str, value: Any) -> int:
    """
    Strict integer coercion for cents, quantities and basis points.

    Rejects floats, booleans, decimals and scientific notation so that
    "12.5" never silently becomes 12.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def coerce_id(field: str, value: Any) -> int:
    ident = coerce_int(field, value)
    if ident <= 0 or ident > MAX_ID:
        raise ValidationError(f"{field} must be a positive id")
    return ident


def coerce_date(field: str, value: Any) -> date | None:
    if value is not None and not isinstance(value, (str, date)):
        raise ValidationError(f"{field} must be an ISO-8601 date")
    try:
        return parse_iso_date(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an ISO-8601 date")


def coerce_datetime(field: str, value: Any) -> datetime | None:
    """
    Accept None, a datetime or an ISO-8601 string.

    Numbers, lists and objects are rejected instead of reaching the store.
    """
    if value is None or isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be an ISO-8601 datetime")
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 datetime")


def json_object(value: Any, field: str = "Request body") -> dict:
    """Return a JSON object payload; a missing one counts as empty."""
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValidationError(f"{field} must be a JSON object")
    return value


def _quantity(label: str, value: Any) -> int:
    if value is None:
        raise ValidationError(f"{label} has invalid quantity")
    quantity = coerce_int(f"{label} quantity", value)
    if quantity <= 0:
        raise ValidationError(f"{label} has invalid quantity")
    if quantity > MAX_QUANTITY:
        raise ValidationError(f"{label} quantity cannot exceed {MAX_QUANTITY}")
    return quantity


def _optional_text(value: Any, max_length: int | None = None, field: str = "") -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if max_length and len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return text


def _bps(field: str, value: Any) -> int:
    if value is None:
        return 0
    bps = coerce_int(field, value)
    if bps < 0 or bps > MAX_BPS:
        raise ValidationError(f"{field} must be between 0 and {MAX_BPS}")
    return bps


def validate_line(kind: str, index: int, raw: Any) -> dict:
    label = f"Item #{index + 1}"
    if not isinstance(raw, dict):
        raise ValidationError(f"{label} must be an object")

    if raw.get("product_id") in (None, ""):
        raise ValidationError(f"{label} is missing product_id")
    product_id = coerce_id(f"{label} product_id", raw["product_id"])
    quantity = _quantity(label, raw.get("quantity"))

    if raw.get("unit_price_cents") is None:
        raise ValidationError(f"{label} has invalid unit price")
    unit_price = coerce_int(f"{label} unit_price_cents", raw["unit_price_cents"])
    if unit_price < 0:
        raise ValidationError(f"{label} has invalid unit price")
    if unit_price > MAX_PRICE_CENTS:
        raise ValidationError(f"{label} unit_price_cents cannot exceed {MAX_PRICE_CENTS}")

    line = {
        "product_id": product_id,
        "quantity": quantity,
        "unit_price_cents": unit_price,
        "discount_bps": _bps(f"{label} discount_bps", raw.get("discount_bps")),
        "tax_rate_bps": _bps(f"{label} tax_rate_bps", raw.get("tax_rate_bps")),
        "product_name": _optional_text(raw.get("product_name"), 255, f"{label} product_name"),
        "batch_number": None,
        "expiry_date": None,
    }

    if kind == DOCUMENT_KIND_PURCHASE:
        line["batch_number"] = _optional_text(raw.get("batch_number"), 64, f"{label} batch_number")
        line["expiry_date"] = coerce_date(f"{label} expiry_date", raw.get("expiry_date"))

    return line


def validate_document_payload(kind: str, header: Any, lines: Any) -> tuple[dict, list[dict]]:
    """
    Validate and normalize a document creation request.

    Runs before any transaction is opened so that requests which can
    never succeed are rejected without touching the store.

    Returns (header, lines) with integers coerced and dates parsed.
    """
    kind = normalize_kind(kind)
    if not isinstance(header, dict):
        raise ValidationError("Document data is required")

    party_field = "customer_id" if kind == DOCUMENT_KIND_INVOICE else "supplier_id"
    if header.get(party_field) in (None, ""):
        label = "Customer" if kind == DOCUMENT_KIND_INVOICE else "Supplier"
        raise ValidationError(f"{label} ID is required")

    if not isinstance(lines, (list, tuple)) or not lines:
        raise ValidationError("At least one item is required")

    clean_lines = [validate_line(kind, i, raw) for i, raw in enumerate(lines)]

    status = header.get("payment_status")
    status = str(status).strip().upper() if status else PAYMENT_STATUS_PENDING
    if status not in (PAYMENT_STATUS_PENDING, PAYMENT_STATUS_PAID):
        raise ValidationError("payment_status on creation must be PENDING or PAID")

    shipping = 0
    if kind == DOCUMENT_KIND_INVOICE and header.get("shipping_cents") is not None:
        shipping = coerce_int("shipping_cents", header["shipping_cents"])
        if shipping < 0:
            raise ValidationError("shipping_cents must be >= 0")
        if shipping > MAX_PRICE_CENTS:
            raise ValidationError(f"shipping_cents cannot exceed {MAX_PRICE_CENTS}")

    document_date = coerce_date("document_date", header.get("document_date"))
    due_date = coerce_date("due_date", header.get("due_date"))
    if document_date and due_date and due_date < document_date:
        raise ValidationError("due_date cannot be before document_date")

    clean_header = {
        "party_id": coerce_id(party_field, header[party_field]),
        "document_date": document_date,
        "due_date": due_date,
        "shipping_cents": shipping,
        "payment_method": _optional_text(header.get("payment_method"), 64, "payment_method"),
        "payment_status": status,
        "notes": _optional_text(header.get("notes")),
    }
    return clean_header, clean_lines


def validate_return_items(return_items: Any) -> list[dict]:
    if not isinstance(return_items, (list, tuple)) or not return_items:
        raise ValidationError("Return items are required")

    items = []
    for i, raw in enumerate(return_items):
        label = f"Return item #{i + 1}"
        if not isinstance(raw, dict):
            raise ValidationError(f"{label} must be an object")
        if raw.get("invoice_line_id") in (None, ""):
            raise ValidationError(f"{label} is missing invoice_line_id")
        items.append({
            "invoice_line_id": coerce_id(f"{label} invoice_line_id", raw["invoice_line_id"]),
            "quantity": _quantity(label, raw.get("quantity")),
        })
    return items
