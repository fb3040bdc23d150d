# Overview: Sequence allocator for human-readable document numbers.

"""
Document numbering.

Format: {PREFIX}-{YYYYMMDD}-{NNNN}
- PREFIX is INV for invoices, PUR for purchases
- YYYYMMDD is the document's calendar day
- NNNN is the per-day ordinal, zero padded (grows past 9999 if needed)

Invariants:
- Unique and increasing per (day, kind). Gaps are allowed (a rolled back
  document gives its ordinal back to nobody).
- Allocation happens inside the caller's transaction, on a counter row,
  with a relative UPDATE. Two writers on the same day serialize on that row
  instead of both reading the same "current max".
"""

from __future__ import annotations

import re
import threading
import time
from datetime import date

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

from ..extensions import db
from ..models import Document, DocumentSequence
from ..validation import DOCUMENT_KIND_INVOICE, DOCUMENT_KIND_PURCHASE, normalize_kind
from billing.time_utils import date_key as make_date_key, today


DOCUMENT_PREFIXES = {
    DOCUMENT_KIND_INVOICE: "INV",
    DOCUMENT_KIND_PURCHASE: "PUR",
}

_NUMBER_RE = re.compile(r"^(?P<prefix>[A-Z]+)-(?P<date_key>\d{8})-(?P<ordinal>\d+)$")

_fallback_lock = threading.Lock()
_last_fallback_ms = 0


def format_document_number(prefix: str, date_key: str, ordinal: int, pad: int = 4) -> str:
    return f"{prefix}-{date_key}-{ordinal:0{pad}d}"


def parse_document_number(number: str) -> tuple[str, str, int]:
    """Split a document number into (prefix, date_key, ordinal)."""
    match = _NUMBER_RE.match(number or "")
    if not match:
        raise ValueError(f"Unrecognized document number: {number!r}")
    return match.group("prefix"), match.group("date_key"), int(match.group("ordinal"))


def next_document_number(kind: str, on_date: date | None = None) -> str:
    """
    Allocate the next number for a document kind and day.

    Must be called inside the transaction that inserts the document so that
    a rollback also releases the counter increment.

    If the counter cannot be read or written for a reason other than lock
    contention, a number is synthesized from a monotonic millisecond clock
    rather than aborting document creation. documents.number stays unique,
    so a collision there surfaces as a ConflictError instead of a duplicate.
    """
    kind = normalize_kind(kind)
    prefix = DOCUMENT_PREFIXES[kind]
    key = make_date_key(on_date or today())
    pad = current_app.config.get("DOCUMENT_NUMBER_PAD", 4)

    try:
        ordinal = _increment_counter(kind, prefix, key)
    except OperationalError:
        # Lock contention: let run_with_retry restart the whole operation
        raise
    except (SQLAlchemyError, ValueError) as exc:
        current_app.logger.warning(
            "Document counter unavailable for %s %s, using fallback number: %s", kind, key, exc
        )
        return _fallback_number(prefix, key, pad)

    return format_document_number(prefix, key, ordinal, pad)


def _increment_counter(kind: str, prefix: str, key: str) -> int:
    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.date_key == key,
            DocumentSequence.document_kind == kind,
        )
        .values(last_number=DocumentSequence.last_number + 1)
    )

    with db.session.begin_nested():
        result = db.session.execute(stmt)
        if not result.rowcount:
            seed = _highest_existing_ordinal(prefix, key)
            try:
                with db.session.begin_nested():
                    db.session.add(DocumentSequence(date_key=key, document_kind=kind, last_number=seed + 1))
                    db.session.flush()
                return seed + 1
            except IntegrityError:
                # Another writer created today's row first
                result = db.session.execute(stmt)
                if not result.rowcount:
                    raise

        current = (
            db.session.query(DocumentSequence.last_number)
            .filter_by(date_key=key, document_kind=kind)
            .scalar()
        )
    return int(current)


def _highest_existing_ordinal(prefix: str, key: str) -> int:
    """
    Highest ordinal already used for the day, for days that have documents
    but no counter row yet (e.g. data loaded before counters existed).
    """
    pattern = f"{prefix}-{key}-%"
    numbers = db.session.query(Document.number).filter(Document.number.like(pattern)).all()
    highest = 0
    for (number,) in numbers:
        try:
            _, _, ordinal = parse_document_number(number)
        except ValueError:
            continue
        highest = max(highest, ordinal)
    return highest


def _fallback_number(prefix: str, key: str, pad: int) -> str:
    global _last_fallback_ms
    with _fallback_lock:
        now_ms = int(time.time() * 1000)
        _last_fallback_ms = max(now_ms, _last_fallback_ms + 1)
        suffix = _last_fallback_ms % (10 ** pad)
    return format_document_number(prefix, key, suffix, pad)


def get_sequences(on_date: date | None = None) -> list[DocumentSequence]:
    """Counter rows, optionally for one day only."""
    query = db.session.query(DocumentSequence)
    if on_date is not None:
        query = query.filter_by(date_key=make_date_key(on_date))
    return query.order_by(DocumentSequence.date_key.desc(), DocumentSequence.document_kind).all()


def peek_next_number(kind: str, on_date: date | None = None) -> str:
    """The number the next document would get. Allocates nothing."""
    kind = normalize_kind(kind)
    prefix = DOCUMENT_PREFIXES[kind]
    key = make_date_key(on_date or today())
    pad = current_app.config.get("DOCUMENT_NUMBER_PAD", 4)

    current = (
        db.session.query(DocumentSequence.last_number)
        .filter_by(date_key=key, document_kind=kind)
        .scalar()
    )
    if current is None:
        current = _highest_existing_ordinal(prefix, key)
    return format_document_number(prefix, key, int(current) + 1, pad)
