# Overview: Transaction helpers shared by every ledger write path.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import ConflictError, InvalidReferenceError, ValidationError


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write() covers it there.
    """
    return query.with_for_update()


def begin_write() -> None:
    """
    Open the write transaction up front on SQLite.

    BEGIN IMMEDIATE takes the database write lock before the first read so
    read-validate-write sequences cannot interleave between connections.
    Other dialects rely on lock_for_update and relative updates.
    """
    if db.engine.dialect.name == "sqlite":
        db.session.execute(text("BEGIN IMMEDIATE"))


def translate_integrity_error(exc: IntegrityError) -> ValidationError:
    """Map a store constraint violation onto the domain error taxonomy."""
    msg = str(exc.orig).lower() if exc.orig is not None else str(exc).lower()
    if "foreign key" in msg:
        return InvalidReferenceError(
            "Invalid customer/supplier or product reference",
            details={"constraint": "foreign_key"},
        )
    if "unique" in msg or "duplicate" in msg:
        return ConflictError(
            "Duplicate value violates a uniqueness constraint",
            details={"constraint": "unique"},
        )
    return ValidationError(
        "Value violates a data constraint",
        details={"constraint": "check"},
    )


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation as one unit of work.

    - OperationalError (deadlocks, locks) and StaleDataError (optimistic
      locking conflicts) roll back and retry with exponential backoff.
    - IntegrityError rolls back and is re-raised as a domain error.
    - Anything else rolls back and propagates unchanged.

    The session is never left holding partial writes after a failure.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning(
                "Retrying after concurrency failure (attempt %s/%s): %s",
                attempt + 1, attempts, exc.__class__.__name__,
            )
            time.sleep(backoff_base * (2 ** attempt))
        except IntegrityError as exc:
            db.session.rollback()
            raise translate_integrity_error(exc) from exc
        except Exception:
            db.session.rollback()
            raise
    if last_exc:
        raise last_exc
