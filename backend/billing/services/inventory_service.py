# Overview: Inventory adjuster; applies signed stock deltas inside a caller's transaction.

"""
Inventory Invariants (authoritative)

- products.stock_quantity is only changed here, and only with a relative
  UPDATE (stock = stock + delta). No read-modify-write in Python, so two
  transactions adjusting the same product never lose an update.
- Stock movements belong to a document: the adjuster never commits and is
  never called outside a document, payment-free reversal or return.
- Direction conventions:
    INVOICE created   -> -quantity
    PURCHASE created  -> +quantity
    INVOICE deleted   -> +quantity (less units already returned)
    PURCHASE deleted  -> -quantity
    Return processed  -> +quantity
- No floor at zero. A negative result is an oversell; the caller decides
  whether that is a warning or an error.
"""

from __future__ import annotations

from sqlalchemy import update

from ..extensions import db
from ..models import Product
from ..validation import InvalidReferenceError, NotFoundError


def adjust_stock(product_id: int, delta: int) -> int:
    """
    Add delta (may be negative) to a product's stock.

    Returns the resulting stock quantity as seen by this transaction.

    Raises:
        InvalidReferenceError: If the product does not exist
    """
    stmt = (
        update(Product)
        .where(Product.id == product_id)
        .values(stock_quantity=Product.stock_quantity + delta)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        raise InvalidReferenceError(
            f"Invalid product reference: {product_id}",
            details={"product_id": product_id},
        )

    return get_stock(product_id)


def get_stock(product_id: int) -> int:
    """Current stock quantity read straight from the row (bypasses the identity map)."""
    quantity = (
        db.session.query(Product.stock_quantity)
        .filter(Product.id == product_id)
        .scalar()
    )
    if quantity is None:
        raise NotFoundError(f"Product {product_id} not found")
    return int(quantity)
