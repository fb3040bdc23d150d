from __future__ import annotations

from ..extensions import db
from billing.time_utils import to_utc_z, to_iso_date


class Product(db.Model):
    """
    Product master data.

    STOCK INVARIANT:
    stock_quantity is a running integer owned by the inventory adjuster.
    It is only ever changed with a relative UPDATE (stock = stock + delta)
    inside the transaction of the document that caused the movement.
    It may go negative (oversell); policy is decided by the caller.

    No version_id here: relative updates bypass the ORM on purpose and an
    optimistic version column would turn every concurrent sale of the same
    product into a StaleDataError.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_products_sku"),
        db.Index("ix_products_name", "name"),
        db.Index("ix_products_active", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # Authoritative storage in cents (frontend may only format for display)
    cost_price_cents = db.Column(db.Integer, nullable=True)
    selling_price_cents = db.Column(db.Integer, nullable=True)

    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    low_stock_threshold = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "cost_price_cents": self.cost_price_cents,
            "selling_price_cents": self.selling_price_cents,
            "stock_quantity": self.stock_quantity,
            "low_stock_threshold": self.low_stock_threshold,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ProductBatch(db.Model):
    """
    Batch / expiry tracking for received stock.

    Created by purchase lines that carry both batch_number and expiry_date;
    removed again when the originating purchase is deleted.
    """
    __tablename__ = "product_batches"
    __table_args__ = (
        db.Index("ix_product_batches_product_expiry", "product_id", "expiry_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    line_item_id = db.Column(db.Integer, db.ForeignKey("line_items.id"), nullable=True, index=True)

    batch_number = db.Column(db.String(64), nullable=False)
    expiry_date = db.Column(db.Date, nullable=False)
    quantity = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("batches", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "line_item_id": self.line_item_id,
            "batch_number": self.batch_number,
            "expiry_date": to_iso_date(self.expiry_date),
            "quantity": self.quantity,
            "created_at": to_utc_z(self.created_at),
        }
