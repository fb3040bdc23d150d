from __future__ import annotations

from ..extensions import db
from billing.time_utils import to_utc_z, to_iso_date


class Document(db.Model):
    """
    Sales invoice or purchase header.

    WHY one table: both kinds share numbering, totals, payment tracking and
    reversal rules; only the counterparty and the direction of the stock
    movement differ (INVOICE decreases stock, PURCHASE increases it).

    OWNERSHIP:
    - Header, lines and totals are written once by the document engine.
    - payment_status is owned by the payment ledger afterwards.
    - Totals are derived from lines at creation and never edited.
    """
    __tablename__ = "documents"
    __table_args__ = (
        db.UniqueConstraint("number", name="uq_documents_number"),
        db.CheckConstraint(
            "(kind = 'INVOICE' AND customer_id IS NOT NULL AND supplier_id IS NULL) OR "
            "(kind = 'PURCHASE' AND supplier_id IS NOT NULL AND customer_id IS NULL)",
            name="ck_documents_party_matches_kind",
        ),
        db.Index("ix_documents_kind_date", "kind", "document_date"),
        db.Index("ix_documents_kind_status", "kind", "payment_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    kind = db.Column(db.String(16), nullable=False, index=True)  # INVOICE, PURCHASE

    # Human-readable document number (e.g., "INV-20260115-0001")
    number = db.Column(db.String(64), nullable=False)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)

    document_date = db.Column(db.Date, nullable=False)
    due_date = db.Column(db.Date, nullable=True)

    # Totals (all amounts in cents)
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    shipping_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    payment_method = db.Column(db.String(64), nullable=True)
    payment_status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)  # PENDING, PARTIAL, PAID, CANCELLED
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("invoices", lazy=True))
    supplier = db.relationship("Supplier", backref=db.backref("purchases", lazy=True))
    lines = db.relationship("LineItem", back_populates="document", lazy=True, order_by="LineItem.id")
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def party_id(self) -> int | None:
        return self.customer_id if self.kind == "INVOICE" else self.supplier_id

    def to_dict(self, include_lines: bool = False) -> dict:
        data = {
            "id": self.id,
            "kind": self.kind,
            "number": self.number,
            "party_id": self.party_id,
            "customer_id": self.customer_id,
            "supplier_id": self.supplier_id,
            "document_date": to_iso_date(self.document_date),
            "due_date": to_iso_date(self.due_date),
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "tax_cents": self.tax_cents,
            "shipping_cents": self.shipping_cents,
            "total_cents": self.total_cents,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class LineItem(db.Model):
    """
    Product/quantity/price row on a document.

    quantity is always positive; the sign of the stock movement comes from
    the owning document's kind.
    """
    __tablename__ = "line_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_line_items_quantity_positive"),
        db.CheckConstraint("unit_price_cents >= 0", name="ck_line_items_price_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_id = db.Column(db.Integer, db.ForeignKey("documents.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    # Snapshot of the product name at document time
    product_name = db.Column(db.String(255), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    discount_bps = db.Column(db.Integer, nullable=False, default=0)
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)

    # Net of discount, before tax
    total_price_cents = db.Column(db.Integer, nullable=False)

    # Purchase only
    batch_number = db.Column(db.String(64), nullable=True)
    expiry_date = db.Column(db.Date, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    document = db.relationship("Document", back_populates="lines")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_id": self.document_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "discount_bps": self.discount_bps,
            "tax_rate_bps": self.tax_rate_bps,
            "tax_cents": self.tax_cents,
            "total_price_cents": self.total_price_cents,
            "batch_number": self.batch_number,
            "expiry_date": to_iso_date(self.expiry_date),
            "created_at": to_utc_z(self.created_at),
        }


class DocumentSequence(db.Model):
    """
    Atomic per-day document counters.

    WHY: Reading the highest existing number and adding one lets two
    concurrent creations pick the same number. A single counter row per
    (date_key, document_kind), incremented with a relative UPDATE inside the
    document's own transaction, serializes allocation on that row.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("date_key", "document_kind", name="uq_doc_sequences_day_kind"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    date_key = db.Column(db.String(8), nullable=False)  # YYYYMMDD
    document_kind = db.Column(db.String(16), nullable=False)
    last_number = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "date_key": self.date_key,
            "document_kind": self.document_kind,
            "last_number": self.last_number,
            "updated_at": to_utc_z(self.updated_at),
        }
