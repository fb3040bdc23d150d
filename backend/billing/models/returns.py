from __future__ import annotations

from ..extensions import db
from billing.time_utils import to_utc_z


class SalesReturn(db.Model):
    """
    Goods returned against an invoice.

    A return is its own ledger entry: it restores stock for the returned
    units but never edits the invoice's totals, lines or payment status.
    """
    __tablename__ = "sales_returns"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("documents.id"), nullable=False, index=True)

    return_date = db.Column(db.DateTime(timezone=True), nullable=False)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    reason = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(16), nullable=False, default="PROCESSED")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    invoice = db.relationship("Document", backref=db.backref("returns", lazy=True))
    lines = db.relationship("SalesReturnLine", back_populates="sales_return", lazy=True, order_by="SalesReturnLine.id")

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "return_date": to_utc_z(self.return_date),
            "total_cents": self.total_cents,
            "reason": self.reason,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class SalesReturnLine(db.Model):
    """Returned units of one invoice line."""
    __tablename__ = "sales_return_lines"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sales_return_lines_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    return_id = db.Column(db.Integer, db.ForeignKey("sales_returns.id"), nullable=False, index=True)
    invoice_line_id = db.Column(db.Integer, db.ForeignKey("line_items.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_price_cents = db.Column(db.Integer, nullable=False)

    sales_return = db.relationship("SalesReturn", back_populates="lines")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "return_id": self.return_id,
            "invoice_line_id": self.invoice_line_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_price_cents": self.total_price_cents,
        }
