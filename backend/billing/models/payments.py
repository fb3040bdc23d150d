from __future__ import annotations

from ..extensions import db
from billing.time_utils import to_utc_z


class Payment(db.Model):
    """
    Payment posted against an invoice or a purchase.

    TAGGED TARGET:
    (document_kind, document_id) identifies the document. The kind tag is
    stored explicitly and must match documents.kind; direction follows from
    it (INVOICE -> INCOMING money, PURCHASE -> OUTGOING money).

    APPEND-ONLY:
    Payments are never updated. They are deleted only together with their
    document.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_payments_amount_positive"),
        db.CheckConstraint("document_kind IN ('INVOICE', 'PURCHASE')", name="ck_payments_document_kind"),
        db.Index("ix_payments_document", "document_kind", "document_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_kind = db.Column(db.String(16), nullable=False)
    document_id = db.Column(db.Integer, db.ForeignKey("documents.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    method = db.Column(db.String(64), nullable=False)
    payment_date = db.Column(db.DateTime(timezone=True), nullable=False)
    reference_number = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    document = db.relationship("Document", backref=db.backref("payments", lazy=True, order_by="Payment.id"))

    @property
    def direction(self) -> str:
        return "INCOMING" if self.document_kind == "INVOICE" else "OUTGOING"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_kind": self.document_kind,
            "document_id": self.document_id,
            "direction": self.direction,
            "amount_cents": self.amount_cents,
            "method": self.method,
            "payment_date": to_utc_z(self.payment_date),
            "reference_number": self.reference_number,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
