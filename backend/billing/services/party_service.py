# Overview: Party lookups consumed by the document engine (customers and suppliers).

from __future__ import annotations

from ..extensions import db
from ..models import Customer, Supplier
from ..validation import DOCUMENT_KIND_INVOICE, NotFoundError


def get_customer_by_id(customer_id: int) -> Customer | None:
    return db.session.get(Customer, customer_id)


def get_supplier_by_id(supplier_id: int) -> Supplier | None:
    return db.session.get(Supplier, supplier_id)


def require_party(kind: str, party_id: int) -> Customer | Supplier:
    """
    Resolve the counterparty for a document kind.

    Invoices are issued to customers, purchases are received from suppliers.

    Raises:
        NotFoundError: If the party does not exist
    """
    if kind == DOCUMENT_KIND_INVOICE:
        party = get_customer_by_id(party_id)
        label = "Customer"
    else:
        party = get_supplier_by_id(party_id)
        label = "Supplier"

    if party is None:
        raise NotFoundError(f"{label} {party_id} not found", details={"party_id": party_id})
    return party
