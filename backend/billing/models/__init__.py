from .parties import Customer, Supplier
from .inventory import Product, ProductBatch
from .documents import Document, LineItem, DocumentSequence
from .payments import Payment
from .returns import SalesReturn, SalesReturnLine

__all__ = [
    'Customer', 'Supplier',
    'Product', 'ProductBatch',
    'Document', 'LineItem', 'DocumentSequence',
    'Payment',
    'SalesReturn', 'SalesReturnLine',
]
