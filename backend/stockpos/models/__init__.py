from .inventory import Product, StockMovement
from .sales import Sale, SaleItem, PaymentTransaction
from .documents import InvoiceSequence

__all__ = [
    'Product', 'StockMovement',
    'Sale', 'SaleItem', 'PaymentTransaction',
    'InvoiceSequence',
]
