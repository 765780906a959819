from .catalog import Category, Location, Product
from .ledger import Transaction, TransactionItem, Movement, PhysicalCountResult
from .audit import AuditLog

__all__ = [
    'Category', 'Location', 'Product',
    'Transaction', 'TransactionItem', 'Movement', 'PhysicalCountResult',
    'AuditLog',
]
