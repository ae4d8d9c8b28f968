from .stores import Store, User
from .customers import Customer
from .catalog import Product, Variant
from .inventory import InventoryBatch, Inventory
from .sales import Order, OrderItem, HeldOrderLine
from .documents import DocumentSequence
from .expenses import Expense

__all__ = [
    'Store', 'User',
    'Customer',
    'Product', 'Variant',
    'InventoryBatch', 'Inventory',
    'Order', 'OrderItem', 'HeldOrderLine',
    'DocumentSequence',
    'Expense',
]
