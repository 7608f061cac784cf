from .catalog import Product, Variant
from .inventory import InventoryTransaction, TRANSACTION_KINDS
from .orders import Order, OrderItem, ORDER_STATUSES
from .customers import Customer, PointsTransaction
from .auth import AdminUser, AdminSession

__all__ = [
    'Product', 'Variant',
    'InventoryTransaction', 'TRANSACTION_KINDS',
    'Order', 'OrderItem', 'ORDER_STATUSES',
    'Customer', 'PointsTransaction',
    'AdminUser', 'AdminSession',
]
