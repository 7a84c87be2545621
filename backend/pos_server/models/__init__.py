from .locations import Location
from .auth import User, SessionToken, USER_ROLES
from .catalog import Category, Product, TaxRate, InventoryLog
from .customers import Customer
from .shifts import Shift
from .sales import Sale, SaleItem, Refund, PAYMENT_METHODS, SALE_STATUSES
from .audit import ActivityLog

__all__ = [
    'Location',
    'User', 'SessionToken', 'USER_ROLES',
    'Category', 'Product', 'TaxRate', 'InventoryLog',
    'Customer',
    'Shift',
    'Sale', 'SaleItem', 'Refund', 'PAYMENT_METHODS', 'SALE_STATUSES',
    'ActivityLog',
]
