from .auth import User, SessionToken, USER_ROLES
from .inventory import (
    Product,
    StockTransaction,
    PRODUCT_CATEGORIES,
    STOCK_UNITS,
    TRANSACTION_TYPES,
    TX_STOCK_IN,
    TX_STOCK_OUT,
    TX_ADJUSTMENT,
    TX_TRANSFER,
)
from .cash import CashWithdrawal
from .audit import AuditLog, AUDIT_ACTIONS, AUDIT_RESOURCE_TYPES

__all__ = [
    'User', 'SessionToken', 'USER_ROLES',
    'Product', 'StockTransaction',
    'PRODUCT_CATEGORIES', 'STOCK_UNITS', 'TRANSACTION_TYPES',
    'TX_STOCK_IN', 'TX_STOCK_OUT', 'TX_ADJUSTMENT', 'TX_TRANSFER',
    'CashWithdrawal',
    'AuditLog', 'AUDIT_ACTIONS', 'AUDIT_RESOURCE_TYPES',
]
