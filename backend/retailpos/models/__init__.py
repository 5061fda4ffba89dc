from .tenancy import Tenant, DocumentSequence, SubscriptionPlan
from .auth import User, SessionToken
from .security import SecurityEvent
from .inventory import Product, ProductUnitConversion, ProductUnitPrice, StockMovement, StockChange
from .sales import Sale, SaleItem, SalePayment
from .customers import Customer
from .branches import Branch

__all__ = [
    'Tenant', 'DocumentSequence', 'SubscriptionPlan',
    'User', 'SessionToken', 'SecurityEvent',
    'Product', 'ProductUnitConversion', 'ProductUnitPrice', 'StockMovement', 'StockChange',
    'Sale', 'SaleItem', 'SalePayment',
    'Customer',
    'Branch',
]
