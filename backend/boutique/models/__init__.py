from .auth import User, SessionToken
from .catalog import Product, Supplier
from .customers import Client, LayawayOrder
from .inventory import StockMovement, InventoryCount, InventoryCountItem
from .sales import Sale, SaleItem, Payment, Installment
from .returns import Return, ReturnItem, Credit, CreditUsage
from .settings import StoreSettings

__all__ = [
    'User', 'SessionToken',
    'Product', 'Supplier',
    'Client', 'LayawayOrder',
    'StockMovement', 'InventoryCount', 'InventoryCountItem',
    'Sale', 'SaleItem', 'Payment', 'Installment',
    'Return', 'ReturnItem', 'Credit', 'CreditUsage',
    'StoreSettings',
]
