from .tenancy import Organization
from .auth import User, SessionToken
from .catalog import Product, ManufacturerProduct, ClientProduct
from .requests import PurchaseRequest
from .orders import Order, OrderLine, OrderSequence
from .inventory import InventoryMovement
from .notifications import Notification

__all__ = [
    'Organization',
    'User', 'SessionToken',
    'Product', 'ManufacturerProduct', 'ClientProduct',
    'PurchaseRequest',
    'Order', 'OrderLine', 'OrderSequence',
    'InventoryMovement',
    'Notification',
]
