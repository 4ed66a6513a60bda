from .auth import User, SessionToken
from .security import SecurityEvent
from .inventory import Product, StockMovement
from .sales import SalesOrder, SalesOrderLine, CancellationRequest
from .stock_in import StockInOrder, StockInLine
from .documents import DocumentSequence

__all__ = [
    'User', 'SessionToken', 'SecurityEvent',
    'Product', 'StockMovement',
    'SalesOrder', 'SalesOrderLine', 'CancellationRequest',
    'StockInOrder', 'StockInLine',
    'DocumentSequence',
]
