from .auth import User, SessionToken, LoginAttempt
from .catalog import Product, StockEntry
from .payments import PaymentMethod, CompanyPaymentAccount
from .orders import Order, OrderItem, Refund, OrderEvent

__all__ = [
    'User', 'SessionToken', 'LoginAttempt',
    'Product', 'StockEntry',
    'PaymentMethod', 'CompanyPaymentAccount',
    'Order', 'OrderItem', 'Refund', 'OrderEvent',
]
