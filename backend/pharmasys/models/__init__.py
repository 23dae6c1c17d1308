from .auth import User, SessionToken, ROLES
from .security import SecurityEvent
from .inventory import Medicine, Supplier
from .clinical import Patient, Doctor, Prescription, PrescriptionItem
from .sales import Transaction, TransactionItem
from .purchasing import Order, OrderItem, ORDER_STATUSES

__all__ = [
    'User', 'SessionToken', 'ROLES', 'SecurityEvent',
    'Medicine', 'Supplier',
    'Patient', 'Doctor', 'Prescription', 'PrescriptionItem',
    'Transaction', 'TransactionItem',
    'Order', 'OrderItem', 'ORDER_STATUSES',
]
