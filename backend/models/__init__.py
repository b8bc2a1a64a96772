# backend/models/__init__.py

from .base import db

# --- Model Import Order ---
# Estimate must be registered before Invoice, which references it.

# 1. Foundational Models
from .user import User
from .product import Product
from .sequence import DocumentSequence
from .document import TAX_RATE_PLACES

# 2. Billing Documents
from .estimate import Estimate, ESTIMATE_STATUSES
from .invoice import Invoice, INVOICE_STATUSES

# 3. Dependent Models
from .payment import Payment, PAYMENT_METHODS
from .communication import DocumentCommunication

__all__ = [
    'db',
    'User',
    'Product',
    'DocumentSequence',
    'TAX_RATE_PLACES',
    'Estimate',
    'ESTIMATE_STATUSES',
    'Invoice',
    'INVOICE_STATUSES',
    'Payment',
    'PAYMENT_METHODS',
    'DocumentCommunication',
]
