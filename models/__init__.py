# models/__init__.py
from .base import Base
from .tenant import Tenant
from .sequence_counter import SequenceCounter
from .invoice import Invoice, InvoiceLineItem, InvoiceStatus
from .payment import Payment, PaymentStatus

__all__ = [
     "Base",
     "Tenant",
     "SequenceCounter",
     "Invoice",
     "InvoiceLineItem",
     "InvoiceStatus",
     "Payment",
     "PaymentStatus",
]
