from .invoice import (
     InvoiceCreate,
     InvoiceResponse,
     InvoiceListResponse,
     InvoiceStatusEnum,
     LineItemCreate,
     MarkPaidRequest,
)
from .payment import PaymentCreate, PaymentResponse, PaymentListResponse, PaymentStatusEnum

__all__ = [
     "InvoiceCreate",
     "InvoiceResponse",
     "InvoiceListResponse",
     "InvoiceStatusEnum",
     "LineItemCreate",
     "MarkPaidRequest",
     "PaymentCreate",
     "PaymentResponse",
     "PaymentListResponse",
     "PaymentStatusEnum",
]
