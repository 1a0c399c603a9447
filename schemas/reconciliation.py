# schemas/reconciliation.py
from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field

from .invoice import InvoiceResponse
from .payment import PaymentResponse


class LinkPaymentRequest(BaseModel):
     payment_id: int = Field(..., gt=0)
     invoice_id: int = Field(..., gt=0)


class LinkPaymentResponse(BaseModel):
     payment: PaymentResponse
     invoice: InvoiceResponse
     total_paid: Decimal
     invoice_amount: Decimal
     is_fully_paid: bool


class AutoReconcileResponse(BaseModel):
     reconciled: int
     invoices_paid: int
     failed: int = 0
     skipped: bool = False


class OverdueSweepRequest(BaseModel):
     now: Optional[datetime] = Field(None, description="Evaluation instant; defaults to the current time")


class OverdueSweepResponse(BaseModel):
     updated: int
     skipped: bool = False
