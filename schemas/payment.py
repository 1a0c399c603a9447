# schemas/payment.py
"""
Pydantic schemas for the payment API.
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field, ConfigDict


class PaymentStatusEnum(str, Enum):
     PENDING = "pending"
     APPROVED = "approved"
     COMPLETED = "completed"
     REJECTED = "rejected"


class PaymentCreate(BaseModel):
     """Payment recorded by staff or produced by a verified gateway callback."""

     tenant_id: int = Field(..., gt=0)
     amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
     currency: Optional[str] = Field(None, min_length=3, max_length=3)
     payment_method: str = Field(..., min_length=1, max_length=50)
     payment_type: str = Field(default="rent", max_length=50)
     payment_period: Optional[str] = Field(None, max_length=100)
     payment_date: Optional[datetime] = None
     property_id: Optional[int] = None
     unit_id: Optional[int] = None
     lease_id: Optional[int] = None
     invoice_id: Optional[int] = Field(None, gt=0, description="Explicit invoice to settle")
     transaction_id: Optional[str] = Field(None, min_length=1, max_length=100)
     reference_number: Optional[str] = Field(None, min_length=1, max_length=100)
     received_from: Optional[str] = Field(None, max_length=255)
     notes: Optional[str] = None
     status: PaymentStatusEnum = Field(
          default=PaymentStatusEnum.PENDING,
          description="pending for manual entry, completed for verified gateway callbacks",
     )

     model_config = ConfigDict(
          json_schema_extra={
               "example": {
                    "tenant_id": 1,
                    "amount": 5300.00,
                    "payment_method": "mpesa",
                    "payment_type": "rent",
                    "payment_period": "November 2026",
                    "transaction_id": "QJK3X8Y2ZP",
               }
          }
     )


class PaymentDecision(BaseModel):
     """Body for approve / reject."""
     notes: Optional[str] = None


class PaymentResponse(BaseModel):
     id: int
     company_id: int
     receipt_number: str
     transaction_id: Optional[str] = None
     reference_number: Optional[str] = None
     tenant_id: int
     property_id: Optional[int] = None
     unit_id: Optional[int] = None
     lease_id: Optional[int] = None
     invoice_id: Optional[int] = None
     amount: Decimal
     currency: str
     payment_method: str
     payment_type: str
     payment_period: Optional[str] = None
     payment_date: datetime
     status: PaymentStatusEnum
     processed_by: Optional[int] = None
     processed_at: Optional[datetime] = None
     approval_notes: Optional[str] = None

     model_config = ConfigDict(from_attributes=True)


class PaymentListResponse(BaseModel):
     payments: List[PaymentResponse]
     total: int
     page: int = 1
     page_size: int = 50
