# schemas/invoice.py
"""
Pydantic schemas for Invoice API request/response validation.
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, Field, ConfigDict
from enum import Enum


class InvoiceStatusEnum(str, Enum):
     """Invoice lifecycle status options."""
     DRAFT = "draft"
     SENT = "sent"
     OVERDUE = "overdue"
     PAID = "paid"
     CANCELED = "canceled"


# ---------------------------------------------------------------------------
# Line item metadata: tagged union over the known kinds
# ---------------------------------------------------------------------------

class RentMetadata(BaseModel):
     type: Literal["rent"] = "rent"


class UtilityMetadata(BaseModel):
     type: Literal["utility"] = "utility"
     utility_type: str = Field(..., min_length=1, description="e.g. water, electricity, gas")


class OtherMetadata(BaseModel):
     type: Literal["other"] = "other"
     attributes: Dict[str, str] = Field(default_factory=dict)


LineItemMetadata = Annotated[
     Union[RentMetadata, UtilityMetadata, OtherMetadata],
     Field(discriminator="type"),
]


class LineItemCreate(BaseModel):
     description: str = Field(..., min_length=1, max_length=255)
     quantity: Decimal = Field(default=Decimal("1"), gt=0, max_digits=10, decimal_places=2)
     unit_price: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
     metadata: LineItemMetadata = Field(default_factory=OtherMetadata)


class UtilityBill(BaseModel):
     """Convenience form used by the rent-and-utilities invoice screen."""
     type: str = Field(..., min_length=1)
     name: str = Field(..., min_length=1, max_length=255)
     amount: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
     is_included: bool = True


class InvoiceCreate(BaseModel):
     """Schema for creating a new invoice."""
     tenant_id: int = Field(..., gt=0, description="Tenant being billed (must exist in the company)")
     property_id: Optional[int] = None
     unit_id: Optional[int] = None
     title: Optional[str] = Field(None, max_length=255)
     description: Optional[str] = None
     invoice_type: str = Field(default="monthly_rent", max_length=50)
     currency: Optional[str] = Field(None, min_length=3, max_length=3)

     line_items: List[LineItemCreate] = Field(default_factory=list)
     rent_amount: Optional[Decimal] = Field(None, ge=0, max_digits=12, decimal_places=2)
     utility_bills: List[UtilityBill] = Field(default_factory=list)

     subtotal: Optional[Decimal] = Field(None, ge=0, max_digits=12, decimal_places=2)
     tax_amount: Decimal = Field(default=Decimal("0"), ge=0, max_digits=12, decimal_places=2)
     discount_amount: Decimal = Field(default=Decimal("0"), ge=0, max_digits=12, decimal_places=2)

     issue_date: Optional[date] = None
     due_date: Optional[date] = None
     send: bool = Field(default=False, description="Transition to sent immediately")

     model_config = ConfigDict(
          json_schema_extra={
               "example": {
                    "tenant_id": 1,
                    "rent_amount": 5000.00,
                    "utility_bills": [
                         {"type": "water", "name": "Water", "amount": 300.00, "is_included": True}
                    ],
                    "due_date": "2026-11-05",
                    "send": True
               }
          }
     )


class MarkPaidRequest(BaseModel):
     payment_method: str = Field(default="manual", max_length=50)
     payment_reference: Optional[str] = Field(None, max_length=100)
     paid_date: Optional[datetime] = None


class LineItemResponse(BaseModel):
     id: int
     description: str
     quantity: Decimal
     unit_price: Decimal
     total_price: Decimal
     metadata: LineItemMetadata

     model_config = ConfigDict(from_attributes=True)


class InvoiceResponse(BaseModel):
     """Schema for invoice response."""
     id: int
     company_id: int
     invoice_number: str
     issued_by: int
     issued_to: int
     property_id: Optional[int] = None
     unit_id: Optional[int] = None
     title: Optional[str] = None
     description: Optional[str] = None
     invoice_type: str
     subtotal: Decimal
     tax_amount: Decimal
     discount_amount: Decimal
     total_amount: Decimal
     currency: str
     issue_date: date
     due_date: date
     paid_date: Optional[datetime] = None
     status: InvoiceStatusEnum
     payment_method: Optional[str] = None
     payment_reference: Optional[str] = None
     line_items: List[LineItemResponse] = Field(default_factory=list)
     created_at: Optional[datetime] = None

     # Optional related data
     tenant_name: Optional[str] = None

     model_config = ConfigDict(
          from_attributes=True,
          json_schema_extra={
               "example": {
                    "id": 1,
                    "company_id": 7,
                    "invoice_number": "INV-000123",
                    "issued_by": 3,
                    "issued_to": 1,
                    "invoice_type": "monthly_rent",
                    "subtotal": 5300.00,
                    "tax_amount": 0,
                    "discount_amount": 0,
                    "total_amount": 5300.00,
                    "currency": "KES",
                    "issue_date": "2026-10-18",
                    "due_date": "2026-11-05",
                    "status": "sent",
                    "tenant_name": "John Doe"
               }
          }
     )


class InvoiceListResponse(BaseModel):
     """Schema for paginated invoice list response."""
     invoices: List[InvoiceResponse]
     total: int
     page: int = 1
     page_size: int = 50


class InvoiceBalanceResponse(BaseModel):
     invoice_id: int
     invoice_number: str
     status: InvoiceStatusEnum
     total_amount: Decimal
     total_paid: Decimal
     outstanding: Decimal
     is_fully_paid: bool


class TenantBalanceResponse(BaseModel):
     tenant_id: int
     tenant_name: str
     total_owed: Decimal
     sent_amount: Decimal
     overdue_amount: Decimal
     paid_amount: Decimal
     total_invoices: int
     sent_count: int
     overdue_count: int
     paid_count: int
