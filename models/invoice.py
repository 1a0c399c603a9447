import enum
from sqlalchemy import (
     Column, Integer, String, Numeric, Date, DateTime, ForeignKey, Enum, JSON, Text,
     UniqueConstraint, func,
)
from sqlalchemy.orm import relationship
from .base import Base, TimestampMixin


class InvoiceStatus(str, enum.Enum):
     """Invoice lifecycle: draft -> sent -> {overdue, paid, canceled}; overdue -> paid."""
     DRAFT = "draft"
     SENT = "sent"
     OVERDUE = "overdue"
     PAID = "paid"
     CANCELED = "canceled"


# Statuses that still owe money and may receive payments.
UNPAID_STATUSES = (InvoiceStatus.SENT, InvoiceStatus.OVERDUE)
TERMINAL_STATUSES = (InvoiceStatus.PAID, InvoiceStatus.CANCELED)


def _enum_values(enum_cls):
     return [member.value for member in enum_cls]


class Invoice(TimestampMixin, Base):
     """
     Invoice model - a billing obligation issued to a tenant for a fixed total.

     Money columns are fixed-point decimals in the invoice's single currency.
     ``total_amount == subtotal + tax_amount - discount_amount`` at creation.
     """
     __tablename__ = "invoices"
     __table_args__ = (
          UniqueConstraint("company_id", "invoice_number", name="uq_invoices_company_number"),
     )

     id = Column(Integer, primary_key=True, autoincrement=True)
     company_id = Column(Integer, nullable=False, index=True)
     invoice_number = Column(String(32), nullable=False)

     # Parties
     issued_by = Column(Integer, nullable=False)
     issued_to = Column(
          Integer,
          ForeignKey("tenants.id"),
          nullable=False,
          index=True
     )
     property_id = Column(Integer, nullable=True)
     unit_id = Column(Integer, nullable=True)

     # Invoice details
     title = Column(String(255), nullable=True)
     description = Column(Text, nullable=True)
     invoice_type = Column(String(50), nullable=False, default="monthly_rent")

     # Money
     subtotal = Column(Numeric(12, 2), nullable=False)
     tax_amount = Column(Numeric(12, 2), nullable=False, default=0)
     discount_amount = Column(Numeric(12, 2), nullable=False, default=0)
     total_amount = Column(Numeric(12, 2), nullable=False)
     currency = Column(String(3), nullable=False)

     # Dates
     issue_date = Column(Date, nullable=False)
     due_date = Column(Date, nullable=False, index=True)
     paid_date = Column(DateTime, nullable=True)

     status = Column(
          Enum(
               InvoiceStatus,
               name="invoice_status",
               create_constraint=True,
               values_callable=_enum_values,
          ),
          default=InvoiceStatus.DRAFT,
          nullable=False,
          index=True
     )

     # Settlement summary, filled in when the invoice is marked paid
     payment_method = Column(String(50), nullable=True)
     payment_reference = Column(String(100), nullable=True)

     # Relationships
     tenant = relationship("Tenant", back_populates="invoices")
     line_items = relationship(
          "InvoiceLineItem",
          back_populates="invoice",
          cascade="all, delete-orphan",
          order_by="InvoiceLineItem.position",
     )
     payments = relationship("Payment", back_populates="invoice", passive_deletes=True)

     def __repr__(self):
          return (
               f"<Invoice(id={self.id}, number='{self.invoice_number}', "
               f"total={self.total_amount}, status='{self.status.value}', due_date={self.due_date})>"
          )

     @property
     def is_unpaid(self) -> bool:
          return self.status in UNPAID_STATUSES

     def is_past_due(self, today, grace_days: int = 0) -> bool:
          """Check if a sent invoice has run past its due date plus grace."""
          from datetime import timedelta
          return (
               self.status == InvoiceStatus.SENT
               and self.due_date + timedelta(days=grace_days) < today
          )


class InvoiceLineItem(Base):
     """
     One billed line. Line totals are advisory detail; the ledger settles
     against ``Invoice.total_amount`` only.
     """
     __tablename__ = "invoice_line_items"

     id = Column(Integer, primary_key=True, autoincrement=True)
     invoice_id = Column(
          Integer,
          ForeignKey("invoices.id", ondelete="CASCADE"),
          nullable=False,
          index=True
     )
     position = Column(Integer, nullable=False, default=0)
     description = Column(String(255), nullable=False)
     quantity = Column(Numeric(10, 2), nullable=False, default=1)
     unit_price = Column(Numeric(12, 2), nullable=False)
     total_price = Column(Numeric(12, 2), nullable=False)
     # "metadata" is reserved on declarative classes
     item_metadata = Column("metadata", JSON, nullable=False, default=dict)

     created_at = Column(DateTime, server_default=func.now(), nullable=False)

     invoice = relationship("Invoice", back_populates="line_items")

     def __repr__(self):
          return f"<InvoiceLineItem(id={self.id}, description='{self.description}', total={self.total_price})>"
