"""
Payment model - a recorded receipt of money from a tenant.

A payment is linked to at most one invoice (``invoice_id``); once set, the
link is never re-pointed. Rejected payments are terminal and take no part in
reconciliation.
"""
import enum
from sqlalchemy import (
     Column, Integer, String, Numeric, DateTime, ForeignKey, Enum, Text, Index,
     UniqueConstraint, text,
)
from sqlalchemy.orm import relationship
from .base import Base, TimestampMixin


class PaymentStatus(str, enum.Enum):
     """Payment lifecycle: pending -> {approved, rejected}; approved -> completed."""
     PENDING = "pending"
     APPROVED = "approved"
     COMPLETED = "completed"
     REJECTED = "rejected"


# Statuses whose amounts count towards an invoice's paid total.
SETTLED_STATUSES = (PaymentStatus.APPROVED, PaymentStatus.COMPLETED)


class Payment(TimestampMixin, Base):
     __tablename__ = "payments"
     __table_args__ = (
          UniqueConstraint("company_id", "receipt_number", name="uq_payments_company_receipt"),
          # Filtered so that many payments may omit the external reference.
          Index(
               "uq_payments_company_transaction_id",
               "company_id", "transaction_id",
               unique=True,
               postgresql_where=text("transaction_id IS NOT NULL"),
               sqlite_where=text("transaction_id IS NOT NULL"),
               mssql_where=text("transaction_id IS NOT NULL"),
          ),
          Index(
               "uq_payments_company_reference_number",
               "company_id", "reference_number",
               unique=True,
               postgresql_where=text("reference_number IS NOT NULL"),
               sqlite_where=text("reference_number IS NOT NULL"),
               mssql_where=text("reference_number IS NOT NULL"),
          ),
     )

     id = Column(Integer, primary_key=True, autoincrement=True)
     company_id = Column(Integer, nullable=False, index=True)
     receipt_number = Column(String(32), nullable=False)

     # Gateway-supplied identifiers, unique per company when present
     transaction_id = Column(String(100), nullable=True)
     reference_number = Column(String(100), nullable=True)

     # Parties
     tenant_id = Column(
          Integer,
          ForeignKey("tenants.id"),
          nullable=False,
          index=True
     )
     property_id = Column(Integer, nullable=True)
     unit_id = Column(Integer, nullable=True)
     lease_id = Column(Integer, nullable=True)

     # Link to the invoice this payment settles (set once)
     invoice_id = Column(
          Integer,
          ForeignKey("invoices.id", ondelete="SET NULL"),
          nullable=True,
          index=True
     )

     # Money
     amount = Column(Numeric(12, 2), nullable=False)
     currency = Column(String(3), nullable=False)

     # Classification
     payment_method = Column(String(50), nullable=False)  # cash, bank_transfer, mpesa, card, online
     payment_type = Column(String(50), nullable=False, default="rent")  # rent, security_deposit, utility, ...
     payment_period = Column(String(100), nullable=True)
     payment_date = Column(DateTime, nullable=False, index=True)

     status = Column(
          Enum(
               PaymentStatus,
               name="payment_status",
               create_constraint=True,
               values_callable=lambda e: [m.value for m in e],
          ),
          default=PaymentStatus.PENDING,
          nullable=False,
          index=True
     )

     # Processing
     received_from = Column(String(255), nullable=True)
     notes = Column(Text, nullable=True)
     created_by = Column(Integer, nullable=True)
     processed_by = Column(Integer, nullable=True)
     processed_at = Column(DateTime, nullable=True)
     approval_notes = Column(Text, nullable=True)

     # Relationships
     tenant = relationship("Tenant", back_populates="payments")
     invoice = relationship("Invoice", back_populates="payments")

     def __repr__(self):
          return (
               f"<Payment(id={self.id}, receipt='{self.receipt_number}', amount={self.amount}, "
               f"status='{self.status.value}', invoice_id={self.invoice_id})>"
          )

     @property
     def is_settled(self) -> bool:
          return self.status in SETTLED_STATUSES
