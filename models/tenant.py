from sqlalchemy import Column, Integer, String, DateTime, func
from sqlalchemy.orm import relationship
from .base import Base


class Tenant(Base):
     """
     Tenant model - the party invoices are issued to and payments come from.

     Tenant CRUD lives outside the billing engine; the ledger only needs the
     row to resolve ``issued_to`` / ``tenant_id`` within a company.
     """
     __tablename__ = "tenants"

     id = Column(Integer, primary_key=True, autoincrement=True)
     company_id = Column(Integer, nullable=False, index=True)

     # Personal info
     first_name = Column(String(100), nullable=False)
     last_name = Column(String(100), nullable=False)
     email = Column(String(255), nullable=True)

     # Status
     status = Column(String(50), default="active", nullable=False)  # active, inactive

     # Timestamps
     created_at = Column(DateTime, server_default=func.now(), nullable=False)

     # Relationships
     invoices = relationship("Invoice", back_populates="tenant")
     payments = relationship("Payment", back_populates="tenant")

     @property
     def full_name(self) -> str:
          return f"{self.first_name} {self.last_name}".strip()

     def __repr__(self):
          return f"<Tenant(id={self.id}, company_id={self.company_id}, name='{self.full_name}')>"
