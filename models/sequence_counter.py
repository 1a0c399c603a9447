"""
SequenceCounter model - one counter row per (company, sequence name).

Human-readable numbers (invoice numbers, receipt numbers) are allocated by
incrementing this row in the database (UPDATE ... SET current_value =
current_value + 1), which holds its write lock until commit. Counting
existing invoices is not race-safe and must never be used to derive a number.
"""
from sqlalchemy import BigInteger, Column, Integer, String, UniqueConstraint
from .base import Base


class SequenceCounter(Base):
     __tablename__ = "sequence_counters"
     __table_args__ = (
          UniqueConstraint("company_id", "name", name="uq_sequence_counters_company_name"),
     )

     id = Column(Integer, primary_key=True, autoincrement=True)
     company_id = Column(Integer, nullable=False)
     name = Column(String(50), nullable=False)  # e.g. "invoice", "receipt"
     current_value = Column(BigInteger, nullable=False, default=0)

     def __repr__(self):
          return f"<SequenceCounter(company_id={self.company_id}, name='{self.name}', value={self.current_value})>"
