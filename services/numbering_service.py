# services/numbering_service.py
"""
Numbering Service - per-company human-readable identifiers.

Numbers look like ``INV-000123`` / ``RCP-000045`` and are allocated from a
counter row per (company_id, sequence name):

1. UPDATE the row with ``current_value = current_value + 1`` (creating it on
   first use)
2. Read the incremented value back in the same transaction
3. Format it

The increment is evaluated by the database and takes the row's write lock,
so two concurrent callers for the same company serialize on it on every
backend. It belongs to the caller's transaction: a rolled-back transaction
never hands its number to anyone else's committed row. A first-use insert
race is absorbed by a savepoint and a second increment.
"""
import re

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

import config
from logging_config import get_logger
from models import SequenceCounter

logger = get_logger("services.numbering")

INVOICE_SEQUENCE = "invoice"
RECEIPT_SEQUENCE = "receipt"

NUMBER_PATTERN = re.compile(r"^[A-Z]+-[0-9]{6,}$")


def format_number(prefix: str, value: int, width: int = None) -> str:
     width = width or config.NUMBER_WIDTH
     number = f"{prefix}-{value:0{width}d}"
     if not NUMBER_PATTERN.match(number):
          raise ValueError(f"Invalid number format: {number}")
     return number


class NumberingService:
     """Allocates monotonically increasing numbers scoped per company."""

     PREFIXES = {
          INVOICE_SEQUENCE: config.INVOICE_NUMBER_PREFIX,
          RECEIPT_SEQUENCE: config.RECEIPT_NUMBER_PREFIX,
     }

     @staticmethod
     def increment_statement(company_id: int, sequence_name: str):
          return (
               update(SequenceCounter)
               .where(
                    SequenceCounter.company_id == company_id,
                    SequenceCounter.name == sequence_name,
               )
               .values(current_value=SequenceCounter.current_value + 1)
               .execution_options(synchronize_session=False)
          )

     @staticmethod
     def _increment(db: Session, company_id: int, sequence_name: str):
          """Bump the counter in the database; None when the row does not exist yet."""
          result = db.execute(NumberingService.increment_statement(company_id, sequence_name))
          if result.rowcount == 0:
               return None
          return db.execute(
               select(SequenceCounter.current_value).where(
                    SequenceCounter.company_id == company_id,
                    SequenceCounter.name == sequence_name,
               )
          ).scalar_one()

     @staticmethod
     def next_value(db: Session, company_id: int, sequence_name: str) -> int:
          """
          Increment and return the counter for (company_id, sequence_name).

          Does not commit; the value is consumed only if the caller commits.
          """
          value = NumberingService._increment(db, company_id, sequence_name)

          if value is None:
               savepoint = db.begin_nested()
               try:
                    db.execute(
                         insert(SequenceCounter).values(company_id=company_id, name=sequence_name, current_value=1)
                    )
                    savepoint.commit()
                    value = 1
               except IntegrityError:
                    # Another transaction created the row first
                    savepoint.rollback()
                    logger.debug(
                         "sequence_counter_race_retry",
                         extra={"company_id": company_id, "sequence_name": sequence_name},
                    )
                    value = NumberingService._increment(db, company_id, sequence_name)
                    if value is None:
                         raise

          logger.debug(
               "sequence_allocated",
               extra={"company_id": company_id, "sequence_name": sequence_name, "value": value},
          )
          return value

     @staticmethod
     def next_number(db: Session, company_id: int, sequence_name: str) -> str:
          """Return the next formatted number, e.g. ``INV-000123``."""
          prefix = NumberingService.PREFIXES.get(sequence_name, sequence_name.upper())
          value = NumberingService.next_value(db, company_id, sequence_name)
          return format_number(prefix, value)

     @staticmethod
     def next_invoice_number(db: Session, company_id: int) -> str:
          return NumberingService.next_number(db, company_id, INVOICE_SEQUENCE)

     @staticmethod
     def next_receipt_number(db: Session, company_id: int) -> str:
          return NumberingService.next_number(db, company_id, RECEIPT_SEQUENCE)
