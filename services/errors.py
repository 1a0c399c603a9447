# services/errors.py
"""
Typed error taxonomy for the billing ledger.

Every failure a service can report is one of these classes; callers catch by
type and read ``code`` for machine handling, never by parsing messages.

    LedgerError
    +-- NotFoundError          entity missing or outside the company scope
    +-- InvalidStateError      operation illegal for the current lifecycle state
    +-- ConflictError          uniqueness or linkage violation
    +-- ValidationError        malformed amounts, mismatched tenant
    +-- PermissionDeniedError  principal has no usable scope for the operation
    +-- TransientError         storage contention, safe to retry
    +-- DeadlineExceededError  caller deadline passed before commit
"""


class LedgerError(Exception):
     code: str = "LEDGER_ERROR"

     def __init__(self, message: str, **context):
          self.message = message
          self.context = context
          super().__init__(message)

     def to_dict(self) -> dict:
          return {"error": self.code, "detail": self.message}


class NotFoundError(LedgerError):
     code = "NOT_FOUND"

     def __init__(self, entity: str, entity_id=None):
          self.entity = entity
          self.entity_id = entity_id
          if entity_id is None:
               message = f"{entity} not found"
          else:
               message = f"{entity} {entity_id} not found"
          super().__init__(message, entity=entity, entity_id=entity_id)


class InvalidStateError(LedgerError):
     code = "INVALID_STATE"


class ConflictError(LedgerError):
     code = "CONFLICT"


class ValidationError(LedgerError):
     code = "VALIDATION_ERROR"


class PermissionDeniedError(LedgerError):
     code = "PERMISSION_DENIED"


class TransientError(LedgerError):
     code = "TRANSIENT"


class DeadlineExceededError(LedgerError):
     code = "DEADLINE_EXCEEDED"


# Unique keys an IntegrityError can name. PostgreSQL and SQL Server report the
# constraint name, SQLite reports the constrained columns.
NUMBER_KEYS = (
     "uq_invoices_company_number",
     "uq_payments_company_receipt",
     "uq_sequence_counters_company_name",
     "invoices.invoice_number",
     "payments.receipt_number",
     "sequence_counters.name",
)
REFERENCE_KEYS = (
     "uq_payments_company_transaction_id",
     "uq_payments_company_reference_number",
     "payments.transaction_id",
     "payments.reference_number",
)


def _names_key(exc, keys) -> bool:
     message = str(getattr(exc, "orig", exc))
     return any(key in message for key in keys)


def is_number_collision(exc) -> bool:
     """An allocated invoice or receipt number was taken by a concurrent transaction."""
     return _names_key(exc, NUMBER_KEYS)


def is_reference_collision(exc) -> bool:
     return _names_key(exc, REFERENCE_KEYS)
