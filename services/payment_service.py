# services/payment_service.py
"""
Payment Service - the payment ledger.

     pending -> {approved, rejected}
     approved -> completed

Approval and the reconciliation it triggers share the caller's transaction:
if linking to an already-chosen invoice fails, the approval fails with it.
"""
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

import config
from logging_config import get_logger
from models import Payment, PaymentStatus, Tenant
from schemas.payment import PaymentCreate
from services import events
from services.clock import as_naive_utc, utcnow
from services.errors import (
     ConflictError,
     InvalidStateError,
     TransientError,
     ValidationError,
     is_number_collision,
     is_reference_collision,
)
from services.money import to_money
from services.numbering_service import NumberingService
from services.principal import Principal, load_scoped
from services.reconciliation_service import ReconciliationService

logger = get_logger("services.payment")

# Statuses a payment may be recorded in; the rest are reached by transitions.
CREATABLE_STATUSES = (PaymentStatus.PENDING, PaymentStatus.COMPLETED)


class PaymentService:

     @staticmethod
     def _ensure_unique_references(db: Session, company_id: int, data: PaymentCreate) -> None:
          """
          Reject a second payment carrying an external reference already seen in
          the company, whichever of the two reference columns it was stored in.
          """
          refs = [ref for ref in (data.transaction_id, data.reference_number) if ref]
          if not refs:
               return
          existing = db.execute(
               select(Payment.id, Payment.receipt_number).where(
                    Payment.company_id == company_id,
                    or_(Payment.transaction_id.in_(refs), Payment.reference_number.in_(refs)),
               ).limit(1)
          ).first()
          if existing is not None:
               raise ConflictError(
                    "duplicate payment reference",
                    existing_payment_id=existing.id,
                    existing_receipt_number=existing.receipt_number,
               )

     @staticmethod
     def create_payment(
          db: Session,
          principal: Principal,
          data: PaymentCreate,
          now: Optional[datetime] = None,
     ) -> Payment:
          """
          Record a payment and reconcile it where possible.

          An explicit ``invoice_id`` is linked right away and any failure to do
          so fails the whole creation. Without one, the payment is auto-matched
          to an exactly matching unpaid invoice. A pending payment linked this
          way does not count towards the invoice until it is approved.

          Raises:
               NotFoundError: Tenant (or explicit invoice) not in the company
               ConflictError: Duplicate transaction / reference number
               ValidationError: Unsupported initial status
               TransientError: Receipt number taken by a concurrent transaction
          """
          status = PaymentStatus(data.status.value)
          if status not in CREATABLE_STATUSES:
               raise ValidationError(f"payments cannot be created as {status.value}")

          tenant = load_scoped(db, principal, Tenant, data.tenant_id, label="tenant")
          company_id = tenant.company_id

          PaymentService._ensure_unique_references(db, company_id, data)

          stamp = as_naive_utc(now) if now else utcnow()
          payment = Payment(
               company_id=company_id,
               receipt_number=NumberingService.next_receipt_number(db, company_id),
               transaction_id=data.transaction_id,
               reference_number=data.reference_number,
               tenant_id=tenant.id,
               property_id=data.property_id,
               unit_id=data.unit_id,
               lease_id=data.lease_id,
               amount=to_money(data.amount),
               currency=(data.currency or config.DEFAULT_CURRENCY).upper(),
               payment_method=data.payment_method,
               payment_type=data.payment_type,
               payment_period=data.payment_period,
               payment_date=as_naive_utc(data.payment_date) if data.payment_date else stamp,
               status=status,
               received_from=data.received_from or tenant.full_name,
               notes=data.notes,
               created_by=principal.user_id,
          )

          savepoint = db.begin_nested()
          try:
               db.add(payment)
               db.flush()
          except IntegrityError as exc:
               savepoint.rollback()
               if is_number_collision(exc):
                    raise TransientError("receipt number collision, retry the operation") from exc
               if is_reference_collision(exc):
                    raise ConflictError("duplicate payment reference", company_id=company_id) from exc
               raise
          savepoint.commit()

          logger.info(
               "payment_created",
               extra={
                    "payment_id": payment.id,
                    "receipt_number": payment.receipt_number,
                    "company_id": company_id,
                    "tenant_id": tenant.id,
                    "amount": payment.amount,
                    "status": payment.status.value,
               },
          )

          if data.invoice_id is not None:
               invoice = ReconciliationService.lock_invoice(db, data.invoice_id, company_id)
               ReconciliationService.link(db, payment, invoice, now=now)
          else:
               ReconciliationService.auto_match_payment(db, payment, now=now)

          return payment

     @staticmethod
     def get_payment(db: Session, principal: Principal, payment_id: int, lock: bool = False) -> Payment:
          return load_scoped(db, principal, Payment, payment_id, lock=lock, label="payment")

     @staticmethod
     def list_payments(
          db: Session,
          principal: Principal,
          tenant_id: Optional[int] = None,
          status: Optional[PaymentStatus] = None,
          unlinked_only: bool = False,
          page: int = 1,
          page_size: int = 50,
     ) -> Tuple[List[Payment], int]:
          stmt = select(Payment)
          scope = principal.scope()
          if scope is not None:
               stmt = stmt.where(Payment.company_id == scope)
          if tenant_id:
               stmt = stmt.where(Payment.tenant_id == tenant_id)
          if status:
               stmt = stmt.where(Payment.status == status)
          if unlinked_only:
               stmt = stmt.where(Payment.invoice_id.is_(None))

          total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
          offset = (page - 1) * page_size
          payments = db.execute(
               stmt.order_by(Payment.payment_date.desc(), Payment.id.desc()).offset(offset).limit(page_size)
          ).scalars().all()
          return list(payments), total

     @staticmethod
     def _require_pending(payment: Payment, action: str) -> None:
          if payment.status != PaymentStatus.PENDING:
               raise InvalidStateError(
                    f"only pending payments can be {action} (status: {payment.status.value})",
                    payment_id=payment.id,
               )

     @staticmethod
     def approve_payment(
          db: Session,
          principal: Principal,
          payment_id: int,
          notes: Optional[str] = None,
          now: Optional[datetime] = None,
     ) -> Payment:
          """
          Approve a pending payment and reconcile it in the same transaction.

          A payment already linked to an invoice has that invoice's settlement
          re-evaluated; errors there abort the approval. An unlinked payment is
          auto-matched, and a failed match leaves it approved but unlinked.
          """
          payment = PaymentService.get_payment(db, principal, payment_id, lock=True)
          PaymentService._require_pending(payment, "approved")

          payment.status = PaymentStatus.APPROVED
          payment.processed_by = principal.user_id
          payment.processed_at = as_naive_utc(now) if now else utcnow()
          payment.approval_notes = notes
          db.flush()

          events.emit(
               db, events.PAYMENT_APPROVED, payment.id, payment.company_id,
               receipt_number=payment.receipt_number,
               amount=str(payment.amount),
               tenant_id=payment.tenant_id,
          )
          logger.info(
               "payment_approved",
               extra={"payment_id": payment.id, "company_id": payment.company_id, "processed_by": principal.user_id},
          )

          if payment.invoice_id is not None:
               invoice = ReconciliationService.lock_invoice(db, payment.invoice_id, payment.company_id)
               ReconciliationService.link(db, payment, invoice, now=now)
          else:
               ReconciliationService.auto_match_payment(db, payment, now=now)
          return payment

     @staticmethod
     def reject_payment(
          db: Session,
          principal: Principal,
          payment_id: int,
          notes: Optional[str] = None,
          now: Optional[datetime] = None,
     ) -> Payment:
          payment = PaymentService.get_payment(db, principal, payment_id, lock=True)
          PaymentService._require_pending(payment, "rejected")

          payment.status = PaymentStatus.REJECTED
          payment.processed_by = principal.user_id
          payment.processed_at = as_naive_utc(now) if now else utcnow()
          payment.approval_notes = notes
          db.flush()
          logger.info("payment_rejected", extra={"payment_id": payment.id, "company_id": payment.company_id})
          return payment

     @staticmethod
     def complete_payment(db: Session, principal: Principal, payment_id: int) -> Payment:
          payment = PaymentService.get_payment(db, principal, payment_id, lock=True)
          if payment.status != PaymentStatus.APPROVED:
               raise InvalidStateError(
                    f"only approved payments can be completed (status: {payment.status.value})",
                    payment_id=payment.id,
               )
          payment.status = PaymentStatus.COMPLETED
          db.flush()
          logger.info("payment_completed", extra={"payment_id": payment.id, "company_id": payment.company_id})
          return payment

     @staticmethod
     def delete_payment(db: Session, principal: Principal, payment_id: int) -> None:
          """Delete a payment; only allowed while it is still pending."""
          payment = PaymentService.get_payment(db, principal, payment_id, lock=True)
          PaymentService._require_pending(payment, "deleted")
          receipt = payment.receipt_number
          db.delete(payment)
          db.flush()
          logger.info("payment_deleted", extra={"payment_id": payment_id, "receipt_number": receipt})
