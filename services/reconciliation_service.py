# services/reconciliation_service.py
"""
Reconciliation Service - links payments to invoices and decides settlement.

Linking is sum-then-compare: after a payment is attached, the approved and
completed payments linked to the invoice are summed and the invoice is settled
once that total reaches ``total_amount``. Partial payments therefore accumulate
until the invoice is covered; overpayment is tolerated.

Both rows are read under an update lock (payment first, then invoice),
so two transactions settling the same invoice serialize and the second one
observes the first one's payment before it compares totals.

Auto-matching only ever pairs a payment with an unpaid invoice of the same
tenant whose total equals the payment amount exactly, earliest due date first.
"""
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from logging_config import get_logger
from models import Invoice, InvoiceStatus, Payment, PaymentStatus
from models.invoice import UNPAID_STATUSES
from services import events
from services.errors import (
     ConflictError,
     InvalidStateError,
     NotFoundError,
     ValidationError,
)
from services.invoice_service import InvoiceService
from services.locking import for_update
from services.money import to_money
from services.principal import Principal, load_scoped

logger = get_logger("services.reconciliation")

# Per-item failures an automatic pass logs and steps over.
RECOVERABLE_ERRORS = (ConflictError, NotFoundError, InvalidStateError, ValidationError)


@dataclass
class LinkResult:
     payment: Payment
     invoice: Invoice
     total_paid: Decimal
     invoice_amount: Decimal
     is_fully_paid: bool
     newly_linked: bool = False
     settled_now: bool = False


@dataclass
class ReconcileSummary:
     reconciled: int = 0
     invoices_paid: int = 0
     failed: int = 0


class ReconciliationService:

     @staticmethod
     def lock_payment(db: Session, payment_id: int) -> Optional[Payment]:
          return db.execute(
               for_update(select(Payment).where(Payment.id == payment_id), Payment)
          ).scalar_one_or_none()

     @staticmethod
     def try_lock_invoice(db: Session, invoice_id: int, company_id: int) -> Optional[Invoice]:
          return db.execute(
               for_update(
                    select(Invoice).where(Invoice.id == invoice_id, Invoice.company_id == company_id),
                    Invoice,
               )
          ).scalar_one_or_none()

     @staticmethod
     def lock_invoice(db: Session, invoice_id: int, company_id: int) -> Invoice:
          invoice = ReconciliationService.try_lock_invoice(db, invoice_id, company_id)
          if invoice is None:
               raise NotFoundError("invoice", invoice_id)
          return invoice

     @staticmethod
     def link(db: Session, payment: Payment, invoice: Invoice, now: Optional[datetime] = None) -> LinkResult:
          """
          Attach a locked payment to a locked invoice and re-evaluate settlement.

          Re-linking a payment to the invoice it already points at changes
          nothing except settling the invoice if its paid total now covers it.
          """
          if payment.company_id != invoice.company_id:
               raise NotFoundError("invoice", invoice.id)

          if payment.status == PaymentStatus.REJECTED:
               raise InvalidStateError("rejected payments cannot be reconciled", payment_id=payment.id)

          if payment.tenant_id != invoice.issued_to:
               raise ValidationError(
                    "payment and invoice must belong to the same tenant",
                    payment_id=payment.id,
                    invoice_id=invoice.id,
               )

          if payment.invoice_id is not None and payment.invoice_id != invoice.id:
               raise ConflictError(
                    "payment is already linked to another invoice",
                    payment_id=payment.id,
                    linked_invoice_id=payment.invoice_id,
               )

          newly_linked = payment.invoice_id is None
          if newly_linked:
               if invoice.status == InvoiceStatus.PAID:
                    raise ConflictError("invoice is already marked as paid", invoice_id=invoice.id)
               if invoice.status not in UNPAID_STATUSES:
                    raise InvalidStateError(
                         f"cannot link a payment to a {invoice.status.value} invoice",
                         invoice_id=invoice.id,
                    )
               if payment.currency != invoice.currency:
                    raise ValidationError(
                         f"payment currency {payment.currency} does not match invoice currency {invoice.currency}",
                         payment_id=payment.id,
                         invoice_id=invoice.id,
                    )

               payment.invoice_id = invoice.id
               db.flush()
               events.emit(
                    db, events.PAYMENT_LINKED, payment.id, payment.company_id,
                    invoice_id=invoice.id,
                    receipt_number=payment.receipt_number,
                    amount=str(payment.amount),
               )

          total_paid = InvoiceService.paid_total(db, invoice.id)
          invoice_amount = to_money(invoice.total_amount)
          is_fully_paid = total_paid >= invoice_amount

          logger.info(
               "payment_reconciliation",
               extra={
                    "payment_id": payment.id,
                    "invoice_id": invoice.id,
                    "invoice_amount": invoice_amount,
                    "total_paid": total_paid,
                    "newly_linked": newly_linked,
               },
          )

          settled_now = False
          if is_fully_paid and invoice.status in UNPAID_STATUSES:
               settled_now = InvoiceService.apply_paid(
                    db,
                    invoice,
                    method=payment.payment_method,
                    reference=payment.receipt_number,
                    paid_date=now,
               )

          return LinkResult(
               payment=payment,
               invoice=invoice,
               total_paid=total_paid,
               invoice_amount=invoice_amount,
               is_fully_paid=is_fully_paid,
               newly_linked=newly_linked,
               settled_now=settled_now,
          )

     @staticmethod
     def link_payment(
          db: Session,
          principal: Principal,
          payment_id: int,
          invoice_id: int,
          now: Optional[datetime] = None,
     ) -> LinkResult:
          """
          Link a payment to an invoice in the payment's company.

          Raises:
               NotFoundError: Payment or invoice missing or out of scope
               ValidationError: Different tenants or currencies
               ConflictError: Payment linked elsewhere, or invoice already paid
               InvalidStateError: Rejected payment, or draft/canceled invoice
          """
          payment = load_scoped(db, principal, Payment, payment_id, lock=True, label="payment")
          invoice = ReconciliationService.lock_invoice(db, invoice_id, payment.company_id)
          return ReconciliationService.link(db, payment, invoice, now=now)

     @staticmethod
     def find_exact_match(db: Session, payment: Payment) -> Optional[Invoice]:
          """Earliest-due unpaid invoice of the payment's tenant with the same total."""
          return db.execute(
               select(Invoice)
               .where(
                    Invoice.company_id == payment.company_id,
                    Invoice.issued_to == payment.tenant_id,
                    Invoice.status.in_(UNPAID_STATUSES),
                    Invoice.total_amount == payment.amount,
               )
               .order_by(Invoice.due_date.asc(), Invoice.id.asc())
               .limit(1)
          ).scalar_one_or_none()

     @staticmethod
     def auto_match_payment(db: Session, payment: Payment, now: Optional[datetime] = None) -> Optional[LinkResult]:
          """
          Try to link an unlinked payment to an exactly matching invoice.

          A failed match is not an error: the work is undone to a savepoint and
          the payment simply stays unlinked.
          """
          if payment.invoice_id is not None:
               return None

          candidate = ReconciliationService.find_exact_match(db, payment)
          if candidate is None:
               return None

          savepoint = db.begin_nested()
          mark = events.checkpoint(db)
          try:
               invoice = ReconciliationService.lock_invoice(db, candidate.id, payment.company_id)
               result = ReconciliationService.link(db, payment, invoice, now=now)
          except RECOVERABLE_ERRORS as exc:
               savepoint.rollback()
               events.rollback_to(db, mark)
               logger.warning(
                    "auto_match_failed",
                    extra={"payment_id": payment.id, "invoice_id": candidate.id, "reason": exc.message},
               )
               return None
          savepoint.commit()
          logger.info(
               "auto_match_linked",
               extra={
                    "payment_id": payment.id,
                    "receipt_number": payment.receipt_number,
                    "invoice_id": result.invoice.id,
                    "invoice_number": result.invoice.invoice_number,
               },
          )
          return result

     @staticmethod
     def auto_reconcile_payments(
          db: Session,
          principal: Principal,
          now: Optional[datetime] = None,
     ) -> ReconcileSummary:
          """
          Bulk-match unlinked approved payments against unpaid invoices.

          Payments are visited newest first; each one is linked to the
          earliest-due unpaid invoice of the same tenant with an equal total.
          Each link runs under its own savepoint, so one failure is logged and
          skipped without losing the links made before it.
          """
          scope = principal.scope()
          summary = ReconcileSummary()

          payment_stmt = select(Payment).where(
               Payment.invoice_id.is_(None),
               Payment.status == PaymentStatus.APPROVED,
          )
          invoice_stmt = select(Invoice).where(Invoice.status.in_(UNPAID_STATUSES))
          if scope is not None:
               payment_stmt = payment_stmt.where(Payment.company_id == scope)
               invoice_stmt = invoice_stmt.where(Invoice.company_id == scope)

          unlinked = db.execute(
               payment_stmt.order_by(Payment.payment_date.desc(), Payment.id.desc())
          ).scalars().all()
          unpaid = db.execute(
               invoice_stmt.order_by(Invoice.due_date.asc(), Invoice.id.asc())
          ).scalars().all()

          logger.info(
               "auto_reconcile_started",
               extra={"company_id": scope, "unlinked_payments": len(unlinked), "unpaid_invoices": len(unpaid)},
          )

          by_tenant = defaultdict(list)
          for invoice in unpaid:
               by_tenant[(invoice.company_id, invoice.issued_to)].append(invoice)

          for payment in unlinked:
               amount = to_money(payment.amount)
               matches = [
                    inv for inv in by_tenant[(payment.company_id, payment.tenant_id)]
                    if inv.status in UNPAID_STATUSES and to_money(inv.total_amount) == amount
               ]
               if not matches:
                    continue
               target = matches[0]

               savepoint = db.begin_nested()
               mark = events.checkpoint(db)
               try:
                    locked = ReconciliationService.lock_payment(db, payment.id)
                    if locked is None:
                         raise NotFoundError("payment", payment.id)
                    if locked.invoice_id is not None or locked.status != PaymentStatus.APPROVED:
                         # Someone else got here first
                         savepoint.rollback()
                         continue
                    invoice = ReconciliationService.lock_invoice(db, target.id, payment.company_id)
                    result = ReconciliationService.link(db, locked, invoice, now=now)
               except RECOVERABLE_ERRORS as exc:
                    savepoint.rollback()
                    events.rollback_to(db, mark)
                    summary.failed += 1
                    logger.warning(
                         "auto_reconcile_skipped",
                         extra={
                              "payment_id": payment.id,
                              "receipt_number": payment.receipt_number,
                              "invoice_id": target.id,
                              "reason": exc.message,
                         },
                    )
                    continue

               savepoint.commit()
               summary.reconciled += 1
               if result.settled_now:
                    summary.invoices_paid += 1
               logger.info(
                    "auto_reconcile_linked",
                    extra={
                         "payment_id": payment.id,
                         "receipt_number": payment.receipt_number,
                         "invoice_id": target.id,
                         "invoice_number": target.invoice_number,
                    },
               )

          logger.info(
               "auto_reconcile_completed",
               extra={
                    "company_id": scope,
                    "reconciled": summary.reconciled,
                    "invoices_paid": summary.invoices_paid,
                    "failed": summary.failed,
               },
          )
          return summary

     @staticmethod
     def invoice_balance(db: Session, principal: Principal, invoice_id: int) -> dict:
          invoice = InvoiceService.get_invoice(db, principal, invoice_id)
          total_paid = InvoiceService.paid_total(db, invoice.id)
          total_amount = to_money(invoice.total_amount)
          outstanding = max(total_amount - total_paid, to_money(0))
          return {
               "invoice_id": invoice.id,
               "invoice_number": invoice.invoice_number,
               "status": invoice.status,
               "total_amount": total_amount,
               "total_paid": total_paid,
               "outstanding": outstanding,
               "is_fully_paid": total_paid >= total_amount,
          }
