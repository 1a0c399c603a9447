# services/invoice_service.py
"""
Invoice Service - the invoice ledger and its state machine.

     draft -> sent -> {overdue, paid, canceled}
     overdue -> paid

``paid`` and ``canceled`` are terminal. Every transition loads the invoice
with a row lock and re-checks the status it expects, so racing callers see
each other's writes instead of both applying the same transition.

Methods never commit; the caller owns the transaction.
"""
import calendar
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from logging_config import get_logger
from models import Invoice, InvoiceLineItem, InvoiceStatus, Payment, Tenant
from models.invoice import UNPAID_STATUSES
from models.payment import SETTLED_STATUSES
import config
from schemas.invoice import InvoiceCreate, LineItemCreate, RentMetadata, UtilityMetadata
from services import events
from services.clock import today as current_date, utcnow, as_naive_utc
from services.errors import ConflictError, InvalidStateError, ValidationError
from services.money import ZERO, to_money
from services.numbering_service import NumberingService
from services.principal import Principal, load_scoped

logger = get_logger("services.invoice")


def default_due_date(issue_date: date, due_day: int = None) -> date:
     """Next occurrence of ``due_day`` on or after ``issue_date``."""
     due_day = due_day or config.DEFAULT_RENT_DUE_DAY
     year, month = issue_date.year, issue_date.month
     day = min(due_day, calendar.monthrange(year, month)[1])
     candidate = date(year, month, day)
     if candidate < issue_date:
          month += 1
          if month > 12:
               year, month = year + 1, 1
          day = min(due_day, calendar.monthrange(year, month)[1])
          candidate = date(year, month, day)
     return candidate


class InvoiceService:
     """Service class for invoice-related business logic."""

     # ------------------------------------------------------------------
     # Creation
     # ------------------------------------------------------------------

     @staticmethod
     def build_line_items(draft: InvoiceCreate) -> List[InvoiceLineItem]:
          """
          Turn the draft's explicit items plus the rent / utility convenience
          fields into line item rows, in display order.
          """
          requested: List[LineItemCreate] = list(draft.line_items)

          if draft.rent_amount is not None and draft.rent_amount > 0:
               requested.append(LineItemCreate(
                    description="Monthly Rent",
                    unit_price=draft.rent_amount,
                    metadata=RentMetadata(),
               ))

          for bill in draft.utility_bills:
               if bill.is_included and bill.amount > 0:
                    requested.append(LineItemCreate(
                         description=bill.name,
                         unit_price=bill.amount,
                         metadata=UtilityMetadata(utility_type=bill.type),
                    ))

          rows = []
          for position, item in enumerate(requested):
               rows.append(InvoiceLineItem(
                    position=position,
                    description=item.description,
                    quantity=item.quantity,
                    unit_price=to_money(item.unit_price),
                    total_price=to_money(item.quantity * item.unit_price),
                    item_metadata=item.metadata.model_dump(),
               ))
          return rows

     @staticmethod
     def create_invoice(
          db: Session,
          principal: Principal,
          draft: InvoiceCreate,
          today: Optional[date] = None,
     ) -> Invoice:
          """
          Create an invoice and its line items.

          Args:
               db: SQLAlchemy database session
               principal: Acting principal; the invoice is created in its company
               draft: Validated creation request
               today: Issue date override (defaults to the current UTC date)

          Returns:
               Created Invoice object (``draft``, or ``sent`` when ``draft.send``)

          Raises:
               NotFoundError: If the tenant does not exist in the company
               ValidationError: If the computed total is not positive
          """
          tenant = load_scoped(db, principal, Tenant, draft.tenant_id, label="tenant")
          company_id = tenant.company_id

          line_items = InvoiceService.build_line_items(draft)

          if draft.subtotal is not None:
               subtotal = to_money(draft.subtotal)
          else:
               subtotal = to_money(sum((item.total_price for item in line_items), ZERO))
          tax_amount = to_money(draft.tax_amount)
          discount_amount = to_money(draft.discount_amount)
          total_amount = subtotal + tax_amount - discount_amount

          if total_amount <= 0:
               raise ValidationError(
                    "total_amount must be greater than zero",
                    subtotal=str(subtotal),
                    tax_amount=str(tax_amount),
                    discount_amount=str(discount_amount),
               )

          issue_date = draft.issue_date or today or current_date()
          due_date = draft.due_date or default_due_date(issue_date)
          if due_date < issue_date:
               raise ValidationError("due_date cannot be before issue_date")

          invoice = Invoice(
               company_id=company_id,
               invoice_number=NumberingService.next_invoice_number(db, company_id),
               issued_by=principal.user_id,
               issued_to=tenant.id,
               property_id=draft.property_id,
               unit_id=draft.unit_id,
               title=draft.title or f"Invoice for {tenant.full_name}",
               description=draft.description or "Monthly Rent and Charges",
               invoice_type=draft.invoice_type,
               subtotal=subtotal,
               tax_amount=tax_amount,
               discount_amount=discount_amount,
               total_amount=total_amount,
               currency=(draft.currency or config.DEFAULT_CURRENCY).upper(),
               issue_date=issue_date,
               due_date=due_date,
               status=InvoiceStatus.DRAFT,
               line_items=line_items,
          )
          db.add(invoice)
          db.flush()  # Flush to get the ID without committing

          logger.info(
               "invoice_created",
               extra={
                    "invoice_id": invoice.id,
                    "invoice_number": invoice.invoice_number,
                    "company_id": company_id,
                    "tenant_id": tenant.id,
                    "total_amount": total_amount,
               },
          )

          if draft.send:
               InvoiceService._transition_send(invoice)
               db.flush()
          return invoice

     # ------------------------------------------------------------------
     # Lookups
     # ------------------------------------------------------------------

     @staticmethod
     def get_invoice(db: Session, principal: Principal, invoice_id: int, lock: bool = False) -> Invoice:
          return load_scoped(db, principal, Invoice, invoice_id, lock=lock, label="invoice")

     @staticmethod
     def list_invoices(
          db: Session,
          principal: Principal,
          tenant_id: Optional[int] = None,
          status: Optional[InvoiceStatus] = None,
          overdue_only: bool = False,
          page: int = 1,
          page_size: int = 50,
     ) -> Tuple[List[Invoice], int]:
          """Paginated invoices in the principal's scope, newest due date first."""
          stmt = select(Invoice)
          scope = principal.scope()
          if scope is not None:
               stmt = stmt.where(Invoice.company_id == scope)
          if tenant_id:
               stmt = stmt.where(Invoice.issued_to == tenant_id)
          if status:
               stmt = stmt.where(Invoice.status == status)
          if overdue_only:
               stmt = stmt.where(Invoice.status == InvoiceStatus.OVERDUE)

          total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
          offset = (page - 1) * page_size
          invoices = db.execute(
               stmt.order_by(Invoice.due_date.desc(), Invoice.id.desc()).offset(offset).limit(page_size)
          ).scalars().all()
          return list(invoices), total

     @staticmethod
     def paid_total(db: Session, invoice_id: int) -> Decimal:
          """Sum of approved/completed payments linked to the invoice."""
          total = db.execute(
               select(func.coalesce(func.sum(Payment.amount), 0)).where(
                    Payment.invoice_id == invoice_id,
                    Payment.status.in_(SETTLED_STATUSES),
               )
          ).scalar_one()
          return to_money(total)

     @staticmethod
     def calculate_tenant_balance(db: Session, principal: Principal, tenant_id: int) -> dict:
          """
          Calculate the total balance owed by a tenant.

          Returns:
               Dictionary with balance information
          """
          tenant = load_scoped(db, principal, Tenant, tenant_id, label="tenant")
          invoices = db.execute(
               select(Invoice).where(
                    Invoice.issued_to == tenant.id,
                    Invoice.company_id == tenant.company_id,
               )
          ).scalars().all()

          sent = [inv for inv in invoices if inv.status == InvoiceStatus.SENT]
          overdue = [inv for inv in invoices if inv.status == InvoiceStatus.OVERDUE]
          paid = [inv for inv in invoices if inv.status == InvoiceStatus.PAID]

          def _sum(rows):
               return to_money(sum((inv.total_amount for inv in rows), ZERO))

          return {
               "tenant_id": tenant.id,
               "tenant_name": tenant.full_name,
               "total_owed": _sum(sent + overdue),
               "sent_amount": _sum(sent),
               "overdue_amount": _sum(overdue),
               "paid_amount": _sum(paid),
               "total_invoices": len(invoices),
               "sent_count": len(sent),
               "overdue_count": len(overdue),
               "paid_count": len(paid),
          }

     # ------------------------------------------------------------------
     # Transitions
     # ------------------------------------------------------------------

     @staticmethod
     def _transition_send(invoice: Invoice) -> None:
          if invoice.status != InvoiceStatus.DRAFT:
               raise InvalidStateError(
                    f"only draft invoices can be sent (status: {invoice.status.value})",
                    invoice_id=invoice.id,
               )
          invoice.status = InvoiceStatus.SENT
          logger.info("invoice_sent", extra={"invoice_id": invoice.id, "company_id": invoice.company_id})

     @staticmethod
     def send_invoice(db: Session, principal: Principal, invoice_id: int) -> Invoice:
          invoice = InvoiceService.get_invoice(db, principal, invoice_id, lock=True)
          InvoiceService._transition_send(invoice)
          db.flush()
          return invoice

     @staticmethod
     def apply_overdue(db: Session, invoice: Invoice) -> bool:
          """
          Flip a locked invoice from sent to overdue.

          Returns False (no-op) when it is already overdue.
          """
          if invoice.status == InvoiceStatus.OVERDUE:
               return False
          if invoice.status != InvoiceStatus.SENT:
               raise InvalidStateError(
                    f"only sent invoices can become overdue (status: {invoice.status.value})",
                    invoice_id=invoice.id,
               )
          invoice.status = InvoiceStatus.OVERDUE
          db.flush()
          events.emit(
               db, events.INVOICE_OVERDUE, invoice.id, invoice.company_id,
               invoice_number=invoice.invoice_number,
               due_date=invoice.due_date.isoformat(),
          )
          logger.info("invoice_overdue", extra={"invoice_id": invoice.id, "company_id": invoice.company_id})
          return True

     @staticmethod
     def mark_overdue(db: Session, principal: Principal, invoice_id: int) -> Invoice:
          invoice = InvoiceService.get_invoice(db, principal, invoice_id, lock=True)
          InvoiceService.apply_overdue(db, invoice)
          return invoice

     @staticmethod
     def apply_paid(
          db: Session,
          invoice: Invoice,
          method: Optional[str],
          reference: Optional[str],
          paid_date: Optional[datetime] = None,
     ) -> bool:
          """
          Settle a locked invoice.

          Returns False without touching the row when it is already paid, so a
          duplicate reconciliation trigger is harmless and fires no second
          ``invoice.paid`` event.
          """
          if invoice.status == InvoiceStatus.PAID:
               return False
          if invoice.status not in UNPAID_STATUSES:
               raise InvalidStateError(
                    f"cannot mark invoice as paid with status: {invoice.status.value}. "
                    "Only sent or overdue invoices can be marked as paid.",
                    invoice_id=invoice.id,
               )

          invoice.status = InvoiceStatus.PAID
          invoice.paid_date = as_naive_utc(paid_date) if paid_date else utcnow()
          invoice.payment_method = method or "manual"
          invoice.payment_reference = reference
          db.flush()

          events.emit(
               db, events.INVOICE_PAID, invoice.id, invoice.company_id,
               invoice_number=invoice.invoice_number,
               total_amount=str(invoice.total_amount),
               payment_reference=reference,
          )
          logger.info(
               "invoice_paid",
               extra={
                    "invoice_id": invoice.id,
                    "company_id": invoice.company_id,
                    "payment_method": invoice.payment_method,
                    "payment_reference": reference,
               },
          )
          return True

     @staticmethod
     def mark_paid(
          db: Session,
          principal: Principal,
          invoice_id: int,
          method: Optional[str] = None,
          reference: Optional[str] = None,
          paid_date: Optional[datetime] = None,
     ) -> Invoice:
          invoice = InvoiceService.get_invoice(db, principal, invoice_id, lock=True)
          InvoiceService.apply_paid(db, invoice, method, reference, paid_date)
          return invoice

     @staticmethod
     def cancel_invoice(db: Session, principal: Principal, invoice_id: int) -> Invoice:
          invoice = InvoiceService.get_invoice(db, principal, invoice_id, lock=True)
          if invoice.status == InvoiceStatus.PAID:
               raise InvalidStateError("cannot cancel a paid invoice", invoice_id=invoice.id)
          if invoice.status not in (InvoiceStatus.DRAFT, InvoiceStatus.SENT):
               raise InvalidStateError(
                    f"cannot cancel invoice with status: {invoice.status.value}",
                    invoice_id=invoice.id,
               )
          invoice.status = InvoiceStatus.CANCELED
          db.flush()
          logger.info("invoice_canceled", extra={"invoice_id": invoice.id, "company_id": invoice.company_id})
          return invoice

     @staticmethod
     def delete_invoice(db: Session, principal: Principal, invoice_id: int) -> None:
          """
          Delete an invoice and its line items.

          Raises:
               ConflictError: If the invoice is paid or has settled payments linked
          """
          invoice = InvoiceService.get_invoice(db, principal, invoice_id, lock=True)
          if invoice.status == InvoiceStatus.PAID:
               raise ConflictError("cannot delete paid invoices", invoice_id=invoice.id)

          if InvoiceService.paid_total(db, invoice.id) > 0:
               raise ConflictError("cannot delete an invoice with recorded payments", invoice_id=invoice.id)

          # Pending payments pointing here go back to the unlinked pool
          for payment in db.execute(select(Payment).where(Payment.invoice_id == invoice.id)).scalars():
               payment.invoice_id = None

          number = invoice.invoice_number
          db.delete(invoice)
          db.flush()
          logger.info("invoice_deleted", extra={"invoice_id": invoice_id, "invoice_number": number})

     @staticmethod
     def find_overdue_candidates(
          db: Session,
          now: datetime,
          company_id: Optional[int] = None,
          grace_days: int = 0,
     ) -> List[Invoice]:
          """Sent invoices whose due date plus grace lies before ``now``'s date."""
          cutoff = now.date() - timedelta(days=grace_days)
          stmt = select(Invoice).where(
               Invoice.status == InvoiceStatus.SENT,
               Invoice.due_date < cutoff,
          )
          if company_id is not None:
               stmt = stmt.where(Invoice.company_id == company_id)
          return list(db.execute(stmt.order_by(Invoice.due_date, Invoice.id)).scalars().all())
