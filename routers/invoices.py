# routers/invoices.py
"""
Invoice API routes.

Reads run on a request-scoped session; every mutation runs in its own
transaction through ``run_in_transaction`` so the commit (and the events it
releases) happens before the response is returned.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from database import get_session, run_in_transaction
from models import Invoice, InvoiceStatus
from schemas.invoice import (
     InvoiceCreate,
     InvoiceResponse,
     InvoiceListResponse,
     InvoiceStatusEnum,
     InvoiceBalanceResponse,
     LineItemResponse,
     MarkPaidRequest,
     TenantBalanceResponse,
)
from services.invoice_service import InvoiceService
from services.principal import Principal
from services.reconciliation_service import ReconciliationService
from routers.dependencies import get_deadline, get_principal

router = APIRouter(prefix="/api/invoices", tags=["invoices"])


@router.post(
     "",
     response_model=InvoiceResponse,
     status_code=status.HTTP_201_CREATED,
     summary="Create a new invoice"
)
def create_invoice(
     invoice_data: InvoiceCreate,
     principal: Principal = Depends(get_principal),
     deadline: Optional[float] = Depends(get_deadline),
):
     """
     Create an invoice for a tenant of the caller's company.

     - **tenant_id**: Tenant being billed
     - **line_items** or **rent_amount** + **utility_bills**: What is billed
     - **due_date**: Defaults to the next rent due day
     - **send**: Issue the invoice immediately instead of leaving it as a draft
     """
     return run_in_transaction(
          lambda db: build_invoice_response(InvoiceService.create_invoice(db, principal, invoice_data)),
          deadline=deadline,
     )


@router.get(
     "",
     response_model=InvoiceListResponse,
     summary="List invoices with filters"
)
def list_invoices(
     tenant_id: Optional[int] = Query(None, description="Filter by tenant ID"),
     status: Optional[InvoiceStatusEnum] = Query(None, description="Filter by status"),
     overdue_only: bool = Query(False, description="Show only overdue invoices"),
     page: int = Query(1, ge=1, description="Page number"),
     page_size: int = Query(50, ge=1, le=100, description="Items per page"),
     db: Session = Depends(get_session),
     principal: Principal = Depends(get_principal),
):
     """
     Retrieve a paginated list of the company's invoices, latest due date first.
     """
     invoices, total = InvoiceService.list_invoices(
          db,
          principal,
          tenant_id=tenant_id,
          status=InvoiceStatus(status.value) if status else None,
          overdue_only=overdue_only,
          page=page,
          page_size=page_size,
     )
     return InvoiceListResponse(
          invoices=[build_invoice_response(inv) for inv in invoices],
          total=total,
          page=page,
          page_size=page_size
     )


@router.get(
     "/tenant/{tenant_id}/summary",
     response_model=TenantBalanceResponse,
     summary="Get tenant invoice summary"
)
def get_tenant_invoice_summary(
     tenant_id: int,
     db: Session = Depends(get_session),
     principal: Principal = Depends(get_principal),
):
     """
     Amounts owed, overdue and paid for one tenant.
     """
     return TenantBalanceResponse(**InvoiceService.calculate_tenant_balance(db, principal, tenant_id))


@router.get(
     "/{invoice_id}",
     response_model=InvoiceResponse,
     summary="Get invoice by ID"
)
def get_invoice(
     invoice_id: int,
     db: Session = Depends(get_session),
     principal: Principal = Depends(get_principal),
):
     return build_invoice_response(InvoiceService.get_invoice(db, principal, invoice_id))


@router.get(
     "/{invoice_id}/balance",
     response_model=InvoiceBalanceResponse,
     summary="Get paid and outstanding amounts"
)
def get_invoice_balance(
     invoice_id: int,
     db: Session = Depends(get_session),
     principal: Principal = Depends(get_principal),
):
     return InvoiceBalanceResponse(**ReconciliationService.invoice_balance(db, principal, invoice_id))


@router.post(
     "/{invoice_id}/send",
     response_model=InvoiceResponse,
     summary="Issue a draft invoice"
)
def send_invoice(
     invoice_id: int,
     principal: Principal = Depends(get_principal),
     deadline: Optional[float] = Depends(get_deadline),
):
     return run_in_transaction(
          lambda db: build_invoice_response(InvoiceService.send_invoice(db, principal, invoice_id)),
          deadline=deadline,
     )


@router.post(
     "/{invoice_id}/mark-paid",
     response_model=InvoiceResponse,
     summary="Mark an invoice as paid"
)
def mark_invoice_paid(
     invoice_id: int,
     body: Optional[MarkPaidRequest] = None,
     principal: Principal = Depends(get_principal),
     deadline: Optional[float] = Depends(get_deadline),
):
     """
     Settle an invoice manually. Marking an already paid invoice again is a
     no-op and returns it unchanged.
     """
     body = body or MarkPaidRequest()
     return run_in_transaction(
          lambda db: build_invoice_response(
               InvoiceService.mark_paid(
                    db,
                    principal,
                    invoice_id,
                    method=body.payment_method,
                    reference=body.payment_reference,
                    paid_date=body.paid_date,
               )
          ),
          deadline=deadline,
     )


@router.post(
     "/{invoice_id}/mark-overdue",
     response_model=InvoiceResponse,
     summary="Mark a sent invoice as overdue"
)
def mark_invoice_overdue(
     invoice_id: int,
     principal: Principal = Depends(get_principal),
     deadline: Optional[float] = Depends(get_deadline),
):
     return run_in_transaction(
          lambda db: build_invoice_response(InvoiceService.mark_overdue(db, principal, invoice_id)),
          deadline=deadline,
     )


@router.post(
     "/{invoice_id}/cancel",
     response_model=InvoiceResponse,
     summary="Cancel an invoice"
)
def cancel_invoice(
     invoice_id: int,
     principal: Principal = Depends(get_principal),
     deadline: Optional[float] = Depends(get_deadline),
):
     return run_in_transaction(
          lambda db: build_invoice_response(InvoiceService.cancel_invoice(db, principal, invoice_id)),
          deadline=deadline,
     )


@router.delete(
     "/{invoice_id}",
     status_code=status.HTTP_204_NO_CONTENT,
     summary="Delete an invoice"
)
def delete_invoice(
     invoice_id: int,
     principal: Principal = Depends(get_principal),
     deadline: Optional[float] = Depends(get_deadline),
):
     """
     Delete an unpaid invoice. Paid invoices, and invoices with approved
     payments against them, cannot be deleted.
     """
     run_in_transaction(
          lambda db: InvoiceService.delete_invoice(db, principal, invoice_id),
          deadline=deadline,
     )
     return None


def build_invoice_response(invoice: Invoice) -> InvoiceResponse:
     """
     Helper function to build InvoiceResponse with related data.
     Must run while the invoice's session is still open.
     """
     tenant = invoice.tenant
     return InvoiceResponse(
          id=invoice.id,
          company_id=invoice.company_id,
          invoice_number=invoice.invoice_number,
          issued_by=invoice.issued_by,
          issued_to=invoice.issued_to,
          property_id=invoice.property_id,
          unit_id=invoice.unit_id,
          title=invoice.title,
          description=invoice.description,
          invoice_type=invoice.invoice_type,
          subtotal=invoice.subtotal,
          tax_amount=invoice.tax_amount,
          discount_amount=invoice.discount_amount,
          total_amount=invoice.total_amount,
          currency=invoice.currency,
          issue_date=invoice.issue_date,
          due_date=invoice.due_date,
          paid_date=invoice.paid_date,
          status=invoice.status.value,
          payment_method=invoice.payment_method,
          payment_reference=invoice.payment_reference,
          line_items=[
               LineItemResponse(
                    id=item.id,
                    description=item.description,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    total_price=item.total_price,
                    metadata=item.item_metadata,
               )
               for item in invoice.line_items
          ],
          created_at=invoice.created_at,
          tenant_name=tenant.full_name if tenant else None,
     )
