# routers/reconciliation.py
"""
Reconciliation and sweep routes.

The two sweeps are meant to be hit by an external scheduler. A sweep that is
already running in this process is skipped and reported with ``skipped``.
"""
from typing import Optional

from fastapi import APIRouter, Depends

from database import run_in_transaction
from schemas.reconciliation import (
     AutoReconcileResponse,
     LinkPaymentRequest,
     LinkPaymentResponse,
     OverdueSweepRequest,
     OverdueSweepResponse,
)
from services.principal import Principal
from services.reconciliation_service import ReconciliationService
from services.sweep_service import (
     AUTO_RECONCILE_SWEEP,
     OVERDUE_SWEEP,
     SweepService,
     sweep_runner,
)
from routers.dependencies import get_deadline, get_principal
from routers.invoices import build_invoice_response
from routers.payments import build_payment_response

router = APIRouter(prefix="/api/reconciliation", tags=["reconciliation"])


@router.post("/link", response_model=LinkPaymentResponse, summary="Link a payment to an invoice")
def link_payment_to_invoice(
     body: LinkPaymentRequest,
     principal: Principal = Depends(get_principal),
     deadline: Optional[float] = Depends(get_deadline),
):
     """
     Attach a payment to an invoice of the same tenant. The invoice is marked
     paid once its approved payments cover the total.
     """
     def _link(db):
          result = ReconciliationService.link_payment(db, principal, body.payment_id, body.invoice_id)
          return LinkPaymentResponse(
               payment=build_payment_response(result.payment),
               invoice=build_invoice_response(result.invoice),
               total_paid=result.total_paid,
               invoice_amount=result.invoice_amount,
               is_fully_paid=result.is_fully_paid,
          )

     return run_in_transaction(_link, deadline=deadline)


@router.post("/auto", response_model=AutoReconcileResponse, summary="Auto-reconcile unlinked payments")
def auto_reconcile_payments(
     principal: Principal = Depends(get_principal),
     deadline: Optional[float] = Depends(get_deadline),
):
     scope = principal.scope()
     outcome = sweep_runner.run(
          f"{AUTO_RECONCILE_SWEEP}:{scope if scope is not None else 'all'}",
          lambda: run_in_transaction(
               lambda db: SweepService.auto_reconcile(db, principal),
               deadline=deadline,
          ),
     )
     if outcome.skipped:
          return AutoReconcileResponse(reconciled=0, invoices_paid=0, skipped=True)
     summary = outcome.result
     return AutoReconcileResponse(
          reconciled=summary.reconciled,
          invoices_paid=summary.invoices_paid,
          failed=summary.failed,
     )


@router.post("/overdue-sweep", response_model=OverdueSweepResponse, summary="Flip past-due invoices to overdue")
def overdue_sweep(
     body: Optional[OverdueSweepRequest] = None,
     principal: Principal = Depends(get_principal),
     deadline: Optional[float] = Depends(get_deadline),
):
     now = body.now if body else None
     scope = principal.scope()
     outcome = sweep_runner.run(
          f"{OVERDUE_SWEEP}:{scope if scope is not None else 'all'}",
          lambda: run_in_transaction(
               lambda db: SweepService.overdue_sweep(db, principal, now=now),
               deadline=deadline,
          ),
     )
     if outcome.skipped:
          return OverdueSweepResponse(updated=0, skipped=True)
     return OverdueSweepResponse(updated=outcome.result)
