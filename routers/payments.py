# routers/payments.py
"""
Payment API routes.

Payments come from staff entry (``pending`` until approved) or from a gateway
callback that has already been verified upstream (``completed``). A repeated
``transaction_id`` / ``reference_number`` is rejected with 409 so a retried
webhook can never book the same money twice.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from database import get_session, run_in_transaction
from models import Payment, PaymentStatus
from schemas.payment import (
     PaymentCreate,
     PaymentDecision,
     PaymentListResponse,
     PaymentResponse,
     PaymentStatusEnum,
)
from services.payment_service import PaymentService
from services.principal import Principal
from routers.dependencies import get_deadline, get_principal

router = APIRouter(prefix="/api/payments", tags=["payments"])


def build_payment_response(payment: Payment) -> PaymentResponse:
     return PaymentResponse.model_validate(payment)


@router.post(
     "",
     response_model=PaymentResponse,
     status_code=status.HTTP_201_CREATED,
     summary="Record a payment",
)
def create_payment(
     body: PaymentCreate,
     principal: Principal = Depends(get_principal),
     deadline: Optional[float] = Depends(get_deadline),
):
     return run_in_transaction(
          lambda db: build_payment_response(PaymentService.create_payment(db, principal, body)),
          deadline=deadline,
     )


@router.get("", response_model=PaymentListResponse, summary="List payments")
def list_payments(
     tenant_id: Optional[int] = Query(None, description="Filter by tenant ID"),
     status: Optional[PaymentStatusEnum] = Query(None, description="Filter by status"),
     unlinked_only: bool = Query(False, description="Only payments not linked to an invoice"),
     page: int = Query(1, ge=1),
     page_size: int = Query(50, ge=1, le=100),
     db: Session = Depends(get_session),
     principal: Principal = Depends(get_principal),
):
     payments, total = PaymentService.list_payments(
          db,
          principal,
          tenant_id=tenant_id,
          status=PaymentStatus(status.value) if status else None,
          unlinked_only=unlinked_only,
          page=page,
          page_size=page_size,
     )
     return PaymentListResponse(
          payments=[build_payment_response(p) for p in payments],
          total=total,
          page=page,
          page_size=page_size,
     )


@router.get("/{payment_id}", response_model=PaymentResponse, summary="Get payment by ID")
def get_payment(
     payment_id: int,
     db: Session = Depends(get_session),
     principal: Principal = Depends(get_principal),
):
     return build_payment_response(PaymentService.get_payment(db, principal, payment_id))


@router.post("/{payment_id}/approve", response_model=PaymentResponse, summary="Approve a pending payment")
def approve_payment(
     payment_id: int,
     body: Optional[PaymentDecision] = None,
     principal: Principal = Depends(get_principal),
     deadline: Optional[float] = Depends(get_deadline),
):
     """
     Approve a payment and reconcile it against its invoice in one
     transaction. If the linked invoice cannot take the payment the approval
     is rolled back and the reason is returned.
     """
     notes = body.notes if body else None
     return run_in_transaction(
          lambda db: build_payment_response(PaymentService.approve_payment(db, principal, payment_id, notes=notes)),
          deadline=deadline,
     )


@router.post("/{payment_id}/reject", response_model=PaymentResponse, summary="Reject a pending payment")
def reject_payment(
     payment_id: int,
     body: Optional[PaymentDecision] = None,
     principal: Principal = Depends(get_principal),
     deadline: Optional[float] = Depends(get_deadline),
):
     notes = body.notes if body else None
     return run_in_transaction(
          lambda db: build_payment_response(PaymentService.reject_payment(db, principal, payment_id, notes=notes)),
          deadline=deadline,
     )


@router.post("/{payment_id}/complete", response_model=PaymentResponse, summary="Complete an approved payment")
def complete_payment(
     payment_id: int,
     principal: Principal = Depends(get_principal),
     deadline: Optional[float] = Depends(get_deadline),
):
     return run_in_transaction(
          lambda db: build_payment_response(PaymentService.complete_payment(db, principal, payment_id)),
          deadline=deadline,
     )


@router.delete("/{payment_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete a pending payment")
def delete_payment(
     payment_id: int,
     principal: Principal = Depends(get_principal),
     deadline: Optional[float] = Depends(get_deadline),
):
     run_in_transaction(
          lambda db: PaymentService.delete_payment(db, principal, payment_id),
          deadline=deadline,
     )
     return None
