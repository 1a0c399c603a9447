"""
Payment ledger tests: creation, duplicate references, approval and the
reconciliation that approval triggers.
"""
from datetime import datetime
from decimal import Decimal

import pytest

from conftest import payment_draft
from models import InvoiceStatus, Payment, PaymentStatus
from services.errors import ConflictError, InvalidStateError, NotFoundError, TransientError, ValidationError
from services.invoice_service import InvoiceService
from services.numbering_service import NumberingService
from services.payment_service import PaymentService


class TestCreatePayment:

    def test_assigns_receipt_number(self, db, staff, tenant):
        payment = PaymentService.create_payment(db, staff, payment_draft(tenant.id, 1500))

        assert payment.receipt_number == "RCP-000001"
        assert payment.status == PaymentStatus.PENDING
        assert payment.company_id == tenant.company_id
        assert payment.currency == "KES"
        assert payment.received_from == "John Doe"
        assert payment.created_by == staff.user_id
        assert payment.invoice_id is None

    def test_unknown_or_foreign_tenant(self, db, staff, foreign_tenant):
        with pytest.raises(NotFoundError):
            PaymentService.create_payment(db, staff, payment_draft(9999, 100))
        with pytest.raises(NotFoundError):
            PaymentService.create_payment(db, staff, payment_draft(foreign_tenant.id, 100))

    def test_cannot_create_as_approved(self, db, staff, tenant):
        with pytest.raises(ValidationError):
            PaymentService.create_payment(db, staff, payment_draft(tenant.id, 100, status="approved"))

    def test_duplicate_transaction_id_rejected(self, db, staff, tenant):
        PaymentService.create_payment(db, staff, payment_draft(tenant.id, 100, transaction_id="QJK3X8Y2ZP"))
        with pytest.raises(ConflictError):
            PaymentService.create_payment(db, staff, payment_draft(tenant.id, 100, transaction_id="QJK3X8Y2ZP"))

    def test_duplicate_reference_across_columns_rejected(self, db, staff, tenant):
        PaymentService.create_payment(db, staff, payment_draft(tenant.id, 100, transaction_id="REF-1"))
        with pytest.raises(ConflictError):
            PaymentService.create_payment(db, staff, payment_draft(tenant.id, 100, reference_number="REF-1"))

    def test_same_reference_allowed_in_other_company(self, db, staff, other_staff, tenant, foreign_tenant):
        PaymentService.create_payment(db, staff, payment_draft(tenant.id, 100, transaction_id="SHARED"))
        other = PaymentService.create_payment(
            db, other_staff, payment_draft(foreign_tenant.id, 100, transaction_id="SHARED")
        )
        assert other.id is not None

    def test_reference_caught_by_unique_index_is_conflict(self, db, staff, tenant, monkeypatch):
        PaymentService.create_payment(db, staff, payment_draft(tenant.id, 100, transaction_id="QJK3X8Y2ZP"))
        monkeypatch.setattr(PaymentService, "_ensure_unique_references", staticmethod(lambda *args: None))

        with pytest.raises(ConflictError, match="duplicate payment reference"):
            PaymentService.create_payment(db, staff, payment_draft(tenant.id, 100, transaction_id="QJK3X8Y2ZP"))

    def test_taken_receipt_number_is_retryable_not_a_duplicate(self, db, staff, tenant, monkeypatch):
        first = PaymentService.create_payment(db, staff, payment_draft(tenant.id, 100))
        monkeypatch.setattr(
            NumberingService, "next_receipt_number", staticmethod(lambda session, company_id: first.receipt_number)
        )

        with pytest.raises(TransientError):
            PaymentService.create_payment(db, staff, payment_draft(tenant.id, 100, transaction_id="FRESH-1"))

    def test_payments_without_references_do_not_collide(self, db, staff, tenant):
        first = PaymentService.create_payment(db, staff, payment_draft(tenant.id, 100))
        second = PaymentService.create_payment(db, staff, payment_draft(tenant.id, 100))
        assert first.receipt_number != second.receipt_number

    def test_completed_payment_is_auto_matched(self, db, staff, make_invoice, tenant):
        invoice = make_invoice(tenant, 1200)
        payment = PaymentService.create_payment(db, staff, payment_draft(tenant.id, 1200, status="completed"))

        assert payment.invoice_id == invoice.id
        assert invoice.status == InvoiceStatus.PAID
        assert invoice.payment_reference == payment.receipt_number

    def test_pending_payment_is_linked_but_settles_on_approval(self, db, staff, make_invoice, tenant):
        invoice = make_invoice(tenant, 1200)
        payment = PaymentService.create_payment(db, staff, payment_draft(tenant.id, 1200))

        assert payment.invoice_id == invoice.id
        assert invoice.status == InvoiceStatus.SENT

        PaymentService.approve_payment(db, staff, payment.id)
        assert invoice.status == InvoiceStatus.PAID
        assert invoice.payment_reference == payment.receipt_number

    def test_completed_payment_without_exact_match_stays_unlinked(self, db, staff, make_invoice, tenant):
        invoice = make_invoice(tenant, 1200)
        payment = PaymentService.create_payment(db, staff, payment_draft(tenant.id, 1000, status="completed"))

        assert payment.invoice_id is None
        assert invoice.status == InvoiceStatus.SENT

    def test_explicit_invoice_link_on_create(self, db, staff, make_invoice, tenant):
        invoice = make_invoice(tenant, 5000)
        payment = PaymentService.create_payment(
            db, staff, payment_draft(tenant.id, 2000, status="completed", invoice_id=invoice.id)
        )
        assert payment.invoice_id == invoice.id
        assert invoice.status == InvoiceStatus.SENT

    def test_explicit_link_to_paid_invoice_fails_creation(self, db, staff, make_invoice, tenant):
        invoice = make_invoice(tenant, 5000)
        InvoiceService.mark_paid(db, staff, invoice.id)
        with pytest.raises(ConflictError, match="invoice is already marked as paid"):
            PaymentService.create_payment(db, staff, payment_draft(tenant.id, 5000, invoice_id=invoice.id))


class TestApprovePayment:

    def test_approve_stamps_processing_fields(self, db, staff, make_payment, tenant):
        payment = make_payment(tenant, 100)
        when = datetime(2026, 10, 21, 8, 0)
        PaymentService.approve_payment(db, staff, payment.id, notes="checked statement", now=when)

        assert payment.status == PaymentStatus.APPROVED
        assert payment.processed_by == staff.user_id
        assert payment.processed_at == when
        assert payment.approval_notes == "checked statement"

    def test_only_pending_can_be_approved(self, db, staff, make_payment, tenant):
        payment = make_payment(tenant, 100)
        PaymentService.approve_payment(db, staff, payment.id)
        with pytest.raises(InvalidStateError):
            PaymentService.approve_payment(db, staff, payment.id)

    def test_approval_auto_matches(self, db, staff, make_invoice, make_payment, tenant):
        invoice = make_invoice(tenant, 1200)
        payment = make_payment(tenant, 1200)
        PaymentService.approve_payment(db, staff, payment.id)

        assert payment.invoice_id == invoice.id
        assert invoice.status == InvoiceStatus.PAID

    def test_approval_settles_linked_invoice(self, db, staff, make_invoice, make_payment, tenant):
        invoice = make_invoice(tenant, 5000)
        first = make_payment(tenant, 3000, invoice_id=invoice.id)
        second = make_payment(tenant, 2000, invoice_id=invoice.id)

        PaymentService.approve_payment(db, staff, first.id)
        assert invoice.status == InvoiceStatus.SENT

        PaymentService.approve_payment(db, staff, second.id)
        assert invoice.status == InvoiceStatus.PAID
        assert invoice.payment_reference == second.receipt_number

    def test_approval_does_not_fail_when_no_invoice_matches(self, db, staff, make_payment, tenant):
        payment = make_payment(tenant, 999)
        PaymentService.approve_payment(db, staff, payment.id)
        assert payment.status == PaymentStatus.APPROVED
        assert payment.invoice_id is None

    def test_auto_match_never_crosses_tenants(self, db, staff, make_invoice, make_payment, tenant, other_tenant):
        invoice = make_invoice(other_tenant, 1200)
        payment = make_payment(tenant, 1200)
        PaymentService.approve_payment(db, staff, payment.id)

        assert payment.invoice_id is None
        assert invoice.status == InvoiceStatus.SENT


class TestOtherTransitions:

    def test_reject_pending(self, db, staff, make_payment, tenant):
        payment = make_payment(tenant, 100)
        PaymentService.reject_payment(db, staff, payment.id, notes="bounced")
        assert payment.status == PaymentStatus.REJECTED
        assert payment.approval_notes == "bounced"

    def test_reject_requires_pending(self, db, staff, make_payment, tenant):
        payment = make_payment(tenant, 100, status="completed")
        with pytest.raises(InvalidStateError):
            PaymentService.reject_payment(db, staff, payment.id)

    def test_complete_after_approval(self, db, staff, make_payment, tenant):
        payment = make_payment(tenant, 100)
        with pytest.raises(InvalidStateError):
            PaymentService.complete_payment(db, staff, payment.id)
        PaymentService.approve_payment(db, staff, payment.id)
        PaymentService.complete_payment(db, staff, payment.id)
        assert payment.status == PaymentStatus.COMPLETED

    def test_delete_pending(self, db, staff, make_payment, tenant):
        payment = make_payment(tenant, 100)
        payment_id = payment.id
        PaymentService.delete_payment(db, staff, payment_id)
        assert db.get(Payment, payment_id) is None

    def test_delete_approved_fails(self, db, staff, make_payment, tenant):
        payment = make_payment(tenant, 100)
        PaymentService.approve_payment(db, staff, payment.id)
        with pytest.raises(InvalidStateError):
            PaymentService.delete_payment(db, staff, payment.id)


class TestListPayments:

    def test_filters_and_scope(self, db, staff, other_staff, make_invoice, make_payment, tenant, foreign_tenant):
        invoice = make_invoice(tenant, 5000)
        make_payment(tenant, 100, invoice_id=invoice.id)
        make_payment(tenant, 200)
        make_payment(foreign_tenant, 300, principal=other_staff)

        _, total = PaymentService.list_payments(db, staff)
        assert total == 2

        unlinked, _ = PaymentService.list_payments(db, staff, unlinked_only=True)
        assert [p.amount for p in unlinked] == [Decimal("200.00")]

        pending, _ = PaymentService.list_payments(db, staff, status=PaymentStatus.PENDING, tenant_id=tenant.id)
        assert len(pending) == 2
