"""
Event delivery and transaction runner tests.

Events leave the process only after commit; rollbacks, deadlines and
publisher failures never leak half-applied work.
"""
import time
from unittest import mock

import pytest
import requests
from sqlalchemy.exc import IntegrityError, OperationalError

from database import get_session_context, run_in_transaction
from models import Invoice, InvoiceStatus
from services import events
from services.errors import DeadlineExceededError, TransientError
from services.invoice_service import InvoiceService


def _mark_paid(staff, invoice_id):
    return lambda s: InvoiceService.mark_paid(s, staff, invoice_id, reference="BANK-1")


class TestDispatch:

    def test_published_after_commit(self, staff, tenant, committed_invoice, recorder):
        invoice_id = committed_invoice(tenant, 1000)
        run_in_transaction(_mark_paid(staff, invoice_id))

        assert recorder.names() == [events.INVOICE_PAID]
        event = recorder.events[0]
        assert event.entity_id == invoice_id
        assert event.company_id == tenant.company_id
        payload = event.to_payload()
        assert payload["event"] == "invoice.paid"
        assert payload["data"]["payment_reference"] == "BANK-1"

    def test_rollback_discards_events(self, staff, tenant, committed_invoice, recorder):
        invoice_id = committed_invoice(tenant, 1000)

        def pay_then_fail(session):
            InvoiceService.mark_paid(session, staff, invoice_id)
            raise RuntimeError("downstream failure")

        with pytest.raises(RuntimeError):
            run_in_transaction(pay_then_fail)

        assert recorder.events == []
        with get_session_context() as session:
            assert session.get(Invoice, invoice_id).status == InvoiceStatus.SENT

    def test_publisher_failure_does_not_undo_commit(self, staff, tenant, committed_invoice):
        class FailingPublisher:
            def publish(self, event):
                raise ConnectionError("notification service down")

        invoice_id = committed_invoice(tenant, 1000)
        previous = events.set_publisher(FailingPublisher())
        try:
            run_in_transaction(_mark_paid(staff, invoice_id))
        finally:
            events.set_publisher(previous)

        with get_session_context() as session:
            assert session.get(Invoice, invoice_id).status == InvoiceStatus.PAID

    def test_webhook_publisher_posts_payload(self):
        publisher = events.WebhookPublisher("https://notify.example.com/hooks", api_key="k")
        event = events.LedgerEvent(name=events.PAYMENT_LINKED, entity_id=4, company_id=1, data={"invoice_id": 9})
        response = mock.Mock(status_code=202, text="")

        with mock.patch.object(requests, "post", return_value=response) as post:
            publisher.publish(event)

        args, kwargs = post.call_args
        assert args[0] == "https://notify.example.com/hooks"
        assert kwargs["headers"]["api-key"] == "k"
        assert kwargs["json"]["event"] == "payment.linked"
        assert kwargs["json"]["data"] == {"invoice_id": 9}

    def test_webhook_publisher_raises_on_error_status(self):
        publisher = events.WebhookPublisher("https://notify.example.com/hooks")
        event = events.LedgerEvent(name=events.INVOICE_PAID, entity_id=1, company_id=1)

        with mock.patch.object(requests, "post", return_value=mock.Mock(status_code=500, text="nope")):
            with pytest.raises(Exception, match="Webhook error 500"):
                publisher.publish(event)


class TestTransactionRunner:

    def test_deadline_rolls_back(self, staff, tenant, committed_invoice, recorder):
        invoice_id = committed_invoice(tenant, 1000)

        with pytest.raises(DeadlineExceededError):
            run_in_transaction(_mark_paid(staff, invoice_id), deadline=time.monotonic() - 1)

        assert recorder.events == []
        with get_session_context() as session:
            assert session.get(Invoice, invoice_id).status == InvoiceStatus.SENT

    def test_retries_transient_errors(self):
        calls = []

        def flaky(session):
            calls.append(1)
            if len(calls) < 3:
                raise TransientError("busy")
            return "done"

        assert run_in_transaction(flaky, attempts=3) == "done"
        assert len(calls) == 3

    def test_operational_error_surfaces_as_transient(self):
        def locked(session):
            raise OperationalError("UPDATE invoices", {}, Exception("database is locked"))

        with pytest.raises(TransientError):
            run_in_transaction(locked, attempts=2)

    def test_other_errors_are_not_retried(self):
        calls = []

        def broken(session):
            calls.append(1)
            raise ValueError("bad input")

        with pytest.raises(ValueError):
            run_in_transaction(broken, attempts=3)
        assert len(calls) == 1

    def test_number_collision_is_retried(self):
        calls = []

        def racing(session):
            calls.append(1)
            if len(calls) == 1:
                raise IntegrityError(
                    "INSERT INTO invoices",
                    {},
                    Exception("UNIQUE constraint failed: invoices.company_id, invoices.invoice_number"),
                )
            return "done"

        assert run_in_transaction(racing, attempts=3) == "done"
        assert len(calls) == 2

    def test_persistent_number_collision_surfaces_as_transient(self):
        def always_taken(session):
            raise IntegrityError(
                "INSERT INTO payments",
                {},
                Exception("Violation of UNIQUE KEY constraint 'uq_payments_company_receipt'"),
            )

        with pytest.raises(TransientError):
            run_in_transaction(always_taken, attempts=2)

    def test_other_integrity_errors_are_not_retried(self):
        calls = []

        def dangling(session):
            calls.append(1)
            raise IntegrityError("INSERT INTO payments", {}, Exception("FOREIGN KEY constraint failed"))

        with pytest.raises(IntegrityError):
            run_in_transaction(dangling, attempts=3)
        assert len(calls) == 1
