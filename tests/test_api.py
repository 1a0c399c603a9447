"""
HTTP API tests through FastAPI's TestClient.
"""
import pytest
from fastapi.testclient import TestClient
from jose import jwt

from main import app

client = TestClient(app)


def _headers(secret, user_id=10, role="admin", company_id=1):
    claims = {"id": user_id, "role": role}
    if company_id is not None:
        claims["company_id"] = company_id
    return {"Authorization": f"Bearer {jwt.encode(claims, secret, algorithm='HS256')}"}


@pytest.fixture
def auth(jwt_secret):
    return _headers(jwt_secret)


def _create_invoice(auth, tenant_id, amount="5000.00", send=True, **extra):
    body = {
        "tenant_id": tenant_id,
        "line_items": [{"description": "Monthly Rent", "unit_price": amount, "metadata": {"type": "rent"}}],
        "issue_date": "2026-10-18",
        "due_date": "2026-11-05",
        "send": send,
    }
    body.update(extra)
    response = client.post("/api/invoices", json=body, headers=auth)
    assert response.status_code == 201, response.text
    return response.json()


def _create_payment(auth, tenant_id, amount, **extra):
    body = {"tenant_id": tenant_id, "amount": amount, "payment_method": "mpesa"}
    body.update(extra)
    response = client.post("/api/payments", json=body, headers=auth)
    assert response.status_code == 201, response.text
    return response.json()


class TestAuth:

    def test_missing_token(self):
        assert client.get("/api/invoices").status_code == 401

    def test_bad_token(self, jwt_secret):
        response = client.get("/api/invoices", headers={"Authorization": "Bearer not-a-token"})
        assert response.status_code == 403

    def test_principal_without_company(self, jwt_secret):
        response = client.get("/api/invoices", headers=_headers(jwt_secret, company_id=None))
        assert response.status_code == 403
        assert response.json()["error"] == "PERMISSION_DENIED"


class TestInvoiceRoutes:

    def test_create_and_get(self, auth, tenant):
        created = _create_invoice(auth, tenant.id)
        assert created["invoice_number"] == "INV-000001"
        assert created["status"] == "sent"
        assert created["tenant_name"] == "John Doe"
        assert created["line_items"][0]["metadata"] == {"type": "rent"}

        fetched = client.get(f"/api/invoices/{created['id']}", headers=auth)
        assert fetched.status_code == 200
        assert fetched.json()["invoice_number"] == "INV-000001"

    def test_validation_error(self, auth, tenant):
        body = {"tenant_id": tenant.id, "issue_date": "2026-10-18"}
        response = client.post("/api/invoices", json=body, headers=auth)
        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"

    def test_foreign_invoice_is_404(self, jwt_secret, tenant, foreign_tenant):
        theirs = _create_invoice(_headers(jwt_secret, user_id=20, company_id=2), foreign_tenant.id)
        response = client.get(f"/api/invoices/{theirs['id']}", headers=_headers(jwt_secret))
        assert response.status_code == 404
        assert response.json()["error"] == "NOT_FOUND"

    def test_lifecycle(self, auth, tenant):
        draft = _create_invoice(auth, tenant.id, send=False)
        assert draft["status"] == "draft"

        sent = client.post(f"/api/invoices/{draft['id']}/send", headers=auth)
        assert sent.json()["status"] == "sent"

        paid = client.post(
            f"/api/invoices/{draft['id']}/mark-paid",
            json={"payment_method": "cash", "payment_reference": "DESK-7"},
            headers=auth,
        )
        assert paid.status_code == 200
        assert paid.json()["status"] == "paid"
        assert paid.json()["payment_reference"] == "DESK-7"

        cancel = client.post(f"/api/invoices/{draft['id']}/cancel", headers=auth)
        assert cancel.status_code == 409
        assert cancel.json()["detail"] == "cannot cancel a paid invoice"

        delete = client.delete(f"/api/invoices/{draft['id']}", headers=auth)
        assert delete.status_code == 409
        assert delete.json()["detail"] == "cannot delete paid invoices"

    def test_delete_unpaid(self, auth, tenant):
        invoice = _create_invoice(auth, tenant.id)
        assert client.delete(f"/api/invoices/{invoice['id']}", headers=auth).status_code == 204
        assert client.get(f"/api/invoices/{invoice['id']}", headers=auth).status_code == 404

    def test_list_and_summary(self, auth, tenant):
        _create_invoice(auth, tenant.id, amount="1000.00")
        second = _create_invoice(auth, tenant.id, amount="2000.00")
        client.post(f"/api/invoices/{second['id']}/mark-overdue", headers=auth)

        listing = client.get("/api/invoices", params={"overdue_only": True}, headers=auth).json()
        assert listing["total"] == 1
        assert listing["invoices"][0]["id"] == second["id"]

        summary = client.get(f"/api/invoices/tenant/{tenant.id}/summary", headers=auth).json()
        assert summary["total_invoices"] == 2
        assert float(summary["total_owed"]) == 3000.0
        assert float(summary["overdue_amount"]) == 2000.0


class TestPaymentAndReconciliationRoutes:

    def test_partial_payments_settle_invoice(self, auth, tenant):
        invoice = _create_invoice(auth, tenant.id, amount="5000.00")
        first = _create_payment(auth, tenant.id, "2000.00")
        second = _create_payment(auth, tenant.id, "3000.00")
        for payment in (first, second):
            approved = client.post(f"/api/payments/{payment['id']}/approve", json={"notes": "ok"}, headers=auth)
            assert approved.json()["status"] == "approved"

        linked = client.post(
            "/api/reconciliation/link",
            json={"payment_id": first["id"], "invoice_id": invoice["id"]},
            headers=auth,
        ).json()
        assert float(linked["total_paid"]) == 2000.0
        assert linked["is_fully_paid"] is False
        assert linked["invoice"]["status"] == "sent"

        linked = client.post(
            "/api/reconciliation/link",
            json={"payment_id": second["id"], "invoice_id": invoice["id"]},
            headers=auth,
        ).json()
        assert linked["is_fully_paid"] is True
        assert linked["invoice"]["status"] == "paid"
        assert linked["invoice"]["paid_date"] is not None

        balance = client.get(f"/api/invoices/{invoice['id']}/balance", headers=auth).json()
        assert float(balance["outstanding"]) == 0.0

    def test_link_to_paid_invoice_returns_reason(self, auth, tenant):
        invoice = _create_invoice(auth, tenant.id, amount="1000.00")
        client.post(f"/api/invoices/{invoice['id']}/mark-paid", headers=auth)
        payment = _create_payment(auth, tenant.id, "1000.00")

        response = client.post(
            "/api/reconciliation/link",
            json={"payment_id": payment["id"], "invoice_id": invoice["id"]},
            headers=auth,
        )
        assert response.status_code == 409
        assert response.json() == {"error": "CONFLICT", "detail": "invoice is already marked as paid"}
        assert client.get(f"/api/payments/{payment['id']}", headers=auth).json()["invoice_id"] is None

    def test_duplicate_transaction_id(self, auth, tenant):
        _create_payment(auth, tenant.id, "500.00", transaction_id="QJK3X8Y2ZP", status="completed")
        response = client.post(
            "/api/payments",
            json={"tenant_id": tenant.id, "amount": "500.00", "payment_method": "mpesa",
                  "transaction_id": "QJK3X8Y2ZP", "status": "completed"},
            headers=auth,
        )
        assert response.status_code == 409

    def test_delete_only_pending(self, auth, tenant):
        payment = _create_payment(auth, tenant.id, "100.00")
        other = _create_payment(auth, tenant.id, "100.00")
        client.post(f"/api/payments/{other['id']}/approve", headers=auth)

        assert client.delete(f"/api/payments/{payment['id']}", headers=auth).status_code == 204
        assert client.delete(f"/api/payments/{other['id']}", headers=auth).status_code == 409

    def test_auto_reconcile(self, auth, tenant):
        payment = _create_payment(auth, tenant.id, "1200.00")
        client.post(f"/api/payments/{payment['id']}/approve", headers=auth)
        invoice = _create_invoice(auth, tenant.id, amount="1200.00")

        result = client.post("/api/reconciliation/auto", headers=auth).json()
        assert result == {"reconciled": 1, "invoices_paid": 1, "failed": 0, "skipped": False}
        assert client.get(f"/api/invoices/{invoice['id']}", headers=auth).json()["status"] == "paid"

        unlinked = client.get("/api/payments", params={"unlinked_only": True}, headers=auth).json()
        assert unlinked["total"] == 0

    def test_overdue_sweep(self, auth, tenant):
        invoice = _create_invoice(auth, tenant.id)
        body = {"now": "2026-11-07T09:00:00"}

        first = client.post("/api/reconciliation/overdue-sweep", json=body, headers=auth).json()
        second = client.post("/api/reconciliation/overdue-sweep", json=body, headers=auth).json()

        assert first == {"updated": 1, "skipped": False}
        assert second == {"updated": 0, "skipped": False}
        assert client.get(f"/api/invoices/{invoice['id']}", headers=auth).json()["status"] == "overdue"

    def test_expired_deadline(self, auth, tenant):
        invoice = _create_invoice(auth, tenant.id)
        headers = dict(auth, **{"X-Request-Timeout": "0.000001"})
        response = client.post(f"/api/invoices/{invoice['id']}/mark-paid", headers=headers)
        assert response.status_code == 504
        assert client.get(f"/api/invoices/{invoice['id']}", headers=auth).json()["status"] == "sent"


def test_unknown_route():
    response = client.get("/api/nowhere")
    assert response.status_code == 404
    assert response.json() == {"error": "Route not found"}
