"""
Pytest fixtures for the billing test suite.

Provides:
- A file-backed SQLite database per test (writers serialize on BEGIN IMMEDIATE,
  so threads in concurrency tests really contend for the same file)
- Seeded tenants in two companies and the principals acting for them
- A recording event publisher

Tests that use the ``db`` session must not also call ``run_in_transaction``:
the open session holds the SQLite write lock until the fixture rolls it back.
"""
from datetime import date, datetime
from decimal import Decimal

import pytest

import config
import database
from database import get_session_context, init_db, init_engine, run_in_transaction
from models import Tenant
from schemas.invoice import InvoiceCreate, LineItemCreate
from schemas.payment import PaymentCreate
from services import events
from services.invoice_service import InvoiceService
from services.payment_service import PaymentService
from services.principal import Principal

COMPANY_A = 1
COMPANY_B = 2


@pytest.fixture(autouse=True)
def engine(tmp_path):
    """Fresh database file for every test."""
    eng = init_engine(f"sqlite:///{tmp_path / 'billing_test.db'}", echo=False)
    init_db()
    yield eng
    eng.dispose()
    database.engine = None


@pytest.fixture(autouse=True)
def recorder():
    """Capture published ledger events instead of logging them."""
    publisher = events.RecordingPublisher()
    previous = events.set_publisher(publisher)
    yield publisher
    events.set_publisher(previous)


@pytest.fixture
def db(engine):
    session = database.SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


def _seed_tenant(company_id: int, first_name: str, last_name: str) -> Tenant:
    with get_session_context() as session:
        tenant = Tenant(company_id=company_id, first_name=first_name, last_name=last_name,
                        email=f"{first_name.lower()}@example.com")
        session.add(tenant)
        session.flush()
    return tenant


@pytest.fixture
def tenant(engine) -> Tenant:
    return _seed_tenant(COMPANY_A, "John", "Doe")


@pytest.fixture
def other_tenant(engine) -> Tenant:
    """Second tenant in the same company."""
    return _seed_tenant(COMPANY_A, "Mary", "Wanjiru")


@pytest.fixture
def foreign_tenant(engine) -> Tenant:
    """Tenant of a different company."""
    return _seed_tenant(COMPANY_B, "Peter", "Otieno")


@pytest.fixture
def staff() -> Principal:
    return Principal(user_id=10, role="admin", company_id=COMPANY_A)


@pytest.fixture
def other_staff() -> Principal:
    return Principal(user_id=20, role="admin", company_id=COMPANY_B)


@pytest.fixture
def operator() -> Principal:
    """Platform-level operator, not bound to a company."""
    return Principal(user_id=1, role="super_admin")


@pytest.fixture
def jwt_secret(monkeypatch):
    monkeypatch.setattr(config, "JWT_SECRET", "test-secret")
    return "test-secret"


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def invoice_draft(tenant_id: int, amount, send: bool = True, due_date: date = date(2026, 11, 5), **overrides):
    data = dict(
        tenant_id=tenant_id,
        line_items=[LineItemCreate(description="Monthly Rent", unit_price=Decimal(str(amount)))],
        issue_date=date(2026, 10, 18),
        due_date=due_date,
        send=send,
    )
    data.update(overrides)
    return InvoiceCreate(**data)


def payment_draft(tenant_id: int, amount, status: str = "pending", **overrides):
    data = dict(
        tenant_id=tenant_id,
        amount=Decimal(str(amount)),
        payment_method="mpesa",
        payment_date=datetime(2026, 10, 20, 9, 30),
        status=status,
    )
    data.update(overrides)
    return PaymentCreate(**data)


@pytest.fixture
def make_invoice(db, staff):
    """Create an invoice in the ``db`` session."""
    def _make(tenant, amount, principal=None, **kwargs):
        return InvoiceService.create_invoice(db, principal or staff, invoice_draft(tenant.id, amount, **kwargs))
    return _make


@pytest.fixture
def make_payment(db, staff):
    """Create a payment in the ``db`` session."""
    def _make(tenant, amount, principal=None, **kwargs):
        return PaymentService.create_payment(db, principal or staff, payment_draft(tenant.id, amount, **kwargs))
    return _make


@pytest.fixture
def committed_invoice(staff):
    """Create and commit an invoice in its own transaction; returns its id."""
    def _make(tenant, amount, principal=None, **kwargs):
        return run_in_transaction(
            lambda s: InvoiceService.create_invoice(s, principal or staff, invoice_draft(tenant.id, amount, **kwargs)).id
        )
    return _make


@pytest.fixture
def committed_payment(staff):
    """Create and commit a payment in its own transaction; returns its id."""
    def _make(tenant, amount, principal=None, **kwargs):
        return run_in_transaction(
            lambda s: PaymentService.create_payment(s, principal or staff, payment_draft(tenant.id, amount, **kwargs)).id
        )
    return _make
