# routers/__init__.py
from .invoices import router as invoices_router
from .payments import router as payments_router
from .reconciliation import router as reconciliation_router

__all__ = ["invoices_router", "payments_router", "reconciliation_router"]
