# services/__init__.py
from .invoice_service import InvoiceService
from .payment_service import PaymentService
from .reconciliation_service import ReconciliationService, LinkResult, ReconcileSummary
from .numbering_service import NumberingService
from .sweep_service import SweepService, SweepRunner, sweep_runner
from .principal import Principal

__all__ = [
     "InvoiceService",
     "PaymentService",
     "ReconciliationService",
     "LinkResult",
     "ReconcileSummary",
     "NumberingService",
     "SweepService",
     "SweepRunner",
     "sweep_runner",
     "Principal",
]
