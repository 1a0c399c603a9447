# services/sweep_service.py
"""
Sweep jobs - bulk passes triggered by an external scheduler.

The service holds no timers. ``SweepRunner`` is only a cooperative guard so
that a trigger firing while the same sweep is still running in this process
is skipped instead of piling up behind it; correctness never depends on it,
since every mutation re-checks the row's status under a lock.
"""
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Optional

from sqlalchemy.orm import Session

import config
from logging_config import get_logger
from models import InvoiceStatus
from services.clock import as_naive_utc, utcnow
from services.invoice_service import InvoiceService
from services.principal import Principal
from services.reconciliation_service import ReconciliationService, ReconcileSummary

logger = get_logger("services.sweep")

OVERDUE_SWEEP = "overdue"
AUTO_RECONCILE_SWEEP = "auto_reconcile"


class SweepService:

     @staticmethod
     def overdue_sweep(
          db: Session,
          principal: Principal,
          now: Optional[datetime] = None,
          grace_days: Optional[int] = None,
     ) -> int:
          """
          Flip every sent invoice whose due date has passed to overdue.

          Only ``sent`` rows are ever selected, and each one is re-read under a
          lock before the flip, so the sweep never moves an invoice backwards or
          touches draft, paid or canceled invoices. A candidate deleted in the
          meantime is skipped. Returns the number flipped.
          """
          now = as_naive_utc(now) if now else utcnow()
          if grace_days is None:
               grace_days = config.OVERDUE_GRACE_DAYS
          scope = principal.scope()

          candidates = InvoiceService.find_overdue_candidates(db, now, company_id=scope, grace_days=grace_days)
          updated = 0
          for candidate in candidates:
               invoice = ReconciliationService.try_lock_invoice(db, candidate.id, candidate.company_id)
               if invoice is None or invoice.status != InvoiceStatus.SENT:
                    # Gone or no longer sent since the candidate query
                    continue
               if InvoiceService.apply_overdue(db, invoice):
                    updated += 1

          logger.info(
               "overdue_sweep_completed",
               extra={
                    "company_id": scope,
                    "now": now.isoformat(),
                    "grace_days": grace_days,
                    "candidates": len(candidates),
                    "updated": updated,
               },
          )
          return updated

     @staticmethod
     def auto_reconcile(db: Session, principal: Principal, now: Optional[datetime] = None) -> ReconcileSummary:
          return ReconciliationService.auto_reconcile_payments(db, principal, now=now)


@dataclass
class SweepOutcome:
     skipped: bool
     result: object = None


class SweepRunner:
     """Single-flight guard keyed by sweep name."""

     def __init__(self):
          self._guard = threading.Lock()
          self._locks: Dict[str, threading.Lock] = {}

     def _lock_for(self, name: str) -> threading.Lock:
          with self._guard:
               lock = self._locks.get(name)
               if lock is None:
                    lock = self._locks[name] = threading.Lock()
               return lock

     def is_running(self, name: str) -> bool:
          return self._lock_for(name).locked()

     def run(self, name: str, job: Callable[[], object]) -> SweepOutcome:
          lock = self._lock_for(name)
          if not lock.acquire(blocking=False):
               logger.info("sweep_skipped", extra={"sweep": name, "reason": "already_running"})
               return SweepOutcome(skipped=True)
          try:
               return SweepOutcome(skipped=False, result=job())
          finally:
               lock.release()


sweep_runner = SweepRunner()
