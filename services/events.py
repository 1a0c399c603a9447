# services/events.py
"""
Outbound ledger events.

Services call ``emit(db, ...)`` while they mutate the ledger. Events are held
on the session until the surrounding transaction commits; the transaction
runner then hands them to the configured publisher. A rollback discards them,
so the notification collaborator never hears about work that did not happen.

Delivery is fire-and-forget: a failing publisher is logged and ignored.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Protocol

from sqlalchemy.orm import Session

import config
from logging_config import get_logger
from utils.webhook import post_json

logger = get_logger("events")

INVOICE_PAID = "invoice.paid"
INVOICE_OVERDUE = "invoice.overdue"
PAYMENT_APPROVED = "payment.approved"
PAYMENT_LINKED = "payment.linked"

_SESSION_KEY = "pending_ledger_events"


@dataclass(frozen=True)
class LedgerEvent:
     name: str
     entity_id: int
     company_id: int
     data: dict = field(default_factory=dict)
     occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

     def to_payload(self) -> dict:
          return {
               "event": self.name,
               "entity_id": self.entity_id,
               "company_id": self.company_id,
               "occurred_at": self.occurred_at.isoformat(),
               "data": self.data,
          }


class EventPublisher(Protocol):
     def publish(self, event: LedgerEvent) -> None: ...


class LoggingPublisher:
     """Publisher used when no webhook is configured."""

     def publish(self, event: LedgerEvent) -> None:
          logger.info("ledger_event", extra=event.to_payload())


class WebhookPublisher:
     """POSTs each event to the notification collaborator."""

     def __init__(self, url: str, api_key: Optional[str] = None):
          self.url = url
          self.api_key = api_key

     def publish(self, event: LedgerEvent) -> None:
          post_json(self.url, event.to_payload(), api_key=self.api_key)


class RecordingPublisher:
     """Keeps published events in memory; handy for tests and local runs."""

     def __init__(self):
          self.events: list[LedgerEvent] = []

     def publish(self, event: LedgerEvent) -> None:
          self.events.append(event)

     def names(self) -> list[str]:
          return [e.name for e in self.events]


def _default_publisher() -> EventPublisher:
     if config.NOTIFICATION_WEBHOOK_URL:
          return WebhookPublisher(config.NOTIFICATION_WEBHOOK_URL, config.NOTIFICATION_WEBHOOK_KEY)
     return LoggingPublisher()


_publisher: EventPublisher = _default_publisher()


def set_publisher(publisher: EventPublisher) -> EventPublisher:
     """Install a publisher and return the previous one."""
     global _publisher
     previous = _publisher
     _publisher = publisher
     return previous


def get_publisher() -> EventPublisher:
     return _publisher


def emit(db: Session, name: str, entity_id: int, company_id: int, **data) -> LedgerEvent:
     """Record an event to be published once ``db`` commits."""
     event = LedgerEvent(name=name, entity_id=entity_id, company_id=company_id, data=data)
     db.info.setdefault(_SESSION_KEY, []).append(event)
     return event


def pending(db: Session) -> list[LedgerEvent]:
     return list(db.info.get(_SESSION_KEY, []))


def discard(db: Session) -> None:
     db.info.pop(_SESSION_KEY, None)


def dispatch(db: Session) -> int:
     """
     Publish and clear the events recorded on ``db``.

     Must only be called after a successful commit. Returns the number of
     events delivered without error.
     """
     events = db.info.pop(_SESSION_KEY, [])
     delivered = 0
     for event in events:
          try:
               _publisher.publish(event)
               delivered += 1
          except Exception:
               logger.warning(
                    "ledger_event_delivery_failed",
                    exc_info=True,
                    extra={"event": event.name, "entity_id": event.entity_id},
               )
     return delivered


def checkpoint(db: Session) -> int:
     """Marker for ``rollback_to``; take it right after ``begin_nested()``."""
     return len(db.info.get(_SESSION_KEY, []))


def rollback_to(db: Session, mark: int) -> None:
     """Drop events recorded after ``mark`` when a savepoint is rolled back."""
     recorded = db.info.get(_SESSION_KEY)
     if recorded is not None:
          del recorded[mark:]
