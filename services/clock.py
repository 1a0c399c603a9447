# services/clock.py
"""Time helpers; services take an optional ``now`` and fall back to these."""
from datetime import date, datetime, timezone


def utcnow() -> datetime:
     """Current UTC time as a naive datetime (the ledger stores naive UTC)."""
     return datetime.now(timezone.utc).replace(tzinfo=None)


def today() -> date:
     return utcnow().date()


def as_naive_utc(value: datetime) -> datetime:
     if value.tzinfo is None:
          return value
     return value.astimezone(timezone.utc).replace(tzinfo=None)
