# logging_config.py
"""Structured JSON logging for the billing service."""
import json
import logging
import sys
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

ROOT_LOGGER_NAME = "billing"

# Attributes every LogRecord carries; anything else came in through ``extra``.
_RESERVED = frozenset(
     logging.LogRecord("", 0, "", 0, "", None, None).__dict__.keys()
) | {"message", "asctime"}


def _json_default(value: Any) -> Any:
     if isinstance(value, Decimal):
          return str(value)
     if isinstance(value, (datetime, date)):
          return value.isoformat()
     return str(value)


class StructuredFormatter(logging.Formatter):
     """Render each record as one JSON object per line."""

     def format(self, record: logging.LogRecord) -> str:
          payload = {
               "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
               "level": record.levelname,
               "logger": record.name,
               "message": record.getMessage(),
          }
          for key, value in record.__dict__.items():
               if key not in _RESERVED and not key.startswith("_"):
                    payload[key] = value
          if record.exc_info:
               payload["exception"] = self.formatException(record.exc_info)
          return json.dumps(payload, default=_json_default)


def get_logger(name: str) -> logging.Logger:
     """Return a logger under the ``billing.`` namespace."""
     return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def configure_logging(level: int | str = logging.INFO, json_output: bool = True) -> None:
     """
     Attach a single stream handler to the ``billing`` logger.

     Safe to call repeatedly; earlier handlers installed here are replaced.
     """
     logger = logging.getLogger(ROOT_LOGGER_NAME)
     reset_logging()
     handler = logging.StreamHandler(sys.stdout)
     handler._billing_handler = True
     if json_output:
          handler.setFormatter(StructuredFormatter())
     else:
          handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
     logger.addHandler(handler)
     logger.setLevel(level)


def reset_logging() -> None:
     logger = logging.getLogger(ROOT_LOGGER_NAME)
     for handler in list(logger.handlers):
          if getattr(handler, "_billing_handler", False):
               logger.removeHandler(handler)
