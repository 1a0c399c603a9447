# config.py
"""
Runtime configuration loaded from the environment (.env supported).

Values are read once at import time and exposed as module constants.
"""
import os

from dotenv import load_dotenv

# Load .env
load_dotenv()


def _bool(name: str, default: str) -> bool:
     return os.getenv(name, default).lower() in ("1", "true", "yes")


# Database
DATABASE_URL = os.getenv("DATABASE_URL")
DB_SERVER = os.getenv("DB_SERVER")
DB_PORT = os.getenv("DB_PORT", "1433")
DB_USER = os.getenv("DB_USER")
DB_PASS = os.getenv("DB_PASS")
DB_NAME = os.getenv("DB_NAME")
SQL_ECHO = _bool("SQL_ECHO", "false")

# Auth
JWT_SECRET = os.getenv("JWT_SECRET")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

# HTTP
CORS_ORIGINS = [o for o in os.getenv("CORS_ORIGINS", "").split(",") if o]
PORT = int(os.getenv("PORT", 10000))

# Billing
DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "KES")
DEFAULT_RENT_DUE_DAY = int(os.getenv("DEFAULT_RENT_DUE_DAY", 5))
OVERDUE_GRACE_DAYS = int(os.getenv("OVERDUE_GRACE_DAYS", 0))
INVOICE_NUMBER_PREFIX = os.getenv("INVOICE_NUMBER_PREFIX", "INV")
RECEIPT_NUMBER_PREFIX = os.getenv("RECEIPT_NUMBER_PREFIX", "RCP")
NUMBER_WIDTH = max(6, int(os.getenv("NUMBER_WIDTH", 6)))
TRANSACTION_RETRY_ATTEMPTS = int(os.getenv("TRANSACTION_RETRY_ATTEMPTS", 3))

# Notifications
NOTIFICATION_WEBHOOK_URL = os.getenv("NOTIFICATION_WEBHOOK_URL")
NOTIFICATION_WEBHOOK_KEY = os.getenv("NOTIFICATION_WEBHOOK_KEY")

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_JSON = _bool("LOG_JSON", "true")
