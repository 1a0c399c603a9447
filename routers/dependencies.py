# routers/dependencies.py
"""
Shared FastAPI dependencies.

Tokens are issued by the identity service; this module only verifies them and
turns the claims into the ``Principal`` the billing services act for.
"""
import time
from typing import Optional

from fastapi import HTTPException, Request

from jose import JWTError, jwt

import config
from services.principal import Principal


def verify_token(request: Request) -> dict:
     auth = request.headers.get("Authorization")
     if not auth or not auth.startswith("Bearer "):
          raise HTTPException(status_code=401, detail="Missing token")
     token = auth.split(" ")[1]
     try:
          return jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
     except JWTError:
          raise HTTPException(status_code=403, detail="Invalid token")


def get_principal(request: Request) -> Principal:
     """Resolve the bearer token into the acting principal."""
     payload = verify_token(request)
     user_id = payload.get("id")
     role = payload.get("role")
     if user_id is None or not role:
          raise HTTPException(status_code=403, detail="Invalid token")
     company_id = payload.get("company_id")
     return Principal(
          user_id=int(user_id),
          role=role,
          company_id=int(company_id) if company_id is not None else None,
     )


def get_deadline(request: Request) -> Optional[float]:
     """
     Optional caller deadline from ``X-Request-Timeout`` (seconds), as a
     ``time.monotonic()`` value for ``run_in_transaction``.
     """
     raw = request.headers.get("X-Request-Timeout")
     if not raw:
          return None
     try:
          seconds = float(raw)
     except ValueError:
          raise HTTPException(status_code=400, detail="X-Request-Timeout must be a number of seconds")
     if seconds <= 0:
          raise HTTPException(status_code=400, detail="X-Request-Timeout must be positive")
     return time.monotonic() + seconds
