import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

import config
from database import check_connection, init_engine
from logging_config import configure_logging, get_logger
from routers import invoices_router, payments_router, reconciliation_router
from services.errors import (
    ConflictError,
    DeadlineExceededError,
    InvalidStateError,
    LedgerError,
    NotFoundError,
    PermissionDeniedError,
    TransientError,
    ValidationError,
)

configure_logging(config.LOG_LEVEL, json_output=config.LOG_JSON)
logger = get_logger("api")

init_engine()

# App instance
app = FastAPI(title="Billing Reconciliation API")

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Ledger errors -> HTTP status
ERROR_STATUS = {
    NotFoundError: 404,
    ValidationError: 400,
    InvalidStateError: 409,
    ConflictError: 409,
    PermissionDeniedError: 403,
    TransientError: 503,
    DeadlineExceededError: 504,
}


def status_for(exc: LedgerError) -> int:
    for error_type, status_code in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return status_code
    return 500


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    status_code = status_for(exc)
    log = logger.warning if status_code < 500 else logger.error
    log(
        "request_failed",
        extra={"path": request.url.path, "status": status_code, **exc.to_dict()},
    )
    return JSONResponse(status_code=status_code, content={"error": exc.code, "detail": exc.message})


@app.get("/api/health")
def health():
    return {"status": "ok", "database": check_connection()}


app.include_router(invoices_router)
app.include_router(payments_router)
app.include_router(reconciliation_router)

# 404 Fallback Middleware
@app.middleware("http")
async def not_found_middleware(request: Request, call_next):
    try:
        response = await call_next(request)
        # Unmatched routes only; handlers' own 404s pass through
        if response.status_code == 404 and request.scope.get("endpoint") is None:
            return JSONResponse(status_code=404, content={"error": "Route not found"})
        return response
    except Exception:
        logger.exception("unhandled_error", extra={"path": request.url.path})
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=config.PORT, reload=True)
