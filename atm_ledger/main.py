"""
ATM Ledger — FastAPI Application.

This is the entry point for the application.
All routers and the ledger error handler are registered here.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from atm_ledger.config import get_settings
from atm_ledger.errors import LedgerError
from atm_ledger.logging_config import setup_logging
from atm_ledger.api.health import router as health_router
from atm_ledger.api.accounts import router as accounts_router
from atm_ledger.api.transactions import router as transactions_router

settings = get_settings()
setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Account balances and an append-only transaction log for an ATM",
)


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    """
    Map a ledger failure to its status code.

    Only the short user message and the error kind leave the
    service; the detail stays in the log.
    """
    logger.info(
        "%s %s -> %s: %s", request.method, request.url.path, exc.kind, exc.detail,
        extra={"kind": exc.kind},
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.user_message, "error": exc.kind},
    )


# Register routers
app.include_router(health_router)
app.include_router(accounts_router)
app.include_router(transactions_router)


def run() -> None:
    """Serve the application with uvicorn using the configured host and port."""
    import uvicorn

    uvicorn.run(
        "atm_ledger.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )


if __name__ == "__main__":
    run()
