"""
Ledger API Application Factory

Business errors map to a JSON body ``{"error_code": ..., "message": ...}``
with a stable status per kind:

    VALIDATION_ERROR      400
    ACCOUNT_NOT_FOUND     404
    CONCURRENCY_CONFLICT  409
    INSUFFICIENT_FUNDS    422

Requests FastAPI cannot parse (wrong JSON types, non-integer ids) are
answered as VALIDATION_ERROR too, so 422 only ever means insufficient funds.
"""

from typing import Optional

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .accounts import router as accounts_router
from .transactions import router as transactions_router
from .admin import router as admin_router
from .. import __version__
from ..config import get_config
from ..errors import LedgerError, ValidationError
from ..ledger import Ledger
from ..logging_config import get_logger, setup_logging


logger = get_logger("ledger.api")


def create_app(ledger: Optional[Ledger] = None) -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="Ledger Engine API",
        description="Accounts with non-negative balances and an auditable transaction history",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )
    app.state.ledger = ledger or Ledger.from_config()

    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError):
        return JSONResponse(status_code=exc.http_status, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        # Malformed bodies and path parameters share the ValidationError contract
        logger.warning(f"Validation error on {request.url.path}: {exc.errors()}")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "error_code": ValidationError.error_code,
                "message": "Invalid request data",
                "details": [
                    {
                        "field": ".".join(str(loc) for loc in e["loc"]),
                        "message": e["msg"],
                        "type": e["type"],
                    }
                    for e in exc.errors()
                ],
            }
        )

    app.include_router(accounts_router, prefix="/accounts", tags=["Accounts"])
    app.include_router(transactions_router, prefix="/transactions", tags=["Transactions"])
    app.include_router(admin_router, tags=["Admin"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "ledger_api",
            "version": __version__
        }

    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "Ledger Engine API",
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "accounts": "/accounts",
                "transactions": "/transactions",
                "error_logs": "/error-logs",
                "export": "/export/{table}",
                "backup": "/backup",
            }
        }

    return app


def run_server(host: Optional[str] = None, port: Optional[int] = None):
    """Run the API server with settings from configuration"""
    config = get_config()
    setup_logging(config.log_level, "ledger", config.log_format)
    uvicorn.run(
        create_app(),
        host=host or config.api_host,
        port=port or config.api_port,
        log_level=config.log_level.lower()
    )
