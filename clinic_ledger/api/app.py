"""FastAPI application for the clinic ledger."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from clinic_ledger import __version__
from clinic_ledger.api.middleware import APIKeyMiddleware, RequestLoggingMiddleware
from clinic_ledger.api.routes import appointment_billing, billing_codes, health, invoices, payments, reports
from clinic_ledger.billing.errors import LedgerError
from clinic_ledger.billing.service import BillingService
from clinic_ledger.config import get_settings

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    "validation_error": 422,
    "not_found": 404,
    "conflict": 409,
    "empty": 422,
    "persistence_error": 503,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Starting clinic ledger API")

    from clinic_ledger.core.database import init_db

    store = await init_db()
    app.state.store = store
    app.state.service = BillingService.from_settings(store)

    logger.info("Clinic ledger API started successfully")

    yield

    logger.info("Shutting down clinic ledger API")
    await store.dispose()


def register_exception_handlers(app: FastAPI) -> None:
    settings = get_settings()

    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError):
        status_code = ERROR_STATUS.get(exc.kind, 400)
        if status_code >= 500:
            logger.error(f"{exc.kind} on {request.method} {request.url.path}: {exc.message}")
        return JSONResponse(status_code=status_code, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled exception: {exc}")
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_error",
                "detail": str(exc) if settings.debug_mode else None,
            },
        )


def include_routers(app: FastAPI) -> None:
    app.include_router(health.router, tags=["health"])
    app.include_router(billing_codes.router, prefix="/api/v1")
    app.include_router(appointment_billing.router, prefix="/api/v1")
    app.include_router(invoices.router, prefix="/api/v1")
    app.include_router(payments.router, prefix="/api/v1")
    app.include_router(reports.router, prefix="/api/v1")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Clinic Ledger API",
        description="Billing codes, invoices, payments and financial reports for a clinic",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    if settings.api_key:
        app.add_middleware(APIKeyMiddleware, api_key=settings.api_key)

    include_routers(app)
    register_exception_handlers(app)

    return app
