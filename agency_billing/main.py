import logging
from collections.abc import Mapping
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from agency_billing.config import settings
from agency_billing.database import async_session_factory, init_db
from agency_billing.api.v1.router import api_router
from agency_billing.core.exceptions import (
    AuthorizationError,
    BillingError,
    ConcurrencyConflictError,
    NotFoundError,
    NumberGenerationError,
    StoreError,
    StoreTimeoutError,
    ValidationError,
)
from agency_billing.jobs.scheduler import start_scheduler, shutdown_scheduler, get_scheduler_status
from agency_billing.services.billing_document_service import draft_errors, update_draft_errors
from agency_billing.services.validation import failed_fields, format_errors


logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    await init_db()
    if settings.STATUS_JOBS_ENABLED:
        start_scheduler()
    try:
        yield
    finally:
        shutdown_scheduler()
        logger.info(f"{settings.APP_NAME} stopped")


OPENAPI_TAGS = [
    {"name": "Quotations", "description": "Quotations, status changes, conversion and PDF export"},
    {"name": "Invoices", "description": "Invoices, payments, status changes and PDF export"},
    {"name": "Business Settings", "description": "Issuing company details and document defaults"},
]

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=OPENAPI_TAGS,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api/v1")


# Billing errors -> HTTP status
ERROR_STATUS = [
    (ValidationError, 422),
    (NotFoundError, 404),
    (AuthorizationError, 403),
    (ConcurrencyConflictError, 409),
    (NumberGenerationError, 503),
    (StoreTimeoutError, 504),
    (StoreError, 500),
]


def status_for(exc: BillingError) -> int:
    for exc_type, status_code in ERROR_STATUS:
        if isinstance(exc, exc_type):
            return status_code
    return 500


@app.exception_handler(BillingError)
async def billing_exception_handler(request: Request, exc: BillingError):
    """Map billing errors to responses; backend detail stays in the logs."""
    status_code = status_for(exc)
    content = {"detail": exc.message}
    if isinstance(exc, ValidationError):
        content["errors"] = exc.errors
    if isinstance(exc, StoreError):
        content["retryable"] = exc.retryable
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {type(exc).__name__}: {exc.message}")
    return JSONResponse(status_code=status_code, content=content)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Same 422 shape as service-level validation failures, cross-field rules included."""
    errors = exc.errors()
    messages = format_errors(errors)
    if isinstance(exc.body, Mapping):
        if request.method == "PATCH":
            messages += update_draft_errors(exc.body, failed_fields(errors))
        else:
            messages += draft_errors(exc.body, failed_fields(errors))
    return JSONResponse(
        status_code=422,
        content={"detail": "Validation failed", "errors": messages},
    )


async def _database_reachable() -> bool:
    try:
        async with async_session_factory() as session:
            await session.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Health check query failed: {e}")
        return False
    return True


@app.get("/health", tags=["Health"])
async def health_check():
    """Liveness plus a round trip to the database; 503 when the database is unreachable."""
    database_ok = await _database_reachable()
    body = {
        "status": "healthy" if database_ok else "unhealthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {
            "database": "connected" if database_ok else "error",
            "scheduler": get_scheduler_status()["running"],
        },
    }
    return JSONResponse(status_code=200 if database_ok else 503, content=body)
