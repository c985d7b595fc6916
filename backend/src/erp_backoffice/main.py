"""ERP Back Office - Main FastAPI Application

Multi-tenant, multi-company back office for Indonesian SMEs.

This module creates and configures the FastAPI application:
- API routers under /api/v1 (auth, companies, tenant users, warehouses)
- Middleware (request ID correlation, idempotency keys, CORS)
- Exception handlers mapping the AppError hierarchy onto JSON responses
- Health, readiness and metrics endpoints at the root
"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from . import __version__
from .audit.router import router as audit_router
from .auth.router import router as auth_router
from .companies.router import router as companies_router
from .config import Settings, get_settings
from .errors import AppError, TenantIsolationError
from .idempotency import IdempotencyMiddleware
from .observability.logging_config import configure_logging
from .observability.middleware import RequestIDMiddleware
from .observability.router import router as observability_router
from .security_headers import SecurityHeadersMiddleware
from .tenancy.router import router as tenant_users_router
from .warehouses.router import router as warehouses_router

API_PREFIX = "/api/v1"

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Validate configuration on startup and log lifecycle events."""
    settings = get_settings()
    settings.validate_for_environment(os.getenv("JWT_SECRET"))

    logger.info("ERP back office API starting up...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Tenant strict mode: {settings.TENANT_STRICT_MODE}")

    yield

    logger.info("ERP back office API shutting down...")


# =============================================================================
# EXCEPTION HANDLERS
# =============================================================================

async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.to_dict()},
        headers=exc.headers,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return field-level details for malformed request bodies and parameters."""
    logger.warning(
        f"Validation error on {request.method} {request.url.path}",
        extra={"errors": exc.errors()}
    )
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "validation_error",
            "message": "Request validation failed",
            "details": jsonable_errors(exc),
        },
    )


async def tenant_isolation_handler(request: Request, exc: TenantIsolationError) -> JSONResponse:
    # Always a bug: some code path ran a scoped query without tenant context.
    logger.error(
        f"Tenant isolation violation on {request.method} {request.url.path}: {exc}",
        extra={"path": request.url.path}
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "error": {
                "code": TenantIsolationError.code,
                "message": "Internal error: tenant isolation violation",
            },
        },
    )


async def database_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Log the full error but return a generic message."""
    logger.error(f"Database error on {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "error": {
                "code": "DATABASE_ERROR",
                "message": "A database error occurred. Please try again later.",
            },
        },
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled exception on {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred. Please try again later.",
            },
        },
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    """exc.errors() minus the raw ``ctx`` objects, which are not always JSON-serializable."""
    return [{k: v for k, v in error.items() if k != "ctx"} for error in exc.errors()]


def create_app(settings: Settings = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON)

    docs_enabled = not settings.is_production
    app = FastAPI(
        title="ERP Back Office API",
        description="Multi-tenant, multi-company ERP back office",
        version=__version__,
        docs_url="/docs" if docs_enabled else None,
        redoc_url="/redoc" if docs_enabled else None,
        openapi_url="/openapi.json" if docs_enabled else None,
        lifespan=lifespan,
    )

    # Last added runs first: CORS, security headers, request ID, idempotency.
    app.add_middleware(IdempotencyMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(SecurityHeadersMiddleware, settings=settings)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Subscription-Warning", "Retry-After"],
    )

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(TenantIsolationError, tenant_isolation_handler)
    app.add_exception_handler(SQLAlchemyError, database_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.include_router(observability_router)
    app.include_router(auth_router, prefix=API_PREFIX)
    app.include_router(companies_router, prefix=API_PREFIX)
    app.include_router(tenant_users_router, prefix=API_PREFIX)
    app.include_router(warehouses_router, prefix=API_PREFIX)
    app.include_router(audit_router, prefix=API_PREFIX)

    @app.get("/", tags=["Root"])
    async def root():
        return {"name": "ERP Back Office API", "version": __version__, "docs": "/docs"}

    return app


app = create_app()
