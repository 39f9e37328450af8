"""Main FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import Annotated, AsyncGenerator

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from dentflow.api.dependencies import get_db
from dentflow.api.v1 import api_router
from dentflow.core.config import settings
from dentflow.core.database import Database, get_database
from dentflow.core.exceptions import DentflowError
from dentflow.core.logging import setup_logging
from dentflow.models import AppendOnlyViolation
from dentflow.security.keys import get_key_ring

# Initialize logging
logger = setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan events.

    Handles startup and shutdown tasks:
    - BSN key ring unwrapping (fails startup on bad key material)
    - Database connection verification
    - Resource cleanup on shutdown
    """
    # Startup
    logger.info(
        "Starting DentFlow API",
        extra={
            "version": settings.APP_VERSION,
            "env": settings.APP_ENV,
            "debug": settings.APP_DEBUG,
        },
    )

    get_key_ring()

    database = get_database()
    try:
        await database.ping()
        logger.info("Database connection verified")
    except (SQLAlchemyError, OSError) as e:
        logger.error("Failed to connect to database", extra={"error_type": type(e).__name__})
        raise

    logger.info("Application startup complete")

    yield

    # Shutdown
    logger.info("Shutting down DentFlow API")

    # Close database connections
    await database.dispose()
    logger.info("Database connections closed")

    logger.info("Application shutdown complete")


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Multi-tenant dental practice platform: patients, BSN vault and audit log",
    docs_url="/api/docs" if settings.APP_DEBUG else None,
    redoc_url="/api/redoc" if settings.APP_DEBUG else None,
    openapi_url="/api/openapi.json" if settings.APP_DEBUG else None,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DentflowError)
async def dentflow_error_handler(request: Request, exc: DentflowError) -> JSONResponse:
    """Translate domain errors; server errors get a generic message and a log line."""
    if exc.is_server_error:
        logger.error(
            "Request failed",
            extra={"error_type": type(exc).__name__, "path": request.url.path},
        )
        return JSONResponse(status_code=exc.status_code, content={"detail": DentflowError.default_message})
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(AppendOnlyViolation)
async def append_only_handler(request: Request, exc: AppendOnlyViolation) -> JSONResponse:
    logger.critical("Attempt to modify audit log", extra={"path": request.url.path})
    return JSONResponse(status_code=500, content={"detail": DentflowError.default_message})


# Health check endpoint
@app.get("/health", tags=["Health"])
async def health_check() -> JSONResponse:
    """Health check endpoint for load balancers and monitoring."""
    return JSONResponse(
        status_code=200,
        content={
            "status": "healthy",
            "service": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "environment": settings.APP_ENV,
        },
    )


# Readiness check endpoint
@app.get("/ready", tags=["Health"])
async def readiness_check(db: Annotated[Database, Depends(get_db)]) -> JSONResponse:
    """Readiness check endpoint - verifies database and key material."""
    checks = {"database": "unknown", "bsn_keys": "unknown"}

    try:
        await db.ping()
        checks["database"] = "ok"
    except (SQLAlchemyError, OSError) as e:
        logger.error("Database health check failed", extra={"error_type": type(e).__name__})
        checks["database"] = "error"

    try:
        get_key_ring()
        checks["bsn_keys"] = "ok"
    except ValueError:
        logger.error("BSN key ring could not be loaded")
        checks["bsn_keys"] = "error"

    ready = all(value == "ok" for value in checks.values())
    return JSONResponse(
        status_code=200 if ready else 503,
        content={
            "status": "ready" if ready else "not_ready",
            "service": settings.APP_NAME,
            "checks": checks,
        },
    )


# Root endpoint
@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": "/api/docs",
    }


# Include API routers
app.include_router(api_router, prefix="/api/v1")
