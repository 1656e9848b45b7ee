"""
FastAPI Application Entry Point

Tableside - multi-tenant restaurant ordering API.

Endpoints:
    - /api/auth: sign-up, sign-in, current user
    - /api/cart: the caller's cart
    - /api/orders: checkout and the caller's orders
    - /api/admin/orders: order workflow for staff
    - /api/restaurants, /api/categories, /api/products,
      /api/extras, /api/components: restaurant and catalog
    - /api/tables: tables and availability
    - /api/users, /api/admin/users: accounts
    - GET /health: System health check
"""

import logging
from datetime import datetime
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tableside.api import ROUTERS
from tableside.core.config import get_settings, setup_logging
from tableside.database import get_db, init_db, engine
from tableside.exceptions import TablesideError
from tableside.schemas import HealthResponse
from tableside.services.identity import get_token_service
from tableside.services.storage import get_blob_store

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    logger.info("=" * 60)
    logger.info(f"Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    await init_db()
    logger.info("Database initialized")

    logger.info(f"Identity Service: {get_token_service().provider_name}")
    logger.info(f"Blob Store: {get_blob_store().provider_name}")

    if not settings.is_development:
        missing = settings.validate_production_config()
        if missing:
            logger.warning(f"Production config problems: {missing}")

    logger.info("Application ready")

    yield  # Application runs

    logger.info("Shutting down...")
    await engine.dispose()
    logger.info("Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Restaurant ordering API: catalog with priced customizations, "
        "per-user carts, checkout into immutable orders, order status "
        "workflow and dine-in table reservations."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

for router in ROUTERS:
    app.include_router(router)

if not settings.is_development:
    # LocalBlobStore writes here; serve the files back
    app.mount(
        "/uploads",
        StaticFiles(directory=settings.upload_directory, check_dir=False),
        name="uploads",
    )


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    db: AsyncSession = Depends(get_db)
) -> HealthResponse:
    """Verify all system components are operational."""
    db_status = "healthy"
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        db_status = f"unhealthy: {str(e)}"
        logger.error(f"Database health check failed: {e}")

    return HealthResponse(
        status="operational" if db_status == "healthy" else "degraded",
        database=db_status,
        identity_service=get_token_service().provider_name,
        blob_store=get_blob_store().provider_name,
        timestamp=datetime.now(),
    )


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(TablesideError)
async def domain_exception_handler(request: Request, exc: TablesideError) -> JSONResponse:
    """Render typed service errors with their HTTP status."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path}: {exc.message}")
    else:
        logger.debug(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": exc.message,
            "detail": exc.detail,
        },
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies and query strings are plain 400s like any other validation error."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": "Invalid request",
            "detail": f"{location}: {first.get('msg', 'invalid value')}" if location else first.get("msg"),
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal Server Error",
            "detail": str(exc) if settings.debug else "An unexpected error occurred",
        },
    )


# =============================================================================
# ENTRY POINT
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "tableside.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
    )
