"""
FastAPI Application Entry Point
===============================

Main FastAPI application with health check, middleware,
and lifecycle management.
"""

import time
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator
from uuid import uuid4

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from price_engine import __version__
from price_engine.api.metrics import get_metrics_app
from price_engine.config.settings import get_settings
from price_engine.db.connection import close_database, init_database
from price_engine.db.connection import health_check as db_health_check
from price_engine.services.change_notifier import close_redis_client, get_redis_client
from price_engine.utils.errors import PriceEngineError
from price_engine.utils.logger import (
    bind_request_context,
    clear_request_context,
    configure_logging,
    get_logger,
)

# Configure logging at module load
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan context manager.

    Handles startup and shutdown events for:
    - Database connection pools
    - Redis connection used for change notifications
    """
    settings = get_settings()
    logger.info(
        "price-engine service starting",
        version=__version__,
        environment=settings.environment,
        port=settings.fastapi_port,
    )

    try:
        await init_database(settings)
        logger.info("Database connection pool initialized")
    except Exception as e:
        logger.error("Failed to initialize database", error=str(e))
        # Continue startup - health check reports the database as down

    if settings.notifications_enabled:
        try:
            redis = await get_redis_client()
            await redis.ping()
            logger.info("Redis connection established")
        except Exception as e:
            # Notifications are best-effort; publishes will log their failures
            logger.error("Failed to connect to Redis", error=str(e))

    yield

    logger.info("price-engine service shutting down")

    try:
        await close_database()
        logger.info("Database connections closed")
    except Exception as e:
        logger.error("Error closing database connections", error=str(e))

    try:
        await close_redis_client()
        logger.info("Redis connection closed")
    except Exception as e:
        logger.error("Error closing Redis connection", error=str(e))


def create_app() -> FastAPI:
    """
    FastAPI application factory.

    Returns:
        Configured FastAPI application instance
    """
    settings = get_settings()

    app = FastAPI(
        title="Price Engine API",
        description=(
            "Price resolution and audit service for the marketplace. "
            "Resolves default and company-specific prices, records every price "
            "change in an audit log and broadcasts price updates."
        ),
        version=__version__,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        openapi_url="/openapi.json" if settings.is_development else None,
        lifespan=lifespan,
    )

    # -------------------------------------------------------------------------
    # CORS Middleware
    # -------------------------------------------------------------------------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.is_development else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -------------------------------------------------------------------------
    # Request Logging Middleware
    # -------------------------------------------------------------------------
    @app.middleware("http")
    async def log_requests(request: Request, call_next: Any) -> Any:
        """
        Log all incoming requests with timing and correlation ID.

        Adds X-Request-ID header for tracing and X-Process-Time header
        with request duration in seconds.
        """
        request_id = request.headers.get("x-request-id") or str(uuid4())
        bind_request_context(
            request_id,
            tenant_id=request.headers.get("x-tenant-id"),
            user_id=request.headers.get("x-user-id"),
        )
        start_time = time.perf_counter()

        logger.info(
            "Request received",
            method=request.method,
            path=str(request.url.path),
            client_ip=request.client.host if request.client else None,
        )

        try:
            response = await call_next(request)

            process_time = time.perf_counter() - start_time
            response.headers["X-Request-ID"] = request_id
            response.headers["X-Process-Time"] = f"{process_time:.4f}"

            logger.info(
                "Request completed",
                method=request.method,
                path=str(request.url.path),
                status_code=response.status_code,
                duration_ms=round(process_time * 1000, 2),
            )
            return response
        finally:
            clear_request_context()

    # -------------------------------------------------------------------------
    # Exception Handlers
    # -------------------------------------------------------------------------
    @app.exception_handler(PriceEngineError)
    async def price_engine_error_handler(
        request: Request, exc: PriceEngineError
    ) -> JSONResponse:
        """Handle application-specific errors."""
        log = logger.error if exc.status_code >= 500 else logger.warning
        log(
            "Application error",
            error_type=type(exc).__name__,
            message=exc.message,
            details=exc.details,
            path=str(request.url.path),
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": type(exc).__name__,
                "message": exc.message,
                "details": jsonable_encoder(exc.details),
            },
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Render schema failures with the ValidationError body."""
        errors = [
            {
                "field": ".".join(str(part) for part in error["loc"] if part != "body"),
                "message": error["msg"],
            }
            for error in exc.errors()
        ]
        logger.warning("Request validation failed", path=str(request.url.path), errors=errors)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "error": "ValidationError",
                "message": errors[0]["message"] if errors else "Invalid request",
                "details": {"errors": errors},
            },
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected errors."""
        logger.exception(
            "Unexpected error",
            error_type=type(exc).__name__,
            message=str(exc),
            path=str(request.url.path),
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "InternalServerError",
                "message": "An unexpected error occurred",
                "details": {},
            },
        )

    # -------------------------------------------------------------------------
    # Health Check Endpoint
    # -------------------------------------------------------------------------
    @app.get(
        "/health",
        tags=["Health"],
        summary="Health check endpoint",
        response_model=dict[str, Any],
    )
    async def health_check() -> dict[str, Any]:
        """
        Check service health status.

        Returns health status of the service and its dependencies:
        - Database connectivity
        - Redis connectivity (when notifications are enabled)
        """
        health_status: dict[str, Any] = {
            "status": "healthy",
            "version": __version__,
            "service": "price-engine",
            "checks": {},
        }

        db_status = await db_health_check()
        health_status["checks"]["database"] = db_status
        if db_status.get("status") != "healthy":
            health_status["status"] = "degraded"

        if not settings.notifications_enabled:
            health_status["checks"]["redis"] = {"status": "disabled"}
            return health_status

        try:
            redis = await get_redis_client()
            start = time.perf_counter()
            await redis.ping()
            latency = (time.perf_counter() - start) * 1000
            health_status["checks"]["redis"] = {
                "status": "healthy",
                "latency_ms": round(latency, 2),
            }
        except Exception as e:
            health_status["checks"]["redis"] = {
                "status": "unhealthy",
                "error": str(e),
            }
            health_status["status"] = "degraded"

        return health_status

    # -------------------------------------------------------------------------
    # API Info Endpoint
    # -------------------------------------------------------------------------
    @app.get(
        "/",
        tags=["Info"],
        summary="API information",
    )
    async def api_info() -> dict[str, str]:
        """Return basic API information."""
        return {
            "service": "price-engine",
            "version": __version__,
            "description": "Price resolution and audit service",
            "docs": "/docs",
        }

    # -------------------------------------------------------------------------
    # Register Routers
    # -------------------------------------------------------------------------
    from price_engine.api.routes import (
        companies_router,
        prices_router,
        private_prices_router,
        product_private_prices_router,
    )

    app.include_router(prices_router, prefix="/products", tags=["Prices"])
    app.include_router(product_private_prices_router, prefix="/products", tags=["Private Prices"])
    app.include_router(private_prices_router, prefix="/private-prices", tags=["Private Prices"])
    app.include_router(companies_router, prefix="/companies", tags=["Companies"])

    app.mount("/metrics", get_metrics_app())

    return app


# Create application instance
app = create_app()
