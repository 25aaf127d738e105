"""
FastAPI Application Factory

Creates and configures the main API application.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError

from storefront.config import get_settings
from storefront.config.logging import configure_logging
from storefront.database.connection import close_database, get_session_factory, init_database
from storefront.reporting import ReportingAggregator, ReportingError
from storefront.serving.api.middleware import RateLimitMiddleware, RequestLoggingMiddleware
from storefront.serving.api.routes import (
    dashboard_router,
    health_router,
    orders_router,
    products_router,
    transactions_router,
    users_router,
)
from storefront.serving.cache import close_redis, init_redis, products_cache

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings = get_settings()
    configure_logging()

    logger.info("Starting storefront API", environment=settings.app_env, version=settings.version)

    await init_database(create_tables=settings.database.create_tables)

    # Redis is optional: without it the caches pass straight through
    try:
        await init_redis()
    except (RedisError, OSError) as e:
        logger.warning("Redis unavailable, caching disabled", error=str(e))

    app.state.reporting = ReportingAggregator(
        get_session_factory(),
        settings=settings.reporting,
        product_cache=products_cache,
    )

    yield

    logger.info("Shutting down storefront API")
    await close_redis()
    await close_database()


async def reporting_error_handler(request: Request, exc: ReportingError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Reporting request failed", path=request.url.path, error=exc.message, kind=exc.kind)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": exc.kind},
    )


def create_api_app() -> FastAPI:
    """
    Create and configure FastAPI application.

    Returns:
        Configured FastAPI app instance
    """
    settings = get_settings()

    app = FastAPI(
        title="Storefront API",
        description="E-commerce backend with a cached sales dashboard",
        version=settings.version,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.security.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        max_requests=settings.security.rate_limit_requests,
        window_seconds=settings.security.rate_limit_window_seconds,
    )

    app.add_exception_handler(ReportingError, reporting_error_handler)

    app.include_router(health_router, prefix="/api/v1", tags=["Health"])
    app.include_router(dashboard_router, prefix="/api/v1/dashboard", tags=["Dashboard"])
    app.include_router(products_router, prefix="/api/v1/products", tags=["Products"])
    app.include_router(orders_router, prefix="/api/v1/orders", tags=["Orders"])
    app.include_router(transactions_router, prefix="/api/v1/transactions", tags=["Transactions"])
    app.include_router(users_router, prefix="/api/v1/users", tags=["Users"])

    @app.get("/api/v1/info")
    async def api_info():
        return {
            "name": settings.app_name,
            "version": settings.version,
            "environment": settings.app_env,
        }

    return app
