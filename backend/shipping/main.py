"""
FastAPI application entry point.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from shipping.api.routes import api_router
from shipping.core.config import settings
from shipping.core.database import AsyncSessionLocal, close_db, init_db
from shipping.core.exceptions import register_exception_handlers
from shipping.core.logging import RequestLoggingMiddleware, setup_logging
from shipping.core.metrics import PrometheusMiddleware, metrics_endpoint, update_service_health
from shipping.core.redis import redis_client
from shipping.core.sentry import init_sentry
from shipping.services.escalation_policy import get_escalation_policy
from shipping.services.event_publisher import event_publisher
from shipping.services.reference_data import seed_coverage_areas, seed_providers

# Setup logging
setup_logging(
    level="DEBUG" if settings.DEBUG else settings.LOG_LEVEL,
    json_format=not settings.DEBUG,
)

logger = logging.getLogger(__name__)

# Initialize Sentry (if configured)
init_sentry()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    logger.info("Starting application...")
    settings.validate_production_settings()
    await init_db()

    # Fail fast on a broken policy table
    get_escalation_policy()

    if settings.SEED_REFERENCE_DATA:
        await _seed_reference_data()

    await _check_external_services()

    logger.info("Application started successfully")
    yield
    # Shutdown
    logger.info("Shutting down application...")
    await event_publisher.drain()
    await close_db()
    await redis_client.close()
    logger.info("Application shutdown complete")


async def _seed_reference_data():
    """Load coverage areas and providers that are not in the database yet."""
    async with AsyncSessionLocal() as session:
        areas = await seed_coverage_areas(session, settings.COVERAGE_SEED_PATH)
        providers = await seed_providers(session, settings.PROVIDER_SEED_PATH)
    logger.info(f"Reference data seeded: {areas} coverage areas, {providers} providers")


async def _check_external_services():
    """Check and report health of external services on startup."""
    redis_healthy = await redis_client.health_check()
    update_service_health("redis", redis_healthy)
    if redis_healthy:
        logger.info("Redis service: healthy")
    else:
        logger.warning("Redis service: unhealthy, delivery cache disabled until it recovers")


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Delivery orchestration: method selection, lifecycle, manual coordination and audit",
        openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
        docs_url=f"{settings.API_V1_PREFIX}/docs",
        redoc_url=f"{settings.API_V1_PREFIX}/redoc",
        lifespan=lifespan,
    )

    # Standardized exception handlers (must be registered first)
    register_exception_handlers(app)

    # Prometheus metrics middleware
    if settings.METRICS_ENABLED:
        app.add_middleware(PrometheusMiddleware)

    # Request logging middleware
    app.add_middleware(RequestLoggingMiddleware)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include API router
    app.include_router(api_router, prefix=settings.API_V1_PREFIX)

    # Metrics endpoint (outside API prefix)
    if settings.METRICS_ENABLED:
        app.add_api_route(
            settings.METRICS_PATH,
            metrics_endpoint,
            methods=["GET"],
            include_in_schema=False,
        )

    logger.info(f"Application configured: {settings.APP_NAME} v{settings.APP_VERSION}")

    return app


app = create_app()


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": f"{settings.API_V1_PREFIX}/docs",
        "metrics": settings.METRICS_PATH if settings.METRICS_ENABLED else None,
    }
