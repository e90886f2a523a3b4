"""
tlytics - event ingestion service.

Features:
- Buffered, batched persistence of analytics events to SQLite
- Paginated, newest-first retrieval
- Structured logging with correlation IDs
- Prometheus metrics
- Health checks (liveness and readiness)
"""
from contextlib import asynccontextmanager
from fastapi import FastAPI
import structlog
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from .config import Settings, get_settings
from .logging import setup_logging, get_logger
from .api.router import router
from .middleware.correlation import CorrelationMiddleware
from .middleware.error_handler import ErrorHandlerMiddleware
from .middleware.metrics import MetricsMiddleware
from .middleware.tracking import RequestTrackingMiddleware
from .middleware.validation import ValidationMiddleware
from .metrics import Metrics
from .health import HealthChecker
from .server import AnalyticsServer
from .services.delivery import DeliveryPolicy

SERVICE_NAME = "tlytics"
VERSION = "0.1.0"

logger = get_logger()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the service; the store is opened when the app's lifespan starts."""
    settings = settings or get_settings()
    setup_logging(
        json_output=settings.LOG_JSON,
        service_name=SERVICE_NAME,
        level=settings.LOG_LEVEL,
        cache_loggers=settings.ENV == "production",
    )

    metrics = Metrics(service_name=SERVICE_NAME, version=VERSION)
    analytics = AnalyticsServer(
        settings.DB_PATH,
        flush_period=settings.FLUSH_PERIOD,
        policy=DeliveryPolicy.from_settings(settings),
        metrics=metrics,
    )
    health_checker = HealthChecker(analytics, service_name=SERVICE_NAME, version=VERSION)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "service_starting",
            version=VERSION,
            env=settings.ENV,
            db_path=settings.DB_PATH,
            failure_mode=settings.FAILURE_MODE,
        )
        # A store that cannot be opened aborts startup
        await analytics.start()
        try:
            yield
        finally:
            structlog.contextvars.clear_contextvars()
            logger.info("service_stopping")
            await analytics.close()
            metrics.app_up.labels(service=SERVICE_NAME, version=VERSION).set(0)

    app = FastAPI(
        title="tlytics",
        version=VERSION,
        description="Buffered event ingestion with paginated retrieval",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.analytics = analytics
    app.state.metrics = metrics

    # Starlette runs the last added middleware first
    if settings.TRACK_REQUESTS:
        app.add_middleware(RequestTrackingMiddleware)
    app.add_middleware(ValidationMiddleware, max_size=settings.MAX_REQUEST_SIZE)
    app.add_middleware(MetricsMiddleware, metrics=metrics)
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(CorrelationMiddleware)

    app.include_router(router)
    app.mount("/metrics", make_asgi_app(registry=metrics.registry))

    @app.get("/health")
    async def health():
        """Liveness probe."""
        return health_checker.liveness()

    @app.get("/health/ready")
    async def health_ready():
        """Readiness probe: 200 when ready, 503 otherwise."""
        result = await health_checker.readiness()
        status_code = 200 if result["status"] == "ready" else 503
        return JSONResponse(result, status_code=status_code)

    return app


def run():
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "tlytics.main:create_app",
        factory=True,
        host=settings.SERVICE_HOST,
        port=settings.SERVICE_PORT,
    )


if __name__ == "__main__":
    run()
