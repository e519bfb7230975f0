"""FastAPI application entry point.

Configures the application with logging, exception handling, metrics,
health checks and the image routes.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from imagesearch import __version__
from imagesearch.api.dependencies import Services, build_services
from imagesearch.api.routes import router
from imagesearch.config import Settings, get_settings
from imagesearch.exceptions import ErrorCode, ImageSearchError
from imagesearch.logging_config import get_logger, setup_logging
from imagesearch.observability.metrics import (
    MetricsMiddleware,
    get_metrics,
    get_metrics_content_type,
)

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Builds the services unless they were injected, and closes what it built.
    """
    settings: Settings = app.state.settings
    setup_logging(level=settings.log_level)

    owns_services = getattr(app.state, "services", None) is None
    if owns_services:
        app.state.services = build_services(settings)
    settings.upload_dir.mkdir(parents=True, exist_ok=True)

    logger.info(
        "Starting Image Search",
        extra={
            "version": __version__,
            "environment": settings.environment.value,
        },
    )

    yield

    logger.info("Shutting down Image Search")
    if owns_services:
        await app.state.services.close()
        app.state.services = None


def create_app(
    settings: Settings | None = None,
    services: Services | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Settings override (default from environment).
        services: Prebuilt services; built at startup when omitted.

    Returns:
        Configured FastAPI application instance.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Image Search",
        description="Search images by what a vision model says is in them",
        version=__version__,
        lifespan=lifespan,
        debug=settings.debug,
    )
    app.state.settings = settings
    app.state.services = services

    app.add_middleware(MetricsMiddleware)
    app.add_exception_handler(ImageSearchError, image_search_exception_handler)

    app.add_api_route("/health", health_check, methods=["GET"], tags=["Health"])
    app.add_api_route("/health/ready", readiness_check, methods=["GET"], tags=["Health"])
    app.add_api_route("/health/live", liveness_check, methods=["GET"], tags=["Health"])
    app.add_api_route("/metrics", metrics_endpoint, methods=["GET"], tags=["Health"])
    app.include_router(router)

    return app


async def image_search_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Convert ImageSearchError into a structured JSON response."""
    if not isinstance(exc, ImageSearchError):
        return JSONResponse(
            status_code=500,
            content={
                "error": {
                    "code": ErrorCode.INTERNAL_ERROR.value,
                    "message": "Internal error",
                    "details": {},
                }
            },
        )

    status_code = _get_status_code(exc.code)
    logger.error(
        f"Request failed: {exc.message}",
        extra={
            "error_code": exc.code.value,
            "path": request.url.path,
            "details": exc.details,
        },
    )

    content = exc.to_dict()
    # Server-side failure details stay in the logs
    if status_code >= 500:
        content["error"]["details"] = {}

    return JSONResponse(status_code=status_code, content=content)


def _get_status_code(code: ErrorCode) -> int:
    """Map error code to HTTP status code."""
    if code in (
        ErrorCode.VALIDATION_ERROR,
        ErrorCode.DECODE_ERROR,
        ErrorCode.UNSUPPORTED_FORMAT,
    ):
        return 400

    if code == ErrorCode.IMAGE_NOT_FOUND:
        return 404

    if code == ErrorCode.VISION_RATE_LIMIT:
        return 429

    if code == ErrorCode.VISION_TIMEOUT:
        return 504

    return 500


async def health_check() -> dict[str, Any]:
    """Basic health check endpoint.

    Returns:
        Health status with version and timestamp.
    """
    return {
        "status": "healthy",
        "version": __version__,
        "timestamp": datetime.now(UTC).isoformat(),
    }


async def readiness_check(request: Request) -> dict[str, Any]:
    """Readiness probe.

    Checks that the services are built and the store answers.
    """
    checks: dict[str, str] = {"config": "ok"}

    services: Services | None = getattr(request.app.state, "services", None)
    if services is None:
        checks["store"] = "not_initialized"
    else:
        try:
            await services.store.count()
            checks["store"] = "ok"
        except ImageSearchError as e:
            logger.warning(f"Store readiness check failed: {e.message}")
            checks["store"] = "error"

    all_ok = all(v == "ok" for v in checks.values())

    return {
        "status": "ready" if all_ok else "not_ready",
        "checks": checks,
        "timestamp": datetime.now(UTC).isoformat(),
    }


async def liveness_check() -> dict[str, str]:
    """Liveness probe."""
    return {"status": "alive"}


async def metrics_endpoint() -> Response:
    """Prometheus scrape endpoint."""
    return Response(content=get_metrics(), media_type=get_metrics_content_type())


# Create the application instance
app = create_app()
