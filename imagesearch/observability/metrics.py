"""Prometheus metrics for the image search service.

Provides metrics instrumentation for:
- HTTP request latency and counts
- Vision analysis latency per model
- Embedding request latency
- Vector store operations
- Ingestion outcomes and search result sizes
"""

import time
from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Histogram,
    generate_latest,
)
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from imagesearch.logging_config import get_logger

logger = get_logger(__name__)

# HTTP Request Metrics
HTTP_REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint", "status_code"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

HTTP_REQUEST_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)

# Vision Metrics
VISION_REQUEST_DURATION = Histogram(
    "vision_request_duration_seconds",
    "Vision analysis request duration in seconds",
    ["model", "status"],
    buckets=[0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0],
)

VISION_REQUEST_TOTAL = Counter(
    "vision_requests_total",
    "Total vision analysis requests",
    ["model", "status"],
)

# Embedding Metrics
EMBEDDING_REQUEST_DURATION = Histogram(
    "embedding_request_duration_seconds",
    "Embedding request duration in seconds",
    ["model", "status"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0],
)

EMBEDDING_REQUEST_TOTAL = Counter(
    "embedding_requests_total",
    "Total embedding requests",
    ["model", "status"],
)

EMBEDDING_BATCH_SIZE = Histogram(
    "embedding_batch_size",
    "Embedding batch size",
    ["model"],
    buckets=[1, 5, 10, 25, 50, 100, 250, 500],
)

# Vector Store Metrics
STORE_OPERATION_DURATION = Histogram(
    "store_operation_duration_seconds",
    "Vector store operation duration",
    ["operation", "status"],
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0],
)

# Ingestion Metrics
INGESTION_TOTAL = Counter(
    "image_ingestions_total",
    "Images handed to the processor, by outcome",
    ["status"],
)

INGESTION_DURATION = Histogram(
    "image_ingestion_duration_seconds",
    "Time to process one image",
    ["status"],
    buckets=[0.01, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
)

# Search Metrics
SEARCH_RESULTS_RETURNED = Histogram(
    "search_results_returned",
    "Number of results returned per search",
    ["kind"],
    buckets=[0, 1, 5, 10, 20, 30, 50, 100],
)


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware to collect HTTP request metrics."""

    def __init__(self, app: ASGIApp) -> None:
        super().__init__(app)

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        """Process request and collect metrics."""
        # Skip metrics endpoint to avoid recursion
        if request.url.path == "/metrics":
            return await call_next(request)

        start_time = time.perf_counter()

        response = await call_next(request)

        duration = time.perf_counter() - start_time
        endpoint = self._normalize_endpoint(request.url.path)

        HTTP_REQUEST_DURATION.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=response.status_code,
        ).observe(duration)

        HTTP_REQUEST_TOTAL.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=response.status_code,
        ).inc()

        return response

    def _normalize_endpoint(self, path: str) -> str:
        """Normalize endpoint path to reduce cardinality."""
        if path.startswith("/health"):
            return "/health"
        # Filenames in the path would explode label cardinality
        if path.startswith("/images/"):
            return "/images"
        if path.startswith("/api/images/"):
            return "/api/images"
        return path


def get_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    return generate_latest()


def get_metrics_content_type() -> str:
    """Get the content type for metrics response."""
    return CONTENT_TYPE_LATEST


def track_vision_request(
    model: str,
    duration: float,
    success: bool = True,
) -> None:
    """Track vision analysis request metrics.

    Args:
        model: Vision model name.
        duration: Request duration in seconds.
        success: Whether the request succeeded.
    """
    status = "success" if success else "error"

    VISION_REQUEST_DURATION.labels(model=model, status=status).observe(duration)
    VISION_REQUEST_TOTAL.labels(model=model, status=status).inc()


def track_embedding_request(
    model: str,
    duration: float,
    batch_size: int,
    success: bool = True,
) -> None:
    """Track embedding request metrics.

    Args:
        model: Embedding model name.
        duration: Request duration in seconds.
        batch_size: Number of texts in the batch.
        success: Whether the request succeeded.
    """
    status = "success" if success else "error"

    EMBEDDING_REQUEST_DURATION.labels(model=model, status=status).observe(duration)
    EMBEDDING_REQUEST_TOTAL.labels(model=model, status=status).inc()
    EMBEDDING_BATCH_SIZE.labels(model=model).observe(batch_size)


def track_store_operation(
    operation: str,
    duration: float,
    success: bool = True,
) -> None:
    """Track a vector store operation.

    Args:
        operation: Operation name (insert, get_by_hash, search, ...).
        duration: Operation duration in seconds.
        success: Whether the operation succeeded.
    """
    status = "success" if success else "error"
    STORE_OPERATION_DURATION.labels(operation=operation, status=status).observe(duration)


def track_ingestion(status: str, duration: float) -> None:
    """Track the outcome of processing one image.

    Args:
        status: created, duplicate or failed.
        duration: Processing time in seconds.
    """
    INGESTION_TOTAL.labels(status=status).inc()
    INGESTION_DURATION.labels(status=status).observe(duration)


def track_search(kind: str, results_returned: int) -> None:
    """Track the size of a search response.

    Args:
        kind: text, vector or image.
        results_returned: Number of results returned.
    """
    SEARCH_RESULTS_RETURNED.labels(kind=kind).observe(results_returned)
