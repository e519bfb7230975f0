"""Observability module for metrics and monitoring."""

from imagesearch.observability.metrics import (
    MetricsMiddleware,
    get_metrics,
    track_embedding_request,
    track_ingestion,
    track_search,
    track_store_operation,
    track_vision_request,
)

__all__ = [
    "MetricsMiddleware",
    "get_metrics",
    "track_embedding_request",
    "track_ingestion",
    "track_search",
    "track_store_operation",
    "track_vision_request",
]
