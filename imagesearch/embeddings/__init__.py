"""Embedding service module."""

from imagesearch.embeddings.models import EmbeddingResult
from imagesearch.embeddings.service import EmbeddingService, HTTPEmbeddingService

__all__ = [
    "EmbeddingResult",
    "EmbeddingService",
    "HTTPEmbeddingService",
]
