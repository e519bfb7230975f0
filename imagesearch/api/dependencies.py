"""Service container and FastAPI dependencies.

The container is the composition root: every API client and the store are
built here once per process and closed on shutdown.
"""

from dataclasses import dataclass

import httpx
from fastapi import Request

from imagesearch.config import Settings
from imagesearch.embeddings.service import EmbeddingService, HTTPEmbeddingService
from imagesearch.exceptions import ConfigurationError
from imagesearch.ingestion.processor import ImageProcessor
from imagesearch.logging_config import get_logger
from imagesearch.vectorstore.service import ImageStore, QdrantImageStore
from imagesearch.vision.client import VisionAnalyzer, build_vision_analyzer

logger = get_logger(__name__)


@dataclass
class Services:
    """Long-lived collaborators shared by all requests."""

    settings: Settings
    store: ImageStore
    processor: ImageProcessor
    embedding_service: EmbeddingService
    analyzer: VisionAnalyzer
    vision_http_client: httpx.AsyncClient | None = None

    async def close(self) -> None:
        """Close clients in reverse order of construction."""
        await self.store.close()
        await self.analyzer.close()
        await self.embedding_service.close()
        if self.vision_http_client is not None:
            await self.vision_http_client.aclose()
        logger.debug("Services closed")


def build_services(settings: Settings) -> Services:
    """Construct the production services from settings.

    Args:
        settings: Application settings.

    Returns:
        Services wired together; nothing connects until first use.
    """
    vision_http_client = httpx.AsyncClient(timeout=settings.vision.timeout)
    analyzer = build_vision_analyzer(settings.vision, vision_http_client)
    embedding_service = HTTPEmbeddingService(settings.embedding)
    store = QdrantImageStore(embedding_service, settings.store)
    processor = ImageProcessor(
        store=store,
        analyzer=analyzer,
        embedding_service=embedding_service,
        supported_formats=settings.supported_formats,
        dimensions=settings.store.vector_size,
    )
    return Services(
        settings=settings,
        store=store,
        processor=processor,
        embedding_service=embedding_service,
        analyzer=analyzer,
        vision_http_client=vision_http_client,
    )


def get_services(request: Request) -> Services:
    """FastAPI dependency returning the application's services."""
    services: Services | None = getattr(request.app.state, "services", None)
    if services is None:
        raise ConfigurationError("Services are not initialized")
    return services
