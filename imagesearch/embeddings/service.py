"""Embedding service interface and implementations."""

import time
from abc import ABC, abstractmethod

import httpx

from imagesearch.config import EmbeddingSettings, get_settings
from imagesearch.embeddings.models import EmbeddingResult
from imagesearch.exceptions import EmbeddingError, ErrorCode
from imagesearch.logging_config import get_logger
from imagesearch.observability.metrics import track_embedding_request

logger = get_logger(__name__)


class EmbeddingService(ABC):
    """Turns image descriptions and search queries into fixed-size vectors."""

    @abstractmethod
    async def embed(self, text: str) -> EmbeddingResult:
        """Embed one text.

        Raises:
            EmbeddingError: If the provider fails or replies with nothing usable.
        """
        ...

    @abstractmethod
    async def embed_batch(self, texts: list[str]) -> list[EmbeddingResult]:
        """Embed several texts, returning results in input order."""
        ...

    @property
    @abstractmethod
    def model_name(self) -> str: ...

    @property
    @abstractmethod
    def dimensions(self) -> int:
        """Vector size this service produces."""
        ...

    async def close(self) -> None:
        """Release any held resources."""


class HTTPEmbeddingService(EmbeddingService):
    """Embedding service using an OpenAI-compatible HTTP API.

    A single attempt is made per request; failures surface as
    EmbeddingError without retry.
    """

    MODEL_DIMENSIONS = {
        "text-embedding-ada-002": 1536,
        "text-embedding-3-small": 1536,
        "text-embedding-3-large": 3072,
    }

    def __init__(
        self,
        settings: EmbeddingSettings | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the HTTP embedding service.

        Args:
            settings: Embedding configuration. Uses defaults if not provided.
            client: HTTP client. Creates new one if not provided.
        """
        self._settings = settings or get_settings().embedding
        self._client = client
        self._owns_client = client is None
        self._dimensions: int | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._settings.timeout)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if we own it."""
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def model_name(self) -> str:
        """Get the model name."""
        return self._settings.model

    @property
    def dimensions(self) -> int:
        """Get embedding dimensions."""
        if self._dimensions is not None:
            return self._dimensions
        return self.MODEL_DIMENSIONS.get(self._settings.model, 1536)

    def _headers(self) -> dict[str, str]:
        api_key = self._settings.api_key.get_secret_value()
        if not api_key:
            return {}
        return {"Authorization": f"Bearer {api_key}"}

    async def embed(self, text: str) -> EmbeddingResult:
        """Generate embedding for a single text."""
        results = await self.embed_batch([text])
        if not results:
            raise EmbeddingError(
                "Embedding service returned no vectors",
                code=ErrorCode.EMBEDDING_SERVICE_ERROR,
                details={"model": self._settings.model},
            )
        return results[0]

    async def embed_batch(self, texts: list[str]) -> list[EmbeddingResult]:
        """Generate embeddings for multiple texts, chunked by batch size."""
        if not texts:
            return []

        client = await self._get_client()
        url = f"{self._settings.base_url}/embeddings"

        all_results: list[EmbeddingResult] = []
        batch_size = self._settings.batch_size

        for i in range(0, len(texts), batch_size):
            batch = texts[i : i + batch_size]
            start = time.perf_counter()
            success = False
            try:
                all_results.extend(await self._embed_batch_request(client, url, batch))
                success = True
            finally:
                track_embedding_request(
                    self._settings.model,
                    time.perf_counter() - start,
                    len(batch),
                    success=success,
                )

        return all_results

    async def _embed_batch_request(
        self,
        client: httpx.AsyncClient,
        url: str,
        texts: list[str],
    ) -> list[EmbeddingResult]:
        """Make embedding request for a batch.

        Raises:
            EmbeddingError: If request fails or the reply is malformed.
        """
        payload = {
            "input": texts,
            "model": self._settings.model,
        }

        try:
            response = await client.post(url, json=payload, headers=self._headers())
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"Embedding request failed: {e.response.status_code}",
                extra={"url": url, "status": e.response.status_code},
            )
            raise EmbeddingError(
                f"Embedding service returned {e.response.status_code}",
                code=ErrorCode.EMBEDDING_SERVICE_ERROR,
                details={"status_code": e.response.status_code},
            ) from e
        except httpx.RequestError as e:
            logger.error(f"Embedding request error: {e}", extra={"url": url})
            raise EmbeddingError(
                f"Failed to connect to embedding service: {e}",
                code=ErrorCode.EMBEDDING_SERVICE_ERROR,
                details={"url": url},
            ) from e

        try:
            data = response.json()
            # OpenAI may reorder items; "index" restores request order
            items = sorted(data["data"], key=lambda item: item.get("index", 0))

            results: list[EmbeddingResult] = []
            for text, item in zip(texts, items, strict=True):
                embedding = item["embedding"]
                if self._dimensions is None and embedding:
                    self._dimensions = len(embedding)

                results.append(
                    EmbeddingResult(
                        text=text,
                        embedding=embedding,
                        model=self._settings.model,
                        dimensions=len(embedding),
                    )
                )
            return results

        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise EmbeddingError(
                f"Invalid response from embedding service: {e}",
                code=ErrorCode.EMBEDDING_SERVICE_ERROR,
                details={"error": str(e)},
            ) from e
