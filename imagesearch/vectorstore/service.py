"""Image store interface and Qdrant implementation."""

import asyncio
import time
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from qdrant_client import AsyncQdrantClient
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    FilterSelector,
    MatchValue,
    PayloadSchemaType,
    PointStruct,
    VectorParams,
)

from imagesearch.config import StoreSettings, get_settings
from imagesearch.embeddings.service import EmbeddingService
from imagesearch.exceptions import ErrorCode, StoreError
from imagesearch.logging_config import get_logger
from imagesearch.observability.metrics import track_store_operation
from imagesearch.vectorstore.models import ImageEntry, SearchResult

logger = get_logger(__name__)

DEFAULT_LIMIT = 10
_SCROLL_PAGE = 256


class ImageStore(ABC):
    """Abstract base class for image stores.

    Persists image entries with their embeddings and answers
    nearest-neighbour queries ranked by ascending L2 distance.
    """

    @abstractmethod
    async def insert(self, entry: ImageEntry) -> None:
        """Append a new entry.

        Raises:
            StoreError: If the embedding cannot be stored.
        """
        ...

    @abstractmethod
    async def get_by_hash(self, hash: str) -> ImageEntry | None:
        """Exact-match lookup by content hash."""
        ...

    @abstractmethod
    async def find_by_filename(self, filename: str) -> list[ImageEntry]:
        """Every entry with this filename, oldest first."""
        ...

    async def get_by_filename(self, filename: str) -> ImageEntry | None:
        """Exact-match lookup by filename; the earliest-created entry wins."""
        entries = await self.find_by_filename(filename)
        if len(entries) > 1:
            logger.warning(
                "Filename matches several entries, returning the oldest",
                extra={"image_filename": filename, "matches": len(entries)},
            )
        return entries[0] if entries else None

    @abstractmethod
    async def delete_by_filename(self, filename: str) -> int:
        """Remove every entry with this filename.

        Returns:
            Number of entries removed (0 is not an error).
        """
        ...

    @abstractmethod
    async def search(self, query: str, limit: int = DEFAULT_LIMIT) -> list[SearchResult]:
        """Embed ``query`` and return the nearest entries."""
        ...

    @abstractmethod
    async def search_by_vector(
        self,
        vector: list[float],
        limit: int = DEFAULT_LIMIT,
    ) -> list[SearchResult]:
        """Return the nearest entries to ``vector``, closest first."""
        ...

    @abstractmethod
    async def count(self) -> int:
        """Number of stored entries."""
        ...

    async def close(self) -> None:
        """Release any held resources."""


@contextmanager
def _timed(operation: str) -> Iterator[None]:
    start = time.perf_counter()
    success = False
    try:
        yield
        success = True
    finally:
        track_store_operation(operation, time.perf_counter() - start, success=success)


def _match(key: str, value: str) -> Filter:
    return Filter(must=[FieldCondition(key=key, match=MatchValue(value=value))])


class QdrantImageStore(ImageStore):
    """Image store on Qdrant.

    Runs embedded (on-disk or in memory) unless a server URL is configured.
    Embedded Qdrant scans every vector exactly on each query, which is the
    same flat L2 ranking at any size; large catalogs should point
    ``STORE_URL`` at a server so the HNSW index is used instead.
    """

    def __init__(
        self,
        embedding_service: EmbeddingService,
        settings: StoreSettings | None = None,
        client: AsyncQdrantClient | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            embedding_service: Embeds text queries for ``search``.
            settings: Store configuration.
            client: Existing client (for testing).
        """
        self._embedding_service = embedding_service
        self._settings = settings or get_settings().store
        self._client = client
        self._owns_client = client is None
        self._ready = False
        self._init_lock = asyncio.Lock()

    @property
    def collection(self) -> str:
        return self._settings.collection_name

    @property
    def vector_size(self) -> int:
        return self._settings.vector_size

    def _create_client(self) -> AsyncQdrantClient:
        if self._settings.url:
            api_key = None
            if self._settings.api_key:
                api_key = self._settings.api_key.get_secret_value()
            return AsyncQdrantClient(url=self._settings.url, api_key=api_key)

        if self._settings.path == ":memory:":
            return AsyncQdrantClient(location=":memory:")

        Path(self._settings.path).mkdir(parents=True, exist_ok=True)
        return AsyncQdrantClient(path=self._settings.path)

    async def _get_client(self) -> AsyncQdrantClient:
        """Get or create the client and make sure the collection exists."""
        if self._ready and self._client is not None:
            return self._client

        async with self._init_lock:
            if self._client is None:
                self._client = self._create_client()
            if not self._ready:
                await self._ensure_collection(self._client)
                self._ready = True
        return self._client

    async def _ensure_collection(self, client: AsyncQdrantClient) -> None:
        try:
            if await client.collection_exists(self.collection):
                info = await client.get_collection(self.collection)
                vectors = info.config.params.vectors
                size = getattr(vectors, "size", None)
                if size is not None and size != self.vector_size:
                    raise StoreError(
                        f"Collection {self.collection} holds {size}-dimensional "
                        f"vectors, configured for {self.vector_size}",
                        code=ErrorCode.STORE_ERROR,
                        details={"collection": self.collection},
                    )
                return

            await client.create_collection(
                collection_name=self.collection,
                vectors_config=VectorParams(
                    size=self.vector_size,
                    distance=Distance.EUCLID,
                ),
            )
            # Payload indexes only matter on a server; embedded mode ignores them
            if self._settings.url:
                for field in ("hash", "filename"):
                    await client.create_payload_index(
                        collection_name=self.collection,
                        field_name=field,
                        field_schema=PayloadSchemaType.KEYWORD,
                    )
            logger.info(
                f"Created collection: {self.collection}",
                extra={"dimensions": self.vector_size},
            )

        except StoreError:
            raise
        except Exception as e:
            raise StoreError(
                f"Failed to prepare collection: {e}",
                code=ErrorCode.STORE_ERROR,
                details={"collection": self.collection, "error": str(e)},
            ) from e

    async def close(self) -> None:
        """Close the Qdrant client."""
        if self._owns_client and self._client is not None:
            await self._client.close()
            self._client = None
            self._ready = False

    def _check_vector(self, vector: list[float]) -> None:
        if len(vector) != self.vector_size:
            raise StoreError(
                f"Vector has {len(vector)} dimensions, store expects {self.vector_size}",
                code=ErrorCode.STORE_SERIALIZATION_ERROR,
                details={"collection": self.collection, "dimensions": len(vector)},
            )

    @staticmethod
    def _to_entry(point: Any) -> ImageEntry:
        vector = point.vector if isinstance(point.vector, list) else []
        return ImageEntry.from_payload(str(point.id), dict(point.payload or {}), vector)

    async def insert(self, entry: ImageEntry) -> None:
        """Store a new entry as one point."""
        self._check_vector(entry.embedding)
        client = await self._get_client()

        with _timed("insert"):
            try:
                await client.upsert(
                    collection_name=self.collection,
                    points=[
                        PointStruct(
                            id=entry.id,
                            vector=entry.embedding,
                            payload=entry.to_payload(),
                        )
                    ],
                )
            except Exception as e:
                raise StoreError(
                    f"Failed to insert entry: {e}",
                    code=ErrorCode.STORE_ERROR,
                    details={"collection": self.collection, "id": entry.id, "error": str(e)},
                ) from e

        logger.debug(
            "Inserted entry",
            extra={"id": entry.id, "image_filename": entry.filename, "hash": entry.hash},
        )

    async def _scroll(self, key: str, value: str, limit: int | None = None) -> list[Any]:
        client = await self._get_client()
        points: list[Any] = []
        offset = None

        while True:
            page_size = _SCROLL_PAGE if limit is None else min(limit - len(points), _SCROLL_PAGE)
            records, offset = await client.scroll(
                collection_name=self.collection,
                scroll_filter=_match(key, value),
                limit=page_size,
                offset=offset,
                with_payload=True,
                with_vectors=True,
            )
            points.extend(records)
            if offset is None or (limit is not None and len(points) >= limit):
                return points

    async def get_by_hash(self, hash: str) -> ImageEntry | None:
        """Look up the entry with this content hash."""
        with _timed("get_by_hash"):
            try:
                points = await self._scroll("hash", hash, limit=1)
            except StoreError:
                raise
            except Exception as e:
                raise StoreError(
                    f"Failed to look up hash: {e}",
                    code=ErrorCode.STORE_ERROR,
                    details={"hash": hash, "error": str(e)},
                ) from e

        if not points:
            return None
        return self._to_entry(points[0])

    async def find_by_filename(self, filename: str) -> list[ImageEntry]:
        """Look up every entry with this filename, oldest first."""
        with _timed("find_by_filename"):
            try:
                points = await self._scroll("filename", filename)
            except StoreError:
                raise
            except Exception as e:
                raise StoreError(
                    f"Failed to look up filename: {e}",
                    code=ErrorCode.STORE_ERROR,
                    details={"filename": filename, "error": str(e)},
                ) from e

        return sorted(
            (self._to_entry(point) for point in points),
            key=lambda entry: entry.created_at,
        )

    async def delete_by_filename(self, filename: str) -> int:
        """Delete every entry with this filename."""
        client = await self._get_client()

        with _timed("delete_by_filename"):
            try:
                matched = await client.count(
                    collection_name=self.collection,
                    count_filter=_match("filename", filename),
                    exact=True,
                )
                if matched.count == 0:
                    return 0

                await client.delete(
                    collection_name=self.collection,
                    points_selector=FilterSelector(filter=_match("filename", filename)),
                )
            except Exception as e:
                raise StoreError(
                    f"Failed to delete entries: {e}",
                    code=ErrorCode.STORE_ERROR,
                    details={"filename": filename, "error": str(e)},
                ) from e

        logger.info(
            "Deleted entries",
            extra={"image_filename": filename, "deleted": matched.count},
        )
        return matched.count

    async def search(self, query: str, limit: int = DEFAULT_LIMIT) -> list[SearchResult]:
        """Embed the query text, then rank entries by distance to it."""
        result = await self._embedding_service.embed(query)
        logger.debug(
            "Embedded search query",
            extra={"query_length": len(query), "dimensions": result.dimensions},
        )
        return await self.search_by_vector(result.embedding, limit)

    async def search_by_vector(
        self,
        vector: list[float],
        limit: int = DEFAULT_LIMIT,
    ) -> list[SearchResult]:
        """Rank all entries by ascending L2 distance to ``vector``."""
        if limit < 1:
            return []
        self._check_vector(vector)
        client = await self._get_client()

        with _timed("search"):
            try:
                response = await client.query_points(
                    collection_name=self.collection,
                    query=vector,
                    limit=limit,
                    with_payload=True,
                    with_vectors=True,
                )
            except Exception as e:
                raise StoreError(
                    f"Failed to search: {e}",
                    code=ErrorCode.STORE_ERROR,
                    details={"collection": self.collection, "error": str(e)},
                ) from e

        return [
            SearchResult(
                entry=self._to_entry(point),
                similarity=point.score if point.score is not None else 0.0,
            )
            for point in response.points
        ]

    async def count(self) -> int:
        """Count stored entries."""
        client = await self._get_client()
        try:
            result = await client.count(collection_name=self.collection, exact=True)
        except Exception as e:
            raise StoreError(
                f"Failed to count entries: {e}",
                code=ErrorCode.STORE_ERROR,
                details={"collection": self.collection, "error": str(e)},
            ) from e
        return result.count
