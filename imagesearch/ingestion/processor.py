"""Single-image ingestion: hash, deduplicate, analyze, embed, store."""

import asyncio
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from imagesearch.embeddings.service import EmbeddingService
from imagesearch.exceptions import DecodeError, ErrorCode, ImageSearchError
from imagesearch.images.hasher import ImageHasher, detect_format
from imagesearch.ingestion.models import ProcessingResult
from imagesearch.logging_config import get_logger
from imagesearch.observability.metrics import track_ingestion
from imagesearch.vectorstore.models import ImageEntry
from imagesearch.vectorstore.service import ImageStore
from imagesearch.vision.client import VisionAnalyzer
from imagesearch.vision.models import ImageAnalysis

logger = get_logger(__name__)

SUPPORTED_FORMATS = ("jpg", "jpeg", "png", "webp")


class ImageProcessor:
    """Turns image files into stored, searchable entries.

    Identical content is stored once: the lookup and insert for a given hash
    run under a per-hash lock, so concurrent calls on the same bytes in this
    process cannot both insert.
    """

    def __init__(
        self,
        store: ImageStore,
        analyzer: VisionAnalyzer,
        embedding_service: EmbeddingService,
        hasher: ImageHasher | None = None,
        supported_formats: list[str] | tuple[str, ...] = SUPPORTED_FORMATS,
        dimensions: int | None = None,
    ) -> None:
        """Initialize the processor.

        Args:
            store: Where entries are looked up and inserted.
            analyzer: Vision analyzer (usually with the fallback policy).
            embedding_service: Embeds the analysis text.
            hasher: Fingerprint function for deduplication.
            supported_formats: Accepted image formats.
            dimensions: Expected embedding size; checked before insert when set.
        """
        self._store = store
        self._analyzer = analyzer
        self._embedding_service = embedding_service
        self._hasher = hasher or ImageHasher()
        self._supported_formats = frozenset(f.lower() for f in supported_formats)
        self._dimensions = dimensions
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    @asynccontextmanager
    async def _exclusive(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            if self._lock_users[key] == 0:
                del self._lock_users[key]
                del self._locks[key]

    async def _read(self, file_path: Path) -> bytes:
        """Read the file and check its format.

        Raises:
            DecodeError: Unreadable file, undecodable or unsupported image.
        """
        try:
            image_bytes = await asyncio.to_thread(file_path.read_bytes)
        except OSError as e:
            raise DecodeError(
                f"Cannot read image file: {e}",
                details={"path": str(file_path)},
            ) from e

        image_format = detect_format(image_bytes)
        if image_format not in self._supported_formats:
            raise DecodeError(
                f"Unsupported or invalid image format: {image_format}",
                code=ErrorCode.UNSUPPORTED_FORMAT,
                details={"path": str(file_path), "format": image_format},
            )
        return image_bytes

    async def _describe(self, image_bytes: bytes) -> tuple[ImageAnalysis, list[float]]:
        analysis = await self._analyzer.analyze(image_bytes)
        result = await self._embedding_service.embed(analysis.embedding_text())
        if self._dimensions is not None:
            return analysis, result.require_dimensions(self._dimensions)
        return analysis, result.embedding

    async def process(
        self,
        file_path: str | Path,
        filename: str | None = None,
    ) -> ProcessingResult:
        """Ingest one image file.

        Never raises: every failure is logged and returned as a failed result.

        Args:
            file_path: Image to ingest; stored as the entry's path.
            filename: Display name; defaults to the file's basename.

        Returns:
            created, duplicate (existing entry, nothing inserted) or failed.
        """
        path = Path(file_path)
        start = time.perf_counter()

        try:
            result = await self._process(path, filename or path.name)
        except ImageSearchError as e:
            logger.error(
                f"Error processing image {path}: {e.message}",
                extra={"path": str(path), "error_code": e.code.value, "details": e.details},
            )
            result = ProcessingResult.failed(str(path), e)
        except Exception as e:
            logger.exception(f"Error processing image {path}")
            result = ProcessingResult.failed(str(path), e)

        track_ingestion(result.status.value, time.perf_counter() - start)
        return result

    async def _process(self, path: Path, filename: str) -> ProcessingResult:
        image_bytes = await self._read(path)
        image_hash = await asyncio.to_thread(self._hasher.hash, image_bytes)

        async with self._exclusive(image_hash):
            existing = await self._store.get_by_hash(image_hash)
            if existing is not None:
                logger.info(
                    "Image already stored",
                    extra={"path": str(path), "hash": image_hash, "id": existing.id},
                )
                return ProcessingResult.duplicate(str(path), existing)

            analysis, embedding = await self._describe(image_bytes)
            entry = ImageEntry.create(
                filename=filename,
                path=str(path),
                hash=image_hash,
                analysis=analysis,
                embedding=embedding,
            )
            await self._store.insert(entry)

        logger.info(
            "Stored image",
            extra={"path": str(path), "id": entry.id, "dimensions": len(embedding)},
        )
        return ProcessingResult.created(str(path), entry)

    async def embed_image(self, file_path: str | Path) -> list[float]:
        """Vector for an image without storing it.

        Stored images reuse their embedding; anything else is analyzed and
        embedded on the fly.

        Raises:
            ImageSearchError: Decode, analysis, embedding or store failure.
        """
        path = Path(file_path)
        image_bytes = await self._read(path)
        image_hash = await asyncio.to_thread(self._hasher.hash, image_bytes)

        existing = await self._store.get_by_hash(image_hash)
        if existing is not None:
            return existing.embedding

        _, embedding = await self._describe(image_bytes)
        return embedding
