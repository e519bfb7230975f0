"""Pytest configuration and shared fixtures."""

import asyncio
import hashlib
import io
from collections.abc import AsyncGenerator, Callable
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient
from PIL import Image

from imagesearch.api.app import create_app
from imagesearch.api.dependencies import Services
from imagesearch.config import Settings, StoreSettings
from imagesearch.embeddings.models import EmbeddingResult
from imagesearch.embeddings.service import EmbeddingService
from imagesearch.ingestion.processor import ImageProcessor
from imagesearch.logging_config import setup_logging
from imagesearch.vectorstore.service import QdrantImageStore
from imagesearch.vision.client import VisionAnalyzer
from imagesearch.vision.models import ImageAnalysis

DIMENSIONS = 8

# Grayscale values differ, so each color hashes differently
RED = (255, 0, 0)
GREEN = (0, 255, 0)
BLUE = (0, 0, 255)


def text_vector(text: str, dimensions: int = DIMENSIONS) -> list[float]:
    """Deterministic vector for a piece of text."""
    digest = hashlib.sha256(text.encode()).digest()
    return [b / 255 for b in digest[:dimensions]]


class FakeEmbeddingService(EmbeddingService):
    """Embeds text into small hash-derived vectors."""

    def __init__(self, dimensions: int = DIMENSIONS) -> None:
        self._dims = dimensions
        self.calls: list[str] = []

    async def embed(self, text: str) -> EmbeddingResult:
        self.calls.append(text)
        return EmbeddingResult(
            text=text,
            embedding=text_vector(text, self._dims),
            model=self.model_name,
            dimensions=self._dims,
        )

    async def embed_batch(self, texts: list[str]) -> list[EmbeddingResult]:
        return [await self.embed(text) for text in texts]

    @property
    def model_name(self) -> str:
        return "fake-embedding"

    @property
    def dimensions(self) -> int:
        return self._dims


class FakeVisionAnalyzer(VisionAnalyzer):
    """Describes an image by the digest of its bytes.

    Queued errors are raised, one per call, before any description is made.
    """

    def __init__(self, errors: list[Exception] | None = None, name: str = "fake-vision") -> None:
        self.errors = list(errors or [])
        self.calls = 0
        self._name = name

    async def analyze(self, image_bytes: bytes) -> ImageAnalysis:
        self.calls += 1
        # Yield so concurrent callers interleave
        await asyncio.sleep(0)
        if self.errors:
            raise self.errors.pop(0)
        digest = hashlib.sha256(image_bytes).hexdigest()[:12]
        return ImageAnalysis(description=f"image {digest}", extracted_text="")

    @property
    def model_name(self) -> str:
        return self._name


def encode_image(
    color: tuple[int, int, int] = RED,
    image_format: str = "PNG",
    size: tuple[int, int] = (64, 48),
) -> bytes:
    """Encode a solid-color image."""
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format=image_format)
    return buffer.getvalue()


_FORMATS = {
    ".png": "PNG",
    ".jpg": "JPEG",
    ".jpeg": "JPEG",
    ".webp": "WEBP",
    ".bmp": "BMP",
    ".gif": "GIF",
}


@pytest.fixture(autouse=True)
def debug_logging() -> None:
    """Build every log record, whatever level earlier tests left behind."""
    setup_logging(level="DEBUG", json_output=False)


@pytest.fixture
def png_bytes() -> bytes:
    """A small red PNG."""
    return encode_image(RED, "PNG")


@pytest.fixture
def make_image(tmp_path: Path) -> Callable[..., Path]:
    """Factory writing solid-color images under ``tmp_path/images``.

    The encoding follows the file extension.
    """
    root = tmp_path / "images"
    root.mkdir()

    def _make(name: str, color: tuple[int, int, int] = RED) -> Path:
        path = root / name
        path.write_bytes(encode_image(color, _FORMATS[path.suffix.lower()]))
        return path

    return _make


@pytest.fixture
def embedding_service() -> FakeEmbeddingService:
    return FakeEmbeddingService()


@pytest.fixture
def analyzer() -> FakeVisionAnalyzer:
    return FakeVisionAnalyzer()


@pytest.fixture
def store_settings() -> StoreSettings:
    return StoreSettings(path=":memory:", vector_size=DIMENSIONS)


@pytest.fixture
async def store(
    embedding_service: FakeEmbeddingService,
    store_settings: StoreSettings,
) -> AsyncGenerator[QdrantImageStore, None]:
    """In-memory Qdrant store."""
    image_store = QdrantImageStore(embedding_service, store_settings)
    yield image_store
    await image_store.close()


@pytest.fixture
def processor(
    store: QdrantImageStore,
    analyzer: FakeVisionAnalyzer,
    embedding_service: FakeEmbeddingService,
) -> ImageProcessor:
    return ImageProcessor(
        store=store,
        analyzer=analyzer,
        embedding_service=embedding_service,
        dimensions=DIMENSIONS,
    )


@pytest.fixture
def settings(tmp_path: Path, store_settings: StoreSettings) -> Settings:
    return Settings(upload_dir=tmp_path / "uploads", store=store_settings)


@pytest.fixture
def services(
    settings: Settings,
    store: QdrantImageStore,
    processor: ImageProcessor,
    embedding_service: FakeEmbeddingService,
    analyzer: FakeVisionAnalyzer,
) -> Services:
    return Services(
        settings=settings,
        store=store,
        processor=processor,
        embedding_service=embedding_service,
        analyzer=analyzer,
    )


@pytest.fixture
async def client(
    settings: Settings,
    services: Services,
) -> AsyncGenerator[AsyncClient, None]:
    """Create async test client for the FastAPI app.

    Yields:
        AsyncClient wired to in-memory services.
    """
    app = create_app(settings=settings, services=services)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
