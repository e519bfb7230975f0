"""Tests for vector store module."""

import random
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from qdrant_client import AsyncQdrantClient
from qdrant_client.models import Distance

from imagesearch.config import StoreSettings
from imagesearch.embeddings.service import EmbeddingService
from imagesearch.exceptions import ErrorCode, StoreError
from imagesearch.vectorstore.models import ImageEntry, SearchResult
from imagesearch.vectorstore.service import QdrantImageStore
from imagesearch.vision.models import ImageAnalysis

DIMS = 8
T0 = datetime(2024, 1, 1, tzinfo=UTC)


def _axis(index: int, scale: float = 1.0, dims: int = DIMS) -> list[float]:
    vector = [0.0] * dims
    vector[index] = scale
    return vector


def _entry(
    filename: str,
    embedding: list[float],
    hash: str | None = None,
    created_at: datetime = T0,
) -> ImageEntry:
    return ImageEntry(
        filename=filename,
        path=f"/images/{filename}",
        hash=hash or f"hash-{filename}-{created_at.timestamp()}",
        analysis=ImageAnalysis(description=f"photo {filename}", extracted_text="EXIT"),
        embedding=embedding,
        created_at=created_at,
        updated_at=created_at,
    )


class TestImageEntry:
    """Tests for ImageEntry model."""

    def test_create_sets_timestamps(self) -> None:
        """New entries get an id and equal timestamps."""
        entry = ImageEntry.create(
            filename="cat.png",
            path="/images/cat.png",
            hash="abc",
            analysis=ImageAnalysis(description="a cat"),
            embedding=[0.1, 0.2],
        )
        assert entry.id
        assert entry.created_at == entry.updated_at
        assert entry.created_at.tzinfo is not None

    def test_ids_are_unique(self) -> None:
        """Every entry gets a fresh id."""
        first = _entry("a.png", [0.0])
        second = _entry("a.png", [0.0])
        assert first.id != second.id

    def test_payload_round_trip(self) -> None:
        """Payload plus vector rebuild the same entry."""
        entry = _entry("cat.png", [0.5, 0.25])
        rebuilt = ImageEntry.from_payload(entry.id, entry.to_payload(), entry.embedding)
        assert rebuilt == entry

    def test_camel_case_json(self) -> None:
        """Serialized entries use camelCase keys."""
        data = _entry("cat.png", [0.5]).model_dump(mode="json", by_alias=True)
        assert "createdAt" in data
        assert "updatedAt" in data
        assert data["analysis"]["extractedText"] == "EXIT"


class TestSearchResult:
    """Tests for SearchResult model."""

    def test_response_includes_embedding(self) -> None:
        """Image search responses keep the vector."""
        result = SearchResult(entry=_entry("cat.png", [0.5, 0.5]), similarity=0.25)
        data = result.to_response()
        assert data["similarity"] == 0.25
        assert data["entry"]["embedding"] == [0.5, 0.5]

    def test_response_without_embedding(self) -> None:
        """Text search responses drop the vector."""
        result = SearchResult(entry=_entry("cat.png", [0.5, 0.5]), similarity=0.25)
        data = result.to_response(include_embedding=False)
        assert "embedding" not in data["entry"]
        assert data["entry"]["filename"] == "cat.png"


class TestQdrantImageStoreSetup:
    """Collection handling against a mocked client."""

    def _create_mock_client(self, exists: bool = False, size: int = DIMS) -> AsyncMock:
        client = AsyncMock()
        client.collection_exists = AsyncMock(return_value=exists)
        info = MagicMock()
        info.config.params.vectors.size = size
        client.get_collection = AsyncMock(return_value=info)
        client.create_collection = AsyncMock()
        client.create_payload_index = AsyncMock()
        client.upsert = AsyncMock()
        count = MagicMock()
        count.count = 0
        client.count = AsyncMock(return_value=count)
        client.close = AsyncMock()
        return client

    @pytest.mark.asyncio
    async def test_creates_euclidean_collection(self, embedding_service: EmbeddingService) -> None:
        """A missing collection is created with L2 distance."""
        mock_client = self._create_mock_client()
        settings = StoreSettings(path=":memory:", vector_size=DIMS)
        store = QdrantImageStore(embedding_service, settings, client=mock_client)

        await store.count()

        mock_client.create_collection.assert_called_once()
        params = mock_client.create_collection.call_args.kwargs["vectors_config"]
        assert params.size == DIMS
        assert params.distance == Distance.EUCLID
        mock_client.create_payload_index.assert_not_called()

    @pytest.mark.asyncio
    async def test_server_mode_indexes_lookup_fields(
        self,
        embedding_service: EmbeddingService,
    ) -> None:
        """On a server, hash and filename get keyword indexes."""
        mock_client = self._create_mock_client()
        settings = StoreSettings(url="http://localhost:6333", vector_size=DIMS)
        store = QdrantImageStore(embedding_service, settings, client=mock_client)

        await store.count()

        fields = {
            call.kwargs["field_name"]
            for call in mock_client.create_payload_index.call_args_list
        }
        assert fields == {"hash", "filename"}

    @pytest.mark.asyncio
    async def test_collection_created_once(self, embedding_service: EmbeddingService) -> None:
        """Setup runs on first use only."""
        mock_client = self._create_mock_client()
        settings = StoreSettings(path=":memory:", vector_size=DIMS)
        store = QdrantImageStore(embedding_service, settings, client=mock_client)

        await store.count()
        await store.count()

        mock_client.collection_exists.assert_called_once()

    @pytest.mark.asyncio
    async def test_existing_collection_size_mismatch(
        self,
        embedding_service: EmbeddingService,
    ) -> None:
        """An existing collection with another vector size is refused."""
        mock_client = self._create_mock_client(exists=True, size=1536)
        settings = StoreSettings(path=":memory:", vector_size=DIMS)
        store = QdrantImageStore(embedding_service, settings, client=mock_client)

        with pytest.raises(StoreError) as exc_info:
            await store.count()

        assert exc_info.value.code == ErrorCode.STORE_ERROR
        mock_client.create_collection.assert_not_called()

    @pytest.mark.asyncio
    async def test_insert_failure_wrapped(self, embedding_service: EmbeddingService) -> None:
        """Client errors surface as StoreError."""
        mock_client = self._create_mock_client()
        mock_client.upsert.side_effect = RuntimeError("disk full")
        settings = StoreSettings(path=":memory:", vector_size=DIMS)
        store = QdrantImageStore(embedding_service, settings, client=mock_client)

        with pytest.raises(StoreError) as exc_info:
            await store.insert(_entry("a.png", _axis(0)))

        assert "disk full" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_injected_client_not_closed(self, embedding_service: EmbeddingService) -> None:
        """A client passed in belongs to the caller."""
        mock_client = self._create_mock_client()
        store = QdrantImageStore(embedding_service, StoreSettings(), client=mock_client)

        await store.close()

        mock_client.close.assert_not_called()


class TestQdrantImageStore:
    """Behaviour of the store on an in-memory Qdrant."""

    @pytest.mark.asyncio
    async def test_empty_store(self, store: QdrantImageStore) -> None:
        """A new store has no entries and finds nothing."""
        assert await store.count() == 0
        assert await store.search_by_vector(_axis(0)) == []
        assert await store.get_by_hash("missing") is None
        assert await store.get_by_filename("missing.png") is None

    @pytest.mark.asyncio
    async def test_round_trip_full_size_vector(self, embedding_service: EmbeddingService) -> None:
        """A 1536-dimensional entry comes back intact."""
        store = QdrantImageStore(
            embedding_service,
            StoreSettings(path=":memory:", vector_size=1536),
        )
        rng = random.Random(7)
        embedding = [rng.uniform(-1.0, 1.0) for _ in range(1536)]
        entry = _entry("big.png", embedding, hash="big-hash")

        try:
            await store.insert(entry)
            found = await store.get_by_hash("big-hash")
        finally:
            await store.close()

        assert found is not None
        assert found.id == entry.id
        assert found.filename == entry.filename
        assert found.path == entry.path
        assert found.analysis == entry.analysis
        assert found.created_at == entry.created_at
        assert found.updated_at == entry.updated_at
        assert len(found.embedding) == 1536
        assert max(abs(a - b) for a, b in zip(found.embedding, embedding)) < 1e-5

    @pytest.mark.asyncio
    async def test_search_orders_by_distance(self, store: QdrantImageStore) -> None:
        """Nearest entries come first, scored by L2 distance."""
        near = _entry("near.png", _axis(0))
        middle = _entry("middle.png", _axis(1))
        far = _entry("far.png", _axis(0, scale=3.0))
        for entry in (far, near, middle):
            await store.insert(entry)

        results = await store.search_by_vector(_axis(0), limit=10)

        assert [r.entry.id for r in results] == [near.id, middle.id, far.id]
        assert results[0].similarity == pytest.approx(0.0, abs=1e-5)
        assert results[1].similarity == pytest.approx(2**0.5, abs=1e-4)
        assert results[2].similarity == pytest.approx(2.0, abs=1e-4)

    @pytest.mark.asyncio
    async def test_search_limit(self, store: QdrantImageStore) -> None:
        """At most ``limit`` results are returned."""
        for i in range(5):
            await store.insert(_entry(f"{i}.png", _axis(i)))

        assert len(await store.search_by_vector(_axis(0), limit=2)) == 2
        assert len(await store.search_by_vector(_axis(0), limit=50)) == 5
        assert await store.search_by_vector(_axis(0), limit=0) == []

    @pytest.mark.asyncio
    async def test_text_search_matches_vector_search(
        self,
        store: QdrantImageStore,
        embedding_service: EmbeddingService,
    ) -> None:
        """search(q) ranks exactly like search_by_vector(embed(q))."""
        for i in range(4):
            await store.insert(_entry(f"{i}.png", _axis(i, scale=0.5)))

        by_text = await store.search("a red bicycle", limit=4)
        vector = (await embedding_service.embed("a red bicycle")).embedding
        by_vector = await store.search_by_vector(vector, limit=4)

        assert [r.entry.id for r in by_text] == [r.entry.id for r in by_vector]
        assert [r.similarity for r in by_text] == pytest.approx(
            [r.similarity for r in by_vector]
        )

    @pytest.mark.asyncio
    async def test_get_by_hash(self, store: QdrantImageStore) -> None:
        """Exact hash lookup."""
        entry = _entry("cat.png", _axis(2), hash="cafe")
        await store.insert(entry)

        found = await store.get_by_hash("cafe")

        assert found is not None
        assert found.id == entry.id
        assert await store.get_by_hash("caf") is None

    @pytest.mark.asyncio
    async def test_get_by_filename_prefers_earliest(self, store: QdrantImageStore) -> None:
        """With several matches the oldest entry wins."""
        older = _entry("dup.png", _axis(0), created_at=T0)
        newer = _entry("dup.png", _axis(1), created_at=T0 + timedelta(hours=1))
        await store.insert(newer)
        await store.insert(older)

        found = await store.get_by_filename("dup.png")

        assert found is not None
        assert found.id == older.id

    @pytest.mark.asyncio
    async def test_find_by_filename_lists_all_oldest_first(
        self, store: QdrantImageStore
    ) -> None:
        """Every match is returned in creation order."""
        newer = _entry("dup.png", _axis(1), created_at=T0 + timedelta(hours=1))
        older = _entry("dup.png", _axis(0), created_at=T0)
        await store.insert(newer)
        await store.insert(older)
        await store.insert(_entry("other.png", _axis(2)))

        found = await store.find_by_filename("dup.png")

        assert [entry.id for entry in found] == [older.id, newer.id]
        assert await store.find_by_filename("missing.png") == []

    @pytest.mark.asyncio
    async def test_delete_by_filename(self, store: QdrantImageStore) -> None:
        """Every entry with the filename is removed, others stay."""
        await store.insert(_entry("gone.png", _axis(0), created_at=T0))
        await store.insert(_entry("gone.png", _axis(1), created_at=T0 + timedelta(1)))
        keep = _entry("keep.png", _axis(2))
        await store.insert(keep)

        deleted = await store.delete_by_filename("gone.png")

        assert deleted == 2
        assert await store.count() == 1
        assert await store.get_by_filename("gone.png") is None
        results = await store.search_by_vector(_axis(0), limit=10)
        assert [r.entry.id for r in results] == [keep.id]

    @pytest.mark.asyncio
    async def test_delete_missing_filename(self, store: QdrantImageStore) -> None:
        """Deleting an unknown filename removes nothing."""
        await store.insert(_entry("keep.png", _axis(0)))

        assert await store.delete_by_filename("missing.png") == 0
        assert await store.count() == 1

    @pytest.mark.asyncio
    async def test_insert_wrong_dimensions(self, store: QdrantImageStore) -> None:
        """A vector of the wrong size is rejected."""
        with pytest.raises(StoreError) as exc_info:
            await store.insert(_entry("bad.png", [0.1, 0.2]))

        assert exc_info.value.code == ErrorCode.STORE_SERIALIZATION_ERROR
        assert await store.count() == 0

    @pytest.mark.asyncio
    async def test_search_wrong_dimensions(self, store: QdrantImageStore) -> None:
        """A query vector of the wrong size is rejected."""
        with pytest.raises(StoreError) as exc_info:
            await store.search_by_vector([0.1, 0.2])

        assert exc_info.value.code == ErrorCode.STORE_SERIALIZATION_ERROR

    @pytest.mark.asyncio
    async def test_reopen_with_other_size(self, embedding_service: EmbeddingService) -> None:
        """A collection keeps the vector size it was created with."""
        client = AsyncQdrantClient(location=":memory:")
        try:
            first = QdrantImageStore(
                embedding_service,
                StoreSettings(vector_size=DIMS),
                client=client,
            )
            await first.insert(_entry("a.png", _axis(0)))

            second = QdrantImageStore(
                embedding_service,
                StoreSettings(vector_size=4),
                client=client,
            )
            with pytest.raises(StoreError):
                await second.count()
        finally:
            await client.close()
