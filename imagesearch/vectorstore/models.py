"""Vector store data models."""

from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from imagesearch.vision.models import ImageAnalysis


class ImageEntry(BaseModel):
    """One stored image.

    Entries are never updated in place; both timestamps are set once at
    creation. ``hash`` is the deduplication key.

    Attributes:
        id: Unique identifier generated at creation.
        filename: Display name; not unique.
        path: Location of the original file.
        hash: Hex digest of the normalized pixel data.
        analysis: Vision analysis result.
        embedding: Vector of the description and extracted text.
        created_at: Creation time (UTC).
        updated_at: Equal to created_at.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    id: str = Field(default_factory=lambda: str(uuid4()), description="Entry identifier")
    filename: str = Field(description="Display name")
    path: str = Field(description="Location of the original file")
    hash: str = Field(description="Content fingerprint")
    analysis: ImageAnalysis = Field(description="Vision analysis")
    embedding: list[float] = Field(description="Embedding vector")
    created_at: datetime = Field(description="Creation time")
    updated_at: datetime = Field(description="Last update time")

    @classmethod
    def create(
        cls,
        filename: str,
        path: str,
        hash: str,
        analysis: ImageAnalysis,
        embedding: list[float],
    ) -> "ImageEntry":
        """Build a new entry with a fresh id and both timestamps set to now."""
        now = datetime.now(UTC)
        return cls(
            filename=filename,
            path=path,
            hash=hash,
            analysis=analysis,
            embedding=embedding,
            created_at=now,
            updated_at=now,
        )

    def to_payload(self) -> dict[str, Any]:
        """Metadata stored next to the vector."""
        return {
            "filename": self.filename,
            "path": self.path,
            "hash": self.hash,
            "description": self.analysis.description,
            "extracted_text": self.analysis.extracted_text,
            "confidence": self.analysis.confidence,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_payload(
        cls,
        id: str,
        payload: dict[str, Any],
        embedding: list[float],
    ) -> "ImageEntry":
        """Rebuild an entry from stored metadata and vector."""
        return cls(
            id=id,
            filename=payload["filename"],
            path=payload["path"],
            hash=payload["hash"],
            analysis=ImageAnalysis(
                description=payload["description"],
                extracted_text=payload["extracted_text"],
                confidence=payload["confidence"],
            ),
            embedding=embedding,
            created_at=datetime.fromisoformat(payload["created_at"]),
            updated_at=datetime.fromisoformat(payload["updated_at"]),
        )


class SearchResult(BaseModel):
    """Result from a nearest-neighbour search.

    Attributes:
        entry: The matched image.
        similarity: L2 distance to the query (lower is more similar).
    """

    entry: ImageEntry = Field(description="Matched image")
    similarity: float = Field(description="L2 distance to the query")

    def to_response(self, include_embedding: bool = True) -> dict[str, Any]:
        """JSON-ready dict with camelCase keys."""
        exclude = None if include_embedding else {"entry": {"embedding"}}
        return self.model_dump(mode="json", by_alias=True, exclude=exclude)
