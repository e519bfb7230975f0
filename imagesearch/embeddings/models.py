"""Embedding data models."""

from pydantic import BaseModel, Field, model_validator

from imagesearch.exceptions import EmbeddingError, ErrorCode


class EmbeddingResult(BaseModel):
    """Result of embedding one piece of text.

    Attributes:
        text: The text that was embedded.
        embedding: The embedding vector.
        model: The model used to generate the embedding.
        dimensions: Number of dimensions in the embedding.
    """

    text: str = Field(description="Embedded text")
    embedding: list[float] = Field(description="Embedding vector")
    model: str = Field(description="Model used for embedding")
    dimensions: int = Field(description="Vector dimensions")

    @model_validator(mode="after")
    def _dimensions_match(self) -> "EmbeddingResult":
        if self.dimensions != len(self.embedding):
            raise ValueError(
                f"dimensions ({self.dimensions}) does not match "
                f"embedding length ({len(self.embedding)})"
            )
        return self

    def require_dimensions(self, expected: int) -> list[float]:
        """Return the vector, failing if it is not ``expected`` long.

        Raises:
            EmbeddingError: If the model produced a different size.
        """
        if self.dimensions != expected:
            raise EmbeddingError(
                f"Embedding has {self.dimensions} dimensions, expected {expected}",
                code=ErrorCode.EMBEDDING_DIMENSION_MISMATCH,
                details={"model": self.model, "dimensions": self.dimensions},
            )
        return self.embedding
