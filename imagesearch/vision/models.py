"""Vision analysis data models."""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ImageAnalysis(BaseModel):
    """What the vision model saw in an image.

    Attributes:
        description: Natural-language description of the image.
        extracted_text: Any text visible in the image.
        confidence: Analysis confidence; 1.0 for every successful reply.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    description: str = Field(description="Image description")
    extracted_text: str = Field(default="", description="Text found in the image")
    confidence: float = Field(default=1.0, description="Analysis confidence")

    def embedding_text(self) -> str:
        """Text that gets embedded for this image."""
        return f"{self.description} {self.extracted_text}"
