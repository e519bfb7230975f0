"""Vision analysis module."""

from imagesearch.vision.client import (
    AnthropicVisionClient,
    FallbackVisionAnalyzer,
    VisionAnalyzer,
    build_vision_analyzer,
    parse_analysis,
)
from imagesearch.vision.models import ImageAnalysis

__all__ = [
    "AnthropicVisionClient",
    "FallbackVisionAnalyzer",
    "ImageAnalysis",
    "VisionAnalyzer",
    "build_vision_analyzer",
    "parse_analysis",
]
