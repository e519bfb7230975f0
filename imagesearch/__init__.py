"""Image search service: vision-described images with vector search."""

__version__ = "0.1.0"
