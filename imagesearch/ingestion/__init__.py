"""Image ingestion module."""

from imagesearch.ingestion.directory import find_images, process_directory
from imagesearch.ingestion.models import (
    DirectoryReport,
    ProcessingResult,
    ProcessingStatus,
)
from imagesearch.ingestion.processor import ImageProcessor

__all__ = [
    "DirectoryReport",
    "ImageProcessor",
    "ProcessingResult",
    "ProcessingStatus",
    "find_images",
    "process_directory",
]
