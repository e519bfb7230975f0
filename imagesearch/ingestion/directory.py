"""Bulk ingestion of a directory of images."""

from pathlib import Path

from imagesearch.exceptions import ValidationError
from imagesearch.ingestion.models import DirectoryReport
from imagesearch.ingestion.processor import SUPPORTED_FORMATS, ImageProcessor
from imagesearch.logging_config import get_logger

logger = get_logger(__name__)


def find_images(
    directory: Path,
    extensions: list[str] | tuple[str, ...] = SUPPORTED_FORMATS,
) -> list[Path]:
    """List image files directly inside ``directory``, sorted by name.

    Args:
        directory: Directory to scan (not recursive).
        extensions: Accepted extensions without the dot.

    Raises:
        ValidationError: If the path is not a readable directory.
    """
    if not directory.is_dir():
        raise ValidationError(
            f"Not a directory: {directory}",
            details={"directory": str(directory)},
        )

    suffixes = {f".{ext.lower()}" for ext in extensions}
    return sorted(
        path
        for path in directory.iterdir()
        if path.is_file() and path.suffix.lower() in suffixes
    )


async def process_directory(
    processor: ImageProcessor,
    directory: str | Path,
    extensions: list[str] | tuple[str, ...] = SUPPORTED_FORMATS,
) -> DirectoryReport:
    """Ingest every supported image in a directory, one at a time.

    Files are processed sequentially so identical images in the same
    directory always collapse to one entry.

    Args:
        processor: Image processor to use.
        directory: Directory to scan.
        extensions: Accepted file extensions.

    Returns:
        Counts and per-file results.

    Raises:
        ValidationError: If the path is not a directory.
    """
    root = Path(directory).resolve()
    files = find_images(root, extensions)
    report = DirectoryReport(directory=str(root), found=len(files))

    logger.info(f"Found {len(files)} images to process", extra={"directory": str(root)})

    for path in files:
        result = await processor.process(path)
        report.add(result)
        logger.info(
            f"{'Processed' if result.ok else 'Failed to process'} {path.name}",
            extra={"status": result.status.value},
        )

    logger.info(
        "Directory processing complete",
        extra={
            "directory": str(root),
            "created_count": report.created,
            "duplicates": report.duplicates,
            "failed": report.failed,
        },
    )
    return report
