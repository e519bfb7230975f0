#!/usr/bin/env python
"""Ingest every image in a directory.

Usage:
    python -m scripts.process_images path/to/images

Supported files (jpg, jpeg, png, webp) are analyzed, embedded and stored one
at a time. Images already in the store are skipped.
"""

import argparse
import asyncio
import sys
from pathlib import Path

from imagesearch.api.dependencies import build_services
from imagesearch.config import get_settings
from imagesearch.exceptions import ImageSearchError
from imagesearch.ingestion.directory import process_directory
from imagesearch.logging_config import get_logger, setup_logging

logger = get_logger(__name__)


async def run(directory: Path) -> bool:
    """Process a directory and print a summary.

    Args:
        directory: Directory to ingest.

    Returns:
        True if the directory could be read, False otherwise.
    """
    settings = get_settings()
    setup_logging(level=settings.log_level)
    services = build_services(settings)

    print(f"Processing directory: {directory}")

    try:
        report = await process_directory(
            services.processor,
            directory,
            settings.supported_formats,
        )
    except ImageSearchError as e:
        logger.error(f"Error reading directory: {e.message}")
        return False
    finally:
        await services.close()

    for result in report.results:
        name = Path(result.path).name
        if result.ok:
            print(f"  ok    {name} ({result.status.value})")
        else:
            print(f"  fail  {name}: {result.error_message}")

    print("\nProcessing complete!")
    print(f"Found: {report.found}")
    print(f"Successfully processed: {report.created + report.duplicates}")
    print(f"  new: {report.created}, already stored: {report.duplicates}")
    print(f"Failed: {report.failed}")
    return True


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Analyze, embed and store every image in a directory",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "directory",
        type=Path,
        help="Directory containing images",
    )

    args = parser.parse_args()
    directory = args.directory.resolve()

    if not directory.is_dir():
        print(f"Directory not accessible: {directory}", file=sys.stderr)
        sys.exit(1)

    ok = asyncio.run(run(directory))
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
