"""API routes for image ingestion, search and retrieval."""

import asyncio
from pathlib import Path
from typing import Any
from uuid import uuid4

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import FileResponse
from pydantic import BaseModel, Field

from imagesearch.api.dependencies import Services, get_services
from imagesearch.exceptions import ImageSearchError, NotFoundError, ValidationError
from imagesearch.ingestion.directory import process_directory
from imagesearch.ingestion.models import DirectoryReport, ProcessingStatus
from imagesearch.logging_config import get_logger
from imagesearch.observability.metrics import track_search
from imagesearch.vectorstore.models import ImageEntry

logger = get_logger(__name__)


router = APIRouter(tags=["Images"])


class UploadFailure(BaseModel):
    """An uploaded file that could not be ingested."""

    filename: str = Field(description="Original upload name")
    code: str = Field(description="Error code")
    message: str = Field(description="Error message")


class UploadResponse(BaseModel):
    """Response from a batch upload."""

    processed: int = Field(description="Files stored or already present")
    total: int = Field(description="Files received")
    entries: list[ImageEntry] = Field(description="Stored entries")
    failures: list[UploadFailure] = Field(
        default_factory=list,
        description="Files that failed, with the reason",
    )


class ProcessDirectoryRequest(BaseModel):
    """Request body for directory ingestion."""

    directory: str | None = Field(default=None, description="Directory to ingest")


class DeleteResponse(BaseModel):
    """Response from an image deletion."""

    message: str = Field(description="Outcome")


async def _save_upload(upload: UploadFile, upload_dir: Path) -> Path:
    """Write an upload under a generated name, keeping its extension."""
    upload_dir.mkdir(parents=True, exist_ok=True)
    suffix = Path(upload.filename or "").suffix.lower()
    target = upload_dir / f"{uuid4().hex}{suffix}"
    data = await upload.read()
    await asyncio.to_thread(target.write_bytes, data)
    return target


def _resolve_limit(limit: int | None, default: int) -> int:
    if limit is None:
        return default
    if limit < 1:
        raise ValidationError("limit must be a positive integer", details={"limit": limit})
    return limit


@router.post("/api/upload", response_model=UploadResponse)
async def upload_images(
    images: list[UploadFile] | None = File(default=None),
    services: Services = Depends(get_services),
) -> UploadResponse:
    """Ingest a batch of uploaded images.

    Files are processed concurrently. A file whose content is already stored
    is reported with the existing entry and its uploaded copy is removed; so
    is the copy of a file that failed processing.
    """
    if not images:
        raise ValidationError("No files uploaded")

    try:
        upload_dir = services.settings.upload_dir
        saved = [await _save_upload(upload, upload_dir) for upload in images]

        results = await asyncio.gather(
            *(services.processor.process(path) for path in saved)
        )

        entries: list[ImageEntry] = []
        failures: list[UploadFailure] = []
        for upload, path, result in zip(images, saved, results, strict=True):
            if result.entry is None:
                path.unlink(missing_ok=True)
                failures.append(
                    UploadFailure(
                        filename=upload.filename or path.name,
                        code=result.error_code or "",
                        message=result.error_message or "",
                    )
                )
                continue

            entries.append(result.entry)
            if result.status == ProcessingStatus.DUPLICATE and result.entry.path != str(path):
                path.unlink(missing_ok=True)

        logger.info(
            "Upload processed",
            extra={"total": len(images), "processed": len(entries), "failed": len(failures)},
        )
        return UploadResponse(
            processed=len(entries),
            total=len(images),
            entries=entries,
            failures=failures,
        )

    except ImageSearchError:
        raise
    except Exception as e:
        logger.exception("Upload error")
        raise ImageSearchError("Upload processing failed") from e


@router.post("/api/search/image")
async def search_by_image(
    image: UploadFile | None = File(default=None),
    limit: int | None = None,
    services: Services = Depends(get_services),
) -> list[dict[str, Any]]:
    """Find stored images similar to an uploaded one.

    The upload is analyzed (or matched by hash) but never stored.
    """
    if image is None:
        raise ValidationError("No image uploaded")
    search_limit = _resolve_limit(limit, services.settings.search_limit)

    path = await _save_upload(image, services.settings.upload_dir)
    try:
        vector = await services.processor.embed_image(path)
        results = await services.store.search_by_vector(vector, search_limit)
    except ImageSearchError:
        raise
    except Exception as e:
        logger.exception("Image search error")
        raise ImageSearchError("Image search failed") from e
    finally:
        path.unlink(missing_ok=True)

    track_search("image", len(results))
    return [result.to_response() for result in results]


@router.get("/api/search")
async def search(
    query: str | None = None,
    limit: int | None = None,
    services: Services = Depends(get_services),
) -> list[dict[str, Any]]:
    """Text search; embeddings are left out of the response."""
    if not query or not query.strip():
        raise ValidationError("Query parameter required")
    search_limit = _resolve_limit(limit, services.settings.search_limit)

    try:
        results = await services.store.search(query, search_limit)
    except ImageSearchError:
        raise
    except Exception as e:
        logger.exception("Search error")
        raise ImageSearchError("Search failed") from e

    track_search("text", len(results))
    return [result.to_response(include_embedding=False) for result in results]


@router.get("/images/{filename}")
async def get_image(
    filename: str,
    services: Services = Depends(get_services),
) -> FileResponse:
    """Serve an image from the upload directory, else from its stored path."""
    if Path(filename).name != filename:
        raise NotFoundError("Image not found", details={"filename": filename})

    upload_path = services.settings.upload_dir / filename
    if upload_path.is_file():
        return FileResponse(upload_path)

    entry = await services.store.get_by_filename(filename)
    if entry is None:
        raise NotFoundError("Image not found", details={"filename": filename})

    stored_path = Path(entry.path)
    if not stored_path.is_file():
        raise NotFoundError("Image file not found", details={"filename": filename})
    return FileResponse(stored_path)


@router.delete("/api/images/{filename}", response_model=DeleteResponse)
async def delete_image(
    filename: str,
    services: Services = Depends(get_services),
) -> DeleteResponse:
    """Delete every entry with this filename and, best effort, their files."""
    entries = await services.store.find_by_filename(filename)
    if not entries:
        raise NotFoundError("Image not found", details={"filename": filename})

    for path in dict.fromkeys(entry.path for entry in entries):
        try:
            Path(path).unlink()
        except OSError as e:
            logger.warning(
                f"Error deleting file: {e}",
                extra={"image_filename": filename, "path": path},
            )

    await services.store.delete_by_filename(filename)
    return DeleteResponse(message="Image deleted successfully")


@router.post("/api/process-directory", response_model=DirectoryReport)
async def process_directory_endpoint(
    body: ProcessDirectoryRequest | None = None,
    services: Services = Depends(get_services),
) -> DirectoryReport:
    """Ingest every supported image in a server-side directory."""
    if body is None or not body.directory:
        raise ValidationError("Directory path required")

    try:
        return await process_directory(
            services.processor,
            body.directory,
            services.settings.supported_formats,
        )
    except ImageSearchError:
        raise
    except Exception as e:
        logger.exception("Processing error")
        raise ImageSearchError("Processing failed") from e
