"""Ingestion data models."""

from enum import Enum

from pydantic import BaseModel, Field

from imagesearch.exceptions import ErrorCode, ImageSearchError
from imagesearch.vectorstore.models import ImageEntry


class ProcessingStatus(str, Enum):
    """Outcome of processing one image."""

    CREATED = "created"
    DUPLICATE = "duplicate"
    FAILED = "failed"


class ProcessingResult(BaseModel):
    """Per-image outcome.

    ``entry`` is set for created and duplicate results; failures carry the
    error code and message instead.
    """

    path: str = Field(description="File that was processed")
    status: ProcessingStatus = Field(description="Outcome")
    entry: ImageEntry | None = Field(default=None, description="Stored entry")
    error_code: str | None = Field(default=None, description="Error code on failure")
    error_message: str | None = Field(default=None, description="Error message on failure")

    @property
    def ok(self) -> bool:
        return self.status != ProcessingStatus.FAILED

    @classmethod
    def created(cls, path: str, entry: ImageEntry) -> "ProcessingResult":
        return cls(path=path, status=ProcessingStatus.CREATED, entry=entry)

    @classmethod
    def duplicate(cls, path: str, entry: ImageEntry) -> "ProcessingResult":
        return cls(path=path, status=ProcessingStatus.DUPLICATE, entry=entry)

    @classmethod
    def failed(cls, path: str, error: Exception) -> "ProcessingResult":
        if isinstance(error, ImageSearchError):
            code, message = error.code.value, error.message
        else:
            code = ErrorCode.INTERNAL_ERROR.value
            message = f"{type(error).__name__}: {error}"
        return cls(
            path=path,
            status=ProcessingStatus.FAILED,
            error_code=code,
            error_message=message,
        )


class DirectoryReport(BaseModel):
    """Summary of ingesting a directory."""

    directory: str = Field(description="Directory that was scanned")
    found: int = Field(default=0, description="Supported image files found")
    created: int = Field(default=0, description="New entries stored")
    duplicates: int = Field(default=0, description="Files already stored")
    failed: int = Field(default=0, description="Files that could not be processed")
    results: list[ProcessingResult] = Field(default_factory=list)

    def add(self, result: ProcessingResult) -> None:
        self.results.append(result)
        if result.status == ProcessingStatus.CREATED:
            self.created += 1
        elif result.status == ProcessingStatus.DUPLICATE:
            self.duplicates += 1
        else:
            self.failed += 1
