"""Application exception hierarchy.

All custom exceptions inherit from ImageSearchError.
Each exception has an error code for structured error handling.
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Error codes for structured error handling."""

    # General errors (1xxx)
    INTERNAL_ERROR = "IMG-1000"
    CONFIGURATION_ERROR = "IMG-1001"
    VALIDATION_ERROR = "IMG-1002"

    # Image decoding errors (2xxx)
    DECODE_ERROR = "IMG-2000"
    UNSUPPORTED_FORMAT = "IMG-2001"

    # Vision analysis errors (3xxx)
    VISION_SERVICE_ERROR = "IMG-3000"
    VISION_TIMEOUT = "IMG-3001"
    VISION_RATE_LIMIT = "IMG-3002"
    VISION_PARSE_ERROR = "IMG-3003"
    VISION_CONTENT_FILTERED = "IMG-3004"
    VISION_REFUSED = "IMG-3005"

    # Embedding errors (4xxx)
    EMBEDDING_SERVICE_ERROR = "IMG-4000"
    EMBEDDING_DIMENSION_MISMATCH = "IMG-4001"

    # Vector store errors (5xxx)
    STORE_ERROR = "IMG-5000"
    STORE_SERIALIZATION_ERROR = "IMG-5001"

    # Lookup errors (6xxx)
    IMAGE_NOT_FOUND = "IMG-6000"


class ImageSearchError(Exception):
    """Base exception for all image search errors.

    Attributes:
        message: Human-readable error message.
        code: Structured error code.
        details: Additional error context.
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": {
                "code": self.code.value,
                "message": self.message,
                "details": self.details,
            }
        }


class ConfigurationError(ImageSearchError):
    """Configuration or environment error."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.CONFIGURATION_ERROR, details)


class ValidationError(ImageSearchError):
    """Input validation error."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.VALIDATION_ERROR, details)


class DecodeError(ImageSearchError):
    """Unsupported or corrupt image."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.DECODE_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class AnalysisError(ImageSearchError):
    """Vision analysis failed."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.VISION_SERVICE_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class EmbeddingError(ImageSearchError):
    """Embedding service error."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.EMBEDDING_SERVICE_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class StoreError(ImageSearchError):
    """Vector store I/O or serialization error."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.STORE_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class NotFoundError(ImageSearchError):
    """Lookup by filename or hash found nothing."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.IMAGE_NOT_FOUND, details)
