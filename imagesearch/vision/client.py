"""Vision analyzer interface and implementations."""

import base64
import json
import time
from abc import ABC, abstractmethod
from typing import Any

import httpx

from imagesearch.config import VisionSettings, get_settings
from imagesearch.exceptions import AnalysisError, ErrorCode
from imagesearch.images.hasher import detect_format
from imagesearch.logging_config import get_logger
from imagesearch.observability.metrics import track_vision_request
from imagesearch.vision.models import ImageAnalysis
from imagesearch.vision.prompts import ANALYSIS_PROMPT, REFUSAL_PREFIXES

logger = get_logger(__name__)

CONTENT_FILTER_MESSAGE = "Output blocked by content filtering policy"


class VisionAnalyzer(ABC):
    """Abstract base class for vision analyzers.

    Turns raw image bytes into a description and any text found in the image.
    """

    @abstractmethod
    async def analyze(self, image_bytes: bytes) -> ImageAnalysis:
        """Analyze an image.

        Args:
            image_bytes: Encoded image (jpeg, png, webp).

        Returns:
            ImageAnalysis with description and extracted text.

        Raises:
            AnalysisError: On any API, protocol or parsing problem.
        """
        ...

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Get the model name."""
        ...

    async def close(self) -> None:
        """Release any held resources."""


class AnthropicVisionClient(VisionAnalyzer):
    """Vision analyzer backed by the Anthropic Messages API."""

    def __init__(
        self,
        settings: VisionSettings | None = None,
        client: httpx.AsyncClient | None = None,
        model: str | None = None,
    ) -> None:
        """Initialize the vision client.

        Args:
            settings: Vision configuration.
            client: HTTP client (shared or for testing).
            model: Model override; defaults to the fast model.
        """
        self._settings = settings or get_settings().vision
        self._client = client
        self._owns_client = client is None
        self._model = model or self._settings.fast_model

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._settings.timeout)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def model_name(self) -> str:
        """Get the model name."""
        return self._model

    def _headers(self) -> dict[str, str]:
        return {
            "x-api-key": self._settings.api_key.get_secret_value(),
            "anthropic-version": self._settings.api_version,
            "content-type": "application/json",
        }

    def _build_payload(self, image_bytes: bytes) -> dict[str, Any]:
        media_type = f"image/{detect_format(image_bytes)}"
        return {
            "model": self._model,
            "max_tokens": self._settings.max_tokens,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": ANALYSIS_PROMPT},
                        {
                            "type": "image",
                            "source": {
                                "type": "base64",
                                "media_type": media_type,
                                "data": base64.b64encode(image_bytes).decode("ascii"),
                            },
                        },
                    ],
                }
            ],
        }

    async def analyze(self, image_bytes: bytes) -> ImageAnalysis:
        """Analyze an image with a single Messages API call."""
        start = time.perf_counter()
        try:
            analysis = await self._analyze(image_bytes)
        except AnalysisError:
            track_vision_request(self._model, time.perf_counter() - start, success=False)
            raise
        track_vision_request(self._model, time.perf_counter() - start)
        return analysis

    async def _analyze(self, image_bytes: bytes) -> ImageAnalysis:
        client = await self._get_client()
        url = f"{self._settings.base_url}/messages"
        payload = self._build_payload(image_bytes)

        try:
            response = await client.post(url, json=payload, headers=self._headers())
            response.raise_for_status()

        except httpx.TimeoutException as e:
            logger.error(f"Vision request timed out: {e}")
            raise AnalysisError(
                "Vision request timed out",
                code=ErrorCode.VISION_TIMEOUT,
                details={"model": self._model, "timeout": self._settings.timeout},
            ) from e

        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error(f"Vision request failed: {status}", extra={"model": self._model})

            if status == 429:
                raise AnalysisError(
                    "Rate limit exceeded",
                    code=ErrorCode.VISION_RATE_LIMIT,
                    details={"status_code": status, "model": self._model},
                ) from e

            if _is_content_filtered(e.response):
                raise AnalysisError(
                    CONTENT_FILTER_MESSAGE,
                    code=ErrorCode.VISION_CONTENT_FILTERED,
                    details={"status_code": status, "model": self._model},
                ) from e

            raise AnalysisError(
                f"Vision service returned {status}",
                code=ErrorCode.VISION_SERVICE_ERROR,
                details={"status_code": status, "model": self._model},
            ) from e

        except httpx.RequestError as e:
            logger.error(f"Vision connection error: {e}")
            raise AnalysisError(
                f"Failed to connect to vision service: {e}",
                code=ErrorCode.VISION_SERVICE_ERROR,
                details={"url": url},
            ) from e

        try:
            data = response.json()
            text = next(
                block["text"] for block in data["content"] if block.get("type") == "text"
            )
        except (KeyError, TypeError, ValueError, StopIteration) as e:
            raise AnalysisError(
                "Unexpected response format from vision service",
                code=ErrorCode.VISION_SERVICE_ERROR,
                details={"model": self._model, "error": str(e)},
            ) from e

        logger.debug("Vision reply received", extra={"model": self._model})
        return parse_analysis(text, model=self._model)


def _is_content_filtered(response: httpx.Response) -> bool:
    try:
        error = response.json().get("error", {})
    except ValueError:
        return False
    return (
        error.get("type") == "invalid_request_error"
        and error.get("message") == CONTENT_FILTER_MESSAGE
    )


def _strip_code_fence(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text.strip()


def parse_analysis(text: str, model: str = "") -> ImageAnalysis:
    """Parse the model's JSON reply into an ImageAnalysis.

    Args:
        text: Raw reply text.
        model: Model that produced the reply, for error details.

    Returns:
        Parsed analysis with confidence 1.0.

    Raises:
        AnalysisError: VISION_REFUSED for apologies, VISION_PARSE_ERROR for
            anything else that is not the expected JSON object.
    """
    body = _strip_code_fence(text)

    if body.startswith(REFUSAL_PREFIXES):
        raise AnalysisError(
            "Vision model declined to describe the image",
            code=ErrorCode.VISION_REFUSED,
            details={"model": model, "reply": body[:200]},
        )

    try:
        data = json.loads(body)
    except json.JSONDecodeError as e:
        raise AnalysisError(
            f"Vision reply is not valid JSON: {e}",
            code=ErrorCode.VISION_PARSE_ERROR,
            details={"model": model, "reply": body[:200]},
        ) from e

    if not isinstance(data, dict) or not isinstance(data.get("description"), str):
        raise AnalysisError(
            "Vision reply is missing a description",
            code=ErrorCode.VISION_PARSE_ERROR,
            details={"model": model, "reply": body[:200]},
        )

    extracted = data.get("extractedText") or ""
    if not isinstance(extracted, str):
        extracted = json.dumps(extracted, ensure_ascii=False)

    return ImageAnalysis(
        description=data["description"],
        extracted_text=extracted,
        confidence=1.0,
    )


class FallbackVisionAnalyzer(VisionAnalyzer):
    """Two-tier analysis policy.

    The fast analyzer handles every image first. A malformed reply is retried
    once on the fast analyzer; a content-filter rejection is retried once on
    the escalation analyzer. Every other error propagates.
    """

    def __init__(self, primary: VisionAnalyzer, escalation: VisionAnalyzer) -> None:
        self._primary = primary
        self._escalation = escalation

    @property
    def model_name(self) -> str:
        return self._primary.model_name

    async def close(self) -> None:
        await self._primary.close()
        await self._escalation.close()

    async def analyze(self, image_bytes: bytes) -> ImageAnalysis:
        try:
            return await self._primary.analyze(image_bytes)
        except AnalysisError as e:
            if e.code == ErrorCode.VISION_PARSE_ERROR:
                logger.warning(
                    "Unparseable vision reply, retrying",
                    extra={"model": self._primary.model_name},
                )
                return await self._primary.analyze(image_bytes)

            if e.code == ErrorCode.VISION_CONTENT_FILTERED:
                logger.warning(
                    "Content filter triggered, escalating",
                    extra={
                        "model": self._primary.model_name,
                        "escalation_model": self._escalation.model_name,
                    },
                )
                return await self._escalation.analyze(image_bytes)

            raise


def build_vision_analyzer(
    settings: VisionSettings | None = None,
    client: httpx.AsyncClient | None = None,
) -> FallbackVisionAnalyzer:
    """Compose the fast and fallback models into the two-tier policy.

    Args:
        settings: Vision configuration.
        client: Shared HTTP client; each analyzer owns its own when omitted.

    Returns:
        Analyzer applying the fallback policy.
    """
    settings = settings or get_settings().vision
    return FallbackVisionAnalyzer(
        primary=AnthropicVisionClient(settings, client, model=settings.fast_model),
        escalation=AnthropicVisionClient(settings, client, model=settings.fallback_model),
    )
