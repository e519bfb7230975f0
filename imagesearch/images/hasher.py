"""Content fingerprints for duplicate detection.

The fingerprint is a SHA-256 over a 32x32 grayscale rendition of the image.
Aspect ratio is not preserved, so this catches exact and near-exact copies
(re-encodes, small resizes) but it is not a robust perceptual hash.
"""

import hashlib
import io

from PIL import Image, UnidentifiedImageError

from imagesearch.exceptions import DecodeError, ErrorCode

HASH_SIZE = (32, 32)

_FORMAT_ALIASES = {"mpo": "jpeg"}


def _open(image_bytes: bytes) -> Image.Image:
    try:
        image = Image.open(io.BytesIO(image_bytes))
        image.load()
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise DecodeError(
            f"Cannot decode image: {e}",
            code=ErrorCode.DECODE_ERROR,
            details={"size": len(image_bytes)},
        ) from e
    return image


def detect_format(image_bytes: bytes) -> str:
    """Return the lower-case format name of an encoded image.

    Raises:
        DecodeError: If the bytes are not a readable image.
    """
    try:
        with Image.open(io.BytesIO(image_bytes)) as image:
            image_format = image.format
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise DecodeError(
            f"Cannot decode image: {e}",
            code=ErrorCode.DECODE_ERROR,
            details={"size": len(image_bytes)},
        ) from e

    if not image_format:
        raise DecodeError("Image format could not be determined")
    # Multi-picture JPEGs (phone cameras) decode as "MPO" but are plain JPEG files
    return _FORMAT_ALIASES.get(image_format.lower(), image_format.lower())


class ImageHasher:
    """Computes the deduplication key of an image."""

    def __init__(self, size: tuple[int, int] = HASH_SIZE) -> None:
        self.size = size

    def normalize(self, image_bytes: bytes) -> bytes:
        """Raw pixel buffer of the resized, grayscaled image."""
        image = _open(image_bytes)
        normalized = image.resize(self.size).convert("L")
        return normalized.tobytes()

    def hash(self, image_bytes: bytes) -> str:
        """Hex SHA-256 digest of the normalized pixel buffer.

        Raises:
            DecodeError: If the image cannot be decoded.
        """
        return hashlib.sha256(self.normalize(image_bytes)).hexdigest()
