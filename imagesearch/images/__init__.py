"""Image decoding and fingerprinting."""

from imagesearch.images.hasher import ImageHasher, detect_format

__all__ = [
    "ImageHasher",
    "detect_format",
]
