"""Vector store module."""

from imagesearch.vectorstore.models import ImageEntry, SearchResult
from imagesearch.vectorstore.service import ImageStore, QdrantImageStore

__all__ = [
    "ImageEntry",
    "ImageStore",
    "QdrantImageStore",
    "SearchResult",
]
