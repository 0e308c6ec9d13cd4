"""
ciprag Errors
=============

Exception taxonomy for the retrieval & indexing engine.

- ExtractionError: document unreadable or unsupported format
- EmbeddingServiceError: embedding service unreachable or malformed response
- CacheIOError: embedding cache could not be read or written
- InvalidReference: unknown or unsafe document key
"""

from pathlib import Path
from typing import Optional, Union


class RAGError(Exception):
    """Base exception for the RAG engine."""
    pass


class ExtractionError(RAGError):
    """Document could not be read into text."""

    def __init__(self, message: str, path: Optional[Union[str, Path]] = None):
        self.message = message
        self.path = str(path) if path is not None else None
        super().__init__(self.message)


class EmbeddingServiceError(RAGError):
    """Embedding service failed or returned an unusable body."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        text_preview: Optional[str] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.text_preview = text_preview
        super().__init__(self.message)


class CacheIOError(RAGError):
    """Embedding cache file could not be loaded or persisted."""
    pass


class InvalidReference(RAGError):
    """Document key is unknown or not filename-safe."""

    def __init__(self, document_key: str, reason: str = "unknown document"):
        self.document_key = document_key
        self.reason = reason
        super().__init__(f"Invalid document reference '{document_key}': {reason}")
