"""
Upload Lifecycle
================

Stores uploaded files under filename-safe keys and removes them again.

Stored names look like "1718000000000-CIP-005-7.pdf": epoch milliseconds,
a dash, then the original name with unsafe characters replaced by "_".
When that name is already taken the millisecond stamp is bumped until a
free one is found. The stored name is the document_key used in the
CorpusIndex.
"""

import logging
import re
import threading
import time
from pathlib import Path
from typing import List, Optional

from ciprag.cache import EmbeddingCache
from ciprag.errors import InvalidReference
from ciprag.logging_config import document_context

from .corpus import CorpusIndex
from .models import Origin, SourceDocument
from .reader import SUPPORTED_EXTENSIONS
from .standards import StandardsRegistry

logger = logging.getLogger(__name__)

# Must start with a word character or dash, so "." and ".." never match
SAFE_KEY_PATTERN = re.compile(r"^[\w\-][\w.\-]*$", re.ASCII)
_UNSAFE_CHARS = re.compile(r"[^\w.\-]+", re.ASCII)
_STORED_PREFIX = re.compile(r"^\d+-")

# Attempts at a free stored name before giving up
MAX_NAME_ATTEMPTS = 1000


def sanitize_filename(name: str) -> str:
    """Replace characters outside [A-Za-z0-9_.-] with underscores."""
    return _UNSAFE_CHARS.sub("_", Path(name).name) or "upload"


def validate_key(document_key: str) -> str:
    """
    Check that a document key is a bare, filename-safe name.

    Raises:
        InvalidReference: If the key could escape the upload directory
    """
    if not document_key or not SAFE_KEY_PATTERN.match(document_key):
        raise InvalidReference(document_key or "", reason="not a filename-safe key")
    return document_key


class UploadLifecycleManager:
    """
    Owns the upload directory.

    Removal drops the document from the index and the standards registry,
    deletes the stored file and persists the embedding cache. Cache
    entries are kept: they are keyed by content and may serve other
    documents.

    Pass the ingestion pipeline's mutation_lock as lock so that a removal
    never interleaves with an ingestion commit.
    """

    def __init__(
        self,
        upload_dir: Path,
        index: CorpusIndex,
        cache: EmbeddingCache,
        registry: Optional[StandardsRegistry] = None,
        max_bytes: int = 25 * 1024 * 1024,
        lock: Optional[threading.Lock] = None,
    ):
        self.upload_dir = Path(upload_dir)
        self.index = index
        self.cache = cache
        self.registry = registry
        self.max_bytes = max_bytes
        self.lock = lock or threading.Lock()

    def store(self, original_name: str, data: bytes) -> SourceDocument:
        """
        Write an uploaded file and describe it for ingestion.

        Raises:
            ValueError: If the extension is unsupported or the file is too large
            FileExistsError: If no free stored name could be found
        """
        ext = Path(original_name).suffix.lower()
        if ext not in SUPPORTED_EXTENSIONS:
            raise ValueError(f"Unsupported upload type: {ext or 'none'}")
        if len(data) > self.max_bytes:
            raise ValueError(f"Upload exceeds {self.max_bytes // (1024 * 1024)} MB limit")

        self.upload_dir.mkdir(parents=True, exist_ok=True)
        path = self._write_new(sanitize_filename(original_name), data)
        stored_name = path.name

        document = SourceDocument(
            path=path,
            document_key=stored_name,
            origin=Origin.UPLOADED,
            filename=Path(original_name).name,
            page_aware=True,
        )
        logger.info(f"Stored upload {original_name} as {stored_name}", extra=document_context(document))
        return document

    def _write_new(self, safe_name: str, data: bytes) -> Path:
        # "xb" fails on an existing file, so an earlier upload is never overwritten
        stamp = int(time.time() * 1000)
        for attempt in range(MAX_NAME_ATTEMPTS):
            path = self.upload_dir / f"{stamp + attempt}-{safe_name}"
            try:
                with open(path, "xb") as f:
                    f.write(data)
            except FileExistsError:
                continue
            return path
        raise FileExistsError(f"No free stored name for {safe_name} in {self.upload_dir}")

    def stored_documents(self) -> List[SourceDocument]:
        """Describe every supported file already in the upload directory."""
        if not self.upload_dir.is_dir():
            return []
        return [
            SourceDocument(
                path=path,
                document_key=path.name,
                origin=Origin.UPLOADED,
                filename=_STORED_PREFIX.sub("", path.name),
                page_aware=True,
            )
            for path in sorted(self.upload_dir.iterdir(), key=lambda p: p.name)
            if path.is_file()
            and path.suffix.lower() in SUPPORTED_EXTENSIONS
            and SAFE_KEY_PATTERN.match(path.name)
        ]

    def remove(self, document_key: str) -> int:
        """
        Remove an uploaded document and its file.

        Returns:
            Number of chunks removed from the index

        Raises:
            InvalidReference: If the key is unsafe, unknown, or names a
                seeded document
        """
        validate_key(document_key)
        path = self.upload_dir / document_key

        with self.lock:
            record = self.index.get_document(document_key)
            if record is not None and record.origin != Origin.UPLOADED:
                raise InvalidReference(document_key, reason="not an uploaded document")
            if record is None and not path.exists():
                raise InvalidReference(document_key, reason="unknown document")

            removed = self.index.remove_document(document_key)
            if self.registry is not None:
                self.registry.release(document_key)

        path.unlink(missing_ok=True)
        self.cache.persist()

        logger.info(
            f"Removed upload {document_key}: {removed} chunks",
            extra={"document_key": document_key, "origin": Origin.UPLOADED, "chunks": removed},
        )
        return removed
