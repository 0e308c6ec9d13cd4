"""
RAG Data Models
===============

Dataclasses shared by the chunker, index, pipeline and retriever.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Set, Tuple


class Origin(str, Enum):
    """Provenance of a document in the corpus."""
    SEEDED = "seeded"      # Reference PDFs indexed in batch from the seed directory
    UPLOADED = "uploaded"  # Files added one by one through the upload path


@dataclass(frozen=True)
class StandardRef:
    """Versioned standard identifier, e.g. base CIP-005 / version 6."""
    base: str
    version: int

    @property
    def versioned_id(self) -> str:
        return f"{self.base}-{self.version}"

    @property
    def alias_text(self) -> str:
        """Text prepended to embedding input for standard documents."""
        return f"{self.base} {self.versioned_id}"


@dataclass
class StandardEntry:
    """All registered versions of one standard family."""
    base: str
    versions: Set[int] = field(default_factory=set)
    latest_version: int = 0

    @property
    def latest_id(self) -> str:
        return f"{self.base}-{self.latest_version}"


@dataclass(frozen=True)
class Chunk:
    """
    A unit of retrievable text with its embedding and citation metadata.

    Immutable: a document's content is updated by removing and
    re-adding all of its chunks.
    """
    text: str
    embedding: Tuple[float, ...]
    source_label: str
    locator: str
    origin: Origin
    document_key: str

    filename: Optional[str] = None
    page: Optional[int] = None
    sequence_index: Optional[int] = None
    standard_ref: Optional[StandardRef] = None

    def __post_init__(self):
        if not self.text.strip():
            raise ValueError("Chunk text cannot be empty")
        if isinstance(self.origin, str):
            object.__setattr__(self, "origin", Origin(self.origin))
        if not isinstance(self.embedding, tuple):
            object.__setattr__(self, "embedding", tuple(self.embedding))

    @property
    def has_embedding(self) -> bool:
        return len(self.embedding) > 0


@dataclass(frozen=True)
class PageText:
    """Text of one page; page is None for the full-text fast path."""
    text: str
    page: Optional[int] = None


@dataclass
class SourceDocument:
    """A document handed to the ingestion pipeline."""
    path: Path
    document_key: str
    origin: Origin
    filename: Optional[str] = None  # Display name; defaults to the path's name
    page_aware: bool = True

    def __post_init__(self):
        self.path = Path(self.path)
        if isinstance(self.origin, str):
            self.origin = Origin(self.origin)
        if self.filename is None:
            self.filename = self.path.name


@dataclass
class IngestionResult:
    """Outcome of ingesting one document."""
    document_key: str
    chunk_count: int = 0
    ok: bool = True
    error: Optional[str] = None
    failed_pages: List[Optional[int]] = field(default_factory=list)
    standard_ref: Optional[StandardRef] = None


@dataclass
class RetrievalResult:
    """A ranked chunk with the signals that produced its score."""
    chunk: Chunk
    score: float
    cosine: float = 0.0
    keyword_score: float = 0.0
    exact_match: bool = False

    @property
    def text(self) -> str:
        return self.chunk.text

    @property
    def source_label(self) -> str:
        return self.chunk.source_label

    @property
    def locator(self) -> str:
        return self.chunk.locator
