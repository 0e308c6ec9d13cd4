"""
Corpus Index
============

The authoritative in-memory collection of embedded chunks.

- Chunks are grouped by document_key; a document's chunks are added,
  replaced and removed as one set
- Mutations are serialized by a lock; readers get an immutable snapshot
  taken at call time and never see a half-applied update
- Per-document lookups go through a dict and cost O(matching chunks)
- Retrieval scans all() linearly; an ANN structure can sit behind the
  same contract for larger corpora
"""

import logging
import threading
from collections import Counter, OrderedDict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ..models import Chunk, Origin

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DocumentRecord:
    """Registry entry for a document present in the index."""
    document_key: str
    origin: Origin
    chunk_count: int
    filename: Optional[str] = None
    added_at: Optional[datetime] = None


class CorpusIndex:
    """
    Ordered, document-keyed collection of chunks.

    Every chunk in the index must carry an embedding of the same
    dimensionality.
    """

    def __init__(self):
        self._documents: "OrderedDict[str, Tuple[Chunk, ...]]" = OrderedDict()
        self._records: Dict[str, DocumentRecord] = {}
        self._snapshot: Optional[Tuple[Chunk, ...]] = ()
        self._dimension: Optional[int] = None
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def all(self) -> Tuple[Chunk, ...]:
        """
        Snapshot of every chunk, in document insertion then sequence order.
        """
        with self._lock:
            if self._snapshot is None:
                self._snapshot = tuple(c for chunks in self._documents.values() for c in chunks)
            return self._snapshot

    def chunks_for(self, document_key: str) -> Tuple[Chunk, ...]:
        with self._lock:
            return self._documents.get(document_key, ())

    def has_document(self, document_key: str) -> bool:
        with self._lock:
            return document_key in self._documents

    def get_document(self, document_key: str) -> Optional[DocumentRecord]:
        with self._lock:
            return self._records.get(document_key)

    def documents(self, origin: Optional[Origin] = None) -> List[DocumentRecord]:
        with self._lock:
            return [r for r in self._records.values() if origin is None or r.origin == origin]

    def sources(self) -> Dict[str, int]:
        """Chunk count per source label."""
        return dict(Counter(c.source_label for c in self.all()))

    @property
    def dimension(self) -> Optional[int]:
        return self._dimension

    def __len__(self) -> int:
        return len(self.all())

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add(self, document_key: str, chunks: Sequence[Chunk]) -> int:
        """
        Add a document's chunks, replacing any chunks already held for it.

        Args:
            document_key: Owning document
            chunks: All of the document's chunks, in order

        Returns:
            Number of chunks now held for the document

        Raises:
            ValueError: If a chunk belongs to another document, origins are
                mixed, or an embedding is missing or has the wrong size
        """
        chunks = tuple(chunks)

        with self._lock:
            dimension = self._validate(document_key, chunks, self._dimension_without(document_key))
            replaced = len(self._documents.get(document_key, ()))

            if not chunks:
                self._drop(document_key)
                logger.warning(f"No chunks for {document_key}; document not indexed")
                return 0

            self._documents.pop(document_key, None)
            self._documents[document_key] = chunks
            self._records[document_key] = self._make_record(document_key, chunks)
            self._dimension = dimension
            self._snapshot = None

        if replaced:
            logger.info(f"Replaced {replaced} chunks of {document_key} with {len(chunks)}")
        else:
            logger.info(f"Indexed {document_key}: {len(chunks)} chunks")
        return len(chunks)

    def remove_document(self, document_key: str) -> int:
        """
        Remove every chunk of a document.

        Returns:
            Number of chunks removed (0 if the document was not indexed)
        """
        with self._lock:
            removed = self._drop(document_key)

        if removed:
            logger.info(f"Removed {document_key}: {removed} chunks")
        return removed

    def rebuild_origin(self, origin: Origin, chunks: Iterable[Chunk]) -> int:
        """
        Atomically replace every document of one origin.

        Chunks are grouped by document_key in first-seen order. Documents
        of other origins are left untouched.

        Returns:
            Number of chunks indexed for the origin
        """
        origin = Origin(origin)
        grouped: "OrderedDict[str, List[Chunk]]" = OrderedDict()
        for chunk in chunks:
            if chunk.origin != origin:
                raise ValueError(
                    f"Chunk of {chunk.document_key} has origin {chunk.origin.value}, expected {origin.value}"
                )
            grouped.setdefault(chunk.document_key, []).append(chunk)

        with self._lock:
            kept = OrderedDict(
                (key, cs) for key, cs in self._documents.items()
                if self._records[key].origin != origin
            )
            clash = set(kept) & set(grouped)
            if clash:
                raise ValueError(f"Document keys already used by another origin: {sorted(clash)}")

            dimension = next((len(cs[0].embedding) for cs in kept.values()), None)
            new_docs = OrderedDict()
            for key, cs in grouped.items():
                dimension = self._validate(key, tuple(cs), dimension)
                new_docs[key] = tuple(cs)

            removed = sum(len(cs) for key, cs in self._documents.items() if key not in kept)

            kept.update(new_docs)
            self._documents = kept
            self._records = {
                key: (self._records[key] if key not in new_docs else self._make_record(key, cs))
                for key, cs in kept.items()
            }
            self._dimension = dimension
            self._snapshot = None

        total = sum(len(cs) for cs in new_docs.values())
        logger.info(
            f"Rebuilt {origin.value} corpus: {len(new_docs)} documents, "
            f"{total} chunks (replaced {removed})"
        )
        return total

    def clear(self) -> None:
        with self._lock:
            self._documents = OrderedDict()
            self._records = {}
            self._dimension = None
            self._snapshot = ()

    # ------------------------------------------------------------------
    # Internals (callers hold the lock)
    # ------------------------------------------------------------------

    def _drop(self, document_key: str) -> int:
        chunks = self._documents.pop(document_key, ())
        self._records.pop(document_key, None)
        if chunks:
            self._snapshot = None
            if not self._documents:
                self._dimension = None
        return len(chunks)

    def _dimension_without(self, document_key: str) -> Optional[int]:
        """Dimension fixed by documents other than document_key."""
        for key, chunks in self._documents.items():
            if key != document_key:
                return len(chunks[0].embedding)
        return None

    @staticmethod
    def _validate(
        document_key: str,
        chunks: Tuple[Chunk, ...],
        dimension: Optional[int],
    ) -> Optional[int]:
        origins = {c.origin for c in chunks}
        if len(origins) > 1:
            raise ValueError(f"Mixed origins for {document_key}")

        for chunk in chunks:
            if chunk.document_key != document_key:
                raise ValueError(f"Chunk belongs to {chunk.document_key}, not {document_key}")
            if not chunk.has_embedding:
                raise ValueError(f"Chunk {chunk.sequence_index} of {document_key} has no embedding")
            if dimension is None:
                dimension = len(chunk.embedding)
            elif len(chunk.embedding) != dimension:
                raise ValueError(
                    f"Embedding dimension {len(chunk.embedding)} for {document_key} "
                    f"does not match corpus dimension {dimension}"
                )
        return dimension

    @staticmethod
    def _make_record(document_key: str, chunks: Tuple[Chunk, ...]) -> DocumentRecord:
        return DocumentRecord(
            document_key=document_key,
            origin=chunks[0].origin,
            chunk_count=len(chunks),
            filename=chunks[0].filename,
            added_at=datetime.now(timezone.utc),
        )
