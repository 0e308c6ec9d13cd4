"""
RAG Ingestion Pipeline
======================

Pipeline for ingesting documents into the corpus index.

Flow:
1. Read page-segmented text
2. Detect the standard the document represents (if any)
3. Chunk each page
4. Embed through the cache (standard alias text is added to the
   embedding input only, never to the stored passage)
5. Commit chunks to the CorpusIndex and the standard to the registry
6. Persist the embedding cache

Nothing is committed until every page has been processed, so a read
failure or a cancelled ingestion leaves the index and registry untouched.
"""

import asyncio
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from ciprag.errors import EmbeddingServiceError, ExtractionError, RAGError
from ciprag.logging_config import document_context

from .chunker import RAGChunker
from .corpus import CorpusIndex
from .embedder import CachingEmbedder
from .models import Chunk, IngestionResult, Origin, PageText, SourceDocument, StandardRef
from .reader import read_document
from .standards import StandardsRegistry

logger = logging.getLogger(__name__)

DocumentReader = Callable[..., List[PageText]]

LOCATOR_PREFIX = {
    Origin.SEEDED: "",
    Origin.UPLOADED: "/uploads",
}


def source_label(document: SourceDocument, page: Optional[int]) -> str:
    """Human-readable citation label: "name.pdf" or "name.pdf p.3"."""
    if page is None:
        return document.filename
    return f"{document.filename} p.{page}"


def locator(document: SourceDocument, page: Optional[int]) -> str:
    """Addressable reference: "/name.pdf" or "/uploads/stored.pdf#page=3"."""
    base = f"{LOCATOR_PREFIX[document.origin]}/{document.document_key}"
    if page is None:
        return base
    return f"{base}#page={page}"


@dataclass
class PreparedDocument:
    """Chunks built for a document, not yet committed."""
    document: SourceDocument
    chunks: List[Chunk] = field(default_factory=list)
    standard_ref: Optional[StandardRef] = None
    failed_pages: List[Optional[int]] = field(default_factory=list)

    def to_result(self) -> IngestionResult:
        return IngestionResult(
            document_key=self.document.document_key,
            chunk_count=len(self.chunks),
            failed_pages=list(self.failed_pages),
            standard_ref=self.standard_ref,
        )


class IngestionPipeline:
    """
    Ingestion pipeline for the corpus index.

    Handles:
    - Page extraction through the document reader
    - Chunking
    - Cache-aware embedding
    - Atomic commit to the index and standards registry
    """

    def __init__(
        self,
        embedder: CachingEmbedder,
        index: CorpusIndex,
        registry: StandardsRegistry,
        chunker: Optional[RAGChunker] = None,
        reader: DocumentReader = read_document,
        mutation_lock: Optional[threading.Lock] = None,
    ):
        self.embedder = embedder
        self.index = index
        self.registry = registry
        self.chunker = chunker or RAGChunker()
        self.reader = reader

        # Held while index and registry change together; shared with uploads
        self.mutation_lock = mutation_lock or threading.Lock()

        self._documents_ingested = 0
        self._chunks_created = 0
        self._pages_failed = 0

    async def prepare(self, document: SourceDocument) -> PreparedDocument:
        """
        Read, chunk and embed a document without touching the index.

        Raises:
            ExtractionError: If the document cannot be read
            EmbeddingServiceError: If no page could be embedded
        """
        pages = await asyncio.to_thread(self.reader, document.path, document.page_aware)
        prepared = PreparedDocument(
            document=document,
            standard_ref=StandardsRegistry.parse(document.filename),
        )

        last_error: Optional[EmbeddingServiceError] = None
        for page in pages:
            passages = self.chunker.chunk(page.text)
            if not passages:
                continue

            inputs = self._embedding_inputs(passages, prepared.standard_ref)
            try:
                vectors = await self.embedder.embed(inputs)
            except EmbeddingServiceError as e:
                logger.warning(
                    f"Embedding failed for {document.document_key} page {page.page}: {e}",
                    extra=document_context(document, page=page.page),
                )
                prepared.failed_pages.append(page.page)
                last_error = e
                continue

            for i, (passage, vector) in enumerate(zip(passages, vectors)):
                prepared.chunks.append(Chunk(
                    text=passage,
                    embedding=tuple(vector),
                    source_label=source_label(document, page.page),
                    locator=locator(document, page.page),
                    origin=document.origin,
                    document_key=document.document_key,
                    filename=document.filename,
                    page=page.page,
                    sequence_index=i,
                    standard_ref=prepared.standard_ref,
                ))

        if not prepared.chunks and last_error is not None:
            raise EmbeddingServiceError(
                f"No page of {document.document_key} could be embedded: {last_error.message}",
                status_code=last_error.status_code,
                text_preview=last_error.text_preview,
            )

        return prepared

    async def ingest(self, document: SourceDocument) -> IngestionResult:
        """
        Ingest a single document.

        Re-ingesting a document_key replaces its previous chunks.

        Returns:
            IngestionResult with the chunk count

        Raises:
            ExtractionError: If the document cannot be read
            EmbeddingServiceError: If no page could be embedded
        """
        started = time.monotonic()
        prepared = await self.prepare(document)
        self._commit(prepared)
        await asyncio.to_thread(self.embedder.cache.persist)

        result = prepared.to_result()
        logger.info(
            f"Ingested {document.document_key}: {result.chunk_count} chunks",
            extra=document_context(
                document,
                chunks=result.chunk_count,
                duration=round(time.monotonic() - started, 3),
            ),
        )
        return result

    async def ingest_batch(self, documents: Sequence[SourceDocument]) -> List[IngestionResult]:
        """
        Ingest documents one after another, reporting each outcome.

        A failing document does not stop the batch.
        """
        results = []
        for document in documents:
            try:
                results.append(await self.ingest(document))
            except RAGError as e:
                logger.error(f"Failed to ingest '{document.document_key}': {e}", extra=document_context(document))
                results.append(IngestionResult(
                    document_key=document.document_key,
                    ok=False,
                    error=str(e),
                ))
        return results

    async def rebuild_seeded(self, documents: Sequence[SourceDocument]) -> List[IngestionResult]:
        """
        Replace the whole seeded corpus in one atomic swap.

        Uploaded documents are untouched. Documents that fail to prepare
        are reported and left out of the rebuilt corpus.
        """
        prepared_docs: List[PreparedDocument] = []
        results: List[IngestionResult] = []

        for document in documents:
            if document.origin != Origin.SEEDED:
                raise ValueError(f"{document.document_key} is not a seeded document")
            try:
                prepared = await self.prepare(document)
            except (ExtractionError, EmbeddingServiceError) as e:
                logger.error(f"Failed to index seed document '{document.document_key}': {e}")
                results.append(IngestionResult(document_key=document.document_key, ok=False, error=str(e)))
                continue
            prepared_docs.append(prepared)
            results.append(prepared.to_result())

        with self.mutation_lock:
            previous = [r.document_key for r in self.index.documents(Origin.SEEDED)]
            self.index.rebuild_origin(Origin.SEEDED, [c for p in prepared_docs for c in p.chunks])
            for key in previous:
                self.registry.release(key)
            for prepared in prepared_docs:
                if prepared.chunks:
                    self._register_standard(prepared)

        self._documents_ingested += len(prepared_docs)
        self._chunks_created += sum(len(p.chunks) for p in prepared_docs)
        self._pages_failed += sum(len(p.failed_pages) for p in prepared_docs)

        await asyncio.to_thread(self.embedder.cache.persist)
        return results

    def _commit(self, prepared: PreparedDocument) -> None:
        key = prepared.document.document_key
        with self.mutation_lock:
            self.index.add(key, prepared.chunks)
            self.registry.release(key)
            if prepared.chunks:
                self._register_standard(prepared)

        self._documents_ingested += 1
        self._chunks_created += len(prepared.chunks)
        self._pages_failed += len(prepared.failed_pages)

    def _register_standard(self, prepared: PreparedDocument) -> None:
        if prepared.standard_ref is not None:
            self.registry.register(prepared.document.filename, prepared.document.document_key)

    @staticmethod
    def _embedding_inputs(passages: List[str], ref: Optional[StandardRef]) -> List[str]:
        if ref is None:
            return passages
        return [f"{ref.alias_text}\n{p}" for p in passages]

    @property
    def stats(self) -> dict:
        """Get ingestion statistics."""
        return {
            "documents_ingested": self._documents_ingested,
            "chunks_created": self._chunks_created,
            "pages_failed": self._pages_failed,
            "cache": self.embedder.cache.get_stats(),
        }
