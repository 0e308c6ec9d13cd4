"""
RAG Engine
==========

Wires one CorpusIndex, EmbeddingCache and StandardsRegistry into the
ingestion, retrieval and upload components, and exposes the two
contracts used by outer layers:

- ingest a document, get back its chunk count
- retrieve ranked supporting chunks for a query
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from ciprag.cache import EmbeddingCache
from ciprag.config import Settings, get_settings

from .chunker import ChunkConfig, RAGChunker
from .corpus import CorpusIndex, get_all_seed_documents
from .embedder import CachingEmbedder, EmbeddingClient
from .ingestion import IngestionPipeline
from .models import IngestionResult, RetrievalResult
from .retriever import HybridRetriever
from .standards import StandardsRegistry
from .uploads import UploadLifecycleManager

logger = logging.getLogger(__name__)


@dataclass
class RAGEngine:
    """The retrieval & indexing engine with its collaborators."""
    settings: Settings
    index: CorpusIndex
    cache: EmbeddingCache
    registry: StandardsRegistry
    client: EmbeddingClient
    pipeline: IngestionPipeline
    retriever: HybridRetriever
    uploads: UploadLifecycleManager

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        client: Optional[EmbeddingClient] = None,
    ) -> "RAGEngine":
        """Build an engine; client can be swapped for tests or other services."""
        settings = settings or get_settings()
        index = CorpusIndex()
        cache = EmbeddingCache(settings.storage.cache_path)
        registry = StandardsRegistry()
        client = client or EmbeddingClient(settings.embedding)

        chunker = RAGChunker(ChunkConfig(
            target_size=settings.chunking.chunk_size,
            overlap=settings.chunking.chunk_overlap,
        ))
        pipeline = IngestionPipeline(
            embedder=CachingEmbedder(client, cache),
            index=index,
            registry=registry,
            chunker=chunker,
        )
        retriever = HybridRetriever(index, client, registry=registry, config=settings.retrieval)
        uploads = UploadLifecycleManager(
            settings.storage.upload_dir,
            index,
            cache,
            registry=registry,
            max_bytes=settings.storage.max_upload_bytes,
            lock=pipeline.mutation_lock,
        )
        return cls(
            settings=settings,
            index=index,
            cache=cache,
            registry=registry,
            client=client,
            pipeline=pipeline,
            retriever=retriever,
            uploads=uploads,
        )

    async def startup(self, restore_uploads: bool = False) -> List[IngestionResult]:
        """Load the embedding cache and index the seeded corpus."""
        await asyncio.to_thread(self.cache.load)
        results = await self.reindex_seeded()
        if restore_uploads:
            results += await self.restore_uploads()
        return results

    async def restore_uploads(self) -> List[IngestionResult]:
        """Re-index files already stored in the upload directory."""
        return await self.pipeline.ingest_batch(self.uploads.stored_documents())

    async def reindex_seeded(self) -> List[IngestionResult]:
        """Rebuild the seeded corpus; uploads are kept."""
        documents = get_all_seed_documents(self.settings.storage.seed_dir)
        results = await self.pipeline.rebuild_seeded(documents)
        logger.info(f"Total chunks indexed: {len(self.index)}")
        return results

    async def ingest_upload(self, original_name: str, data: bytes) -> IngestionResult:
        """
        Store an uploaded file and index it page by page.

        If indexing fails the stored file is removed again.
        """
        document = self.uploads.store(original_name, data)
        try:
            return await self.pipeline.ingest(document)
        except BaseException:
            Path(document.path).unlink(missing_ok=True)
            raise

    async def retrieve(self, query: str, k: Optional[int] = None) -> List[RetrievalResult]:
        return await self.retriever.retrieve(query, k)

    def remove_upload(self, document_key: str) -> int:
        return self.uploads.remove(document_key)

    def shutdown(self) -> bool:
        """Persist the embedding cache."""
        return self.cache.persist()

    def stats(self) -> dict:
        return {
            "total_chunks": len(self.index),
            "sources": self.index.sources(),
            "documents": len(self.index.documents()),
            "standards": {e.base: sorted(e.versions) for e in self.registry.entries()},
            "cache": self.cache.get_stats(),
        }
