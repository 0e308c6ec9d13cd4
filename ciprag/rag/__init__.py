"""
ciprag RAG Module
=================

Retrieval & indexing engine for a standards assistant.

Components:
- Chunker: overlapping, boundary-aligned passages
- EmbeddingClient / CachingEmbedder: embedding service + persistent cache
- StandardsRegistry: versioned standard ids, query normalization
- CorpusIndex: document-keyed in-memory corpus
- IngestionPipeline: document -> pages -> chunks -> embeddings -> index
- HybridRetriever: cosine + keyword ranking with exact-id fallback
- UploadLifecycleManager: upload storage and removal
"""

from .chunker import ChunkConfig, RAGChunker, split_text
from .corpus import CorpusIndex
from .embedder import CachingEmbedder, EmbeddingClient
from .engine import RAGEngine
from .ingestion import IngestionPipeline
from .models import (
    Chunk,
    IngestionResult,
    Origin,
    PageText,
    RetrievalResult,
    SourceDocument,
    StandardEntry,
    StandardRef,
)
from .retriever import HybridRetriever
from .standards import StandardsRegistry
from .uploads import UploadLifecycleManager

__all__ = [
    "ChunkConfig",
    "RAGChunker",
    "split_text",
    "CorpusIndex",
    "CachingEmbedder",
    "EmbeddingClient",
    "RAGEngine",
    "IngestionPipeline",
    "Chunk",
    "IngestionResult",
    "Origin",
    "PageText",
    "RetrievalResult",
    "SourceDocument",
    "StandardEntry",
    "StandardRef",
    "HybridRetriever",
    "StandardsRegistry",
    "UploadLifecycleManager",
]
