"""
RAG Corpus Module
=================

The in-memory corpus index and seeded document discovery.
"""

from .index import CorpusIndex, DocumentRecord
from .seed import get_all_seed_documents

__all__ = ["CorpusIndex", "DocumentRecord", "get_all_seed_documents"]
