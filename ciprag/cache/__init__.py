"""
ciprag cache module.

Persistent embedding cache keyed by content hash.
"""

from .embedding_cache import EmbeddingCache, content_hash, is_valid_vector

__all__ = ["EmbeddingCache", "content_hash", "is_valid_vector"]
