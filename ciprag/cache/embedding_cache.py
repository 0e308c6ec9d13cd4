"""
Embedding Cache for ciprag
==========================

Content-addressed, file-backed memoization of embedding vectors.

Features:
- Keys are SHA-256 of the whitespace-normalized text, so identical
  passages from different documents share one entry
- JSON persistence, written to a temp file and renamed over the cache
- Missing or corrupt cache files start an empty cache (never fatal)
- Append-only: entries are never evicted automatically

Usage:
    cache = EmbeddingCache(Path("data/cache/rag-embed-cache.json"))
    cache.load()
    cache.put("some passage", [0.1, 0.2, 0.3])
    cache.persist()

Only corpus text goes through this cache. Search queries are always
embedded fresh.
"""

import hashlib
import json
import logging
import os
import threading
from numbers import Real
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from ciprag.text import normalize_whitespace
from ciprag.errors import CacheIOError

logger = logging.getLogger(__name__)


def content_hash(text: str) -> str:
    """Hex SHA-256 of the whitespace-normalized text."""
    return hashlib.sha256(normalize_whitespace(text).encode("utf-8")).hexdigest()


def is_valid_vector(value: Any) -> bool:
    """True for a non-empty list of real numbers."""
    return (
        isinstance(value, (list, tuple))
        and len(value) > 0
        and all(isinstance(v, Real) and not isinstance(v, bool) for v in value)
    )


class EmbeddingCache:
    """
    Persistent hash -> vector table.

    Thread-safe; persist() can run while other threads put entries.
    """

    def __init__(self, path: Optional[Path] = None):
        """
        Initialize embedding cache.

        Args:
            path: JSON file backing the cache. None keeps the cache in memory only.
        """
        self.path = Path(path) if path is not None else None
        self._entries: Dict[str, List[float]] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._dirty = False

    def get(self, text: str) -> Optional[List[float]]:
        """
        Get the cached vector for text.

        Returns:
            Copy of the vector, or None on a miss
        """
        key = content_hash(text)
        with self._lock:
            vector = self._entries.get(key)
            if vector is None:
                self._misses += 1
                return None
            self._hits += 1
            return list(vector)

    def put(self, text: str, vector: Sequence[float]) -> None:
        """
        Store the vector for text.

        Raises:
            ValueError: If vector is empty or not numeric
        """
        if not is_valid_vector(vector):
            raise ValueError("Refusing to cache an empty or non-numeric vector")

        key = content_hash(text)
        with self._lock:
            self._entries[key] = [float(v) for v in vector]
            self._dirty = True

    def __contains__(self, text: str) -> bool:
        with self._lock:
            return content_hash(text) in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def load(self) -> int:
        """
        Load entries from disk, replacing the in-memory table.

        A missing or corrupt file leaves an empty cache.

        Returns:
            Number of vectors loaded
        """
        if self.path is None:
            return 0

        try:
            entries = self._read()
        except CacheIOError as e:
            logger.warning(f"[cache] {e}. Starting with an empty cache")
            entries = {}

        with self._lock:
            self._entries = entries
            self._dirty = False

        if entries:
            logger.info(f"[cache] Loaded {len(entries)} vectors from {self.path.name}")
        return len(entries)

    def persist(self) -> bool:
        """
        Write the cache to disk atomically.

        Returns:
            True if the file was written, False if persistence failed
        """
        if self.path is None:
            return False

        with self._lock:
            snapshot = dict(self._entries)
            self._dirty = False

        try:
            self._write(snapshot)
        except CacheIOError as e:
            logger.warning(f"[cache] Save failed: {e}")
            with self._lock:
                self._dirty = True
            return False

        logger.info(f"[cache] Saved {len(snapshot)} vectors")
        return True

    def _read(self) -> Dict[str, List[float]]:
        """Read and validate the cache file."""
        if not self.path.exists():
            logger.info("[cache] No existing cache, starting fresh")
            return {}

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise CacheIOError(f"Could not read {self.path}: {e}") from e

        if not isinstance(data, dict):
            raise CacheIOError(f"Cache file {self.path} does not contain a JSON object")

        entries = {k: [float(v) for v in vec] for k, vec in data.items() if is_valid_vector(vec)}
        dropped = len(data) - len(entries)
        if dropped:
            logger.warning(f"[cache] Dropped {dropped} malformed entries")
        return entries

    def _write(self, entries: Dict[str, List[float]]) -> None:
        """Write to <path>.tmp then rename over <path>."""
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(entries, f)
            os.replace(tmp_path, self.path)
        except (OSError, TypeError, ValueError) as e:
            raise CacheIOError(f"Could not write {self.path}: {e}") from e

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        with self._lock:
            total = self._hits + self._misses
            return {
                "entries": len(self._entries),
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": self._hits / total if total else 0.0,
                "dirty": self._dirty,
                "path": str(self.path) if self.path else None,
            }
