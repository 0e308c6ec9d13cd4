"""
RAG Retriever
=============

Hybrid retrieval over the CorpusIndex:
1. Normalize the query against the standards registry
2. Score every chunk: cosine similarity blended with a capped keyword score
3. Exact-identifier fallback when no top result carries a keyword signal
4. Deduplicate citations by (source label, locator)

Returns structured results with citations.
"""

import logging
import math
import re
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from ciprag.config import RetrievalConfig
from ciprag.errors import EmbeddingServiceError
from ciprag.text import normalize_for_match

from .corpus import CorpusIndex
from .embedder import EmbeddingClient
from .models import Chunk, RetrievalResult
from .standards import StandardsRegistry

logger = logging.getLogger(__name__)

# "cip-005", "cip 05", "cip-005-6"
IDENTIFIER_PATTERN = re.compile(r"cip[-\s]?0?\d{2}(?:-\d+)?")

# Terms that mark requirement text in the standards corpus
DOMAIN_TERMS = (
    "purpose",
    "objective",
    "to protect",
    "confidentiality",
    "integrity",
    "communications between control centers",
)

HEADER_PATTERN = re.compile(r"\bpurpose\s*:")

# Score given to exact-identifier fallback results
EXACT_MATCH_SCORE = 1e6

CONTEXT_HEADER = """You are a NERC CIP domain assistant. Answer **only** using the CONTEXT below.
If the answer is not present in the context, say you don't know.
Quote exact requirement IDs and sections when relevant.

CONTEXT BEGIN
"""
CONTEXT_FOOTER = "\nCONTEXT END\n"


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between a and b; 0.0 if either has zero norm."""
    if len(a) != len(b):
        raise ValueError(f"Vector dimensions differ: {len(a)} != {len(b)}")
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


def extract_identifiers(query: str) -> List[str]:
    """Normalized standard identifiers mentioned in a query, in order, without repeats."""
    found = []
    for match in IDENTIFIER_PATTERN.finditer(normalize_for_match(query)):
        ident = re.sub(r"\s+", "", match.group(0))
        if ident not in found:
            found.append(ident)
    return found


class HybridRetriever:
    """
    Ranks corpus chunks against a query.

    score = cosine * cosine_weight + min(keyword, keyword_cap) * keyword_weight
    """

    def __init__(
        self,
        index: CorpusIndex,
        client: EmbeddingClient,
        registry: Optional[StandardsRegistry] = None,
        config: Optional[RetrievalConfig] = None,
        domain_terms: Sequence[str] = DOMAIN_TERMS,
    ):
        self.index = index
        self.client = client
        self.registry = registry
        self.config = config or RetrievalConfig()
        self.domain_terms = tuple(t.lower() for t in domain_terms)

    def keyword_score(self, query: str, chunk: Chunk) -> float:
        """
        Keyword signal for a chunk.

        +1 per query identifier or domain term found in the chunk,
        +header_bonus for a section header, +source_bonus each when the
        query names the chunk's source label or file.
        """
        q = normalize_for_match(query)
        c = normalize_for_match(chunk.text)

        score = 0.0
        for key in extract_identifiers(query) + list(self.domain_terms):
            if key and key in c:
                score += 1

        if HEADER_PATTERN.search(c):
            score += self.config.header_bonus

        if chunk.source_label and normalize_for_match(chunk.source_label) in q:
            score += self.config.source_bonus

        if chunk.filename:
            name = normalize_for_match(chunk.filename)
            stem = normalize_for_match(Path(chunk.filename).stem)
            if name in q or (len(stem) >= 3 and stem in q):
                score += self.config.source_bonus

        return score

    def blend(self, cosine: float, keyword: float) -> float:
        capped = min(keyword, self.config.keyword_cap)
        return cosine * self.config.cosine_weight + capped * self.config.keyword_weight

    async def retrieve(self, query: str, k: Optional[int] = None) -> List[RetrievalResult]:
        """
        Retrieve the most relevant chunks for a query.

        Args:
            query: Free-text question
            k: Maximum number of results (default from config)

        Returns:
            Up to k results, most relevant first, one per citation.
            Empty if the corpus is empty or nothing matches.
        """
        if k is None:
            k = self.config.top_k
        chunks = self.index.all()
        if not chunks or k <= 0:
            return []

        query = query or ""
        if self.registry is not None:
            query = self.registry.normalize_query(query)

        query_vector: Optional[List[float]] = None
        try:
            query_vector = await self.client.embed_query(query)
        except EmbeddingServiceError as e:
            logger.warning(f"Query embedding failed, ranking on keywords only: {e}")

        scored: List[RetrievalResult] = []
        for chunk in chunks:
            if not chunk.has_embedding:
                continue
            if query_vector is not None and len(chunk.embedding) != len(query_vector):
                continue

            cos = cosine_similarity(query_vector, chunk.embedding) if query_vector is not None else 0.0
            kw = self.keyword_score(query, chunk)
            if query_vector is None and kw <= 0:
                continue
            scored.append(RetrievalResult(chunk=chunk, score=self.blend(cos, kw), cosine=cos, keyword_score=kw))

        scored.sort(key=lambda r: r.score, reverse=True)
        top = scored[:k]

        if not any(r.keyword_score > 0 for r in top):
            exact = self._exact_identifier_matches(query, chunks, k)
            if exact:
                logger.debug(f"Exact-identifier fallback returned {len(exact)} chunks")
                top = exact

        results = self.deduplicate(top)
        logger.info(f"Retrieved {len(results)} chunks", extra={"query": query})
        return results

    @staticmethod
    def _exact_identifier_matches(query: str, chunks: Sequence[Chunk], k: int) -> List[RetrievalResult]:
        identifiers = extract_identifiers(query)
        if not identifiers:
            return []

        target = identifiers[0]
        exact = []
        for chunk in chunks:
            compact = re.sub(r"\s+", "", normalize_for_match(chunk.text))
            if target in compact:
                exact.append(RetrievalResult(chunk=chunk, score=EXACT_MATCH_SCORE, exact_match=True))
                if len(exact) >= k:
                    break
        return exact

    @staticmethod
    def deduplicate(results: Sequence[RetrievalResult]) -> List[RetrievalResult]:
        """Keep the first result for each (source_label, locator)."""
        seen = set()
        unique = []
        for result in results:
            key = (result.source_label, result.locator)
            if key in seen:
                continue
            seen.add(key)
            unique.append(result)
        return unique

    @staticmethod
    def format_context(results: Sequence[RetrievalResult], max_chars: int = 12000) -> str:
        """
        Format results as the grounding block for the language model.

        Args:
            results: Retrieved results, best first
            max_chars: Approximate budget for the passages

        Returns:
            Context block with numbered sources
        """
        parts = []
        used = 0
        for i, result in enumerate(results, 1):
            part = f"[{i}] Source: {result.source_label}\n{result.text}\n"
            if parts and used + len(part) > max_chars:
                break
            parts.append(part)
            used += len(part)

        return CONTEXT_HEADER + "\n---\n".join(parts) + CONTEXT_FOOTER

    @staticmethod
    def citations(results: Sequence[RetrievalResult]) -> List[Dict[str, str]]:
        """Citation entries for rendering sources to the user."""
        return [{"source": r.source_label, "href": r.locator} for r in results]
