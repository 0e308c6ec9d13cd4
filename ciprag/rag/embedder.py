"""
RAG Embedder
============

Generates embeddings through an Ollama-compatible embedding service.

- One POST per text, fanned out concurrently and awaited jointly
- Responses are matched against the known response shapes; anything
  else is an EmbeddingServiceError, never a zero vector
- CachingEmbedder puts the persistent EmbeddingCache in front of the
  client for corpus text (queries always go straight to the client)
"""

import asyncio
import logging
from enum import Enum
from typing import Any, List, Optional, Sequence, Union

import requests

from ciprag.cache import EmbeddingCache, is_valid_vector
from ciprag.config import EmbeddingConfig
from ciprag.errors import EmbeddingServiceError

logger = logging.getLogger(__name__)

Vector = List[float]


class ResponseShape(Enum):
    """Response bodies the embedding service is known to return."""
    EMBEDDING = "embedding"            # {"embedding": [...]}
    EMBEDDINGS = "embeddings"          # {"embeddings": [[...], ...]}
    LIST_OF_OBJECTS = "list_of_objects"  # [{"embedding": [...]}, ...]


def detect_shape(payload: Any) -> Optional[ResponseShape]:
    """Classify a decoded response body, or None if no known shape matches."""
    if isinstance(payload, dict):
        if is_valid_vector(payload.get("embedding")):
            return ResponseShape.EMBEDDING
        embeddings = payload.get("embeddings")
        if isinstance(embeddings, list) and embeddings and is_valid_vector(embeddings[0]):
            return ResponseShape.EMBEDDINGS
    elif isinstance(payload, list) and payload:
        first = payload[0]
        if isinstance(first, dict) and is_valid_vector(first.get("embedding")):
            return ResponseShape.LIST_OF_OBJECTS
    return None


def extract_vector(payload: Any) -> Vector:
    """
    Pull the embedding vector out of a response body.

    Raises:
        EmbeddingServiceError: If the body matches no known shape
    """
    shape = detect_shape(payload)

    if shape is ResponseShape.EMBEDDING:
        vector = payload["embedding"]
    elif shape is ResponseShape.EMBEDDINGS:
        vector = payload["embeddings"][0]
    elif shape is ResponseShape.LIST_OF_OBJECTS:
        vector = payload[0]["embedding"]
    else:
        raise EmbeddingServiceError(
            "Embeddings error: empty vector or unknown response shape",
            text_preview=str(payload)[:200],
        )

    return [float(v) for v in vector]


class EmbeddingClient:
    """
    Client for the embedding service.

    Dimensions depend on the configured model (768 for nomic-embed-text).
    """

    ENDPOINT = "/api/embeddings"

    def __init__(self, config: Optional[EmbeddingConfig] = None):
        """
        Initialize embedding client.

        Args:
            config: Service URL, model, timeout and concurrency limits
        """
        self.config = config or EmbeddingConfig()
        self.url = f"{self.config.base_url}{self.ENDPOINT}"

        # Stats
        self._requests_made = 0
        self._failures = 0

    def embed_single(self, text: str) -> Vector:
        """
        Embed one text with a blocking request.

        Raises:
            EmbeddingServiceError: On transport failure, non-2xx status
                or an unusable body
        """
        payload = {"model": self.config.model, "prompt": text}

        try:
            response = requests.post(self.url, json=payload, timeout=self.config.request_timeout)
        except requests.RequestException as e:
            self._failures += 1
            raise EmbeddingServiceError(f"Embedding service unreachable: {e}") from e

        self._requests_made += 1

        if not response.ok:
            self._failures += 1
            raise EmbeddingServiceError(
                f"Embeddings error: HTTP {response.status_code}",
                status_code=response.status_code,
                text_preview=(response.text or "")[:200],
            )

        try:
            body = response.json()
        except ValueError as e:
            self._failures += 1
            raise EmbeddingServiceError(
                "Embeddings error: unparseable response body",
                status_code=response.status_code,
                text_preview=(response.text or "")[:200],
            ) from e

        try:
            return extract_vector(body)
        except EmbeddingServiceError:
            self._failures += 1
            raise

    async def embed(
        self,
        texts: Sequence[str],
        return_exceptions: bool = False,
    ) -> List[Union[Vector, EmbeddingServiceError]]:
        """
        Embed many texts concurrently, preserving order.

        Args:
            texts: Texts to embed
            return_exceptions: If True, failed texts yield their
                EmbeddingServiceError in place instead of raising

        Returns:
            One vector (or error) per input text

        Raises:
            EmbeddingServiceError: First failure, when return_exceptions is False
        """
        semaphore = asyncio.Semaphore(self.config.max_concurrency)

        async def embed_with_limit(text: str) -> Vector:
            async with semaphore:
                return await asyncio.to_thread(self.embed_single, text)

        results: List[Union[Vector, EmbeddingServiceError]] = []
        batch_size = self.config.batch_size

        for i in range(0, len(texts), batch_size):
            batch = texts[i:i + batch_size]
            outcomes = await asyncio.gather(
                *(embed_with_limit(t) for t in batch),
                return_exceptions=True,
            )
            for outcome in outcomes:
                if isinstance(outcome, EmbeddingServiceError):
                    if not return_exceptions:
                        raise outcome
                elif isinstance(outcome, BaseException):
                    raise outcome
                results.append(outcome)

            logger.debug(f"Embedded batch of {len(batch)} texts")

        return results

    async def embed_query(self, query: str) -> Vector:
        """Embed a search query. Never cached."""
        return await asyncio.to_thread(self.embed_single, query)

    @property
    def requests_made(self) -> int:
        return self._requests_made

    @property
    def failures(self) -> int:
        return self._failures


class CachingEmbedder:
    """
    Cache-aware embedding for corpus text.

    Hits are served from the EmbeddingCache; misses are embedded in one
    concurrent fan-out and stored as soon as they succeed, so a failure
    on one text does not discard vectors already computed for others.
    """

    def __init__(self, client: EmbeddingClient, cache: EmbeddingCache):
        self.client = client
        self.cache = cache

    async def embed(self, texts: Sequence[str]) -> List[Vector]:
        """
        Embed texts, using cached vectors where available.

        Raises:
            EmbeddingServiceError: If any cache miss could not be embedded
        """
        results: List[Optional[Vector]] = [None] * len(texts)
        miss_idx: List[int] = []

        for i, text in enumerate(texts):
            cached = self.cache.get(text)
            if cached is not None:
                results[i] = cached
            else:
                miss_idx.append(i)

        if miss_idx:
            outcomes = await self.client.embed([texts[i] for i in miss_idx], return_exceptions=True)
            first_error: Optional[EmbeddingServiceError] = None

            for i, outcome in zip(miss_idx, outcomes):
                if isinstance(outcome, EmbeddingServiceError):
                    first_error = first_error or outcome
                    continue
                self.cache.put(texts[i], outcome)
                results[i] = outcome

            if first_error is not None:
                raise first_error

            logger.debug(f"Cache: {len(texts) - len(miss_idx)} hits, {len(miss_idx)} embedded")

        return results

    async def embed_query(self, query: str) -> Vector:
        return await self.client.embed_query(query)
