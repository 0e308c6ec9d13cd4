"""
Shared fixtures for the ciprag test suite.

The embedding service is replaced by a deterministic bag-of-words
client so retrieval results are predictable without network access.
"""

import re
from typing import List, Optional, Sequence

import pytest

from ciprag.errors import EmbeddingServiceError
from ciprag.rag.models import Chunk, Origin

VOCAB = (
    "firewall", "port", "access", "backup", "recovery", "plan",
    "training", "password", "physical", "electronic",
)


def bag_of_words(text: str) -> List[float]:
    words = re.findall(r"[a-z]+", text.lower())
    return [float(words.count(term)) for term in VOCAB]


class FakeEmbeddingClient:
    """Stands in for EmbeddingClient; records every text it embeds."""

    def __init__(self, fail_on: Sequence[str] = (), fail_queries: bool = False):
        self.fail_on = tuple(fail_on)
        self.fail_queries = fail_queries
        self.calls: List[str] = []
        self.query_calls: List[str] = []

    async def embed(self, texts, return_exceptions=False):
        results = []
        for text in texts:
            self.calls.append(text)
            if any(marker in text for marker in self.fail_on):
                error = EmbeddingServiceError(f"service failed for: {text[:20]}")
                if not return_exceptions:
                    raise error
                results.append(error)
            else:
                results.append(bag_of_words(text))
        return results

    async def embed_query(self, query):
        self.query_calls.append(query)
        if self.fail_queries:
            raise EmbeddingServiceError("service down", status_code=503)
        return bag_of_words(query)


@pytest.fixture
def fake_client():
    return FakeEmbeddingClient()


@pytest.fixture
def make_client():
    return FakeEmbeddingClient


def build_chunk(
    text: str,
    document_key: str = "doc.pdf",
    origin: Origin = Origin.UPLOADED,
    page: Optional[int] = 1,
    sequence_index: int = 0,
    embedding: Optional[Sequence[float]] = None,
    filename: Optional[str] = None,
    source_label: Optional[str] = None,
    locator: Optional[str] = None,
) -> Chunk:
    filename = filename or document_key
    return Chunk(
        text=text,
        embedding=tuple(bag_of_words(text) if embedding is None else embedding),
        source_label=source_label or (f"{filename} p.{page}" if page else filename),
        locator=locator or (f"/uploads/{document_key}#page={page}" if page else f"/{document_key}"),
        origin=origin,
        document_key=document_key,
        filename=filename,
        page=page,
        sequence_index=sequence_index,
    )


@pytest.fixture
def make_chunk():
    return build_chunk
