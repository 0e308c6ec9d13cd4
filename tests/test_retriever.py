"""
Tests for hybrid retrieval.

Chunk texts avoid the domain terms so that keyword scores in each test
come only from what the test sets up.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from ciprag.config import RetrievalConfig
from ciprag.rag.corpus import CorpusIndex
from ciprag.rag.models import RetrievalResult
from ciprag.rag.retriever import (
    CONTEXT_HEADER,
    EXACT_MATCH_SCORE,
    HybridRetriever,
    cosine_similarity,
    extract_identifiers,
)
from ciprag.rag.standards import StandardsRegistry


def build_index(*chunks):
    index = CorpusIndex()
    grouped = {}
    for chunk in chunks:
        grouped.setdefault(chunk.document_key, []).append(chunk)
    for key, cs in grouped.items():
        index.add(key, cs)
    return index


class TestCosineSimilarity:
    """Tests for cosine_similarity()."""

    def test_identical(self):
        assert cosine_similarity([1.0, 2.0], [1.0, 2.0]) == pytest.approx(1.0)

    def test_orthogonal(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == 0.0

    def test_zero_vector(self):
        assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0

    def test_dimension_mismatch(self):
        with pytest.raises(ValueError):
            cosine_similarity([1.0], [1.0, 0.0])


class TestExtractIdentifiers:
    """Tests for identifier extraction from queries."""

    def test_compacted_in_order_without_repeats(self):
        assert extract_identifiers("CIP 005 and cip-007-6 and CIP 005") == ["cip005", "cip-007-6"]

    def test_none(self):
        assert extract_identifiers("firewall rules") == []


class TestKeywordScore:
    """Tests for the keyword signal and the blended score."""

    @pytest.fixture
    def retriever(self, fake_client):
        return HybridRetriever(CorpusIndex(), fake_client)

    def test_domain_terms_and_header(self, retriever, make_chunk):
        chunk = make_chunk("Purpose: To protect confidentiality and integrity of assets")
        # four terms plus the header bonus
        assert retriever.keyword_score("anything", chunk) == 7

    def test_identifier_in_chunk(self, retriever, make_chunk):
        chunk = make_chunk("CIP-005-6 electronic perimeter")
        assert retriever.keyword_score("what is cip-005", chunk) == 1

    def test_source_label_and_filename_bonus(self, retriever, make_chunk):
        chunk = make_chunk("firewall rules", document_key="CIP-005-6.pdf", page=2)
        assert retriever.keyword_score("see CIP-005-6.pdf p.2", chunk) == 4

    def test_filename_stem_bonus(self, retriever, make_chunk):
        chunk = make_chunk("firewall rules", document_key="CIP-005-6.pdf")
        assert retriever.keyword_score("what does cip-005-6 require", chunk) == 2

    def test_short_stem_ignored(self, retriever, make_chunk):
        chunk = make_chunk("firewall rules", document_key="a.pdf")
        assert retriever.keyword_score("a firewall", chunk) == 0

    def test_blend_caps_keyword(self, retriever):
        assert retriever.blend(0.0, 9) == pytest.approx(6 * 0.3)
        assert retriever.blend(1.0, 2) == pytest.approx(0.7 + 0.6)

    def test_custom_weights(self, fake_client):
        config = RetrievalConfig(cosine_weight=1.0, keyword_weight=0.0)
        retriever = HybridRetriever(CorpusIndex(), fake_client, config=config)
        assert retriever.blend(0.5, 6) == pytest.approx(0.5)


class TestRetrieve:
    """Tests for retrieve()."""

    def test_empty_corpus(self, fake_client):
        retriever = HybridRetriever(CorpusIndex(), fake_client)
        assert asyncio.run(retriever.retrieve("firewall")) == []

    def test_ranked_and_bounded(self, fake_client, make_chunk):
        index = build_index(
            make_chunk("firewall port rules", "a.pdf"),
            make_chunk("backup recovery plan steps", "b.pdf"),
            make_chunk("training and password hygiene", "c.pdf"),
            make_chunk("backup of physical media", "d.pdf"),
        )
        retriever = HybridRetriever(index, fake_client)

        results = asyncio.run(retriever.retrieve("backup recovery plan", k=2))

        assert len(results) == 2
        assert results[0].chunk.document_key == "b.pdf"
        assert results[1].chunk.document_key == "d.pdf"
        assert results[0].score >= results[1].score
        assert all(isinstance(r, RetrievalResult) for r in results)

    def test_default_k_from_config(self, fake_client, make_chunk):
        index = build_index(*[make_chunk(f"firewall {i}", f"{i}.pdf") for i in range(5)])
        retriever = HybridRetriever(index, fake_client, config=RetrievalConfig(top_k=3))
        assert len(asyncio.run(retriever.retrieve("firewall"))) == 3

    def test_zero_or_negative_k_returns_nothing(self, fake_client, make_chunk):
        index = build_index(*[make_chunk(f"firewall port {i}", f"{i}.pdf") for i in range(4)])
        retriever = HybridRetriever(index, fake_client)
        assert asyncio.run(retriever.retrieve("firewall", k=0)) == []
        assert asyncio.run(retriever.retrieve("firewall", k=-1)) == []

    def test_ties_keep_corpus_order(self, fake_client, make_chunk):
        index = build_index(
            make_chunk("firewall", "first.pdf"),
            make_chunk("firewall", "second.pdf"),
        )
        retriever = HybridRetriever(index, fake_client)
        results = asyncio.run(retriever.retrieve("firewall", k=2))
        assert [r.chunk.document_key for r in results] == ["first.pdf", "second.pdf"]

    def test_exact_identifier_fallback(self, fake_client, make_chunk):
        """An identifier that neither ranking signal surfaces is still found."""
        index = build_index(
            make_chunk("firewall port", "a.pdf"),
            make_chunk("CIP 007 applies to patching", "b.pdf"),
        )
        retriever = HybridRetriever(index, fake_client)

        results = asyncio.run(retriever.retrieve("cip 007 firewall", k=1))

        assert len(results) == 1
        assert results[0].chunk.document_key == "b.pdf"
        assert results[0].exact_match is True
        assert results[0].score == EXACT_MATCH_SCORE

    def test_no_fallback_when_keyword_signal_present(self, fake_client, make_chunk):
        index = build_index(
            make_chunk("CIP-005-6 firewall", "a.pdf"),
            make_chunk("CIP-005-6 appendix", "b.pdf"),
        )
        retriever = HybridRetriever(index, fake_client)

        results = asyncio.run(retriever.retrieve("cip-005 firewall", k=2))

        assert not any(r.exact_match for r in results)
        assert results[0].chunk.document_key == "a.pdf"

    def test_duplicate_citations_collapsed(self, fake_client, make_chunk):
        index = build_index(
            make_chunk("firewall port", "a.pdf", page=1, sequence_index=0),
            make_chunk("firewall access", "a.pdf", page=1, sequence_index=1),
            make_chunk("firewall plan", "a.pdf", page=2, sequence_index=0),
        )
        retriever = HybridRetriever(index, fake_client)

        results = asyncio.run(retriever.retrieve("firewall", k=3))

        assert [r.source_label for r in results] == ["a.pdf p.1", "a.pdf p.2"]

    def test_keyword_only_when_query_embedding_fails(self, make_client, make_chunk):
        index = build_index(
            make_chunk("Purpose: firewall", "a.pdf"),
            make_chunk("backup recovery", "b.pdf"),
        )
        retriever = HybridRetriever(index, make_client(fail_queries=True))

        results = asyncio.run(retriever.retrieve("firewall", k=5))

        assert [r.chunk.document_key for r in results] == ["a.pdf"]
        assert results[0].cosine == 0.0
        assert results[0].score == pytest.approx(4 * 0.3)

    def test_dimension_mismatch_skipped(self, make_chunk):
        client = AsyncMock()
        client.embed_query.return_value = [1.0, 0.0]
        index = build_index(make_chunk("firewall", "a.pdf"))
        retriever = HybridRetriever(index, client)

        assert asyncio.run(retriever.retrieve("firewall")) == []

    def test_registry_steers_to_latest_version(self, fake_client, make_chunk):
        registry = StandardsRegistry()
        registry.register("CIP-005-3.pdf")
        registry.register("CIP-005-6.pdf")
        index = build_index(
            make_chunk("firewall rules", "CIP-005-3.pdf"),
            make_chunk("firewall rules", "CIP-005-6.pdf"),
        )
        retriever = HybridRetriever(index, fake_client, registry=registry)

        results = asyncio.run(retriever.retrieve("CIP-005 firewall", k=2))

        assert fake_client.query_calls == ["CIP-005 (CIP-005-6) firewall"]
        assert results[0].chunk.document_key == "CIP-005-6.pdf"
        assert results[0].score > results[1].score


class TestFormatting:
    """Tests for context blocks and citations."""

    def test_format_context(self, make_chunk):
        results = [
            RetrievalResult(chunk=make_chunk("firewall rules", "a.pdf"), score=1.0),
            RetrievalResult(chunk=make_chunk("backup plan", "b.pdf", page=None), score=0.5),
        ]

        context = HybridRetriever.format_context(results)

        assert context.startswith(CONTEXT_HEADER)
        assert "[1] Source: a.pdf p.1\nfirewall rules\n" in context
        assert "\n---\n[2] Source: b.pdf\nbackup plan\n" in context
        assert context.endswith("CONTEXT END\n")

    def test_format_context_budget(self, make_chunk):
        results = [
            RetrievalResult(chunk=make_chunk("x" * 100, f"{i}.pdf"), score=1.0)
            for i in range(5)
        ]
        context = HybridRetriever.format_context(results, max_chars=250)
        assert "[2] Source" in context
        assert "[3] Source" not in context

    def test_format_context_always_keeps_first(self, make_chunk):
        results = [RetrievalResult(chunk=make_chunk("x" * 500, "a.pdf"), score=1.0)]
        assert "[1] Source" in HybridRetriever.format_context(results, max_chars=10)

    def test_citations(self, make_chunk):
        results = [RetrievalResult(chunk=make_chunk("firewall", "k.pdf", page=3), score=1.0)]
        assert HybridRetriever.citations(results) == [
            {"source": "k.pdf p.3", "href": "/uploads/k.pdf#page=3"}
        ]
