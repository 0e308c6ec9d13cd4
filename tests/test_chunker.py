"""
Tests for the passage chunker.
"""

import pytest

from ciprag.rag.chunker import ChunkConfig, RAGChunker, split_text


class TestSplitText:
    """Tests for split_text windows, boundaries and overlap."""

    def test_empty_and_whitespace_input(self):
        """Empty or whitespace-only text yields no passages."""
        assert split_text("") == []
        assert split_text("   \n\t  ") == []
        assert split_text(None) == []

    def test_short_text_single_chunk(self):
        """Text shorter than the window is one normalized passage."""
        chunks = split_text("  Access   control\nfor  cyber assets  ", target_size=100, overlap=10)
        assert chunks == ["Access control for cyber assets"]

    def test_deterministic(self):
        """Same text and parameters always give the same passages."""
        text = ("Each entity shall document its processes. " * 40) + "Purpose: To protect assets; " * 10
        first = split_text(text, target_size=120, overlap=30)
        second = split_text(text, target_size=120, overlap=30)
        assert first == second
        assert len(first) > 1

    def test_hard_cut_windows_overlap(self):
        """Without boundaries, consecutive windows share `overlap` characters."""
        text = "0123456789" * 30
        chunks = split_text(text, target_size=100, overlap=20)

        assert chunks[0] == text[0:100]
        assert chunks[1] == text[80:180]
        assert chunks[0][-20:] == chunks[1][:20]
        assert all(len(c) <= 100 for c in chunks)

    def test_last_chunk_reaches_end_without_tiny_tail(self):
        """The final window ends at the text end and no degenerate tails follow."""
        text = "0123456789" * 30
        chunks = split_text(text, target_size=100, overlap=20)

        assert chunks[-1] == text[240:300]
        assert len(chunks) == 4

    def test_sentence_boundary_shortens_window(self):
        """A period past half the window ends the passage."""
        text = "A" * 60 + ". " + "B" * 100
        chunks = split_text(text, target_size=100, overlap=10)
        assert chunks[0] == "A" * 60 + "."

    def test_semicolon_boundary(self):
        """A semicolon is a clause boundary."""
        text = "A" * 70 + "; " + "B" * 100
        chunks = split_text(text, target_size=100, overlap=10)
        assert chunks[0] == "A" * 70 + ";"

    def test_early_boundary_ignored(self):
        """A boundary before half the window keeps the hard cut."""
        text = "A" * 20 + ". " + "B" * 200
        chunks = split_text(text, target_size=100, overlap=10)
        assert len(chunks[0]) == 100

    def test_header_token_starts_next_chunk(self):
        """The window ends before a section header so the header opens the next passage."""
        text = "A" * 70 + " Purpose: " + "B" * 100
        chunks = split_text(text, target_size=100, overlap=0)

        assert chunks[0] == "A" * 70
        assert chunks[1].startswith("Purpose:")

    def test_header_follows_overlap_in_next_chunk(self):
        """With overlap the next passage repeats the tail before the header."""
        text = "A" * 70 + " Purpose: " + "B" * 100
        chunks = split_text(text, target_size=100, overlap=10)

        assert chunks[0] == "A" * 70
        assert chunks[1].startswith("A" * 9 + " Purpose:")

    def test_progress_with_overlap_larger_than_window(self):
        """Pathological overlap still advances at least one character per window."""
        text = "abc" * 100
        chunks = split_text(text, target_size=10, overlap=50)

        assert len(chunks) == 291
        assert chunks[-1] == text[-10:]

    def test_tiny_window(self):
        """A one-character window terminates and covers the text."""
        assert split_text("abcde", target_size=1, overlap=0) == ["a", "b", "c", "d", "e"]

    def test_invalid_parameters(self):
        with pytest.raises(ValueError):
            split_text("text", target_size=0)
        with pytest.raises(ValueError):
            split_text("text", target_size=10, overlap=-1)


class TestRAGChunker:
    """Tests for the configured chunker."""

    def test_uses_config(self):
        chunker = RAGChunker(ChunkConfig(target_size=100, overlap=20))
        text = "0123456789" * 30
        assert chunker.chunk(text) == split_text(text, target_size=100, overlap=20)

    def test_default_config(self):
        chunker = RAGChunker()
        assert chunker.config.target_size == 1000
        assert chunker.config.overlap == 300

    def test_config_validation(self):
        """Overlap must be smaller than the window."""
        with pytest.raises(ValueError):
            ChunkConfig(target_size=100, overlap=100)
        with pytest.raises(ValueError):
            ChunkConfig(target_size=0)
        with pytest.raises(ValueError):
            ChunkConfig(min_boundary_ratio=1.5)
