"""
RAG Chunker
===========

Splits extracted page text into overlapping passages for embedding.

Rules:
- Whitespace is collapsed before splitting
- Windows of ~target_size characters, overlap characters shared with the next
- A window is shortened to the last sentence/clause boundary or section
  header if that boundary lies past min_boundary_ratio of the window
- Stable chunking (same input = same chunks)
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from ciprag.text import normalize_whitespace

logger = logging.getLogger(__name__)

# Section headers in the standards corpus end the passage before them
DEFAULT_HEADER_TOKENS = ("purpose:",)


def _boundary_end(window: str, header_tokens: Sequence[str]) -> int:
    """
    Return the end offset of the last usable boundary in window, or -1.

    Periods and semicolons end the window after the punctuation mark;
    header tokens end it just before the header. The header is then the
    first new text of the next window, behind whatever overlap is carried
    over.
    """
    best = -1
    for stop in (". ", "; "):
        idx = window.rfind(stop)
        if idx >= 0:
            best = max(best, idx + 1)

    lowered = window.lower()
    for token in header_tokens:
        idx = lowered.rfind(token)
        if idx > 0:
            best = max(best, idx)

    return best


def split_text(
    text: str,
    target_size: int = 1000,
    overlap: int = 300,
    min_boundary_ratio: float = 0.5,
    header_tokens: Sequence[str] = DEFAULT_HEADER_TOKENS,
) -> List[str]:
    """
    Split text into overlapping passages.

    Args:
        text: Raw extracted text
        target_size: Approximate passage length in characters
        overlap: Characters shared between consecutive passages
        min_boundary_ratio: A boundary must lie past this fraction of
            target_size to shorten a window
        header_tokens: Lowercase tokens that open a new section

    Returns:
        Ordered list of non-empty passages
    """
    if target_size <= 0:
        raise ValueError("target_size must be positive")
    if overlap < 0:
        raise ValueError("overlap cannot be negative")

    clean = normalize_whitespace(text)
    chunks: List[str] = []
    start = 0

    while start < len(clean):
        end = min(len(clean), start + target_size)
        window = clean[start:end]

        if end < len(clean):
            boundary = _boundary_end(window, header_tokens)
            if boundary > target_size * min_boundary_ratio:
                window = window[:boundary]

        passage = window.strip()
        if passage:
            chunks.append(passage)

        if start + len(window) >= len(clean):
            break
        start += max(len(window) - overlap, 1)

    return chunks


@dataclass
class ChunkConfig:
    """Chunking configuration."""
    target_size: int = 1000
    overlap: int = 300
    min_boundary_ratio: float = 0.5
    header_tokens: Sequence[str] = DEFAULT_HEADER_TOKENS

    def __post_init__(self):
        if self.target_size <= 0:
            raise ValueError("target_size must be positive")
        if not 0 <= self.overlap < self.target_size:
            raise ValueError("overlap must be in [0, target_size)")
        if not 0 < self.min_boundary_ratio < 1:
            raise ValueError("min_boundary_ratio must be in (0, 1)")


class RAGChunker:
    """
    Splits page text into overlapping, boundary-aligned passages.
    """

    def __init__(self, config: Optional[ChunkConfig] = None):
        self.config = config or ChunkConfig()

    def chunk(self, text: str) -> List[str]:
        """Split text with the configured window and overlap."""
        chunks = split_text(
            text,
            target_size=self.config.target_size,
            overlap=self.config.overlap,
            min_boundary_ratio=self.config.min_boundary_ratio,
            header_tokens=self.config.header_tokens,
        )
        logger.debug(f"Chunked {len(text or '')} chars into {len(chunks)} passages")
        return chunks
