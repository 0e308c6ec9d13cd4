"""
Text helpers shared by the chunker, the embedding cache and the retriever.
"""

import re
from typing import Optional

_WHITESPACE = re.compile(r"\s+")


def normalize_whitespace(text: Optional[str]) -> str:
    """Collapse runs of whitespace to single spaces and trim."""
    return _WHITESPACE.sub(" ", text or "").strip()


def normalize_for_match(text: Optional[str]) -> str:
    """Lowercased, whitespace-normalized text for keyword matching."""
    return normalize_whitespace(text).lower()
