"""
Seeded Corpus
=============

Reference PDFs shipped in the seed directory. They are indexed with the
full-text fast path under origin "seeded" and rebuilt as one batch.
"""

import logging
from pathlib import Path
from typing import List

from ..models import Origin, SourceDocument

logger = logging.getLogger(__name__)

SEED_EXTENSIONS = (".pdf",)


def get_all_seed_documents(seed_dir: Path) -> List[SourceDocument]:
    """
    List the seed directory's documents, sorted by filename.

    A missing directory yields an empty list.
    """
    seed_dir = Path(seed_dir)
    if not seed_dir.is_dir():
        logger.warning(f"Seed directory {seed_dir} not found")
        return []

    documents = [
        SourceDocument(
            path=path,
            document_key=path.name,
            origin=Origin.SEEDED,
            filename=path.name,
            page_aware=False,
        )
        for path in sorted(seed_dir.iterdir(), key=lambda p: p.name)
        if path.is_file() and path.suffix.lower() in SEED_EXTENSIONS
    ]
    logger.info(f"Found {len(documents)} seed documents in {seed_dir}")
    return documents
