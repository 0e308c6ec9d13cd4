"""
Document reader.

Turns PDF, text and markdown files into page-segmented text.

Uses pdfplumber for PDFs. Two paths:
- fast path (page_aware=False): one PageText holding the whole document
- page-aware path: one PageText per non-empty page, numbered from 1
"""

import logging
import re
from pathlib import Path
from typing import List, Union

import pdfplumber

from ciprag.errors import ExtractionError
from ciprag.text import normalize_whitespace

from .models import PageText

logger = logging.getLogger(__name__)

PDF_EXTENSIONS = {".pdf"}
TEXT_EXTENSIONS = {".txt", ".md"}
SUPPORTED_EXTENSIONS = PDF_EXTENSIONS | TEXT_EXTENSIONS

# "Purpose :   To ..." -> "Purpose: To ..."
_PURPOSE_HEADER = re.compile(r"(Purpose)\s*:\s*", re.IGNORECASE)


def _extract_pdf_pages(path: Path) -> List[str]:
    with pdfplumber.open(path) as pdf:
        return [page.extract_text() or "" for page in pdf.pages]


def read_document(path: Union[str, Path], page_aware: bool = True) -> List[PageText]:
    """
    Read a document into page texts.

    Args:
        path: File to read; the extension selects the parser
        page_aware: Split PDFs by page instead of returning full text

    Returns:
        List of PageText (empty if the document holds no text)

    Raises:
        ExtractionError: If the file is missing, unsupported or unreadable
    """
    path = Path(path)
    ext = path.suffix.lower()

    if ext not in SUPPORTED_EXTENSIONS:
        raise ExtractionError(f"Unsupported file type: {ext or 'none'}", path=path)
    if not path.is_file():
        raise ExtractionError("File not found", path=path)

    if ext in TEXT_EXTENSIONS:
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ExtractionError(f"Could not read text file: {e}", path=path) from e
        return [PageText(text=text, page=1 if page_aware else None)]

    try:
        raw_pages = _extract_pdf_pages(path)
    except Exception as e:
        # pdfminer raises a variety of parser errors for damaged files
        raise ExtractionError(f"Could not parse PDF: {e}", path=path) from e

    if not page_aware:
        return [PageText(text="\n".join(raw_pages), page=None)]

    pages = []
    for number, raw in enumerate(raw_pages, 1):
        text = normalize_whitespace(raw)
        if not text:
            continue
        pages.append(PageText(text=_PURPOSE_HEADER.sub(r"\1: ", text, count=1), page=number))

    if pages:
        return pages

    logger.debug(f"No per-page text in {path.name}; falling back to full text")
    return [PageText(text="\n".join(raw_pages), page=1)]
