"""
Documents feature: page text extraction.

Three tiers, most precise first:
  1. Page-aware: PyPDFLoader walks the PDF page objects, one Document per page.
  2. Delimiter: a lenient pypdf pass flattened with form-feed page breaks,
     then split on them again.
  3. Whole buffer: the flattened text becomes page 1.
Only when every tier comes back without any text is ExtractionError raised.
"""

import io
import logging
import os
import tempfile
from typing import List

from langchain_community.document_loaders import PyPDFLoader
from pypdf import PdfReader

from pdftutor.core.exceptions import ExtractionError
from pdftutor.features.documents.schemas import PageText

logger = logging.getLogger(__name__)

PAGE_BREAK = "\f"


def extract_pages(file_bytes: bytes) -> List[PageText]:
    """Turn raw PDF bytes into per-page texts, in page order.

    Raises:
        ExtractionError: If no tier could extract any text.
    """
    if not file_bytes:
        raise ExtractionError("Document buffer is empty")

    try:
        pages = _extract_page_aware(file_bytes)
        if _has_text(pages):
            return pages
        logger.warning("⚠️ Page-aware extraction found no text, falling back to delimiter split")
    except Exception as e:
        logger.warning(f"⚠️ Page-aware extraction failed, falling back: {e}")

    try:
        flat_text = _extract_flat_text(file_bytes)
    except Exception as e:
        raise ExtractionError(f"Text extraction failed: {e}") from e

    if PAGE_BREAK in flat_text:
        pages = split_on_page_breaks(flat_text)
        if _has_text(pages):
            return pages

    if flat_text.strip():
        logger.warning("⚠️ No page breaks found, treating the whole text as page 1")
        return [PageText(number=1, text=flat_text, line_aware=False)]

    raise ExtractionError()


def split_on_page_breaks(flat_text: str) -> List[PageText]:
    """Split flattened text on form feeds. Every page keeps its slot, blank or not."""
    parts = flat_text.split(PAGE_BREAK)
    return [
        PageText(number=index + 1, text=part, line_aware=False)
        for index, part in enumerate(parts)
    ]


def _extract_page_aware(file_bytes: bytes) -> List[PageText]:
    """Load with PyPDFLoader via a temp file since loaders require file paths."""
    with tempfile.NamedTemporaryFile(delete=False, suffix=".pdf") as temp_file:
        temp_file.write(file_bytes)
        temp_path = temp_file.name

    try:
        docs = PyPDFLoader(temp_path).load()
    finally:
        if os.path.exists(temp_path):
            os.remove(temp_path)

    docs = sorted(docs, key=lambda d: d.metadata.get("page", 0))
    return [
        PageText(number=index + 1, text=doc.page_content or "", line_aware=True)
        for index, doc in enumerate(docs)
    ]


def _extract_flat_text(file_bytes: bytes) -> str:
    """Non-strict PdfReader pass; tolerates broken xref tables the loader rejects."""
    reader = PdfReader(io.BytesIO(file_bytes), strict=False)
    return PAGE_BREAK.join((page.extract_text() or "") for page in reader.pages)


def _has_text(pages: List[PageText]) -> bool:
    return any(page.text.strip() for page in pages)
