"""PDF text extraction for uploaded lab reports.

Uses PyMuPDF (fitz). Multi-page reports get a page marker before every page
so the chunker can split on page boundaries first.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

import fitz  # PyMuPDF

from labinsight.utils.text import clean_extracted_text, normalize_whitespace, page_marker

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class ExtractedReport:
    text: str
    page_count: int
    title: str


class PDFExtractionError(ValueError):
    """The upload could not be opened or contains no readable text."""


def _open(source: Path | bytes) -> fitz.Document:
    try:
        if isinstance(source, (bytes, bytearray)):
            return fitz.open(stream=bytes(source), filetype="pdf")
        return fitz.open(source)
    except Exception as exc:
        LOGGER.error("Failed to open PDF: %s", exc)
        raise PDFExtractionError(f"Unable to open PDF: {exc}") from exc


def iter_page_texts(doc: fitz.Document) -> Iterator[str]:
    """Yield the whitespace-normalised text of each page; unreadable pages yield ""."""
    for index in range(len(doc)):
        try:
            text = doc[index].get_text() or ""
        except Exception as exc:
            LOGGER.warning("Failed to read page %s: %s", index, exc)
            text = ""
        yield normalize_whitespace(text.splitlines())


def extract_report(source: Path | bytes, *, name: str | None = None) -> ExtractedReport:
    """Extract report text from a PDF path or raw bytes."""
    doc = _open(source)
    try:
        page_count = len(doc)
        pages = list(iter_page_texts(doc))
        metadata = doc.metadata or {}
    finally:
        doc.close()

    default_title = name or (source.stem if isinstance(source, Path) else "Lab report")
    title = metadata.get("title") or default_title

    if page_count > 1:
        text = "".join(
            page_marker(number, page_count) + page
            for number, page in enumerate(pages, start=1)
            if page
        )
    else:
        text = "".join(pages)
    text = clean_extracted_text(text)
    if not text:
        raise PDFExtractionError("No text could be extracted from the PDF")

    LOGGER.info("Extracted %d chars from %d pages (%s)", len(text), page_count, title)
    return ExtractedReport(text=text, page_count=max(page_count, 1), title=title)
