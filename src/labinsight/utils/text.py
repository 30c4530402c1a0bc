"""Text helpers: report chunking, retrieval windows and whitespace cleanup."""

from __future__ import annotations

import logging
import re
from typing import Iterable, Iterator, List, Tuple

from langchain_text_splitters import RecursiveCharacterTextSplitter

from labinsight.errors import ChunkingDegenerate

LOGGER = logging.getLogger(__name__)

# "\n\n=== PAGE 2 of 5 ===\n\n" as inserted by the PDF loader.
PAGE_MARKER_RE = re.compile(r"\n\n={2,}[^\n]*?={2,}(?=\n\n)")
PARAGRAPH_BREAK = "\n\n"
WINDOW_SEPARATORS = ["\n\n", "\n", ". ", " ", ""]

Span = Tuple[int, int]


def page_marker(page: int, total: int) -> str:
    return f"\n\n=== PAGE {page} of {total} ===\n\n"


def _split_pages(text: str) -> List[Span]:
    """Split on page markers, keeping each marker at the head of its page."""
    cuts = [match.start() for match in PAGE_MARKER_RE.finditer(text) if match.start() > 0]
    bounds = [0, *cuts, len(text)]
    return [(start, end) for start, end in zip(bounds, bounds[1:]) if end > start]


def _split_paragraphs(text: str, start: int, end: int) -> Iterator[Span]:
    """Yield paragraph spans, each including its trailing blank line."""
    cursor = start
    while cursor < end:
        found = text.find(PARAGRAPH_BREAK, cursor, end)
        if found == -1:
            yield cursor, end
            return
        stop = found + len(PARAGRAPH_BREAK)
        yield cursor, stop
        cursor = stop


def _split_by_length(start: int, end: int, max_chars: int) -> Iterator[Span]:
    for offset in range(start, end, max_chars):
        yield offset, min(offset + max_chars, end)


def _iter_segments(text: str, max_chars: int) -> Iterator[Span]:
    """Yield spans no longer than ``max_chars``, split on the coarsest boundary possible."""
    for page_start, page_end in _split_pages(text):
        if page_end - page_start <= max_chars:
            yield page_start, page_end
            continue
        for para_start, para_end in _split_paragraphs(text, page_start, page_end):
            if para_end - para_start <= max_chars:
                yield para_start, para_end
            else:
                yield from _split_by_length(para_start, para_end, max_chars)


def _group_segments(text: str, max_chars: int) -> List[Span]:
    groups: List[Span] = []
    current: Span | None = None
    for start, end in _iter_segments(text, max_chars):
        if current is None:
            current = (start, end)
        elif end - current[0] > max_chars:
            groups.append(current)
            current = (start, end)
        else:
            current = (current[0], end)
    if current is not None:
        groups.append(current)

    # Whitespace-only groups are folded into a neighbour so the spans still tile the text.
    spans: List[Span] = []
    pending_start: int | None = None
    for start, end in groups:
        if not text[start:end].strip():
            if spans:
                spans[-1] = (spans[-1][0], end)
            elif pending_start is None:
                pending_start = start
            continue
        if pending_start is not None:
            start, pending_start = pending_start, None
        spans.append((start, end))
    if not spans:
        raise ChunkingDegenerate("no non-blank segment found")
    return spans


def iter_chunk_spans(text: str, max_chars: int = 6000) -> Iterator[Span]:
    """Yield ``(start, end)`` spans that tile ``text`` in order.

    Splits preferentially on page markers, then on blank-line paragraph
    breaks, and cuts by length only when a single paragraph is too large.
    """
    if max_chars <= 0:
        raise ValueError("max_chars must be a positive integer")
    if len(text) <= max_chars:
        yield 0, len(text)
        return
    try:
        spans = _group_segments(text, max_chars)
    except ChunkingDegenerate as exc:
        LOGGER.debug("Chunking degenerated (%s); keeping text whole", exc)
        spans = [(0, len(text))]
    yield from spans


def chunk_report_text(text: str, max_chars: int = 6000) -> List[str]:
    """Split report text into chunks of at most ``max_chars`` characters.

    Text already within the limit comes back as a single, untouched chunk.
    Otherwise each chunk is its span with boundary whitespace trimmed.
    """
    if len(text) <= max_chars:
        return [text]
    chunks = [text[start:end].strip() for start, end in iter_chunk_spans(text, max_chars)]
    return [chunk for chunk in chunks if chunk] or [text]


def split_windows(text: str, *, window_chars: int = 1000, overlap: int = 200) -> List[str]:
    """Split text into overlapping retrieval windows."""
    if not text or not text.strip():
        return []
    splitter = RecursiveCharacterTextSplitter(
        chunk_size=window_chars,
        chunk_overlap=overlap,
        separators=WINDOW_SEPARATORS,
        length_function=len,
    )
    return splitter.split_text(text)


_MULTI_NEWLINE_RE = re.compile(r"\n{3,}")
_INLINE_SPACE_RE = re.compile(r"[ \t]+")


def clean_extracted_text(text: str) -> str:
    """Tidy extracted PDF text while keeping paragraph and page structure."""
    text = text.replace("\r\n", "\n")
    text = _MULTI_NEWLINE_RE.sub("\n\n", text)
    text = _INLINE_SPACE_RE.sub(" ", text)
    return text.strip()


def normalize_whitespace(lines: Iterable[str]) -> str:
    """Collapse whitespace within lines and keep single blank lines between paragraphs."""
    kept: List[str] = []
    for line in lines:
        cleaned = _INLINE_SPACE_RE.sub(" ", line).strip()
        if cleaned or (kept and kept[-1]):
            kept.append(cleaned)
    while kept and not kept[-1]:
        kept.pop()
    return "\n".join(kept)
