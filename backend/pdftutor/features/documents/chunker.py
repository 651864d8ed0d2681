"""
Documents feature: page-bounded chunking with overlap.

Chunk size and overlap are measured in characters (~4 chars/token, so the
8000/800 defaults are roughly 2000/200 tokens). Chunks never span pages.

Line ranges in line-aware mode are derived from the actual line lengths,
including the carried-over overlap, but flushed text is whitespace-trimmed,
so callers should still treat line ranges as advisory.
"""

from typing import Iterable, Iterator, List

from pdftutor.features.documents.schemas import ChunkDraft, PageText

DEFAULT_MAX_LEN = 8000
DEFAULT_OVERLAP = 800

# (1-based line number, piece of that line's text)
_Segment = tuple[int, str]


def chunk_pages(
    pages: Iterable[PageText],
    max_len: int = DEFAULT_MAX_LEN,
    overlap: int = DEFAULT_OVERLAP,
) -> List[ChunkDraft]:
    """Split every page into overlapping chunks of at most ``max_len`` chars.

    Args:
        pages: Page texts in page order.
        max_len: Upper bound on chunk length.
        overlap: Characters repeated between consecutive chunks of a page.
            Clamped to ``max_len - 1`` so every window advances.

    Returns:
        Chunks in page order, then position order.
    """
    if max_len < 1:
        raise ValueError("max_len must be positive")
    overlap = max(0, min(overlap, max_len - 1))

    chunks: List[ChunkDraft] = []
    for page in pages:
        if not page.text.strip():
            continue
        if page.line_aware:
            chunks.extend(_chunk_by_lines(page, max_len, overlap))
        else:
            chunks.extend(_chunk_by_chars(page, max_len, overlap))
    return chunks


def _chunk_by_chars(page: PageText, max_len: int, overlap: int) -> Iterator[ChunkDraft]:
    """Fixed sliding window; the last window may be shorter."""
    text = page.text
    stride = max_len - overlap
    start = 0
    while True:
        yield ChunkDraft(page=page.number, text=text[start:start + max_len])
        if start + max_len >= len(text):
            break
        start += stride


def _chunk_by_lines(page: PageText, max_len: int, overlap: int) -> Iterator[ChunkDraft]:
    # Long lines are pre-split so that overlap + piece + "\n" always fits.
    piece_width = max(1, max_len - overlap - 1)

    segments: List[_Segment] = []
    size = 0
    for line_no, line in enumerate(page.text.split("\n"), start=1):
        for piece in _split_line(line, piece_width):
            if size + len(piece) > max_len and size > 0:
                chunk = _flush(page.number, segments)
                if chunk is not None:
                    yield chunk
                segments = _tail(segments, overlap)
                size = sum(len(text) for _, text in segments)
            segments.append((line_no, piece))
            size += len(piece)

    chunk = _flush(page.number, segments)
    if chunk is not None:
        yield chunk


def _split_line(line: str, width: int) -> Iterator[str]:
    """Yield pieces of ``line``; only the final piece carries the newline."""
    if len(line) <= width:
        yield line + "\n"
        return
    for start in range(0, len(line), width):
        piece = line[start:start + width]
        yield piece + "\n" if start + width >= len(line) else piece


def _flush(page_number: int, segments: List[_Segment]) -> ChunkDraft | None:
    text = "".join(piece for _, piece in segments).strip()
    if not text:
        return None
    lines = [line_no for line_no, piece in segments if piece.strip()]
    return ChunkDraft(
        page=page_number,
        text=text,
        line_start=lines[0],
        line_end=lines[-1],
    )


def _tail(segments: List[_Segment], overlap: int) -> List[_Segment]:
    """Last ``overlap`` characters of the buffer, keeping their line numbers."""
    kept: List[_Segment] = []
    remaining = overlap
    for line_no, piece in reversed(segments):
        if remaining <= 0:
            break
        if len(piece) <= remaining:
            kept.append((line_no, piece))
            remaining -= len(piece)
        else:
            kept.append((line_no, piece[-remaining:]))
            remaining = 0
    kept.reverse()
    return kept
