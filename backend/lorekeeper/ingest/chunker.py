"""Chunking utilities."""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_MAX_CHUNK_SIZE = 1000
DEFAULT_MIN_CHUNK_SIZE = 100
DEFAULT_OVERLAP = 100

_PARAGRAPH_BREAK = "\n\n"
_SENTENCE_BREAK = ". "


@dataclass(slots=True, frozen=True)
class ChunkSpan:
    """A slice ``text[start:end]`` of the chunked content."""

    start: int
    end: int
    text: str


def chunk_text(
    text: str,
    max_size: int = DEFAULT_MAX_CHUNK_SIZE,
    min_size: int = DEFAULT_MIN_CHUNK_SIZE,
    overlap: int = DEFAULT_OVERLAP,
) -> list[ChunkSpan]:
    """Split text into size-bounded, overlapping spans.

    Content no longer than ``max_size`` becomes a single span. Longer content
    is cut with a sliding window; each window's right edge is pulled back to
    the last paragraph break, or failing that the last sentence break (the
    period stays in the chunk), when the cut still leaves at least
    ``min_size`` characters. The next window starts ``overlap`` characters
    before the previous end, so consecutive spans share exactly ``overlap``
    characters and the last span ends at ``len(text)``.
    """
    if max_size <= 0:
        raise ValueError("max_size must be positive")
    if not 0 <= overlap < max_size:
        raise ValueError("overlap must be in [0, max_size)")

    length = len(text)
    if length == 0:
        return []
    if length <= max_size:
        return [ChunkSpan(start=0, end=length, text=text)]

    # A cut must leave more than ``overlap`` characters or the window would
    # not move forward.
    min_cut = max(min_size, overlap + 1)

    spans: list[ChunkSpan] = []
    start = 0
    while start < length:
        end = min(start + max_size, length)
        if end < length:
            end = start + _find_cut(text[start:end], min_cut)
        spans.append(ChunkSpan(start=start, end=end, text=text[start:end]))
        if end >= length:
            break
        start = max(0, end - overlap)
    return spans


def _find_cut(window: str, min_cut: int) -> int:
    idx = window.rfind(_PARAGRAPH_BREAK)
    if idx != -1 and idx >= min_cut:
        return idx
    idx = window.rfind(_SENTENCE_BREAK)
    if idx != -1 and idx + 1 >= min_cut:
        return idx + 1
    return len(window)


__all__ = ["ChunkSpan", "chunk_text", "DEFAULT_MAX_CHUNK_SIZE", "DEFAULT_MIN_CHUNK_SIZE", "DEFAULT_OVERLAP"]
