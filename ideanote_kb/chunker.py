"""
Split note text into overlapping chunks for embedding.

Text is cut into units along paragraph boundaries first (blank lines and
markdown headings), then sentence boundaries, then fixed-width windows for
runs without punctuation. Units are packed greedily into chunks of at most
``max_chars`` characters; every chunk after the first starts with the tail
of the previous one so context survives the split.
"""

from __future__ import annotations

import re
from typing import List, Tuple

from .utils import normalize_newlines

DEFAULT_MAX_CHARS = 500
DEFAULT_OVERLAP = 50

Span = Tuple[int, int]

_BLANK_LINE_RE = re.compile(r"\n[ \t]*\n\s*")
_HEADING_LINE_RE = re.compile(r"^#{1,6}\s", re.MULTILINE)
_SENTENCE_END_RE = re.compile(r"[.!?;。！？；]+[\"'”’)\]]*\s*|\n+")


def _paragraph_spans(text: str) -> List[Span]:
    """Contiguous spans covering text, one per paragraph or section."""
    boundaries = {0, len(text)}
    boundaries.update(match.end() for match in _BLANK_LINE_RE.finditer(text))
    boundaries.update(match.start() for match in _HEADING_LINE_RE.finditer(text))
    ordered = sorted(boundaries)
    return [(a, b) for a, b in zip(ordered, ordered[1:]) if b > a]


def _sentence_spans(text: str, start: int, end: int) -> List[Span]:
    boundaries = {start, end}
    for match in _SENTENCE_END_RE.finditer(text, start, end):
        boundaries.add(match.end())
    ordered = sorted(boundaries)
    return [(a, b) for a, b in zip(ordered, ordered[1:]) if b > a]


def _window_spans(start: int, end: int, width: int) -> List[Span]:
    return [(pos, min(pos + width, end)) for pos in range(start, end, width)]


def _units(text: str, limit: int) -> List[Span]:
    """Break text into contiguous spans no longer than limit."""
    units: List[Span] = []
    for p_start, p_end in _paragraph_spans(text):
        if p_end - p_start <= limit:
            units.append((p_start, p_end))
            continue
        for s_start, s_end in _sentence_spans(text, p_start, p_end):
            if s_end - s_start <= limit:
                units.append((s_start, s_end))
            else:
                units.extend(_window_spans(s_start, s_end, limit))
    return units


def _overlap_start(text: str, end: int, overlap: int, floor: int) -> int:
    """Start of the overlap carried into the next chunk, snapped to a word boundary."""
    if overlap <= 0:
        return end
    start = max(floor, end - overlap)
    for pos in range(start, end):
        if text[pos].isspace():
            return pos + 1 if pos + 1 < end else start
    return start


def chunk_text(
    text: str,
    max_chars: int = DEFAULT_MAX_CHARS,
    overlap: int = DEFAULT_OVERLAP,
) -> List[str]:
    """
    Split text into overlapping chunks.

    Args:
        text: Note text (markdown or plain)
        max_chars: Maximum length of a chunk
        overlap: Number of characters repeated at the start of the next chunk

    Returns:
        Chunks in document order; [] for blank text, one chunk for short text

    Raises:
        ValueError: If max_chars <= 0 or overlap is not smaller than max_chars
    """
    if max_chars <= 0:
        raise ValueError("max_chars must be positive")
    if overlap < 0 or overlap >= max_chars:
        raise ValueError("overlap must be in [0, max_chars)")

    text = normalize_newlines(text or "")
    stripped = text.strip()
    if not stripped:
        return []
    if len(stripped) <= max_chars:
        return [stripped]

    chunks: List[str] = []
    units = _units(text, max_chars - overlap)
    start = units[0][0]
    end = start
    has_unit = False

    for unit_start, unit_end in units:
        if has_unit and unit_end - start > max_chars:
            piece = text[start:end].strip()
            if piece:
                chunks.append(piece)
            start = _overlap_start(text, end, overlap, floor=start + 1)
            has_unit = False
        end = unit_end
        has_unit = True

    piece = text[start:end].strip()
    if piece:
        chunks.append(piece)
    return chunks
