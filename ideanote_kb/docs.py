"""Build KB documents from raw note text."""

from __future__ import annotations

import re

from .schemas import KBDoc
from .utils import normalize_newlines, now_ms

_HEADING_RE = re.compile(r"^#{1,6}\s+(.+)$")
_LIST_MARKER_RE = re.compile(r"^[-*]\s+")


def extract_title(markdown: str) -> str:
    """
    Extract a title from markdown text.

    The first non-blank line wins: a heading yields its text, any other line
    yields itself with a leading list marker removed. Returns '' for blank text.
    """
    for line in normalize_newlines(markdown).split("\n"):
        stripped = line.strip()
        if not stripped:
            continue
        match = _HEADING_RE.match(stripped)
        if match:
            return match.group(1).strip()
        return _LIST_MARKER_RE.sub("", stripped, count=1).strip()
    return ""


def build_doc(note_id: str, raw_text: str) -> KBDoc:
    """Convert a raw note into a KBDoc, falling back to the id for the title."""
    text = normalize_newlines(raw_text) if isinstance(raw_text, str) else ""
    if not text.strip():
        text = ""
    title = extract_title(text) or note_id
    return KBDoc(id=note_id, title=title, text=text, updated_at=now_ms())
