"""Utility functions for KB indexing."""

from __future__ import annotations

import re
import time
from typing import Iterable, List


def now_ms() -> int:
    """Current wall-clock time in milliseconds since the epoch."""
    return int(time.time() * 1000)


def normalize_newlines(text: str) -> str:
    """Convert CRLF / CR line endings to LF."""
    return text.replace("\r\n", "\n").replace("\r", "\n")


def normalize_text(text: str) -> str:
    """Normalize whitespace in text."""
    return " ".join(text.replace("\u00a0", " ").split())


def shorten(text: str, limit: int = 200) -> str:
    """Truncate text to limit with ellipsis."""
    if len(text) <= limit:
        return text
    return text[:limit].rstrip() + "..."


# Latin words and digits, or single CJK ideographs
_TOKEN_RE = re.compile(r"[a-z0-9]+|[\u3400-\u4dbf\u4e00-\u9fff]")


def tokenize(text: str) -> List[str]:
    """Lowercase word tokens for lexical scoring."""
    return _TOKEN_RE.findall(text.lower())


def iter_batches(items: List, batch_size: int) -> Iterable[List]:
    """Yield batches of items."""
    for start in range(0, len(items), batch_size):
        yield items[start : start + batch_size]
