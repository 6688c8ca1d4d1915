"""Tests for splitting note text into chunks."""

import pytest

from ideanote_kb.chunker import chunk_text


def _words(start: int, count: int) -> str:
    return " ".join(f"word{n}" for n in range(start, start + count))


def _covered(text: str, chunks):
    """Positions of text covered by the chunks, located in order."""
    covered = set()
    search_from = 0
    for chunk in chunks:
        pos = text.find(chunk, search_from)
        assert pos >= 0, f"chunk not found in order: {chunk[:40]!r}"
        covered.update(range(pos, pos + len(chunk)))
        search_from = pos + 1
    return covered


def test_empty_text_has_no_chunks():
    """Test blank text yields zero chunks."""
    assert chunk_text("") == []
    assert chunk_text("  \n\n\t ") == []


def test_short_text_is_one_chunk():
    """Test text under the limit yields exactly one chunk."""
    text = "# Hello\nWorld content about cats."
    assert chunk_text(text, max_chars=500, overlap=50) == [text]


def test_no_chunk_exceeds_max():
    """Test every chunk respects max_chars."""
    text = "\n\n".join(
        f"Paragraph {p}. " + " ".join(f"Sentence {p}-{s} has some words in it." for s in range(12))
        for p in range(8)
    )
    chunks = chunk_text(text, max_chars=120, overlap=20)
    assert len(chunks) > 1
    assert all(len(chunk) <= 120 for chunk in chunks)


def test_chunks_cover_all_text():
    """Test the chunks leave no gaps in the source text."""
    text = "\n\n".join(
        ". ".join(_words(p * 100 + s * 10, 8) for s in range(5)) + "." for p in range(6)
    )
    chunks = chunk_text(text, max_chars=150, overlap=30)
    covered = _covered(text, chunks)
    missing = [i for i, ch in enumerate(text) if not ch.isspace() and i not in covered]
    assert missing == []


def test_consecutive_chunks_overlap():
    """Test each chunk starts inside the previous one."""
    text = ". ".join(_words(n * 10, 10) for n in range(20)) + "."
    chunks = chunk_text(text, max_chars=100, overlap=25)
    positions = []
    search_from = 0
    for chunk in chunks:
        pos = text.find(chunk, search_from)
        positions.append((pos, pos + len(chunk)))
        search_from = pos + 1
    for (start_a, end_a), (start_b, _) in zip(positions, positions[1:]):
        assert start_a < start_b < end_a


def test_fixed_width_fallback_without_punctuation():
    """Test text without boundaries is split into fixed windows with exact overlap."""
    text = "abcdefghij" * 100
    chunks = chunk_text(text, max_chars=200, overlap=20)
    assert len(chunks) > 1
    assert all(len(chunk) <= 200 for chunk in chunks)
    for current, following in zip(chunks, chunks[1:]):
        assert current[-20:] == following[:20]
    assert "".join([chunks[0]] + [chunk[20:] for chunk in chunks[1:]]) == text


def test_paragraph_boundaries_preferred():
    """Test paragraphs that fit are kept whole."""
    first = _words(0, 20) + "."
    second = _words(100, 10) + "."
    text = f"{first}\n\n{second}"
    chunks = chunk_text(text, max_chars=len(first) + 40, overlap=15)
    assert chunks[0] == first
    assert chunks[-1].endswith(second)


def test_heading_starts_new_chunk():
    """Test a markdown heading opens a new section."""
    text = "# Intro\n" + _words(0, 15) + "\n# Details\n" + _words(50, 15)
    chunks = chunk_text(text, max_chars=110, overlap=0)
    assert chunks[0].startswith("# Intro")
    assert any(chunk.startswith("# Details") for chunk in chunks)


def test_cjk_sentences():
    """Test CJK punctuation counts as a sentence boundary."""
    text = "".join(f"这是第{n}句话，内容关于知识库索引。" for n in range(40))
    chunks = chunk_text(text, max_chars=60, overlap=10)
    assert len(chunks) > 1
    assert all(len(chunk) <= 60 for chunk in chunks)
    assert all(chunk.endswith("。") for chunk in chunks)


def test_deterministic():
    """Test the same input always gives the same chunks."""
    text = ". ".join(_words(n * 7, 7) for n in range(30))
    assert chunk_text(text, 90, 15) == chunk_text(text, 90, 15)


@pytest.mark.parametrize("max_chars, overlap", [(0, 0), (100, 100), (100, 150), (100, -1)])
def test_invalid_parameters(max_chars, overlap):
    """Test invalid chunk parameters are rejected."""
    with pytest.raises(ValueError):
        chunk_text("some text", max_chars=max_chars, overlap=overlap)
