"""Tests for building KB documents from notes."""

import time

import pytest

from ideanote_kb.docs import build_doc, extract_title


@pytest.mark.parametrize(
    "text, title",
    [
        ("# Hello\nWorld", "Hello"),
        ("\n\n  ### Deep heading  \nbody", "Deep heading"),
        ("###### Six", "Six"),
        ("####### Seven", "####### Seven"),
        ("- list item\nmore", "list item"),
        ("* starred\n", "starred"),
        ("Plain first line\n# Later heading", "Plain first line"),
        ("#hashtag", "#hashtag"),
    ],
)
def test_extract_title(text, title):
    """Test the first non-blank line decides the title."""
    assert extract_title(text) == title


def test_extract_title_blank():
    """Test blank text has no title."""
    assert extract_title("") == ""
    assert extract_title("  \n\t\n") == ""


def test_build_doc_falls_back_to_id():
    """Test blank notes use the id as title and keep empty text."""
    doc = build_doc("Untitled", "   \n  ")
    assert doc.title == "Untitled"
    assert doc.text == ""


def test_build_doc_fields():
    """Test build_doc keeps text and stamps the build time."""
    before = int(time.time() * 1000)
    doc = build_doc("A", "# Hello\r\nWorld content about cats.")
    after = int(time.time() * 1000)
    assert doc.id == "A"
    assert doc.title == "Hello"
    assert doc.text == "# Hello\nWorld content about cats."
    assert before <= doc.updated_at <= after


def test_build_doc_non_string():
    """Test non-string input is treated as empty."""
    doc = build_doc("X", None)
    assert doc.text == ""
    assert doc.title == "X"
