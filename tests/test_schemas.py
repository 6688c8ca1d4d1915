"""Tests for IdeaNote KB schemas."""

import pytest
from pydantic import ValidationError

from ideanote_kb.schemas import (
    AnswerRequest,
    KBDoc,
    NoteRef,
    RebuildSummary,
    TextIndexData,
    VectorIndexData,
    VectorItem,
)


def test_kbdoc_serializes_camel_case():
    """Test KBDoc uses the persisted camelCase keys."""
    doc = KBDoc(id="A", title="Hello", text="# Hello", updated_at=123)
    data = doc.to_json_dict()
    assert data == {"id": "A", "title": "Hello", "text": "# Hello", "updatedAt": 123}
    assert KBDoc.model_validate(data).updated_at == 123


def test_vector_item_creation():
    """Test creating VectorItem from persisted keys."""
    item = VectorItem.model_validate(
        {"id": "A", "chunkIndex": 2, "content": "chunk", "vector": [0.1, 0.2]}
    )
    assert item.chunk_index == 2
    assert item.vector == [0.1, 0.2]


def test_vector_item_rejects_negative_chunk_index():
    """Test chunkIndex must be non-negative."""
    with pytest.raises(ValidationError):
        VectorItem(id="A", chunk_index=-1, content="x", vector=[1.0])


def test_containers_default_version():
    """Test containers default to version 1 and empty lists."""
    assert TextIndexData().model_dump() == {"version": 1, "docs": []}
    assert VectorIndexData().model_dump() == {"version": 1, "items": []}


def test_answer_request_validation():
    """Test AnswerRequest strips the question and rejects blanks."""
    assert AnswerRequest(question="  cats? ", top_k=3).question == "cats?"
    with pytest.raises(ValidationError):
        AnswerRequest(question="   ")
    with pytest.raises(ValidationError):
        AnswerRequest(question="cats", top_k=0)


def test_note_ref_rejects_paths():
    """Test note ids cannot contain path separators."""
    assert NoteRef(id=" A ").id == "A"
    for bad in ["", "..", "a/b", "a\\b"]:
        with pytest.raises(ValidationError):
            NoteRef(id=bad)


def test_rebuild_summary_defaults():
    """Test RebuildSummary with default counters."""
    summary = RebuildSummary(success=True)
    assert summary.indexed == 0
    assert summary.skipped_ids == []
    assert summary.to_json_dict()["skippedIds"] == []
