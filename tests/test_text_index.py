"""Tests for the persisted text index."""

import json

from ideanote_kb.docs import build_doc
from ideanote_kb.schemas import KBDoc
from ideanote_kb.storage import kb_dir
from ideanote_kb.text_index import TextIndex


def _doc(note_id, text, updated_at=1):
    return KBDoc(id=note_id, title=note_id, text=text, updated_at=updated_at)


def test_load_missing_file_is_empty(workspace):
    """Test a workspace without an index loads as empty."""
    data = TextIndex(workspace).load()
    assert data.version == 1
    assert data.docs == []


def test_load_corrupt_file_is_empty(workspace):
    """Test malformed JSON resets to an empty index instead of failing."""
    path = kb_dir(workspace) / "text_index.json"
    path.parent.mkdir(parents=True)
    path.write_text("{not json", encoding="utf-8")
    assert TextIndex(workspace).load().docs == []


def test_load_unknown_version_is_empty(workspace):
    """Test a future file version is not misread."""
    path = kb_dir(workspace) / "text_index.json"
    path.parent.mkdir(parents=True)
    path.write_text(json.dumps({"version": 99, "docs": []}), encoding="utf-8")
    assert TextIndex(workspace).load().docs == []


def test_upsert_persists_camel_case(workspace):
    """Test upsert writes the documented JSON layout."""
    index = TextIndex(workspace)
    index.upsert(build_doc("A", "# Hello\nWorld"))
    raw = json.loads((kb_dir(workspace) / "text_index.json").read_text(encoding="utf-8"))
    assert raw["version"] == 1
    assert raw["docs"][0]["id"] == "A"
    assert raw["docs"][0]["title"] == "Hello"
    assert isinstance(raw["docs"][0]["updatedAt"], int)


def test_upsert_replaces_same_id(workspace):
    """Test last write wins for the same id."""
    index = TextIndex(workspace)
    index.upsert(_doc("A", "first"))
    index.upsert(_doc("B", "other"))
    index.upsert(_doc("A", "second", updated_at=2))
    assert [doc.id for doc in index.list()] == ["A", "B"]
    assert index.get("A").text == "second"

    reloaded = TextIndex(workspace)
    assert reloaded.get("A").text == "second"
    assert len(reloaded.list()) == 2


def test_remove(workspace):
    """Test remove drops the entry and persists."""
    index = TextIndex(workspace)
    index.upsert(_doc("A", "x"))
    assert index.remove("A") is True
    assert index.remove("A") is False
    assert TextIndex(workspace).list() == []


def test_no_temp_files_left(workspace):
    """Test atomic writes clean up after themselves."""
    index = TextIndex(workspace)
    for n in range(3):
        index.upsert(_doc(f"N{n}", "text"))
    assert sorted(p.name for p in kb_dir(workspace).iterdir()) == ["text_index.json"]


def test_search_ranks_by_bm25(workspace):
    """Test lexical search prefers notes mentioning the query terms more."""
    index = TextIndex(workspace)
    index.upsert(_doc("cats", "cats cats and more cats"))
    index.upsert(_doc("mixed", "cats and dogs"))
    index.upsert(_doc("dogs", "dogs only here"))
    results = index.search("cats", top_k=5)
    assert [doc.id for doc, _ in results] == ["cats", "mixed"]
    assert results[0][1] > results[1][1] > 0


def test_search_matches_titles(workspace):
    """Test titles take part in lexical matching."""
    index = TextIndex(workspace)
    index.upsert(KBDoc(id="n1", title="Gardening", text="tomatoes", updated_at=1))
    index.upsert(KBDoc(id="n2", title="Cooking", text="pasta", updated_at=1))
    assert [doc.id for doc, _ in index.search("gardening")] == ["n1"]


def test_lexical_scores_normalized(workspace):
    """Test blended lexical scores are scaled to [0, 1]."""
    index = TextIndex(workspace)
    index.upsert(_doc("a", "alpha beta"))
    index.upsert(_doc("b", "alpha alpha alpha beta"))
    index.upsert(_doc("c", "gamma"))
    scores = index.lexical_scores("alpha")
    assert max(scores.values()) == 1.0
    assert all(0.0 < score <= 1.0 for score in scores.values())
    assert "c" not in scores
    assert index.lexical_scores("") == {}


def test_search_two_notes_rare_word(workspace):
    """Test a word found in one of two notes still scores above zero."""
    index = TextIndex(workspace)
    index.upsert(_doc("a", "apples and pears"))
    index.upsert(_doc("b", "pears only"))
    results = index.search("apples")
    assert [doc.id for doc, _ in results] == ["a"]
    assert results[0][1] > 0


def test_search_sees_latest_commit(workspace):
    """Test lexical scoring follows upserts and removals."""
    index = TextIndex(workspace)
    index.upsert(_doc("a", "alpha"))
    assert [doc.id for doc, _ in index.search("beta")] == []
    index.upsert(_doc("b", "beta"))
    assert [doc.id for doc, _ in index.search("beta")] == ["b"]
    index.remove("b")
    assert index.search("beta") == []


def test_search_ignores_blank_notes(workspace):
    """Test notes without tokens neither match nor break scoring."""
    index = TextIndex(workspace)
    index.upsert(KBDoc(id="x", title="", text="", updated_at=1))
    assert index.search("anything") == []
    index.upsert(_doc("y", "anything goes"))
    assert [doc.id for doc, _ in index.search("anything")] == ["y"]


def test_load_collapses_duplicate_ids(workspace):
    """Test a file listing an id twice loads with the last entry only."""
    path = kb_dir(workspace) / "text_index.json"
    path.parent.mkdir(parents=True)
    docs = [
        {"id": "A", "title": "A", "text": "old", "updatedAt": 1},
        {"id": "B", "title": "B", "text": "other", "updatedAt": 1},
        {"id": "A", "title": "A", "text": "new", "updatedAt": 2},
    ]
    path.write_text(json.dumps({"version": 1, "docs": docs}), encoding="utf-8")

    index = TextIndex(workspace)
    assert index.ids() == ["A", "B"]
    assert index.get("A").text == "new"
    assert index.remove("A") is True
    assert index.get("A") is None
