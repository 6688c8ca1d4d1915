"""Persisted text index: one KBDoc per note, with BM25 lexical scoring."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple

from rank_bm25 import BM25Plus

from .schemas import KBDoc, TextIndexData
from .storage import TEXT_INDEX_FILE, kb_dir, read_container, write_container
from .utils import tokenize

BM25_K1 = 1.5
BM25_B = 0.75


class _Lexicon:
    """BM25 model over one container's docs, tokenized from title and text."""

    def __init__(self, docs: List[KBDoc]):
        self.ids = [doc.id for doc in docs]
        corpus = [tokenize(f"{doc.title}\n{doc.text}") for doc in docs]
        self.vocab: List[Set[str]] = [set(tokens) for tokens in corpus]
        # rank_bm25 divides by the average length
        self.bm25 = BM25Plus(corpus, k1=BM25_K1, b=BM25_B) if any(corpus) else None

    def scores(self, terms: List[str]) -> Dict[str, float]:
        wanted = set(terms)
        matched = [pos for pos, vocab in enumerate(self.vocab) if vocab & wanted]
        if self.bm25 is None or not matched:
            return {}
        raw = self.bm25.get_scores(sorted(wanted))
        return {self.ids[pos]: float(raw[pos]) for pos in matched}


class TextIndex:
    """
    Text index store for one workspace.

    Mutations rewrite the whole file; callers serialize them (IndexManager
    holds the workspace lock).
    """

    def __init__(self, workspace_root: Path):
        self.path = kb_dir(workspace_root) / TEXT_INDEX_FILE
        self._data: Optional[TextIndexData] = None
        self._lexicon: Optional[Tuple[TextIndexData, _Lexicon]] = None

    @property
    def data(self) -> TextIndexData:
        if self._data is None:
            self.load()
        return self._data

    def load(self) -> TextIndexData:
        """
        Read the index from disk; missing or corrupt files give an empty index.

        Repeated ids collapse to their last entry.
        """
        data = read_container(self.path, TextIndexData)
        latest: Dict[str, KBDoc] = {}
        for doc in data.docs:
            latest[doc.id] = doc
        if len(latest) != len(data.docs):
            data = TextIndexData(version=data.version, docs=list(latest.values()))
        self._data = data
        return data

    def list(self) -> List[KBDoc]:
        return list(self.data.docs)

    def ids(self) -> List[str]:
        return [doc.id for doc in self.data.docs]

    def get(self, note_id: str) -> Optional[KBDoc]:
        for doc in self.data.docs:
            if doc.id == note_id:
                return doc
        return None

    def upsert(self, doc: KBDoc) -> None:
        """Replace the entry with the same id, or append; persists."""
        docs = list(self.data.docs)
        for pos, existing in enumerate(docs):
            if existing.id == doc.id:
                docs[pos] = doc
                break
        else:
            docs.append(doc)
        self._commit(docs)

    def remove(self, note_id: str) -> bool:
        """Drop the entry for note_id; persists. Returns True if it existed."""
        docs = [doc for doc in self.data.docs if doc.id != note_id]
        if len(docs) == len(self.data.docs):
            return False
        self._commit(docs)
        return True

    def clear(self) -> None:
        self._commit([])

    def _commit(self, docs: List[KBDoc]) -> None:
        container = TextIndexData(docs=docs)
        write_container(self.path, container)
        self._data = container

    def _current_lexicon(self) -> _Lexicon:
        data = self.data
        cached = self._lexicon
        if cached is None or cached[0] is not data:
            cached = (data, _Lexicon(data.docs))
            self._lexicon = cached
        return cached[1]

    def bm25_scores(self, query: str) -> Dict[str, float]:
        """BM25 score per note id for notes sharing at least one query term."""
        terms = tokenize(query)
        if not terms or not self.data.docs:
            return {}
        return self._current_lexicon().scores(terms)

    def lexical_scores(self, query: str) -> Dict[str, float]:
        """BM25 scores scaled to [0, 1] by the best match."""
        scores = self.bm25_scores(query)
        if not scores:
            return {}
        best = max(scores.values())
        if best <= 0:
            return {}
        return {note_id: score / best for note_id, score in scores.items()}

    def search(self, query: str, top_k: int = 10) -> List[Tuple[KBDoc, float]]:
        """Lexical search over titles and text, best first, ties by id."""
        scores = self.bm25_scores(query)
        ranked = sorted(scores.items(), key=lambda pair: (-pair[1], pair[0]))[:top_k]
        return [(self.get(note_id), score) for note_id, score in ranked]
