"""Shared fixtures for IdeaNote KB tests."""

import asyncio
from pathlib import Path
from typing import List

import pytest
from langchain_core.embeddings import Embeddings

from ideanote_kb.config import KBSettings
from ideanote_kb.embedder import Embedder
from ideanote_kb.manager import IndexManager
from ideanote_kb.utils import tokenize

VOCAB = [
    "hello", "world", "content", "about", "cats", "goodbye", "dogs",
    "tell", "me", "note", "alpha", "beta", "gamma", "delta",
]


class VocabEmbeddings(Embeddings):
    """Bag-of-words vectors over a fixed vocabulary; unknown words are ignored."""

    def __init__(self, vocab: List[str] = VOCAB):
        self.vocab = list(vocab)
        self.calls = 0

    def _vector(self, text: str) -> List[float]:
        tokens = tokenize(text)
        return [float(tokens.count(word)) for word in self.vocab]

    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        self.calls += 1
        return [self._vector(text) for text in texts]

    def embed_query(self, text: str) -> List[float]:
        return self._vector(text)


class FailingEmbeddings(VocabEmbeddings):
    """Fails for any text containing a marker word."""

    def __init__(self, marker: str = "explode"):
        super().__init__()
        self.marker = marker

    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        if any(self.marker in text for text in texts):
            raise RuntimeError("embedding service unavailable")
        return super().embed_documents(texts)


class SlowEmbeddings(VocabEmbeddings):
    """Async embeddings that wait for a release event before answering."""

    def __init__(self):
        super().__init__()
        self.release = asyncio.Event()
        self.started = asyncio.Event()

    async def aembed_documents(self, texts: List[str]) -> List[List[float]]:
        self.started.set()
        await self.release.wait()
        return self.embed_documents(texts)


def write_note(root: Path, note_id: str, text: str) -> Path:
    path = root / f"{note_id}.md"
    path.write_text(text, encoding="utf-8")
    return path


@pytest.fixture
def workspace(tmp_path):
    root = tmp_path / "workspace"
    root.mkdir()
    return root


@pytest.fixture
def settings():
    return KBSettings(
        chunk_size=200,
        chunk_overlap=20,
        concurrency=2,
        note_timeout=5.0,
        max_retries=0,
        top_k=4,
    )


@pytest.fixture
def embeddings():
    return VocabEmbeddings()


@pytest.fixture
def embedder(embeddings):
    return Embedder(embeddings, batch_size=8, max_retries=0, base_delay=0.0)


@pytest.fixture
def manager(workspace, embedder, settings):
    return IndexManager(workspace, embedder, settings)
