"""Persisted vector index of chunk embeddings with cosine search."""

from __future__ import annotations

import math
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

import faiss
import numpy as np

from .exceptions import DimensionMismatch
from .schemas import SearchHit, VectorIndexData, VectorItem
from .storage import VECTOR_INDEX_FILE, kb_dir, read_container, write_container


@dataclass
class _Snapshot:
    """One published container and the faiss index built from exactly its items."""
    data: VectorIndexData
    index: Optional[faiss.Index] = None


def _build_index(items: List[VectorItem]) -> faiss.Index:
    matrix = np.array([item.vector for item in items], dtype="float32")
    faiss.normalize_L2(matrix)
    index = faiss.IndexFlatIP(matrix.shape[1])
    index.add(matrix)
    return index


class VectorIndex:
    """
    Vector index store for one workspace, keyed by (id, chunkIndex).

    Search normalizes vectors with faiss.normalize_L2 (zero vectors stay zero)
    and ranks by inner product, i.e. cosine similarity.

    Commits may run in a worker thread while searches run on the event loop.
    Each commit publishes a new snapshot in a single assignment and a search
    works on the one snapshot it read, so faiss positions always refer to the
    items the index was built from.
    """

    def __init__(self, workspace_root: Path):
        self.path = kb_dir(workspace_root) / VECTOR_INDEX_FILE
        self._snapshot: Optional[_Snapshot] = None

    def _current(self) -> _Snapshot:
        snapshot = self._snapshot
        if snapshot is None:
            self.load()
            snapshot = self._snapshot
        return snapshot

    @property
    def data(self) -> VectorIndexData:
        return self._current().data

    @property
    def dimension(self) -> Optional[int]:
        """Dimensionality established by the stored vectors, None when empty."""
        items = self.data.items
        return len(items[0].vector) if items else None

    def load(self) -> VectorIndexData:
        """Read the index from disk; missing or corrupt files give an empty index."""
        data = read_container(self.path, VectorIndexData)
        self._snapshot = _Snapshot(data)
        return data

    def list(self) -> List[VectorItem]:
        return list(self.data.items)

    def ids(self) -> List[str]:
        seen = {}
        for item in self.data.items:
            seen.setdefault(item.id, None)
        return list(seen)

    def items_for(self, note_id: str) -> List[VectorItem]:
        return [item for item in self.data.items if item.id == note_id]

    def _validate(self, note_id: str, items: List[VectorItem], dim: Optional[int]) -> None:
        indexes = sorted(item.chunk_index for item in items)
        if indexes != list(range(len(items))):
            raise ValueError(f"chunk indexes for {note_id} must be contiguous from 0, got {indexes}")
        for item in items:
            if item.id != note_id:
                raise ValueError(f"item id {item.id!r} does not match {note_id!r}")
            if not item.vector:
                raise ValueError(f"empty vector for {note_id}#{item.chunk_index}")
            if not all(math.isfinite(value) for value in item.vector):
                raise ValueError(f"non-finite vector for {note_id}#{item.chunk_index}")
            if dim is None:
                dim = len(item.vector)
            elif len(item.vector) != dim:
                raise DimensionMismatch(dim, len(item.vector), note_id)

    def replace_for_id(self, note_id: str, items: List[VectorItem]) -> None:
        """
        Atomically swap all chunks of note_id for items; persists.

        Raises:
            DimensionMismatch: If any vector disagrees with the index dimensionality
            ValueError: If items are not a well-formed chunk sequence for note_id
        """
        remaining = [item for item in self.data.items if item.id != note_id]
        dim = len(remaining[0].vector) if remaining else None
        self._validate(note_id, items, dim)
        ordered = sorted(items, key=lambda item: item.chunk_index)
        self._commit(remaining + ordered)

    def remove(self, note_id: str) -> bool:
        """Drop all chunks for note_id; persists. Returns True if any existed."""
        items = self.data.items
        remaining = [item for item in items if item.id != note_id]
        if len(remaining) == len(items):
            return False
        self._commit(remaining)
        return True

    def clear(self) -> None:
        self._commit([])

    def _commit(self, items: List[VectorItem]) -> None:
        container = VectorIndexData(items=items)
        write_container(self.path, container)
        self._snapshot = _Snapshot(container)

    def search(self, query_vector: Sequence[float], top_k: int) -> List[SearchHit]:
        """
        Rank stored chunks by cosine similarity to query_vector.

        Returns at most top_k hits, best first; ties go to the lower
        chunkIndex, then the lexicographically smaller id.

        Raises:
            DimensionMismatch: If the query has a different dimensionality
        """
        snapshot = self._current()
        items = snapshot.data.items
        if top_k <= 0 or not items:
            return []

        query = np.array([list(query_vector)], dtype="float32")
        dim = len(items[0].vector)
        if query.shape[1] != dim:
            raise DimensionMismatch(dim, query.shape[1])
        faiss.normalize_L2(query)

        index = snapshot.index
        if index is None:
            index = snapshot.index = _build_index(items)

        scores, positions = index.search(query, len(items))
        ranked = []
        for score, pos in zip(scores[0], positions[0]):
            if pos < 0:
                continue
            item = items[int(pos)]
            value = min(1.0, max(-1.0, float(score)))
            ranked.append((value, item))

        ranked.sort(key=lambda pair: (-round(pair[0], 6), pair[1].chunk_index, pair[1].id))
        return [SearchHit(item=item, score=score) for score, item in ranked[:top_k]]
