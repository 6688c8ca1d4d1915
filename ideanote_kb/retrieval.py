"""Query-time retrieval: embed the question, rank chunks, assemble context."""

from __future__ import annotations

from typing import List, Optional

from .embedder import Embedder
from .log import get_logger
from .schemas import ResultRef, RetrievalResult, SearchHit
from .text_index import TextIndex
from .vector_index import VectorIndex

logger = get_logger(__name__)

# Extra vector candidates considered when lexical blending re-ranks them
CANDIDATE_FACTOR = 4


def format_context(hits: List[SearchHit], cite: bool = True) -> str:
    """Join chunk contents best first, each tagged with its source for citation."""
    parts = []
    for hit in hits:
        content = hit.item.content.strip()
        if cite:
            parts.append(f"[{hit.item.id}#{hit.item.chunk_index}]\n{content}")
        else:
            parts.append(content)
    return "\n\n".join(parts)


class RetrievalEngine:
    """
    Ranks indexed chunks for a query.

    With ``lexical_weight`` w > 0 each vector hit is re-scored as
    ``(1 - w) * cosine + w * bm25_normalized(note)``.
    """

    def __init__(
        self,
        embedder: Embedder,
        vector_index: VectorIndex,
        text_index: Optional[TextIndex] = None,
        lexical_weight: float = 0.0,
        cite: bool = True,
    ):
        if not 0.0 <= lexical_weight <= 1.0:
            raise ValueError("lexical_weight must be within [0, 1]")
        self.embedder = embedder
        self.vector_index = vector_index
        self.text_index = text_index
        self.lexical_weight = lexical_weight
        self.cite = cite

    async def search(self, query: str, top_k: int) -> List[SearchHit]:
        """Top-k chunks for the query, best first."""
        if top_k <= 0 or not query.strip() or not self.vector_index.list():
            return []

        query_vector = await self.embedder.embed_query(query)
        blend = self.lexical_weight > 0 and self.text_index is not None
        candidates = top_k * CANDIDATE_FACTOR if blend else top_k
        hits = self.vector_index.search(query_vector, candidates)
        if not blend:
            return hits

        lexical = self.text_index.lexical_scores(query)
        weight = self.lexical_weight
        blended = [
            SearchHit(
                item=hit.item,
                score=(1 - weight) * hit.score + weight * lexical.get(hit.item.id, 0.0),
            )
            for hit in hits
        ]
        blended.sort(key=lambda hit: (-round(hit.score, 6), hit.item.chunk_index, hit.item.id))
        return blended[:top_k]

    async def answer(self, query: str, top_k: int) -> RetrievalResult:
        """
        Retrieve context for a question.

        An empty index yields empty results and an empty context; deciding
        what to tell the user in that case is up to the caller.

        Raises:
            EmbedError: If the query cannot be embedded
            DimensionMismatch: If the embedder no longer matches the index
        """
        hits = await self.search(query, top_k)
        logger.debug("retrieval_done", query_len=len(query), hits=len(hits))
        return RetrievalResult(
            context=format_context(hits, cite=self.cite),
            results=[
                ResultRef(
                    id=hit.item.id,
                    score=hit.score,
                    chunk_index=hit.item.chunk_index,
                    content=hit.item.content,
                )
                for hit in hits
            ],
        )
