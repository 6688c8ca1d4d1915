"""Embedding client wrapper: batching, retry with backoff, output validation."""

from __future__ import annotations

import asyncio
import math
from typing import Awaitable, Callable, List, Optional, TypeVar

from langchain_core.embeddings import Embeddings

from .config import KBSettings
from .exceptions import EmbedError
from .log import get_logger
from .utils import iter_batches

logger = get_logger(__name__)

T = TypeVar("T")


class Embedder:
    """
    Turns text into fixed-length vectors through a LangChain Embeddings client.

    Sync clients are run off the event loop by LangChain's default
    ``aembed_documents`` / ``aembed_query`` implementations.
    """

    def __init__(
        self,
        client: Embeddings,
        batch_size: int = 32,
        max_retries: int = 3,
        base_delay: float = 0.5,
    ):
        self.client = client
        self.batch_size = batch_size
        self.max_retries = max_retries
        self.base_delay = base_delay

    @classmethod
    def from_settings(cls, settings: KBSettings, client: Optional[Embeddings] = None) -> "Embedder":
        return cls(
            client if client is not None else make_embeddings(settings),
            batch_size=settings.batch_size,
            max_retries=settings.max_retries,
        )

    async def _with_retry(self, call: Callable[[], Awaitable[T]]) -> T:
        delay = self.base_delay
        last_exc: Optional[BaseException] = None
        for attempt in range(self.max_retries + 1):
            try:
                return await call()
            except Exception as exc:
                last_exc = exc
                if attempt >= self.max_retries:
                    break
                logger.warning("embed_retry", attempt=attempt + 1, delay=delay, error=str(exc))
                await asyncio.sleep(delay)
                delay *= 2
        raise EmbedError(f"Embedding failed after retries: {last_exc}") from last_exc

    @staticmethod
    def _validate(vectors: List[List[float]]) -> List[List[float]]:
        dim: Optional[int] = None
        cleaned: List[List[float]] = []
        for vector in vectors:
            values = [float(value) for value in vector]
            if not values:
                raise EmbedError("Embedding returned an empty vector.")
            if not all(math.isfinite(value) for value in values):
                raise EmbedError("Embedding returned non-finite values.")
            if dim is None:
                dim = len(values)
            elif len(values) != dim:
                raise EmbedError(f"Embedding returned mixed dimensions: {dim} and {len(values)}")
            cleaned.append(values)
        return cleaned

    async def embed(self, texts: List[str]) -> List[List[float]]:
        """
        Embed texts in batches.

        Raises:
            EmbedError: On malformed input, client failure after retries, or bad output
        """
        if not isinstance(texts, list) or any(not isinstance(text, str) for text in texts):
            raise EmbedError("embed() expects a list of strings.")
        if not texts:
            return []

        vectors: List[List[float]] = []
        for batch in iter_batches(texts, self.batch_size):
            batch_vectors = await self._with_retry(lambda batch=batch: self.client.aembed_documents(batch))
            if len(batch_vectors) != len(batch):
                raise EmbedError("Embedding batch returned mismatched vector count.")
            vectors.extend(batch_vectors)
        return self._validate(vectors)

    async def embed_query(self, text: str) -> List[float]:
        """Embed a single query string."""
        if not isinstance(text, str):
            raise EmbedError("embed_query() expects a string.")
        vector = await self._with_retry(lambda: self.client.aembed_query(text))
        return self._validate([vector])[0]


def make_embeddings(settings: KBSettings) -> Embeddings:
    """
    Build the configured LangChain embeddings client.

    Providers: "ollama" (default), "huggingface" (local sentence-transformers
    model, downloaded on first use) and "fake" (deterministic, offline).
    """
    provider = settings.embed_provider.lower()
    if provider == "ollama":
        from langchain_community.embeddings import OllamaEmbeddings

        return OllamaEmbeddings(model=settings.embed_model, base_url=settings.ollama_base_url)
    if provider == "huggingface":
        from langchain_community.embeddings import HuggingFaceEmbeddings

        return HuggingFaceEmbeddings(model_name=settings.embed_model)
    if provider == "fake":
        from langchain_core.embeddings import DeterministicFakeEmbedding

        return DeterministicFakeEmbedding(size=384)
    raise ValueError(f"Unknown embedding provider: {settings.embed_provider}")
