"""IdeaNote KB - local knowledge-base indexing and retrieval for notes."""

from .chunker import chunk_text
from .composer import AnswerComposer
from .config import KBSettings
from .docs import build_doc, extract_title
from .embedder import Embedder
from .manager import IndexManager
from .retrieval import RetrievalEngine
from .schemas import AnswerResponse, KBDoc, RebuildSummary, StreamEvent, VectorItem
from .service import KBService
from .text_index import TextIndex
from .vector_index import VectorIndex

__version__ = "0.1.0"

__all__ = [
    "build_doc",
    "extract_title",
    "chunk_text",
    "KBSettings",
    "Embedder",
    "TextIndex",
    "VectorIndex",
    "IndexManager",
    "RetrievalEngine",
    "AnswerComposer",
    "KBService",
    "KBDoc",
    "VectorItem",
    "AnswerResponse",
    "RebuildSummary",
    "StreamEvent",
]
