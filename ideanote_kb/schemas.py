"""Data schemas for the IdeaNote knowledge base."""

from __future__ import annotations

import re
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


CURRENT_VERSION = 1

_NOTE_ID_RE = re.compile(r"^[^/\\\x00]+$")


class _CamelModel(BaseModel):
    """Models persisted or sent to the UI with camelCase keys."""
    model_config = ConfigDict(populate_by_name=True)

    def to_json_dict(self) -> dict:
        return self.model_dump(by_alias=True)


class KBDoc(_CamelModel):
    """Normalized record of one note used for lexical indexing and titles."""
    id: str
    title: str
    text: str
    updated_at: int = Field(alias="updatedAt")


class TextIndexData(BaseModel):
    """Persisted text index container."""
    version: int = CURRENT_VERSION
    docs: List[KBDoc] = Field(default_factory=list)


class VectorItem(_CamelModel):
    """One chunk's embedding plus its source note id and position."""
    id: str
    chunk_index: int = Field(alias="chunkIndex", ge=0)
    content: str
    vector: List[float]


class VectorIndexData(BaseModel):
    """Persisted vector index container."""
    version: int = CURRENT_VERSION
    items: List[VectorItem] = Field(default_factory=list)


class SearchHit(BaseModel):
    """A vector index item with its similarity score."""
    item: VectorItem
    score: float


class ResultRef(_CamelModel):
    """Citation entry returned to the UI."""
    id: str
    score: float
    chunk_index: int = Field(default=0, alias="chunkIndex")
    content: str = ""


class RetrievalResult(BaseModel):
    """Assembled context plus ranked citations for one query."""
    context: str = ""
    results: List[ResultRef] = Field(default_factory=list)


class AnswerRequest(BaseModel):
    """Validated `kb.answer` request."""
    question: str
    top_k: int = Field(default=4, ge=1, le=50)

    @field_validator("question")
    @classmethod
    def _question_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("question must not be empty")
        return value


class AnswerResponse(BaseModel):
    """`kb.answer` response envelope."""
    success: bool
    context: Optional[str] = None
    results: Optional[List[ResultRef]] = None
    error: Optional[str] = None


class RebuildSummary(_CamelModel):
    """Outcome of a full index rebuild."""
    success: bool
    indexed: int = 0
    skipped: int = 0
    unchanged: int = 0
    removed: int = 0
    chunks: int = 0
    skipped_ids: List[str] = Field(default_factory=list, alias="skippedIds")
    error: Optional[str] = None


class NoteRef(BaseModel):
    """A note id crossing the boundary from the editor."""
    id: str

    @field_validator("id")
    @classmethod
    def _valid_id(cls, value: str) -> str:
        value = value.strip()
        if not value or value in (".", "..") or not _NOTE_ID_RE.match(value):
            raise ValueError(f"invalid note id: {value!r}")
        return value


class StreamEvent(BaseModel):
    """One step of a streamed answer."""
    type: Literal["delta", "done", "error"]
    text: str = ""
    error: Optional[str] = None


class NoteMatch(BaseModel):
    """Lexical note search hit."""
    id: str
    title: str
    score: float
