"""
UI-facing knowledge-base service.

One KBService lives for the lifetime of the app. Opening a workspace builds a
fresh IndexManager for it; switching workspaces closes the previous manager,
which discards any rebuild or update still running against the old one.

Every method here is safe to call from the UI layer: query methods return
response envelopes instead of raising, and the save/delete/rename hooks only
queue background work.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import AsyncIterator, List, Optional, Tuple

from langchain_core.embeddings import Embeddings
from langchain_core.language_models.chat_models import BaseChatModel
from pydantic import ValidationError

from .composer import AnswerComposer, make_chat_model
from .config import KBSettings
from .embedder import Embedder
from .exceptions import IndexIOError, KBError, WorkspaceError
from .log import get_logger
from .manager import IndexManager
from .retrieval import RetrievalEngine
from .schemas import AnswerRequest, AnswerResponse, NoteMatch, RebuildSummary, RetrievalResult, StreamEvent
from .storage import ensure_writable, kb_dir
from .utils import normalize_text, shorten

logger = get_logger(__name__)


def _validation_message(exc: ValidationError) -> str:
    return "; ".join(error["msg"] for error in exc.errors())


class KBService:
    """
    Knowledge-base entry point for the editor.

    Args:
        settings: KB settings (defaults read from the environment)
        embeddings: LangChain embeddings client; built from settings if omitted
        chat_model: LangChain chat model for answers; built from settings if omitted
    """

    def __init__(
        self,
        settings: Optional[KBSettings] = None,
        embeddings: Optional[Embeddings] = None,
        chat_model: Optional[BaseChatModel] = None,
    ):
        self.settings = settings or KBSettings()
        self._embeddings = embeddings
        self._chat_model = chat_model
        self._embedder: Optional[Embedder] = None
        self._composer: Optional[AnswerComposer] = None
        self.manager: Optional[IndexManager] = None
        self.workspace: Optional[Path] = None

    @property
    def embedder(self) -> Embedder:
        if self._embedder is None:
            self._embedder = Embedder.from_settings(self.settings, self._embeddings)
        return self._embedder

    @property
    def composer(self) -> AnswerComposer:
        if self._composer is None:
            model = self._chat_model if self._chat_model is not None else make_chat_model(self.settings)
            self._composer = AnswerComposer(model)
        return self._composer

    # ------------------------------------------------------------------
    # workspace lifecycle

    async def open_workspace(self, root: Path, rebuild: bool = False) -> Optional[RebuildSummary]:
        """
        Make root the active workspace.

        Raises:
            WorkspaceError: If root is missing or its .kb directory is not writable
        """
        root = Path(root).expanduser().resolve()
        if not root.is_dir():
            raise WorkspaceError(f"Workspace not found: {root}")
        try:
            await asyncio.to_thread(ensure_writable, root)
        except OSError as exc:
            raise WorkspaceError(f"Index directory is not writable: {kb_dir(root)} ({exc})") from exc

        await self.close_workspace()

        manager = IndexManager(root, self.embedder, self.settings)
        try:
            await asyncio.to_thread(manager.text_index.load)
            await asyncio.to_thread(manager.vector_index.load)
        except IndexIOError as exc:
            raise WorkspaceError(f"Cannot read index files in {kb_dir(root)}: {exc}") from exc

        self.manager = manager
        self.workspace = root
        logger.info(
            "workspace_opened",
            workspace=str(root),
            docs=len(manager.text_index.list()),
            chunks=len(manager.vector_index.list()),
        )
        if rebuild:
            return await self.rebuild()
        return None

    async def close_workspace(self) -> None:
        manager, self.manager = self.manager, None
        self.workspace = None
        if manager is not None:
            await manager.close()

    def _require_manager(self) -> IndexManager:
        if self.manager is None:
            raise WorkspaceError("No workspace is open.")
        return self.manager

    # ------------------------------------------------------------------
    # queries

    def retrieval_engine(self) -> RetrievalEngine:
        manager = self._require_manager()
        return RetrievalEngine(
            self.embedder,
            manager.vector_index,
            manager.text_index,
            lexical_weight=self.settings.lexical_weight,
        )

    async def answer(self, question: str, top_k: Optional[int] = None) -> AnswerResponse:
        """Retrieve context and citations for a question (``kb.answer``)."""
        try:
            request = AnswerRequest(question=question, top_k=self.settings.top_k if top_k is None else top_k)
        except ValidationError as exc:
            return AnswerResponse(success=False, error=_validation_message(exc))

        try:
            result = await self.retrieval_engine().answer(request.question, request.top_k)
        except (KBError, ValueError, OSError) as exc:
            logger.warning("answer_failed", question=shorten(normalize_text(request.question), 80), error=str(exc))
            return AnswerResponse(success=False, error=str(exc))
        return AnswerResponse(success=True, context=result.context, results=result.results)

    async def ask(
        self, question: str, top_k: Optional[int] = None
    ) -> Tuple[AnswerResponse, AsyncIterator[StreamEvent]]:
        """
        Retrieve context and start streaming the answer.

        Returns the retrieval response (for citations) and the answer stream.
        A failed retrieval yields a stream with a single ``error`` event.
        """
        response = await self.answer(question, top_k)
        if not response.success:
            return response, self._error_stream(response.error or "retrieval failed")
        retrieval = RetrievalResult(context=response.context or "", results=response.results or [])
        return response, self.composer.stream(question.strip(), retrieval)

    @staticmethod
    async def _error_stream(message: str) -> AsyncIterator[StreamEvent]:
        yield StreamEvent(type="error", error=message)

    def search(self, query: str, top_k: int = 10) -> List[NoteMatch]:
        """Lexical note search over titles and text; [] when no workspace is open."""
        manager = self.manager
        if manager is None:
            return []
        return [
            NoteMatch(id=doc.id, title=doc.title, score=score)
            for doc, score in manager.text_index.search(query, top_k)
        ]

    # ------------------------------------------------------------------
    # indexing

    async def rebuild(self, reset: bool = False) -> RebuildSummary:
        """Re-index every note of the workspace (``kb.rebuild``)."""
        try:
            manager = self._require_manager()
        except WorkspaceError as exc:
            return RebuildSummary(success=False, error=str(exc))
        return await manager.rebuild_all(reset=reset)

    def note_saved(self, note_id: str) -> Optional[asyncio.Task]:
        """Queue re-indexing after a save; never raises."""
        try:
            return self._require_manager().schedule_update(note_id)
        except (WorkspaceError, ValueError, RuntimeError) as exc:
            logger.warning("index_update_not_scheduled", note_id=note_id, error=str(exc))
            return None

    def note_deleted(self, note_id: str) -> Optional[asyncio.Task]:
        """Queue removal after a delete; never raises."""
        try:
            return self._require_manager().schedule_delete(note_id)
        except (WorkspaceError, ValueError, RuntimeError) as exc:
            logger.warning("index_delete_not_scheduled", note_id=note_id, error=str(exc))
            return None

    def note_renamed(self, old_id: str, new_id: str) -> None:
        """A rename drops the old id and indexes the new one."""
        if old_id == new_id:
            return
        self.note_deleted(old_id)
        self.note_saved(new_id)

    async def drain(self) -> None:
        """Wait for queued index work of the active workspace."""
        if self.manager is not None:
            await self.manager.drain()

    async def close(self) -> None:
        await self.close_workspace()
