"""
Keep the text and vector indexes of one workspace in step with its notes.

Every note goes through the same pipeline: read -> build_doc -> chunk_text ->
embed -> commit. A commit swaps the note's chunks in the vector index and its
KBDoc in the text index under the workspace lock, so readers only ever see a
note fully before or fully after an update.

Two guards keep stale work out of the indexes:

- tickets: each update/delete of an id takes a new ticket; a commit carrying
  an older ticket than the newest one issued for that id is dropped.
- generations: ``close()`` advances the generation; work started under an
  older generation is dropped at commit time.
"""

from __future__ import annotations

import asyncio
import itertools
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Set

from tqdm import tqdm

from .chunker import chunk_text
from .config import KBSettings
from .docs import build_doc
from .embedder import Embedder
from .exceptions import DimensionMismatch, EmbedError, IndexIOError, NoteReadError
from .log import get_logger
from .notes import WorkspaceNotes
from .schemas import KBDoc, RebuildSummary, VectorItem
from .text_index import TextIndex
from .vector_index import VectorIndex

logger = get_logger(__name__)


@dataclass
class IndexOutcome:
    """Result of running the pipeline for one note."""
    note_id: str
    status: str  # indexed | unchanged | skipped | stale | failed
    chunks: int = 0
    reason: str = ""
    error: Optional[BaseException] = None


@dataclass
class _Prepared:
    doc: KBDoc
    items: List[VectorItem] = field(default_factory=list)
    unchanged: bool = False


class IndexManager:
    """
    Index orchestration for one open workspace.

    Args:
        workspace_root: Workspace directory; indexes live in ``<root>/.kb``
        embedder: Embedder used for every chunk of every note
        settings: Chunking, concurrency and timeout settings
        notes: Filesystem collaborator (defaults to WorkspaceNotes(root))
    """

    def __init__(
        self,
        workspace_root: Path,
        embedder: Embedder,
        settings: Optional[KBSettings] = None,
        notes: Optional[WorkspaceNotes] = None,
    ):
        self.root = Path(workspace_root)
        self.settings = settings or KBSettings()
        self.embedder = embedder
        self.notes = notes or WorkspaceNotes(self.root)
        self.text_index = TextIndex(self.root)
        self.vector_index = VectorIndex(self.root)

        self._lock = asyncio.Lock()
        self._generation = 0
        self._tickets: Dict[str, int] = {}
        self._ticket_counter = itertools.count(1)
        self._tasks: Set[asyncio.Task] = set()
        # shared by rebuilds and background updates
        self._slots = asyncio.Semaphore(self.settings.concurrency)
        self._closed = False
        self.log = logger.bind(workspace=str(self.root))

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        """Number of background index tasks not yet finished."""
        return len(self._tasks)

    # ------------------------------------------------------------------
    # pipeline

    def _issue_ticket(self, note_id: str) -> int:
        ticket = next(self._ticket_counter)
        self._tickets[note_id] = ticket
        return ticket

    def _is_current(self, note_id: str, ticket: int, generation: int) -> bool:
        return generation == self._generation and self._tickets.get(note_id, 0) <= ticket

    async def _prepare(self, note_id: str, skip_unchanged: bool) -> _Prepared:
        raw = await asyncio.to_thread(self.notes.read, note_id)
        doc = build_doc(note_id, raw)
        chunks = chunk_text(doc.text, self.settings.chunk_size, self.settings.chunk_overlap)

        if skip_unchanged:
            existing = self.text_index.get(note_id)
            stored = self.vector_index.items_for(note_id)
            if (
                existing is not None
                and existing.text == doc.text
                and existing.title == doc.title
                and [item.content for item in stored] == chunks
            ):
                return _Prepared(doc=existing, unchanged=True)

        vectors = await self.embedder.embed(chunks) if chunks else []
        items = [
            VectorItem(id=note_id, chunk_index=index, content=chunk, vector=vector)
            for index, (chunk, vector) in enumerate(zip(chunks, vectors))
        ]
        return _Prepared(doc=doc, items=items)

    def _commit(self, prepared: _Prepared) -> None:
        note_id = prepared.doc.id
        previous = self.vector_index.items_for(note_id)
        self.vector_index.replace_for_id(note_id, prepared.items)
        try:
            self.text_index.upsert(prepared.doc)
        except IndexIOError:
            # keep both indexes describing the same version of the note
            if previous:
                self.vector_index.replace_for_id(note_id, previous)
            else:
                self.vector_index.remove(note_id)
            raise

    def _remove(self, note_id: str) -> bool:
        removed_vectors = self.vector_index.remove(note_id)
        removed_doc = self.text_index.remove(note_id)
        return removed_vectors or removed_doc

    async def _index_one(
        self,
        note_id: str,
        ticket: int,
        generation: int,
        skip_unchanged: bool = False,
    ) -> IndexOutcome:
        """Run the pipeline for one note; failures local to the note become outcomes."""
        log = self.log.bind(note_id=note_id)
        try:
            prepared = await asyncio.wait_for(
                self._prepare(note_id, skip_unchanged),
                timeout=self.settings.note_timeout,
            )
        except NoteReadError as exc:
            log.warning("note_skipped", reason=exc.reason)
            return IndexOutcome(note_id, "skipped", reason=exc.reason)
        except EmbedError as exc:
            log.warning("note_skipped", reason="embed_failed", error=str(exc))
            return IndexOutcome(note_id, "skipped", reason=f"embed_failed: {exc}")
        except asyncio.TimeoutError:
            log.warning("note_skipped", reason="timeout", timeout=self.settings.note_timeout)
            return IndexOutcome(note_id, "skipped", reason="timeout")

        if prepared.unchanged:
            return IndexOutcome(note_id, "unchanged", chunks=len(self.vector_index.items_for(note_id)))

        async with self._lock:
            if not self._is_current(note_id, ticket, generation):
                log.debug("note_result_discarded", ticket=ticket, generation=generation)
                return IndexOutcome(note_id, "stale")
            try:
                await asyncio.to_thread(self._commit, prepared)
            except (DimensionMismatch, ValueError) as exc:
                log.warning("note_skipped", reason="invalid_vectors", error=str(exc))
                return IndexOutcome(note_id, "skipped", reason=f"invalid_vectors: {exc}")
            except IndexIOError as exc:
                log.error("index_write_failed", path=exc.path, error=str(exc.cause))
                return IndexOutcome(note_id, "failed", reason=str(exc), error=exc)

        log.debug("note_indexed", chunks=len(prepared.items))
        return IndexOutcome(note_id, "indexed", chunks=len(prepared.items))

    # ------------------------------------------------------------------
    # public operations

    async def rebuild_all(self, note_ids: Optional[List[str]] = None, reset: bool = False) -> RebuildSummary:
        """
        Re-derive both indexes from the notes of the workspace.

        Notes that cannot be read or embedded are skipped and reported; the
        rebuild itself only fails on index write errors or a workspace switch.

        Args:
            note_ids: Notes to index (defaults to every note in the workspace)
            reset: Drop both indexes first, e.g. after changing embedding model
        """
        start_time = time.perf_counter()
        generation = self._generation

        if note_ids is None:
            note_ids = await asyncio.to_thread(self.notes.list_ids)

        valid_ids: List[str] = []
        skipped: List[IndexOutcome] = []
        for note_id in dict.fromkeys(note_ids):
            try:
                valid_ids.append(WorkspaceNotes.validate_id(note_id))
            except ValueError:
                self.log.warning("note_skipped", note_id=note_id, reason="invalid_id")
                skipped.append(IndexOutcome(str(note_id), "skipped", reason="invalid_id"))

        self.log.info("rebuild_started", notes=len(valid_ids), reset=reset)

        removed = 0
        try:
            async with self._lock:
                if generation != self._generation:
                    return RebuildSummary(success=False, error="workspace changed during rebuild")
                if reset:
                    await asyncio.to_thread(self.vector_index.clear)
                    await asyncio.to_thread(self.text_index.clear)
                wanted = set(valid_ids)
                stale_ids = [
                    note_id
                    for note_id in dict.fromkeys(self.text_index.ids() + self.vector_index.ids())
                    if note_id not in wanted
                ]
                for note_id in stale_ids:
                    self._issue_ticket(note_id)
                    await asyncio.to_thread(self._remove, note_id)
                removed = len(stale_ids)
        except IndexIOError as exc:
            self.log.error("rebuild_failed", path=exc.path, error=str(exc.cause))
            return RebuildSummary(success=False, skipped=len(skipped), error=str(exc))

        progress = tqdm(total=len(valid_ids), desc="Indexing notes", disable=not self.settings.show_progress)

        async def run(note_id: str) -> IndexOutcome:
            async with self._slots:
                ticket = self._issue_ticket(note_id)
                outcome = await self._index_one(note_id, ticket, generation, skip_unchanged=not reset)
                progress.update(1)
                return outcome

        try:
            outcomes = await asyncio.gather(*(run(note_id) for note_id in valid_ids))
        finally:
            progress.close()

        outcomes = skipped + list(outcomes)
        indexed = [o for o in outcomes if o.status == "indexed"]
        unchanged = [o for o in outcomes if o.status == "unchanged"]
        skipped_ids = [o.note_id for o in outcomes if o.status == "skipped"]
        failed = [o for o in outcomes if o.status == "failed"]

        error: Optional[str] = None
        if generation != self._generation:
            error = "workspace changed during rebuild"
        elif failed:
            error = failed[0].reason

        summary = RebuildSummary(
            success=error is None,
            indexed=len(indexed),
            unchanged=len(unchanged),
            skipped=len(skipped_ids),
            removed=removed,
            chunks=sum(o.chunks for o in indexed + unchanged),
            skipped_ids=skipped_ids,
            error=error,
        )
        self.log.info(
            "rebuild_finished",
            success=summary.success,
            indexed=summary.indexed,
            unchanged=summary.unchanged,
            skipped=summary.skipped,
            removed=summary.removed,
            chunks=summary.chunks,
            duration=round(time.perf_counter() - start_time, 3),
        )
        return summary

    async def _update(self, note_id: str, ticket: int, generation: int) -> bool:
        outcome = await self._index_one(note_id, ticket, generation)
        if outcome.error is not None:
            raise outcome.error
        return outcome.status == "indexed"

    async def update_for_id(self, note_id: str) -> bool:
        """
        Re-index a single note.

        Returns True when the note's new content is committed, False when it
        was skipped or superseded by a newer update.

        Raises:
            IndexIOError: If the index files cannot be written
        """
        note_id = WorkspaceNotes.validate_id(note_id)
        return await self._update(note_id, self._issue_ticket(note_id), self._generation)

    async def delete_id(self, note_id: str) -> bool:
        """Remove a note from both indexes. Returns True if anything was removed."""
        note_id = WorkspaceNotes.validate_id(note_id)
        return await self._delete(note_id, self._issue_ticket(note_id), self._generation)

    async def _delete(self, note_id: str, ticket: int, generation: int) -> bool:
        async with self._lock:
            if not self._is_current(note_id, ticket, generation):
                return False
            removed = await asyncio.to_thread(self._remove, note_id)
        self.log.debug("note_removed", note_id=note_id, removed=removed)
        return removed

    # ------------------------------------------------------------------
    # background queue

    def _spawn(self, coro) -> asyncio.Task:
        if self._closed:
            coro.close()
            raise RuntimeError("IndexManager is closed")
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _background(self, kind: str, note_id: str, ticket: int, generation: int) -> bool:
        if not self._is_current(note_id, ticket, generation):
            return False
        try:
            if kind == "delete":
                return await self._delete(note_id, ticket, generation)
            async with self._slots:
                # superseded while waiting for a slot
                if not self._is_current(note_id, ticket, generation):
                    return False
                return await self._update(note_id, ticket, generation)
        except asyncio.CancelledError:
            raise
        except Exception:
            self.log.exception("background_index_failed", note_id=note_id, kind=kind)
            return False

    def schedule_update(self, note_id: str) -> asyncio.Task:
        """Queue a best-effort re-index of note_id after a save; returns the task."""
        note_id = WorkspaceNotes.validate_id(note_id)
        ticket = self._issue_ticket(note_id)
        return self._spawn(self._background("update", note_id, ticket, self._generation))

    def schedule_delete(self, note_id: str) -> asyncio.Task:
        """Queue removal of note_id after a delete; returns the task."""
        note_id = WorkspaceNotes.validate_id(note_id)
        ticket = self._issue_ticket(note_id)
        return self._spawn(self._background("delete", note_id, ticket, self._generation))

    async def drain(self) -> None:
        """Wait until every queued background task has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """Invalidate in-flight work and cancel queued tasks."""
        self._closed = True
        self._generation += 1
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self.log.info("index_manager_closed", cancelled=len(tasks))
