"""Filesystem access to the notes of a workspace."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from .exceptions import NoteReadError
from .schemas import NoteRef

NOTE_EXTENSIONS = (".md", ".markdown", ".txt")


class WorkspaceNotes:
    """Notes stored as text files directly under the workspace root; the id is the file stem."""

    def __init__(self, root: Path, extensions=NOTE_EXTENSIONS):
        self.root = Path(root)
        self.extensions = tuple(extensions)

    @staticmethod
    def validate_id(note_id: str) -> str:
        """Return the cleaned id, raising ValueError for ids that could escape the root."""
        return NoteRef(id=note_id).id

    def list_ids(self) -> List[str]:
        if not self.root.is_dir():
            return []
        ids = {
            path.stem
            for path in self.root.iterdir()
            if path.is_file() and path.suffix.lower() in self.extensions and not path.name.startswith(".")
        }
        return sorted(ids)

    def path_for(self, note_id: str) -> Optional[Path]:
        for ext in self.extensions:
            candidate = self.root / f"{note_id}{ext}"
            if candidate.is_file():
                return candidate
        return None

    def read(self, note_id: str) -> str:
        """
        Read the raw text of a note.

        Raises:
            NoteReadError: If the note is missing, unreadable or not valid UTF-8
        """
        path = self.path_for(note_id)
        if path is None:
            raise NoteReadError(note_id, "not_found")
        try:
            return path.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise NoteReadError(note_id, f"decode_failed: {exc}") from exc
        except OSError as exc:
            raise NoteReadError(note_id, f"read_failed: {exc}") from exc
