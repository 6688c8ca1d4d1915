"""Error kinds raised by the knowledge-base pipeline."""

from __future__ import annotations


class KBError(Exception):
    """Base class for knowledge-base errors."""
    pass


class ParseError(KBError):
    """Raised when a persisted index file cannot be parsed."""

    def __init__(self, path: str, cause: object):
        super().__init__(f"Malformed index file {path}: {cause}")
        self.path = path
        self.cause = cause


class EmbedError(KBError):
    """Raised when the embedding client fails or returns unusable vectors."""
    pass


class DimensionMismatch(KBError):
    """Raised when a vector does not match the index dimensionality."""

    def __init__(self, expected: int, actual: int, note_id: str = ""):
        where = f" for {note_id}" if note_id else ""
        super().__init__(f"Vector dimension mismatch{where}: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual
        self.note_id = note_id


class IndexIOError(KBError):
    """Raised when an index file cannot be read or written after a retry."""

    def __init__(self, path: str, cause: BaseException):
        super().__init__(f"Index I/O failed for {path}: {cause}")
        self.path = path
        self.cause = cause


class NoteReadError(KBError):
    """Raised when a note cannot be read from the workspace."""

    def __init__(self, note_id: str, reason: str):
        super().__init__(f"Cannot read note {note_id}: {reason}")
        self.note_id = note_id
        self.reason = reason


class WorkspaceError(KBError):
    """Raised when a workspace cannot be opened for indexing."""
    pass
