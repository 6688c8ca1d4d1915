"""Read and write the versioned JSON index files under ``<workspace>/.kb``."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Callable, Type, TypeVar

from pydantic import BaseModel, ValidationError

from .exceptions import IndexIOError, ParseError
from .log import get_logger
from .schemas import CURRENT_VERSION

logger = get_logger(__name__)

KB_DIRNAME = ".kb"
TEXT_INDEX_FILE = "text_index.json"
VECTOR_INDEX_FILE = "vector_index.json"

M = TypeVar("M", bound=BaseModel)


def kb_dir(workspace_root: Path) -> Path:
    """Directory holding the index files of a workspace."""
    return Path(workspace_root) / KB_DIRNAME


def _with_retry(path: Path, action: Callable[[], object]):
    """Run an I/O action, retrying once before raising IndexIOError."""
    try:
        return action()
    except OSError as first:
        logger.warning("index_io_retry", path=str(path), error=str(first))
        try:
            return action()
        except OSError as exc:
            raise IndexIOError(str(path), exc) from exc


def read_container(path: Path, model: Type[M]) -> M:
    """
    Load a versioned container from disk.

    A missing, unparsable or unknown-version file yields an empty container;
    only unreadable files raise.

    Raises:
        IndexIOError: If the file exists but cannot be read
    """
    path = Path(path)
    if not path.exists():
        return model()

    raw = _with_retry(path, lambda: path.read_text(encoding="utf-8"))
    try:
        container = model.model_validate_json(raw)
    except (ValidationError, ValueError) as exc:
        error = ParseError(str(path), exc)
        logger.warning("index_parse_failed", path=str(path), error=str(error))
        return model()

    version = getattr(container, "version", CURRENT_VERSION)
    if version != CURRENT_VERSION:
        logger.warning(
            "index_version_unsupported",
            path=str(path),
            version=version,
            expected=CURRENT_VERSION,
        )
        return model()
    return container


def _atomic_write(path: Path, payload: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


def write_container(path: Path, container: BaseModel) -> None:
    """
    Persist a container atomically (temp file + rename).

    Readers observe either the previous or the new file, never a partial one.

    Raises:
        IndexIOError: If the write fails twice
    """
    path = Path(path)
    payload = json.dumps(container.model_dump(by_alias=True), ensure_ascii=False)
    _with_retry(path, lambda: _atomic_write(path, payload))


def ensure_writable(workspace_root: Path) -> Path:
    """
    Create the .kb directory and prove it is writable.

    Raises:
        OSError: If the directory cannot be created or written
    """
    directory = kb_dir(workspace_root)
    directory.mkdir(parents=True, exist_ok=True)
    fd, probe = tempfile.mkstemp(prefix=".probe.", dir=str(directory))
    os.close(fd)
    os.unlink(probe)
    return directory
