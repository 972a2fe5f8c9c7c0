"""
Inbox reader for Brainpipe.

Finds markdown notes in the inbox directory, reads the ones whose
modification time moved past their watermark, and chunks them.

The reader only ever asks the StateStore whether a file changed; moving
watermarks forward is left to the pipeline, after extraction succeeds.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Union

from brainpipe.health import HealthStatus
from brainpipe.ingest.chunking import (
    DEFAULT_MAX_CHUNK_SIZE,
    Chunk,
    Document,
    chunk_documents,
)
from brainpipe.telemetry import EventRecorder, get_recorder

if TYPE_CHECKING:
    from brainpipe.state.store import StateStore

logger = logging.getLogger(__name__)

NOTE_SUFFIX = ".md"


class InboxAccessError(ValueError):
    """Raised when the inbox directory is missing or not a directory."""

    pass


@dataclass
class IngestBatch:
    """Everything read from the inbox in one pass."""

    chunks: list[Chunk] = field(default_factory=list)
    documents: list[Document] = field(default_factory=list)
    total_files: int = 0


def expand_path(path: Union[str, Path]) -> Path:
    """Expand a leading ~ to the user's home directory."""
    return Path(path).expanduser()


def scan_directory(directory: Union[str, Path]) -> list[Path]:
    """
    List markdown notes directly inside ``directory``.

    Args:
        directory: Inbox directory (~ is expanded)

    Returns:
        Sorted list of *.md paths (not recursive)

    Raises:
        InboxAccessError: If the path does not exist or is not a directory
    """
    path = expand_path(directory)

    if not path.exists():
        raise InboxAccessError(f"Directory does not exist: {path}")
    if not path.is_dir():
        raise InboxAccessError(f"Path is not a directory: {path}")

    try:
        notes = sorted(
            entry for entry in path.iterdir()
            if entry.suffix == NOTE_SUFFIX and entry.is_file()
        )
    except OSError as e:
        raise InboxAccessError(f"Directory access error: {e}") from e

    logger.debug(f"Found {len(notes)} notes in {path}")
    return notes


def read_documents(
    paths: list[Path],
    state: "StateStore",
    recorder: Optional[EventRecorder] = None,
) -> list[Document]:
    """
    Read the notes that changed since their last watermark.

    Unmodified files are skipped; unreadable files are logged and skipped.

    Args:
        paths: Candidate note paths
        state: Ledger consulted for watermarks

    Returns:
        Documents in the same order as ``paths``
    """
    recorder = recorder or get_recorder()
    documents = []

    for path in paths:
        file_path = str(path)

        if not state.is_file_modified(file_path):
            logger.debug(f"Skipping unmodified note: {path.name}")
            continue

        try:
            modified_time = os.stat(file_path).st_mtime * 1000.0
            content = Path(file_path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            recorder.record("file_read_failed", level="warn", file=file_path, error=str(e))
            continue

        documents.append(
            Document(path=file_path, content=content, modified_time=modified_time)
        )
        logger.debug(f"Read {path.name}: {len(content)} chars")

    return documents


def ingest(
    directory: Union[str, Path],
    state: "StateStore",
    max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE,
    recorder: Optional[EventRecorder] = None,
) -> IngestBatch:
    """
    Scan, read and chunk the inbox in one pass.

    Args:
        directory: Inbox directory
        state: Ledger consulted for watermarks (not modified)
        max_chunk_size: Maximum chunk size in characters

    Returns:
        IngestBatch with chunks, the documents they came from and the
        number of notes found

    Raises:
        InboxAccessError: If the inbox cannot be listed
    """
    recorder = recorder or get_recorder()

    paths = scan_directory(directory)
    if not paths:
        recorder.record("ingest_completed", directory=str(directory), files=0, chunks=0)
        return IngestBatch()

    documents = read_documents(paths, state, recorder=recorder)
    chunks = chunk_documents(documents, max_chunk_size)

    recorder.record(
        "ingest_completed",
        directory=str(directory),
        files=len(paths),
        modified=len(documents),
        chunks=len(chunks),
    )
    return IngestBatch(chunks=chunks, documents=documents, total_files=len(paths))


def health_check(directory: Optional[Union[str, Path]]) -> HealthStatus:
    """Verify the inbox directory exists and can be listed."""
    if not directory:
        return HealthStatus(False, "Inbox directory not configured")

    path = expand_path(directory)
    if not path.exists():
        return HealthStatus(False, f"Directory does not exist: {path}")
    if not path.is_dir():
        return HealthStatus(False, f"Path is not a directory: {path}")

    try:
        next(path.iterdir(), None)
    except OSError as e:
        return HealthStatus(False, f"Directory access error: {e}")

    return HealthStatus(True, f"Directory accessible: {path}")
