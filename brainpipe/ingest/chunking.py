"""
Line-preserving text chunking for Brainpipe.

Key insight: brain dump notes are line-oriented (one thought, todo or
timestamp header per line). Splitting mid-line can cut a task in half,
so chunks only ever break at newlines.

Guarantees:
- Chunks are returned in document order with contiguous indices
- "\\n".join(chunk contents) reproduces the document exactly
- No line is truncated; an oversized line gets a chunk to itself
"""

import logging
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

# Characters per chunk to stay under extraction token limits
DEFAULT_MAX_CHUNK_SIZE = 8000


@dataclass(frozen=True)
class Document:
    """A source note as read from disk."""

    path: str
    content: str
    modified_time: float  # mtime in epoch milliseconds


@dataclass
class Chunk:
    """A size-bounded slice of one document."""

    file_path: str
    content: str
    chunk_index: int = 0
    total_chunks: int = 1

    @property
    def is_partial(self) -> bool:
        return self.total_chunks > 1

    @property
    def position(self) -> str:
        """1-based position label, e.g. '2/5'."""
        return f"{self.chunk_index + 1}/{self.total_chunks}"

    def __len__(self) -> int:
        return len(self.content)


def chunk_document(
    document: Document,
    max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE,
) -> list[Chunk]:
    """
    Split a document into chunks of at most ``max_chunk_size`` characters.

    Lines are packed greedily: a line joins the current chunk unless that
    would push it past the limit, in which case the current chunk is closed.
    A single line longer than the limit is emitted on its own.

    Args:
        document: Document to split
        max_chunk_size: Maximum chunk size in characters

    Returns:
        List of Chunk objects with total_chunks filled in
    """
    if max_chunk_size < 1:
        raise ValueError(f"max_chunk_size must be >= 1, got {max_chunk_size}")

    content = document.content

    if len(content) <= max_chunk_size:
        return [Chunk(file_path=document.path, content=content)]

    pieces: list[str] = []
    current = None  # None means "no chunk open"; "" is a real empty line

    for line in content.split("\n"):
        candidate = line if current is None else f"{current}\n{line}"

        if len(candidate) > max_chunk_size and current is not None:
            pieces.append(current)
            current = line
        else:
            current = candidate

    if current is not None:
        pieces.append(current)

    total = len(pieces)
    chunks = [
        Chunk(
            file_path=document.path,
            content=piece,
            chunk_index=index,
            total_chunks=total,
        )
        for index, piece in enumerate(pieces)
    ]

    logger.debug(
        f"Chunked {Path(document.path).name}: {len(content)} chars -> {total} chunks"
    )

    return chunks


def chunk_documents(
    documents: list[Document],
    max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE,
) -> list[Chunk]:
    """Chunk several documents, concatenating results in document order."""
    chunks = []
    for document in documents:
        chunks.extend(chunk_document(document, max_chunk_size))
    return chunks
