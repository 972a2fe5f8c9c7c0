"""
Task identity management for Brainpipe.

Provides deterministic task hashes based on what the task says and where
it came from: (normalized title, absolute source path, ordinal).

This ensures:
1. The same task in the same place always gets the same hash (idempotent sync)
2. Re-running over an unchanged note never creates duplicates
3. The hash doubles as the record store's lookup key ("Task ID")
"""

import hashlib
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

# Length of the hex digest prefix used as the task hash
TASK_HASH_LENGTH = 16


@dataclass
class ExtractedTask:
    """A candidate task as returned by the extraction service."""

    title: str
    due: Optional[str] = None  # YYYY-MM-DD
    tags: Optional[list[str]] = None


@dataclass
class TaskWithMeta(ExtractedTask):
    """An extracted task plus its identity, ready for sync."""

    hash: str = ""
    file_path: str = ""
    line_index: int = 0
    extracted_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    @classmethod
    def from_task(
        cls,
        task: ExtractedTask,
        task_hash: str,
        file_path: str,
        line_index: int,
    ) -> "TaskWithMeta":
        return cls(
            title=task.title,
            due=task.due,
            tags=list(task.tags) if task.tags is not None else None,
            hash=task_hash,
            file_path=file_path,
            line_index=line_index,
        )


def normalize_title(title: str) -> str:
    """
    Normalize a task title for hashing.

    Only case and surrounding whitespace are ignored; punctuation and
    inner spacing are significant ("Review PR #123" != "Review PR 123").

    Examples:
        " Buy Milk " -> "buy milk"
    """
    if not title:
        return ""
    return title.strip().lower()


def resolve_source_path(file_path: str) -> str:
    """Absolute form of a source path, used so relative paths hash the same."""
    return str(Path(file_path).resolve())


def get_task_hash(task: ExtractedTask, file_path: str, line_index: int) -> str:
    """
    Generate a stable hash for a task based on its content and location.

    Args:
        task: Extracted task (only the title participates)
        file_path: Source note path
        line_index: Ordinal of the task within its chunk

    Returns:
        16-character hex string (SHA-256 prefix)
    """
    key = json.dumps(
        {
            "title": normalize_title(task.title),
            "filePath": resolve_source_path(file_path),
            "lineIndex": line_index,
        },
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return hashlib.sha256(key.encode("utf-8")).hexdigest()[:TASK_HASH_LENGTH]
