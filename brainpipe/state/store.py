"""
Dedup ledger for Brainpipe.

Tracks, across runs:
- Which task hashes have already been synced (insertion-ordered)
- Per-file modification-time watermarks, to skip unchanged notes
- When the last run finished

The ledger is a single JSON file:
    {"lastRun": str | null,
     "processedTasks": [str, ...],
     "lastModifiedTimes": {path: mtime_ms}}

One StateStore is constructed per process and handed to collaborators.
It is not thread-safe; the orchestrator is its only writer.
"""

import json
import logging
import math
import os
import tempfile
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from brainpipe.ingest.task_identity import ExtractedTask, get_task_hash
from brainpipe.telemetry import EventRecorder, get_recorder

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 10000
# Fraction of max_entries kept when the hash set is trimmed
RETAIN_FRACTION = 0.8
WATERMARK_RETENTION_DAYS = 30


class StateStoreError(RuntimeError):
    """Raised when the ledger cannot be written."""

    pass


@dataclass
class LedgerState:
    """In-memory ledger contents."""

    last_run: Optional[str] = None
    # dict keys give an insertion-ordered set
    processed: dict[str, None] = field(default_factory=dict)
    watermarks: dict[str, float] = field(default_factory=dict)

    def to_json(self) -> dict:
        return {
            "lastRun": self.last_run,
            "processedTasks": list(self.processed),
            "lastModifiedTimes": dict(self.watermarks),
        }

    @classmethod
    def from_json(cls, payload: dict) -> "LedgerState":
        """Build state from parsed JSON, defaulting any malformed field."""
        last_run = payload.get("lastRun")
        if not isinstance(last_run, str) or not last_run:
            last_run = None

        raw_tasks = payload.get("processedTasks")
        processed = {}
        if isinstance(raw_tasks, list):
            processed = dict.fromkeys(t for t in raw_tasks if isinstance(t, str))

        raw_times = payload.get("lastModifiedTimes")
        watermarks = {}
        if isinstance(raw_times, dict):
            for path, mtime in raw_times.items():
                if isinstance(mtime, (int, float)) and not isinstance(mtime, bool):
                    watermarks[path] = float(mtime)

        return cls(last_run=last_run, processed=processed, watermarks=watermarks)


@dataclass
class CleanupReport:
    """What cleanup() removed."""

    hashes_removed: int = 0
    watermarks_removed: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.hashes_removed or self.watermarks_removed)


def _mtime_ms(path: str) -> float:
    return os.stat(path).st_mtime * 1000.0


class StateStore:
    """
    Persistent dedup/watermark ledger.

    Usage:
        state = StateStore(config.STATE_PATH)
        task_hash = state.compute_hash(task, chunk.file_path, ordinal)
        if not state.is_processed(task_hash):
            ...
            state.mark_processed(task_hash)
        state.cleanup()
        state.update_last_run()  # saves
    """

    def __init__(
        self,
        state_path: Path,
        recorder: Optional[EventRecorder] = None,
    ):
        """
        Initialize and load the ledger.

        Args:
            state_path: Ledger JSON file (need not exist yet)
            recorder: Event sink (process-wide recorder if omitted)
        """
        self.state_path = Path(state_path)
        self.recorder = recorder or get_recorder()
        self._state = LedgerState()
        self.load()

    # ==========================================================================
    # Identity
    # ==========================================================================

    def compute_hash(self, task: ExtractedTask, file_path: str, line_index: int) -> str:
        """Stable identity for a task at a location (see task_identity)."""
        return get_task_hash(task, file_path, line_index)

    def is_processed(self, task_hash: str) -> bool:
        return task_hash in self._state.processed

    def mark_processed(self, task_hash: str) -> None:
        # setdefault keeps an existing hash at its original position
        self._state.processed.setdefault(task_hash, None)

    @property
    def processed_count(self) -> int:
        return len(self._state.processed)

    # ==========================================================================
    # File watermarks
    # ==========================================================================

    def is_file_modified(self, file_path: str) -> bool:
        """
        Check whether a file changed since its watermark.

        True for files never seen before, and (conservatively) for files
        that cannot be stat'ed. Never raises.
        """
        try:
            current = _mtime_ms(file_path)
        except OSError as e:
            self.recorder.record(
                "watermark_check_failed", level="warn", file=file_path, error=str(e)
            )
            return True

        last = self._state.watermarks.get(file_path)
        if last is None:
            return True

        return current > last

    def update_watermark(self, file_path: str, mtime_ms: Optional[float] = None) -> None:
        """
        Record the file's mtime. Stat errors are logged, not raised.

        Args:
            file_path: Source note path
            mtime_ms: mtime observed when the note was read; the file is
                stat'ed now if omitted
        """
        if mtime_ms is not None:
            self._state.watermarks[file_path] = float(mtime_ms)
            return

        try:
            self._state.watermarks[file_path] = _mtime_ms(file_path)
        except OSError as e:
            self.recorder.record(
                "watermark_update_failed", level="warn", file=file_path, error=str(e)
            )

    def get_watermark(self, file_path: str) -> Optional[float]:
        return self._state.watermarks.get(file_path)

    @property
    def watermark_count(self) -> int:
        return len(self._state.watermarks)

    # ==========================================================================
    # Last run
    # ==========================================================================

    def get_last_run(self) -> Optional[str]:
        return self._state.last_run

    def update_last_run(self) -> None:
        """Stamp the current UTC time as the last run and save."""
        self._state.last_run = datetime.now(timezone.utc).isoformat()
        self.save()

    # ==========================================================================
    # Persistence
    # ==========================================================================

    def load(self) -> None:
        """
        Load the ledger from disk.

        A missing, unreadable or corrupt file leaves an empty ledger.
        """
        self._state = LedgerState()

        if not self.state_path.exists():
            logger.debug(f"No ledger at {self.state_path}, starting fresh")
            return

        try:
            payload = json.loads(self.state_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            self.recorder.record(
                "state_load_failed", level="warn", path=str(self.state_path), error=str(e)
            )
            return

        if not isinstance(payload, dict):
            self.recorder.record(
                "state_load_failed",
                level="warn",
                path=str(self.state_path),
                error=f"expected a JSON object, got {type(payload).__name__}",
            )
            return

        self._state = LedgerState.from_json(payload)
        logger.debug(
            f"Loaded ledger: {self.processed_count} tasks, {self.watermark_count} files"
        )

    def save(self) -> None:
        """
        Write the whole ledger.

        Writes to a temp file in the same directory and renames it over the
        ledger, so a crash mid-write leaves the previous ledger intact.

        Raises:
            StateStoreError: If the directory or file cannot be written
        """
        tmp_name = None
        try:
            self.state_path.parent.mkdir(parents=True, exist_ok=True)

            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.state_path.name}.",
                suffix=".tmp",
                dir=self.state_path.parent,
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._state.to_json(), f, indent=2)
                f.flush()
                os.fsync(f.fileno())

            os.replace(tmp_name, self.state_path)
            tmp_name = None

        except OSError as e:
            self.recorder.record(
                "state_save_failed", level="error", path=str(self.state_path), error=str(e)
            )
            raise StateStoreError(f"Failed to save state: {e}") from e

        finally:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)

        logger.debug(f"State saved ({self.processed_count} tasks)")

    def reset(self) -> None:
        """Forget everything and save the empty ledger."""
        self._state = LedgerState()
        self.save()

    # ==========================================================================
    # Pruning
    # ==========================================================================

    def cleanup(self, max_entries: int = DEFAULT_MAX_ENTRIES) -> CleanupReport:
        """
        Bound the ledger's size.

        - More than ``max_entries`` hashes: keep the newest
          floor(max_entries * 0.8), drop the oldest.
        - Drop watermarks older than WATERMARK_RETENTION_DAYS.

        Saves only if something was removed.
        """
        report = CleanupReport()

        processed = self._state.processed
        if len(processed) > max_entries:
            keep = math.floor(max_entries * RETAIN_FRACTION)
            hashes = list(processed)
            kept = hashes[len(hashes) - keep:] if keep > 0 else []
            self._state.processed = dict.fromkeys(kept)
            report.hashes_removed = len(hashes) - len(kept)
            self.recorder.record(
                "state_hashes_pruned",
                removed=report.hashes_removed,
                remaining=len(kept),
            )

        cutoff = (time.time() - WATERMARK_RETENTION_DAYS * 24 * 60 * 60) * 1000.0
        stale = [path for path, mtime in self._state.watermarks.items() if mtime < cutoff]
        for path in stale:
            del self._state.watermarks[path]

        if stale:
            report.watermarks_removed = len(stale)
            self.recorder.record("state_watermarks_pruned", removed=len(stale))

        if report.changed:
            self.save()

        return report
