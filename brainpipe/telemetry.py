"""
Run event recording for Brainpipe.

Every component reports notable events through a single narrow call,
``recorder.record(event, **fields)``. Each event is emitted as a stdlib
log line and, when enabled, appended to a JSONL event log for later
inspection with ``brainpipe logs``.

Enable/disable the JSONL file with: BRAINPIPE_TELEMETRY=1|0
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from brainpipe.config import config

logger = logging.getLogger(__name__)

# Rotate the event log to <name>.old once it grows past this size
MAX_LOG_BYTES = 1024 * 1024

SENSITIVE_KEYS = ("password", "token", "key", "secret", "auth")

LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def sanitize_fields(data: Any) -> Any:
    """
    Redact values whose key looks like a credential.

    Recurses through dicts and lists; scalars are returned unchanged.
    """
    if isinstance(data, dict):
        result = {}
        for key, value in data.items():
            if any(marker in str(key).lower() for marker in SENSITIVE_KEYS):
                result[key] = "[REDACTED]"
            else:
                result[key] = sanitize_fields(value)
        return result

    if isinstance(data, (list, tuple)):
        return [sanitize_fields(item) for item in data]

    return data


class EventRecorder:
    """
    Structured event sink.

    Usage:
        recorder = EventRecorder(Path("~/.brainpipe/brainpipe.jsonl"))
        recorder.record("chunk_extracted", file="2025-08-15.md", tasks=3)
        recorder.record("sync_failed", level="error", error="HTTP 400")
    """

    def __init__(
        self,
        log_path: Optional[Path] = None,
        enabled: Optional[bool] = None,
        max_bytes: int = MAX_LOG_BYTES,
    ):
        """
        Initialize recorder.

        Args:
            log_path: JSONL event log (default: config.EVENT_LOG_PATH)
            enabled: Write the JSONL file (default: config.TELEMETRY_ENABLED)
            max_bytes: Rotation threshold for the event log
        """
        self.log_path = Path(log_path) if log_path else config.EVENT_LOG_PATH
        self.enabled = config.TELEMETRY_ENABLED if enabled is None else enabled
        self.max_bytes = max_bytes

    def record(self, event: str, level: str = "info", **fields: Any) -> None:
        """Record one event. Never raises."""
        data = sanitize_fields(fields) if fields else None

        log_level = LEVELS.get(level.lower(), logging.INFO)
        if data:
            logger.log(log_level, f"{event} {json.dumps(data, default=str)}")
        else:
            logger.log(log_level, event)

        if not self.enabled:
            return

        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": logging.getLevelName(log_level),
            "event": event,
            "data": data,
        }
        self._write(entry)

    def _write(self, entry: dict) -> None:
        """Append entry to the JSONL log, rotating first if needed."""
        try:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)
            self._rotate_if_needed()

            with open(self.log_path, "a", encoding="utf-8") as f:
                json.dump(entry, f, default=str)
                f.write("\n")

        except OSError as e:
            logger.warning(f"Failed to write event log: {e}")

    def _rotate_if_needed(self) -> None:
        if not self.log_path.exists():
            return
        if self.log_path.stat().st_size <= self.max_bytes:
            return

        backup = self.log_path.with_name(self.log_path.name + ".old")
        backup.unlink(missing_ok=True)
        self.log_path.rename(backup)

    def read_recent(self, limit: int = 100) -> list[dict]:
        """
        Read the newest events from the JSONL log.

        Args:
            limit: Maximum number of events to return

        Returns:
            Event dicts, oldest first
        """
        if not self.log_path.exists():
            return []

        try:
            lines = self.log_path.read_text(encoding="utf-8").splitlines()
        except OSError as e:
            logger.warning(f"Failed to read event log: {e}")
            return []

        events = []
        for line in lines[-limit:] if limit > 0 else []:
            if not line.strip():
                continue
            try:
                events.append(json.loads(line))
            except json.JSONDecodeError:
                continue

        return events


# Process-wide recorder (created on first use)
_recorder: Optional[EventRecorder] = None


def get_recorder() -> EventRecorder:
    """Get or create the process-wide event recorder."""
    global _recorder
    if _recorder is None:
        _recorder = EventRecorder()
    return _recorder
