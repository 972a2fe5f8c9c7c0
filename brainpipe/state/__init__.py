"""
Persistent run state: processed task hashes, file watermarks, last run.
"""

from .store import (
    DEFAULT_MAX_ENTRIES,
    WATERMARK_RETENTION_DAYS,
    CleanupReport,
    LedgerState,
    StateStore,
    StateStoreError,
)

__all__ = [
    "DEFAULT_MAX_ENTRIES",
    "WATERMARK_RETENTION_DAYS",
    "CleanupReport",
    "LedgerState",
    "StateStore",
    "StateStoreError",
]
