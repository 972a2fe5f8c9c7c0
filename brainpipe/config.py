"""
Centralized configuration for Brainpipe.

All configuration values should be imported from this module.
Values are read from the environment on access, so a `.env` file in the
working directory or exported variables both work.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()


def _env_int(name: str, default: int) -> int:
    """Read an integer env var, falling back to default on bad input."""
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Config:
    """Brainpipe configuration."""

    # ==========================================================================
    # Paths
    # ==========================================================================
    @property
    def DATA_DIR(self) -> Path:
        return Path(os.environ.get("BRAINPIPE_DATA_DIR", "~/.brainpipe")).expanduser()

    @property
    def STATE_PATH(self) -> Path:
        path = os.environ.get("BRAINPIPE_STATE_PATH")
        return Path(path).expanduser() if path else self.DATA_DIR / "state.json"

    @property
    def EVENT_LOG_PATH(self) -> Path:
        path = os.environ.get("BRAINPIPE_EVENT_LOG")
        return Path(path).expanduser() if path else self.DATA_DIR / "brainpipe.jsonl"

    @property
    def INBOX_DIR(self) -> Optional[str]:
        return os.environ.get("BRAINPIPE_INBOX_DIR")

    # ==========================================================================
    # Extraction service (OpenAI-compatible)
    # ==========================================================================
    @property
    def OPENAI_API_KEY(self) -> Optional[str]:
        return os.environ.get("OPENAI_API_KEY")

    @property
    def OPENAI_MODEL(self) -> str:
        return os.environ.get("OPENAI_MODEL", "gpt-4o-mini")

    @property
    def OPENAI_BASE_URL(self) -> str:
        return os.environ.get("OPENAI_BASE_URL", "https://api.openai.com/v1").rstrip("/")

    # ==========================================================================
    # Record store (Notion)
    # ==========================================================================
    @property
    def NOTION_TOKEN(self) -> Optional[str]:
        return os.environ.get("NOTION_TOKEN")

    @property
    def NOTION_DATABASE_ID(self) -> Optional[str]:
        return os.environ.get("NOTION_DATABASE_ID")

    # ==========================================================================
    # Processing
    # ==========================================================================
    @property
    def MAX_CHUNK_SIZE(self) -> int:
        return _env_int("BRAINPIPE_MAX_CHUNK_SIZE", 8000)

    @property
    def EXTRACT_CONCURRENCY(self) -> int:
        return _env_int("BRAINPIPE_EXTRACT_CONCURRENCY", 3)

    @property
    def SYNC_CONCURRENCY(self) -> int:
        return _env_int("BRAINPIPE_SYNC_CONCURRENCY", 3)

    @property
    def MAX_PROCESSED_ENTRIES(self) -> int:
        return _env_int("BRAINPIPE_MAX_PROCESSED", 10000)

    # ==========================================================================
    # Logging
    # ==========================================================================
    @property
    def TELEMETRY_ENABLED(self) -> bool:
        return _env_flag("BRAINPIPE_TELEMETRY", True)

    @property
    def LOG_LEVEL(self) -> str:
        return os.environ.get("LOG_LEVEL", "INFO")

    # ==========================================================================
    # Validation
    # ==========================================================================
    def validate(self) -> list[str]:
        """Return list of configuration errors."""
        errors = []

        if not self.INBOX_DIR:
            errors.append("BRAINPIPE_INBOX_DIR not set (inbox directory)")
        if not self.OPENAI_API_KEY:
            errors.append("OPENAI_API_KEY not set")
        if not self.OPENAI_MODEL:
            errors.append("OPENAI_MODEL not set")
        if not self.NOTION_TOKEN:
            errors.append("NOTION_TOKEN not set")
        if not self.NOTION_DATABASE_ID:
            errors.append("NOTION_DATABASE_ID not set")

        for name, value in (
            ("BRAINPIPE_MAX_CHUNK_SIZE", self.MAX_CHUNK_SIZE),
            ("BRAINPIPE_EXTRACT_CONCURRENCY", self.EXTRACT_CONCURRENCY),
            ("BRAINPIPE_SYNC_CONCURRENCY", self.SYNC_CONCURRENCY),
            ("BRAINPIPE_MAX_PROCESSED", self.MAX_PROCESSED_ENTRIES),
        ):
            if value < 1:
                errors.append(f"{name} must be a positive integer, got {value}")

        return errors

    def __repr__(self) -> str:
        return (
            f"Config(\n"
            f"  STATE_PATH={self.STATE_PATH}\n"
            f"  INBOX_DIR={self.INBOX_DIR}\n"
            f"  OPENAI_MODEL={self.OPENAI_MODEL}\n"
            f"  OPENAI_BASE_URL={self.OPENAI_BASE_URL}\n"
            f"  NOTION_DATABASE_ID={self.NOTION_DATABASE_ID}\n"
            f")"
        )


# Global config instance
config = Config()
