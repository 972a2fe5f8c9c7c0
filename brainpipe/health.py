"""
Health check result shared by the reader, extraction and sync clients.
"""

from dataclasses import dataclass


@dataclass
class HealthStatus:
    """Outcome of a pre-flight check."""

    healthy: bool
    message: str

    def __bool__(self) -> bool:
        return self.healthy
