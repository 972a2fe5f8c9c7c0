"""
Record store sync (Notion).
"""

from .notion import (
    EXISTING_SENTINEL,
    DatabaseInfo,
    NotionClient,
    SyncResult,
    build_page_properties,
)

__all__ = [
    "EXISTING_SENTINEL",
    "DatabaseInfo",
    "NotionClient",
    "SyncResult",
    "build_page_properties",
]
