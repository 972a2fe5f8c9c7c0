"""
Ingestion pipeline for Brainpipe.

Handles inbox scanning, chunking, task extraction and task identity.
"""

from .chunking import Chunk, Document, chunk_document, chunk_documents
from .task_identity import ExtractedTask, TaskWithMeta, get_task_hash
from .task_extractor import ExtractionResult, TaskExtractor
from .reader import InboxAccessError, IngestBatch, scan_directory
from .pipeline import RunSummary, SyncPipeline

__all__ = [
    "Chunk",
    "Document",
    "chunk_document",
    "chunk_documents",
    "ExtractedTask",
    "TaskWithMeta",
    "get_task_hash",
    "ExtractionResult",
    "TaskExtractor",
    "InboxAccessError",
    "IngestBatch",
    "scan_directory",
    "RunSummary",
    "SyncPipeline",
]
