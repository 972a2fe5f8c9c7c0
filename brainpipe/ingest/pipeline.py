"""
Sync pipeline for Brainpipe.

Orchestrates one run: config check → health checks → inbox scan →
chunking → task extraction → dedup filter → Notion sync →
mark processed → advance watermarks → prune ledger → stamp last run.
"""

import logging
import time
from dataclasses import asdict, dataclass, field
from types import ModuleType
from typing import TYPE_CHECKING, Optional

from brainpipe.config import Config
from brainpipe.ingest import reader as inbox_reader
from brainpipe.ingest.reader import InboxAccessError
from brainpipe.ingest.task_extractor import ExtractionResult, TaskExtractor
from brainpipe.ingest.task_identity import TaskWithMeta
from brainpipe.telemetry import EventRecorder, get_recorder

if TYPE_CHECKING:
    from brainpipe.state.store import StateStore
    from brainpipe.sync.notion import NotionClient

logger = logging.getLogger(__name__)


@dataclass
class RunSummary:
    """Result of one pipeline run."""

    files_scanned: int = 0
    files_modified: int = 0
    chunks: int = 0
    extraction_failures: int = 0
    extracted: int = 0
    new_tasks: int = 0
    skipped: int = 0
    synced: int = 0
    failed: int = 0
    hashes_pruned: int = 0
    watermarks_pruned: int = 0
    elapsed_seconds: float = 0.0
    success: bool = True
    health_issues: list[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def has_failures(self) -> bool:
        """Run finished but some chunks or tasks did not go through."""
        return bool(self.failed or self.extraction_failures)

    def to_dict(self) -> dict:
        return asdict(self)


class SyncPipeline:
    """
    Brain dump → Notion sync pipeline.

    Usage:
        state = StateStore(config.STATE_PATH)
        async with TaskExtractor() as extractor, NotionClient() as notion:
            pipeline = SyncPipeline(config, state, extractor, notion)
            summary = await pipeline.run()
        print(f"Synced {summary.synced} tasks")
    """

    def __init__(
        self,
        config: Config,
        state: "StateStore",
        extractor: TaskExtractor,
        notion: "NotionClient",
        reader: Optional[ModuleType] = None,
        recorder: Optional[EventRecorder] = None,
    ):
        """
        Initialize the pipeline.

        Args:
            config: Settings (inbox, concurrency, ledger bounds)
            state: Ledger, the only state this pipeline writes
            extractor: Task extraction client
            notion: Notion sync client
            reader: Inbox reader exposing ingest() and health_check()
            recorder: Event sink (process-wide recorder if omitted)
        """
        self.config = config
        self.state = state
        self.extractor = extractor
        self.notion = notion
        self.reader = reader or inbox_reader
        self.recorder = recorder or get_recorder()

    # ==========================================================================
    # Pre-flight
    # ==========================================================================

    async def check_health(self) -> list[str]:
        """
        Run every pre-flight check.

        Returns:
            Human-readable issues; empty when everything is healthy
        """
        issues = []

        inbox = self.reader.health_check(self.config.INBOX_DIR)
        if not inbox.healthy:
            issues.append(f"File system: {inbox.message}")

        openai = await self.extractor.health_check()
        if not openai.healthy:
            issues.append(f"OpenAI: {openai.message}")

        notion = await self.notion.health_check()
        if not notion.healthy:
            issues.append(f"Notion: {notion.message}")

        return issues

    # ==========================================================================
    # Run
    # ==========================================================================

    async def run(self, check_health: bool = True) -> RunSummary:
        """
        Run the pipeline once.

        Configuration problems, failed health checks and an inaccessible
        inbox abort before the ledger is touched. Per-chunk and per-task
        failures are counted, not raised.

        Args:
            check_health: Run pre-flight health checks first

        Returns:
            RunSummary
        """
        start_time = time.time()
        summary = RunSummary()
        self.recorder.record("run_started", check_health=check_health)

        issues = self.config.validate()
        if not issues and check_health:
            issues = await self.check_health()

        if issues:
            return self._abort(summary, start_time, issues, "Pre-flight checks failed")

        try:
            batch = self.reader.ingest(
                self.config.INBOX_DIR,
                self.state,
                self.config.MAX_CHUNK_SIZE,
                recorder=self.recorder,
            )
        except InboxAccessError as e:
            return self._abort(summary, start_time, [f"File system: {e}"], str(e))

        try:
            summary.files_scanned = batch.total_files
            summary.files_modified = len(batch.documents)
            summary.chunks = len(batch.chunks)

            if batch.chunks:
                await self._process(batch, summary)
            else:
                logger.info("No modified notes to process")

        except Exception as e:
            summary.success = False
            summary.error = str(e)
            self.recorder.record("run_failed", level="error", error=str(e))

        # Persist whatever was marked, even after a failure mid-run
        try:
            report = self.state.cleanup(self.config.MAX_PROCESSED_ENTRIES)
            summary.hashes_pruned = report.hashes_removed
            summary.watermarks_pruned = report.watermarks_removed
            self.state.update_last_run()
        except Exception as e:
            summary.success = False
            summary.error = summary.error or str(e)
            self.recorder.record("state_finalize_failed", level="error", error=str(e))

        summary.elapsed_seconds = time.time() - start_time
        self.recorder.record("run_completed", **summary.to_dict())
        return summary

    def _abort(
        self,
        summary: RunSummary,
        start_time: float,
        issues: list[str],
        error: str,
    ) -> RunSummary:
        summary.success = False
        summary.health_issues = issues
        summary.error = error
        summary.elapsed_seconds = time.time() - start_time
        self.recorder.record("run_aborted", level="error", issues=issues)
        return summary

    async def _process(self, batch: "inbox_reader.IngestBatch", summary: RunSummary) -> None:
        """Extract, dedup, sync, then advance watermarks."""
        results = await self.extractor.extract_many(
            batch.chunks, concurrency=self.config.EXTRACT_CONCURRENCY
        )
        summary.extraction_failures = sum(1 for r in results if not r.success)
        summary.extracted = sum(len(r.tasks) for r in results)

        tasks = self._select_new_tasks(results, summary)
        summary.new_tasks = len(tasks)

        # Only transient failures keep a file for the next run
        held_back = {r.chunk.file_path for r in results if not r.success and r.retryable}

        if tasks:
            sync_results = await self.notion.sync_many(
                tasks, concurrency=self.config.SYNC_CONCURRENCY
            )
            for task, result in zip(tasks, sync_results):
                if result.success:
                    self.state.mark_processed(task.hash)
                    summary.synced += 1
                else:
                    summary.failed += 1
                    if result.retryable:
                        held_back.add(task.file_path)
                    logger.warning(f"Task sync failed: {task.title!r}: {result.error}")
        else:
            logger.info("No new tasks to sync")

        for document in batch.documents:
            if document.path in held_back:
                logger.info(f"Keeping watermark for {document.path} so it is retried")
                continue
            self.state.update_watermark(document.path, document.modified_time)

    def _select_new_tasks(
        self,
        results: list[ExtractionResult],
        summary: RunSummary,
    ) -> list[TaskWithMeta]:
        """Attach identities and drop tasks already synced (or repeated this run)."""
        tasks = []
        seen = set()

        for result in results:
            file_path = result.chunk.file_path
            for ordinal, task in enumerate(result.tasks):
                task_hash = self.state.compute_hash(task, file_path, ordinal)

                if self.state.is_processed(task_hash) or task_hash in seen:
                    logger.debug(f"Skipping already processed task {task_hash}")
                    summary.skipped += 1
                    continue

                seen.add(task_hash)
                tasks.append(TaskWithMeta.from_task(task, task_hash, file_path, ordinal))

        return tasks
