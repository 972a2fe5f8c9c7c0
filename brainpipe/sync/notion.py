"""
Notion sync for Brainpipe.

Creates one database page per task, idempotently: before creating, the
database is queried for a page whose "Task ID" equals the task hash, and
an existing page is reported as success without a second create.

Required database properties:
    Name (title), Status (status), Due Date (date), Tags (multi_select),
    Task ID (rich_text), Captured From (rich_text)
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

import httpx

from brainpipe.config import config
from brainpipe.health import HealthStatus
from brainpipe.ingest.task_identity import TaskWithMeta
from brainpipe.net import (
    RATE_LIMIT_RETRY,
    SERVER_ERROR_RETRY,
    ApiFailure,
    ApiResult,
    FailureKind,
    gather_in_batches,
    send_with_retry,
)
from brainpipe.net.retry import Sleep
from brainpipe.telemetry import EventRecorder, get_recorder

logger = logging.getLogger(__name__)

NOTION_API_URL = "https://api.notion.com/v1"
NOTION_VERSION = "2022-06-28"
REQUEST_TIMEOUT = 30.0
# Pause between sync batches
BATCH_PAUSE_SECONDS = 1.0
# Notion rejects rich text longer than this
MAX_TEXT_LENGTH = 2000

# page_id / page_url reported when the task was already in the database
EXISTING_SENTINEL = "existing"

DEFAULT_STATUS = "Not started"
CAPTURED_FROM = "Brain Dump"

REQUIRED_PROPERTIES = {
    "Name": "title",
    "Status": "status",
    "Due Date": "date",
    "Tags": "multi_select",
    "Task ID": "rich_text",
    "Captured From": "rich_text",
}

RETRY_POLICIES = (RATE_LIMIT_RETRY, SERVER_ERROR_RETRY)


@dataclass
class SyncResult:
    """Result of syncing one task."""

    success: bool
    page_id: Optional[str] = None
    page_url: Optional[str] = None
    error: Optional[str] = None
    # Failed for a transient reason; worth syncing again later
    retryable: bool = False

    @property
    def already_existed(self) -> bool:
        return self.success and self.page_id == EXISTING_SENTINEL


@dataclass
class DatabaseInfo:
    """Database title and its property name -> type map."""

    title: str
    properties: dict[str, str] = field(default_factory=dict)


# =============================================================================
# Property builders
# =============================================================================


def _text(content: str) -> list[dict]:
    return [{"text": {"content": content[:MAX_TEXT_LENGTH]}}]


def build_page_properties(task: TaskWithMeta) -> dict:
    """Notion page properties for a task."""
    properties = {
        "Name": {"title": _text(task.title)},
        "Status": {"status": {"name": DEFAULT_STATUS}},
        "Task ID": {"rich_text": _text(task.hash)},
        "Captured From": {"rich_text": _text(CAPTURED_FROM)},
    }

    if task.due:
        properties["Due Date"] = {"date": {"start": task.due}}

    if task.tags:
        properties["Tags"] = {"multi_select": [{"name": tag} for tag in task.tags]}

    return properties


def _database_title(payload: dict) -> str:
    for part in payload.get("title") or []:
        content = (part.get("text") or {}).get("content") or part.get("plain_text")
        if content:
            return content
    return "Untitled Database"


# =============================================================================
# Client
# =============================================================================


class NotionClient:
    """
    Idempotent task sync into a Notion database.

    Usage:
        async with NotionClient() as notion:
            results = await notion.sync_many(tasks)
            synced = [r for r in results if r.success]
    """

    def __init__(
        self,
        token: Optional[str] = None,
        database_id: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Sleep = asyncio.sleep,
        recorder: Optional[EventRecorder] = None,
        base_url: str = NOTION_API_URL,
    ):
        """
        Initialize client.

        Args:
            token: Integration credential (uses config if not provided)
            database_id: Target database (uses config if not provided)
            http_client: Pre-built client (tests inject a mock transport)
            sleep: Awaitable sleep used for backoff and batch pauses
            recorder: Event sink (process-wide recorder if omitted)
            base_url: API root
        """
        self.token = token or config.NOTION_TOKEN
        self.database_id = database_id or config.NOTION_DATABASE_ID
        self.base_url = base_url.rstrip("/")
        self.sleep = sleep
        self.recorder = recorder or get_recorder()
        self._client = http_client
        self._owns_client = http_client is None

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazy load HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=REQUEST_TIMEOUT)
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "NotionClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _call(self, method: str, endpoint: str, body: Optional[dict] = None) -> ApiResult:
        if not self.token or not self.database_id:
            return ApiResult(
                failure=ApiFailure(
                    FailureKind.REQUEST_ERROR, "NOTION_TOKEN or NOTION_DATABASE_ID not configured"
                ),
                attempts=0,
            )

        return await send_with_retry(
            self.client,
            method,
            f"{self.base_url}{endpoint}",
            json_body=body,
            headers={
                "Authorization": f"Bearer {self.token}",
                "Notion-Version": NOTION_VERSION,
                "Content-Type": "application/json",
            },
            policies=RETRY_POLICIES,
            sleep=self.sleep,
            service="Notion",
        )

    # ==========================================================================
    # Sync
    # ==========================================================================

    async def task_exists(self, task_hash: str) -> bool:
        """
        Check whether a page with this Task ID is already in the database.

        A failed query is logged and treated as "not found".
        """
        result = await self._call(
            "POST",
            f"/databases/{self.database_id}/query",
            {"filter": {"property": "Task ID", "rich_text": {"equals": task_hash}}},
        )

        if not result.ok:
            self.recorder.record(
                "notion_exists_check_failed",
                level="warn",
                hash=task_hash,
                error=result.failure.message,
            )
            return False

        results = result.data.get("results") if isinstance(result.data, dict) else None
        return bool(results)

    async def upsert(self, task: TaskWithMeta) -> SyncResult:
        """
        Create a page for the task unless one already exists.

        Args:
            task: Task with its hash

        Returns:
            SyncResult (never raises)
        """
        try:
            if await self.task_exists(task.hash):
                logger.debug(f"Task {task.hash} already in Notion, skipping")
                return SyncResult(
                    success=True, page_id=EXISTING_SENTINEL, page_url=EXISTING_SENTINEL
                )

            result = await self._call(
                "POST",
                "/pages",
                {
                    "parent": {"database_id": self.database_id},
                    "properties": build_page_properties(task),
                },
            )

            if not result.ok:
                self.recorder.record(
                    "notion_create_failed",
                    level="error",
                    title=task.title,
                    hash=task.hash,
                    error=result.failure.message,
                )
                return SyncResult(
                    success=False,
                    error=result.failure.message,
                    retryable=result.failure.retryable,
                )

            page = result.data if isinstance(result.data, dict) else {}
            self.recorder.record(
                "notion_page_created",
                title=task.title,
                page_id=page.get("id"),
                url=page.get("url"),
            )
            return SyncResult(success=True, page_id=page.get("id"), page_url=page.get("url"))

        except Exception as e:
            logger.error(f"Notion sync failed for {task.hash}: {e}")
            return SyncResult(success=False, error=str(e))

    async def sync_many(
        self,
        tasks: list[TaskWithMeta],
        concurrency: int = 3,
    ) -> list[SyncResult]:
        """
        Upsert many tasks in bounded concurrent batches.

        Args:
            tasks: Tasks to sync
            concurrency: Tasks in flight per batch

        Returns:
            One SyncResult per task, in input order
        """
        self.recorder.record("notion_sync_started", tasks=len(tasks), concurrency=concurrency)

        results = await gather_in_batches(
            tasks,
            self.upsert,
            batch_size=concurrency,
            pause=BATCH_PAUSE_SECONDS,
            sleep=self.sleep,
            fallback=lambda task, exc: SyncResult(success=False, error=str(exc)),
        )

        self.recorder.record(
            "notion_sync_completed",
            total=len(results),
            successful=sum(1 for r in results if r.success),
            failed=sum(1 for r in results if not r.success),
        )
        return results

    # ==========================================================================
    # Setup checks
    # ==========================================================================

    async def get_database_info(self) -> Optional[DatabaseInfo]:
        """Fetch the database title and property types, or None on failure."""
        result = await self._call("GET", f"/databases/{self.database_id}")
        if not result.ok:
            self.recorder.record(
                "notion_database_fetch_failed", level="warn", error=result.failure.message
            )
            return None

        payload = result.data if isinstance(result.data, dict) else {}
        properties = {
            name: prop.get("type", "unknown")
            for name, prop in (payload.get("properties") or {}).items()
            if isinstance(prop, dict)
        }
        return DatabaseInfo(title=_database_title(payload), properties=properties)

    async def health_check(self) -> HealthStatus:
        """Verify the database is reachable and has the required properties."""
        result = await self._call("GET", f"/databases/{self.database_id}")
        if not result.ok:
            return HealthStatus(False, result.failure.message)

        payload = result.data if isinstance(result.data, dict) else {}
        existing = {
            name: prop.get("type")
            for name, prop in (payload.get("properties") or {}).items()
            if isinstance(prop, dict)
        }

        missing = [name for name in REQUIRED_PROPERTIES if name not in existing]
        if missing:
            expected = ", ".join(f"{name} ({kind})" for name, kind in REQUIRED_PROPERTIES.items())
            return HealthStatus(
                False,
                f"Missing required database properties: {', '.join(missing)}. "
                f"Please ensure your Notion database has these columns: {expected}",
            )

        wrong = [
            f"{name} is {existing[name]}, expected {kind}"
            for name, kind in REQUIRED_PROPERTIES.items()
            if existing[name] != kind
        ]
        if wrong:
            return HealthStatus(False, f"Wrong database property types: {'; '.join(wrong)}")

        sample = await self._call(
            "POST", f"/databases/{self.database_id}/query", {"page_size": 1}
        )
        if not sample.ok:
            return HealthStatus(False, sample.failure.message)

        return HealthStatus(True, "Notion database accessible with required properties")
