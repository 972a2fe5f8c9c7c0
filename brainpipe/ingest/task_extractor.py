"""
Task extraction for Brainpipe.

Sends note chunks to an OpenAI-compatible chat-completions endpoint and
turns the JSON reply into validated ExtractedTask objects.

Failures never raise out of ``extract``: rate limits are retried with
backoff, an unparsable reply gets one corrective request (and yields no
tasks if the second reply is no better), and anything else comes back as
an ExtractionResult with ``success=False``. ``retryable`` marks the
failures worth sending again on a later run.
"""

import asyncio
import json
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Optional

import httpx

from brainpipe.config import config
from brainpipe.health import HealthStatus
from brainpipe.ingest.chunking import Chunk
from brainpipe.ingest.task_identity import ExtractedTask
from brainpipe.net import (
    RATE_LIMIT_RETRY,
    ApiFailure,
    ApiResult,
    FailureKind,
    gather_in_batches,
    send_with_retry,
)
from brainpipe.net.retry import Sleep
from brainpipe.prompts import (
    HEALTH_CHECK_SYSTEM_PROMPT,
    HEALTH_CHECK_USER_PROMPT,
    STRICT_EXCERPT_LENGTH,
    TASK_EXTRACTION_STRICT_PROMPT,
    TASK_EXTRACTION_STRICT_USER_PROMPT,
    TASK_EXTRACTION_SYSTEM_PROMPT,
    TASK_EXTRACTION_USER_PROMPT,
    format_prompt,
)
from brainpipe.telemetry import EventRecorder, get_recorder

logger = logging.getLogger(__name__)

MAX_COMPLETION_TOKENS = 1500
REQUEST_TIMEOUT = 60.0
# Pause between extraction batches
BATCH_PAUSE_SECONDS = 0.5

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_DAY_MONTH = re.compile(r"^(\d{1,2})/(\d{1,2})$")


@dataclass
class ExtractionResult:
    """Result of extracting tasks from one chunk."""

    chunk: Chunk
    tasks: list[ExtractedTask] = field(default_factory=list)
    success: bool = True
    error: Optional[str] = None
    # Failed for a transient reason; the chunk is worth sending again later
    retryable: bool = False


# =============================================================================
# Reply validation
# =============================================================================


def normalise_date(value: Any, year: Optional[int] = None) -> Optional[str]:
    """
    Normalise a due date to YYYY-MM-DD.

    Strings that do not name a real calendar date become None.

    Examples:
        "2025-08-16" -> "2025-08-16"
        "16/8"       -> "<year>-08-16"  (day/month, current year)
        "31/02"      -> None
        "tomorrow"   -> None
    """
    if not isinstance(value, str) or not value:
        return None

    if _ISO_DATE.match(value):
        candidate = value
    else:
        match = _DAY_MONTH.match(value)
        if not match:
            return None
        day, month = match.groups()
        year = year or datetime.now().year
        candidate = f"{year}-{month.zfill(2)}-{day.zfill(2)}"

    try:
        date.fromisoformat(candidate)
    except ValueError:
        return None
    return candidate


def _clean_tags(value: Any) -> Optional[list[str]]:
    if not isinstance(value, list):
        return None
    # dict.fromkeys drops repeats but keeps first-seen order
    return list(dict.fromkeys(tag for tag in value if isinstance(tag, str)))


def validate_tasks(raw_tasks: Any) -> list[ExtractedTask]:
    """
    Keep only well-formed task objects from the model's reply.

    A task survives if it is an object with a non-empty string title.
    """
    if not isinstance(raw_tasks, list):
        return []

    tasks = []
    for item in raw_tasks:
        if not isinstance(item, dict):
            continue
        title = item.get("title")
        if not isinstance(title, str) or not title.strip():
            continue

        tasks.append(
            ExtractedTask(
                title=title.strip(),
                due=normalise_date(item.get("due")),
                tags=_clean_tags(item.get("tags")),
            )
        )

    return tasks


def _parse_json(content: str) -> Optional[Any]:
    try:
        return json.loads(content)
    except (TypeError, ValueError):
        return None


# =============================================================================
# Client
# =============================================================================


class TaskExtractor:
    """
    Extract actionable tasks from note chunks.

    Usage:
        async with TaskExtractor() as extractor:
            results = await extractor.extract_many(chunks)
            for result in results:
                for task in result.tasks:
                    print(task.title, task.due)
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Sleep = asyncio.sleep,
        recorder: Optional[EventRecorder] = None,
    ):
        """
        Initialize extractor.

        Args:
            api_key: API credential (uses config if not provided)
            model: Chat model (defaults to config.OPENAI_MODEL)
            base_url: API root, e.g. https://api.openai.com/v1
            http_client: Pre-built client (tests inject a mock transport)
            sleep: Awaitable sleep used for backoff and batch pauses
            recorder: Event sink (process-wide recorder if omitted)
        """
        self.api_key = api_key or config.OPENAI_API_KEY
        self.model = model or config.OPENAI_MODEL
        self.base_url = (base_url or config.OPENAI_BASE_URL).rstrip("/")
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

    async def __aenter__(self) -> "TaskExtractor":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ==========================================================================
    # Requests
    # ==========================================================================

    async def _complete(self, system_prompt: str, user_prompt: str) -> ApiResult:
        """
        Run one chat completion.

        Returns:
            ApiResult whose data is the reply's message content (str)
        """
        if not self.api_key:
            return ApiResult(
                failure=ApiFailure(FailureKind.REQUEST_ERROR, "OPENAI_API_KEY not configured"),
                attempts=0,
            )

        result = await send_with_retry(
            self.client,
            "POST",
            f"{self.base_url}/chat/completions",
            json_body={
                "model": self.model,
                "messages": [
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                "max_completion_tokens": MAX_COMPLETION_TOKENS,
                "response_format": {"type": "json_object"},
            },
            headers={"Authorization": f"Bearer {self.api_key}"},
            policies=(RATE_LIMIT_RETRY,),
            sleep=self.sleep,
            service="OpenAI",
        )
        if not result.ok:
            return result

        try:
            content = result.data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            content = None

        if not isinstance(content, str):
            return ApiResult(
                failure=ApiFailure(FailureKind.INVALID_RESPONSE, "No response from OpenAI API"),
                attempts=result.attempts,
            )

        return ApiResult(data=content, attempts=result.attempts)

    def _build_user_prompt(self, chunk: Chunk) -> str:
        now = datetime.now()
        chunk_info = f" (chunk {chunk.position})" if chunk.is_partial else ""
        return format_prompt(
            TASK_EXTRACTION_USER_PROMPT,
            chunk_info=chunk_info,
            content=chunk.content,
            date=now.strftime("%Y-%m-%d"),
            time=now.strftime("%H:%M"),
        )

    async def _corrective_retry(self, chunk: Chunk) -> ApiResult:
        """
        Ask again with the schema-only prompt.

        Returns:
            ApiResult whose data is the parsed reply, or None when the
            reply still is not JSON
        """
        excerpt = chunk.content[:STRICT_EXCERPT_LENGTH]
        result = await self._complete(
            TASK_EXTRACTION_STRICT_PROMPT,
            format_prompt(TASK_EXTRACTION_STRICT_USER_PROMPT, excerpt=excerpt),
        )
        if not result.ok:
            self.recorder.record(
                "extraction_retry_failed",
                level="error",
                file=chunk.file_path,
                chunk=chunk.position,
                error=result.failure.message,
            )
            return result

        parsed = _parse_json(result.data)
        if parsed is None:
            self.recorder.record(
                "extraction_retry_failed",
                level="error",
                file=chunk.file_path,
                chunk=chunk.position,
                error="reply was not valid JSON",
            )
        return ApiResult(data=parsed, attempts=result.attempts)

    # ==========================================================================
    # Public API
    # ==========================================================================

    async def extract(self, chunk: Chunk) -> ExtractionResult:
        """
        Extract tasks from one chunk.

        Args:
            chunk: Chunk to send

        Returns:
            ExtractionResult (never raises)
        """
        try:
            system_prompt = format_prompt(
                TASK_EXTRACTION_SYSTEM_PROMPT, year=datetime.now().year
            )
            result = await self._complete(system_prompt, self._build_user_prompt(chunk))

            if not result.ok:
                self.recorder.record(
                    "extraction_failed",
                    level="error",
                    file=chunk.file_path,
                    chunk=chunk.position,
                    error=result.failure.message,
                )
                return ExtractionResult(
                    chunk=chunk,
                    success=False,
                    error=result.failure.message,
                    retryable=result.failure.retryable,
                )

            parsed = _parse_json(result.data)
            if parsed is None:
                logger.warning(
                    f"Unparsable reply for {chunk.file_path} ({chunk.position}), "
                    f"retrying with strict prompt: {result.data[:200]!r}"
                )
                retry = await self._corrective_retry(chunk)
                if not retry.ok:
                    return ExtractionResult(
                        chunk=chunk,
                        success=False,
                        error=retry.failure.message,
                        retryable=retry.failure.retryable,
                    )
                # Still not JSON: no tasks for this chunk
                parsed = retry.data

            raw_tasks = parsed.get("tasks", []) if isinstance(parsed, dict) else []
            tasks = validate_tasks(raw_tasks)

            if tasks:
                self.recorder.record(
                    "tasks_extracted",
                    file=chunk.file_path,
                    chunk=chunk.position,
                    titles=[task.title for task in tasks],
                )

            return ExtractionResult(chunk=chunk, tasks=tasks)

        except Exception as e:
            logger.error(f"Task extraction failed for {chunk.file_path}: {e}")
            return ExtractionResult(chunk=chunk, success=False, error=str(e))

    async def extract_many(
        self,
        chunks: list[Chunk],
        concurrency: int = 3,
    ) -> list[ExtractionResult]:
        """
        Extract tasks from many chunks in bounded concurrent batches.

        Args:
            chunks: Chunks to process
            concurrency: Chunks in flight per batch

        Returns:
            One ExtractionResult per chunk, in input order
        """
        self.recorder.record(
            "extraction_batch_started", chunks=len(chunks), concurrency=concurrency
        )

        results = await gather_in_batches(
            chunks,
            self.extract,
            batch_size=concurrency,
            pause=BATCH_PAUSE_SECONDS,
            sleep=self.sleep,
            fallback=lambda chunk, exc: ExtractionResult(
                chunk=chunk, success=False, error=str(exc)
            ),
        )

        self.recorder.record(
            "extraction_batch_completed",
            chunks=len(results),
            tasks=sum(len(r.tasks) for r in results),
            failed=sum(1 for r in results if not r.success),
        )
        return results

    async def health_check(self) -> HealthStatus:
        """Verify the credential and model answer a trivial JSON request."""
        result = await self._complete(HEALTH_CHECK_SYSTEM_PROMPT, HEALTH_CHECK_USER_PROMPT)
        if not result.ok:
            return HealthStatus(False, result.failure.message)

        parsed = _parse_json(result.data)
        if isinstance(parsed, dict) and parsed.get("test") is True:
            return HealthStatus(True, "OpenAI API connection successful")

        return HealthStatus(False, "OpenAI API returned unexpected response")
