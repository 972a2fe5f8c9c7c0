"""
Bounded retry for HTTP APIs.

Both network clients send requests through ``send_with_retry``, which
loops over a set of ``RetryPolicy`` values instead of recursing. Failures
come back as ``ApiFailure`` data rather than exceptions so callers can
turn them into per-item results.

Policies:
    RATE_LIMIT_RETRY   429 -> up to 3 retries, 2s / 4s / 8s
    SERVER_ERROR_RETRY 5xx -> up to 2 retries, 2s / 4s
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Sequence

import httpx

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


class FailureKind(Enum):
    """Why a request ultimately failed."""

    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    REQUEST_ERROR = "request_error"  # any other non-2xx
    TRANSPORT = "transport"  # connection/timeout, no response
    INVALID_RESPONSE = "invalid_response"  # 2xx with a body we can't use


# Kinds worth trying again on a later run
RETRYABLE_KINDS = frozenset(
    {FailureKind.RATE_LIMITED, FailureKind.SERVER_ERROR, FailureKind.TRANSPORT}
)


@dataclass(frozen=True)
class RetryPolicy:
    """
    When and how long to back off.

    ``attempt`` passed to ``delay_for`` is 1-based and counts only the
    retries spent on this policy.
    """

    name: str
    statuses: Callable[[int], bool]
    max_retries: int
    delay: Callable[[int], float]

    def applies_to(self, status: int) -> bool:
        return self.statuses(status)

    def delay_for(self, attempt: int) -> float:
        return self.delay(attempt)


RATE_LIMIT_RETRY = RetryPolicy(
    name="rate_limit",
    statuses=lambda status: status == 429,
    max_retries=3,
    delay=lambda attempt: float(2 ** attempt),
)

SERVER_ERROR_RETRY = RetryPolicy(
    name="server_error",
    statuses=lambda status: status >= 500,
    max_retries=2,
    delay=lambda attempt: 2.0 * attempt,
)


@dataclass
class ApiFailure:
    """A request that did not produce usable data."""

    kind: FailureKind
    message: str
    status: Optional[int] = None

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS

    def __str__(self) -> str:
        return self.message


@dataclass
class ApiResult:
    """Outcome of ``send_with_retry``: either ``data`` or ``failure``."""

    data: Any = None
    failure: Optional[ApiFailure] = None
    attempts: int = 1

    @property
    def ok(self) -> bool:
        return self.failure is None


def extract_error_message(response: httpx.Response) -> str:
    """
    Pull a human-readable message out of an error response.

    Understands both ``{"error": {"message": ...}}`` (OpenAI) and
    ``{"message": ...}`` (Notion). Falls back to the raw body, then to
    ``HTTP <status>``.
    """
    fallback = f"HTTP {response.status_code}"
    body = response.text

    try:
        payload = json.loads(body)
    except ValueError:
        return body.strip() or fallback

    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if payload.get("message"):
            return str(payload["message"])

    return fallback


def _failure_kind(status: int) -> FailureKind:
    if status == 429:
        return FailureKind.RATE_LIMITED
    if status >= 500:
        return FailureKind.SERVER_ERROR
    return FailureKind.REQUEST_ERROR


async def send_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    json_body: Optional[dict] = None,
    headers: Optional[dict] = None,
    policies: Sequence[RetryPolicy] = (RATE_LIMIT_RETRY,),
    sleep: Sleep = asyncio.sleep,
    service: str = "API",
) -> ApiResult:
    """
    Send a request, retrying per ``policies``.

    Each policy keeps its own retry counter. The first policy whose
    status predicate matches and that still has retries left decides the
    backoff; otherwise the failure is returned.

    Args:
        client: HTTP client to send with
        method: HTTP method
        url: Absolute URL
        json_body: JSON payload, if any
        headers: Extra request headers
        policies: Retry policies to apply
        sleep: Awaitable sleep (injected in tests)
        service: Name used in log and error messages

    Returns:
        ApiResult with the decoded JSON body or an ApiFailure
    """
    used = {policy.name: 0 for policy in policies}
    attempts = 0

    while True:
        attempts += 1

        try:
            response = await client.request(method, url, json=json_body, headers=headers)
        except httpx.HTTPError as e:
            return ApiResult(
                failure=ApiFailure(FailureKind.TRANSPORT, f"{service} request failed: {e}"),
                attempts=attempts,
            )

        if response.is_success:
            try:
                return ApiResult(data=response.json(), attempts=attempts)
            except ValueError as e:
                return ApiResult(
                    failure=ApiFailure(
                        FailureKind.INVALID_RESPONSE,
                        f"{service} returned a non-JSON body: {e}",
                        response.status_code,
                    ),
                    attempts=attempts,
                )

        status = response.status_code
        message = extract_error_message(response)

        policy = next(
            (p for p in policies if p.applies_to(status) and used[p.name] < p.max_retries),
            None,
        )
        if policy is None:
            return ApiResult(
                failure=ApiFailure(_failure_kind(status), f"{service} API error: {message}", status),
                attempts=attempts,
            )

        used[policy.name] += 1
        delay = policy.delay_for(used[policy.name])
        logger.warning(
            f"{service} {policy.name} (HTTP {status}), retrying in {delay:.0f}s "
            f"[{used[policy.name]}/{policy.max_retries}]"
        )
        await sleep(delay)
