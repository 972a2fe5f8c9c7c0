"""
Pytest configuration and fixtures for Brainpipe tests.
"""

import json
import sys
from pathlib import Path

import httpx
import pytest

# Add brainpipe to path
sys.path.insert(0, str(Path(__file__).parent.parent))


# =============================================================================
# Test doubles
# =============================================================================


class FakeSleep:
    """Awaitable sleep that records delays instead of waiting."""

    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


class ScriptedTransport:
    """
    Mock HTTP backend answering from a queue.

    Each entry is (status, body) where body is a dict/list (sent as JSON)
    or a str (sent as raw text), or an exception instance to raise. The
    last entry repeats once the queue is down to one.
    """

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        entry = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]

        if isinstance(entry, Exception):
            raise entry

        status, body = entry
        if isinstance(body, str):
            return httpx.Response(status, text=body)
        return httpx.Response(status, json=body)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))

    def bodies(self) -> list:
        return [json.loads(r.content) if r.content else None for r in self.requests]


class RoutedTransport:
    """Mock HTTP backend dispatching on (method, path suffix) with a handler."""

    def __init__(self, handler):
        self.handler = handler
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


def openai_reply(content) -> tuple:
    """A chat-completions 200 response whose message content is ``content``."""
    if not isinstance(content, str):
        content = json.dumps(content)
    return (200, {"choices": [{"message": {"role": "assistant", "content": content}}]})


# =============================================================================
# Environment isolation
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Point config at a temp data dir and keep the event log off by default."""
    from brainpipe import telemetry

    for name in (
        "OPENAI_API_KEY",
        "OPENAI_MODEL",
        "OPENAI_BASE_URL",
        "NOTION_TOKEN",
        "NOTION_DATABASE_ID",
        "BRAINPIPE_INBOX_DIR",
        "BRAINPIPE_STATE_PATH",
        "BRAINPIPE_EVENT_LOG",
    ):
        monkeypatch.delenv(name, raising=False)

    monkeypatch.setenv("BRAINPIPE_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("BRAINPIPE_TELEMETRY", "0")
    monkeypatch.setattr(telemetry, "_recorder", None)


# =============================================================================
# Shared fixtures
# =============================================================================


@pytest.fixture
def fake_sleep():
    return FakeSleep()


@pytest.fixture
def scripted():
    """Factory for ScriptedTransport."""
    return ScriptedTransport


@pytest.fixture
def routed():
    """Factory for RoutedTransport."""
    return RoutedTransport


@pytest.fixture
def reply():
    """Builds chat-completions replies (see openai_reply)."""
    return openai_reply


@pytest.fixture
def recorder(tmp_path):
    """Event recorder writing to a temp JSONL file."""
    from brainpipe.telemetry import EventRecorder
    return EventRecorder(log_path=tmp_path / "events.jsonl", enabled=True)


@pytest.fixture
def state(tmp_path, recorder):
    """Empty ledger in a temp directory."""
    from brainpipe.state import StateStore
    return StateStore(tmp_path / "state" / "state.json", recorder=recorder)


@pytest.fixture
def inbox(tmp_path):
    """Empty inbox directory."""
    path = tmp_path / "inbox"
    path.mkdir()
    return path


@pytest.fixture
def make_chunk():
    """Factory for Chunk objects."""
    from brainpipe.ingest.chunking import Chunk

    def build(content="- [ ] Buy milk", file_path="/notes/2025-08-15.md", index=0, total=1):
        return Chunk(file_path=file_path, content=content, chunk_index=index, total_chunks=total)

    return build


@pytest.fixture
def make_task():
    """Factory for TaskWithMeta objects."""
    from brainpipe.ingest.task_identity import TaskWithMeta

    def build(title="Buy milk", due=None, tags=None, task_hash="abcdef0123456789"):
        return TaskWithMeta(
            title=title,
            due=due,
            tags=tags,
            hash=task_hash,
            file_path="/notes/2025-08-15.md",
            line_index=0,
        )

    return build


# =============================================================================
# Pytest markers
# =============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with -m 'not slow')"
    )
