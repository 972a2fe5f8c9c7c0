"""
Tests for event recording, redaction and log rotation.
"""

import json
import logging

from brainpipe import telemetry
from brainpipe.telemetry import EventRecorder, get_recorder, sanitize_fields


class TestSanitizeFields:
    def test_redacts_credential_keys(self):
        data = sanitize_fields({
            "api_key": "sk-123",
            "notionToken": "secret_abc",
            "Authorization": "Bearer x",
            "password": "hunter2",
            "file": "note.md",
        })

        assert data["api_key"] == "[REDACTED]"
        assert data["notionToken"] == "[REDACTED]"
        assert data["Authorization"] == "[REDACTED]"
        assert data["password"] == "[REDACTED]"
        assert data["file"] == "note.md"

    def test_nested(self):
        data = sanitize_fields({"request": {"headers": {"auth": "x"}, "items": [{"secret": 1}]}})
        assert data["request"]["headers"]["auth"] == "[REDACTED]"
        assert data["request"]["items"][0]["secret"] == "[REDACTED]"

    def test_scalars_unchanged(self):
        assert sanitize_fields("plain") == "plain"
        assert sanitize_fields(3) == 3


class TestEventRecorder:
    def test_writes_jsonl(self, tmp_path):
        recorder = EventRecorder(log_path=tmp_path / "events.jsonl", enabled=True)
        recorder.record("chunk_extracted", file="a.md", tasks=3)

        lines = (tmp_path / "events.jsonl").read_text().splitlines()
        entry = json.loads(lines[0])
        assert entry["event"] == "chunk_extracted"
        assert entry["level"] == "INFO"
        assert entry["data"] == {"file": "a.md", "tasks": 3}
        assert entry["timestamp"]

    def test_redacts_in_file(self, tmp_path):
        recorder = EventRecorder(log_path=tmp_path / "events.jsonl", enabled=True)
        recorder.record("configured", api_key="sk-live-123")

        text = (tmp_path / "events.jsonl").read_text()
        assert "sk-live-123" not in text
        assert "[REDACTED]" in text

    def test_disabled_writes_nothing(self, tmp_path):
        recorder = EventRecorder(log_path=tmp_path / "events.jsonl", enabled=False)
        recorder.record("anything", x=1)
        assert not (tmp_path / "events.jsonl").exists()

    def test_emits_log_line(self, tmp_path, caplog):
        recorder = EventRecorder(log_path=tmp_path / "events.jsonl", enabled=False)

        with caplog.at_level(logging.WARNING, logger="brainpipe.telemetry"):
            recorder.record("sync_failed", level="warn", error="HTTP 400")

        assert any("sync_failed" in r.message and r.levelno == logging.WARNING for r in caplog.records)

    def test_rotates_when_large(self, tmp_path):
        log_path = tmp_path / "events.jsonl"
        recorder = EventRecorder(log_path=log_path, enabled=True, max_bytes=200)

        for i in range(20):
            recorder.record("filler", index=i, padding="x" * 50)

        backup = tmp_path / "events.jsonl.old"
        assert backup.exists()
        assert log_path.stat().st_size < 200 + 200

    def test_unwritable_log_does_not_raise(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("file")
        recorder = EventRecorder(log_path=blocker / "events.jsonl", enabled=True)
        recorder.record("still_fine")

    def test_read_recent(self, tmp_path):
        log_path = tmp_path / "events.jsonl"
        recorder = EventRecorder(log_path=log_path, enabled=True)
        for i in range(5):
            recorder.record("tick", index=i)
        with open(log_path, "a") as f:
            f.write("not json\n")

        events = recorder.read_recent(3)
        assert [e["data"]["index"] for e in events] == [3, 4]

    def test_read_recent_missing_file(self, tmp_path):
        assert EventRecorder(log_path=tmp_path / "nope.jsonl").read_recent() == []


class TestGetRecorder:
    def test_uses_config(self, monkeypatch, tmp_path):
        monkeypatch.setenv("BRAINPIPE_EVENT_LOG", str(tmp_path / "custom.jsonl"))
        monkeypatch.setenv("BRAINPIPE_TELEMETRY", "1")

        recorder = get_recorder()

        assert recorder.log_path == tmp_path / "custom.jsonl"
        assert recorder.enabled is True
        assert get_recorder() is recorder

    def test_reset_between_tests(self):
        assert telemetry._recorder is None
