"""
Tests for environment-driven configuration.
"""

from pathlib import Path

import pytest

from brainpipe.config import Config


@pytest.fixture
def full_env(monkeypatch, tmp_path):
    monkeypatch.setenv("BRAINPIPE_INBOX_DIR", str(tmp_path))
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("NOTION_TOKEN", "secret-test")
    monkeypatch.setenv("NOTION_DATABASE_ID", "db-123")


class TestDefaults:
    def test_paths_follow_data_dir(self, tmp_path):
        config = Config()
        assert config.DATA_DIR == tmp_path / "data"
        assert config.STATE_PATH == tmp_path / "data" / "state.json"
        assert config.EVENT_LOG_PATH == tmp_path / "data" / "brainpipe.jsonl"

    def test_processing_defaults(self):
        config = Config()
        assert config.MAX_CHUNK_SIZE == 8000
        assert config.EXTRACT_CONCURRENCY == 3
        assert config.SYNC_CONCURRENCY == 3
        assert config.MAX_PROCESSED_ENTRIES == 10000
        assert config.OPENAI_MODEL == "gpt-4o-mini"
        assert config.OPENAI_BASE_URL == "https://api.openai.com/v1"

    def test_tilde_expanded(self, monkeypatch):
        monkeypatch.setenv("BRAINPIPE_STATE_PATH", "~/ledger.json")
        assert Config().STATE_PATH == Path("~/ledger.json").expanduser()


class TestOverrides:
    def test_integers(self, monkeypatch):
        monkeypatch.setenv("BRAINPIPE_MAX_CHUNK_SIZE", "500")
        assert Config().MAX_CHUNK_SIZE == 500

    def test_bad_integer_falls_back(self, monkeypatch):
        monkeypatch.setenv("BRAINPIPE_SYNC_CONCURRENCY", "lots")
        assert Config().SYNC_CONCURRENCY == 3

    def test_base_url_trailing_slash(self, monkeypatch):
        monkeypatch.setenv("OPENAI_BASE_URL", "http://localhost:8080/v1/")
        assert Config().OPENAI_BASE_URL == "http://localhost:8080/v1"

    @pytest.mark.parametrize("raw,expected", [("0", False), ("false", False), ("1", True), ("yes", True)])
    def test_telemetry_flag(self, monkeypatch, raw, expected):
        monkeypatch.setenv("BRAINPIPE_TELEMETRY", raw)
        assert Config().TELEMETRY_ENABLED is expected


class TestValidate:
    def test_reports_every_missing_setting(self):
        errors = Config().validate()
        joined = " ".join(errors)
        for name in ("BRAINPIPE_INBOX_DIR", "OPENAI_API_KEY", "NOTION_TOKEN", "NOTION_DATABASE_ID"):
            assert name in joined

    def test_valid(self, full_env):
        assert Config().validate() == []

    def test_non_positive_integer(self, full_env, monkeypatch):
        monkeypatch.setenv("BRAINPIPE_EXTRACT_CONCURRENCY", "0")
        errors = Config().validate()
        assert len(errors) == 1
        assert "BRAINPIPE_EXTRACT_CONCURRENCY" in errors[0]

    def test_repr_hides_credentials(self, full_env):
        text = repr(Config())
        assert "sk-test" not in text
        assert "secret-test" not in text
