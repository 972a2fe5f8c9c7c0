"""
Tests for the brainpipe command line.
"""

import json

import pytest
from click.testing import CliRunner

from brainpipe.config import config
from brainpipe.state import StateStore
from cli.main import cli


@pytest.fixture
def runner():
    return CliRunner()


class TestStats:
    def test_empty_ledger(self, runner):
        result = runner.invoke(cli, ["stats"])

        assert result.exit_code == 0
        assert "Last run:          never" in result.output
        assert "Processed tasks:" in result.output

    def test_counts(self, runner):
        state = StateStore(config.STATE_PATH)
        state.mark_processed("a")
        state.mark_processed("b")
        state.update_last_run()

        result = runner.invoke(cli, ["stats"])

        assert result.exit_code == 0
        assert state.get_last_run() in result.output
        assert "2" in result.output.split("Processed tasks:")[1].splitlines()[0]


class TestResetState:
    def test_with_yes(self, runner):
        state = StateStore(config.STATE_PATH)
        state.mark_processed("a")
        state.save()

        result = runner.invoke(cli, ["reset-state", "--yes"])

        assert result.exit_code == 0
        assert StateStore(config.STATE_PATH).processed_count == 0

    def test_declined(self, runner):
        state = StateStore(config.STATE_PATH)
        state.mark_processed("a")
        state.save()

        result = runner.invoke(cli, ["reset-state"], input="n\n")

        assert result.exit_code != 0
        assert StateStore(config.STATE_PATH).processed_count == 1


class TestLogs:
    def test_no_events(self, runner):
        result = runner.invoke(cli, ["logs"])
        assert result.exit_code == 0
        assert "No events recorded" in result.output

    def test_json(self, runner):
        from brainpipe.telemetry import EventRecorder

        EventRecorder(enabled=True).record("run_completed", synced=2)

        result = runner.invoke(cli, ["logs", "--json", "-n", "5"])

        assert result.exit_code == 0
        events = json.loads(result.output)
        assert events[-1]["event"] == "run_completed"
        assert events[-1]["data"] == {"synced": 2}


class TestRun:
    def test_missing_config_fails_without_network(self, runner):
        result = runner.invoke(cli, ["run"])

        assert result.exit_code == 1
        assert "Sync failed" in result.output
        assert "OPENAI_API_KEY" in result.output


class TestHealth:
    def test_missing_config(self, runner):
        result = runner.invoke(cli, ["health"])

        assert result.exit_code == 1
        assert "NOTION_TOKEN not set" in result.output


class TestVersion:
    def test_version(self, runner):
        from brainpipe import __version__

        result = runner.invoke(cli, ["--version"])
        assert __version__ in result.output
