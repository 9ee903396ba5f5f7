"""Tests for the fleet command line."""

import signal
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from cli_agent_fleet import __version__
from cli_agent_fleet.cli.main import cli
from cli_agent_fleet.clients.coordination import CoordinationStore
from cli_agent_fleet.constants import (
    BUGS_FILE,
    DEPLOYMENT_LOG_FILE,
    FILES_LOCK_FILE,
    HISTORY_LOG_FILE,
    STATUS_DASHBOARD_FILE,
    TEST_QUEUE_FILE,
)
from cli_agent_fleet.providers.codex import CodexProvider
from cli_agent_fleet.services.feature_service import FleetAbort
from cli_agent_fleet.services.phase_service import SkillNotFoundError


@pytest.fixture
def runner():
    return CliRunner()


def _invoke(runner, tmp_path, *args):
    return runner.invoke(cli, ["--project-dir", str(tmp_path), *args], env={"FLEET_MAX_ROUNDS": ""})


class TestGroup:
    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help_lists_commands(self, runner):
        result = runner.invoke(cli, ["--help"])
        for command in ("run", "features", "watch", "status"):
            assert command in result.output

    def test_invalid_provider(self, runner, tmp_path):
        result = _invoke(runner, tmp_path, "--provider", "gemini", "run")
        assert result.exit_code == 2


class TestRun:
    @patch("cli_agent_fleet.cli.commands.run.RoundLoop")
    def test_run(self, mock_loop, runner, tmp_path):
        result = _invoke(runner, tmp_path, "--provider", "codex", "--skills-dir", str(tmp_path), "run", "--max-rounds", "4")

        assert result.exit_code == 0, result.output
        args, kwargs = mock_loop.call_args
        assert args[0].root == tmp_path.resolve() / "_coordination"
        assert isinstance(args[1], CodexProvider)
        assert args[2] == tmp_path
        assert kwargs["max_rounds"] == 4
        mock_loop.return_value.run.assert_called_once()

    @patch("cli_agent_fleet.cli.commands.run.RoundLoop")
    def test_yolo_reaches_provider(self, mock_loop, runner, tmp_path):
        _invoke(runner, tmp_path, "--yolo", "run")
        assert mock_loop.call_args.args[1].yolo

    @patch("cli_agent_fleet.cli.commands.run.RoundLoop")
    def test_missing_skill(self, mock_loop, runner, tmp_path):
        mock_loop.return_value.run.side_effect = SkillNotFoundError("architect", tmp_path / "architect" / "SKILL.md")
        result = _invoke(runner, tmp_path, "run")
        assert result.exit_code == 1
        assert "architect skill not found" in result.output
        assert "Please install the skills first" in result.output

    def test_bad_config_file(self, runner, tmp_path):
        config = tmp_path / "fleet.json"
        config.write_text("{")
        result = _invoke(runner, tmp_path, "--config", str(config), "run")
        assert result.exit_code == 1
        assert "Invalid JSON" in result.output

    def test_zero_rounds_rejected(self, runner, tmp_path):
        assert _invoke(runner, tmp_path, "run", "--max-rounds", "0").exit_code == 2


class TestFeatures:
    @patch("cli_agent_fleet.cli.commands.features.FeatureLoop")
    @patch("cli_agent_fleet.cli.commands.features.PollLoop")
    def test_features(self, mock_poll, mock_loop, runner, tmp_path):
        result = _invoke(runner, tmp_path, "features", "--max-rounds", "3", "--poll-interval", "2")

        assert result.exit_code == 0, result.output
        assert mock_poll.call_args.kwargs["poll_interval"] == 2
        assert mock_loop.call_args.args[3] is mock_poll.return_value
        assert mock_loop.call_args.kwargs["max_rounds"] == 3
        mock_loop.return_value.run.assert_called_once()

    @patch("cli_agent_fleet.cli.commands.features.FeatureLoop")
    @patch("cli_agent_fleet.cli.commands.features.PollLoop")
    def test_abort(self, mock_poll, mock_loop, runner, tmp_path):
        mock_loop.return_value.run.side_effect = FleetAbort("Start app before continuing")
        result = _invoke(runner, tmp_path, "features")
        assert result.exit_code == 1
        assert "Start app before continuing" in result.output


class TestWatch:
    @patch("cli_agent_fleet.cli.commands.watch.PollLoop")
    def test_watch(self, mock_poll, runner, tmp_path):
        mock_poll.return_value.watched = "BUILD_LOG.md"
        before = signal.getsignal(signal.SIGINT)

        result = _invoke(runner, tmp_path, "watch", "--poll-interval", "1")

        assert result.exit_code == 0, result.output
        assert "Watching _coordination/BUILD_LOG.md" in result.output
        store = CoordinationStore(tmp_path)
        assert store.read_document(STATUS_DASHBOARD_FILE) == "Status: Idle\n"
        assert store.exists(BUGS_FILE)
        mock_poll.return_value.run.assert_called_once()
        assert signal.getsignal(signal.SIGINT) == before


class TestStatus:
    def test_no_coordination_directory(self, runner, tmp_path):
        result = _invoke(runner, tmp_path, "status")
        assert result.exit_code == 1
        assert "No coordination directory" in result.output

    def _populate(self, tmp_path):
        store = CoordinationStore(tmp_path)
        store.init_background_files()
        store.write_document(STATUS_DASHBOARD_FILE, "Status: Testing\n")
        store.write_document(BUGS_FILE, "- 🔴 CRITICAL: crash\n- 🟡 MEDIUM: typo in footer\n")
        store.write_document(FILES_LOCK_FILE, "src/app.py (bugfixer)\n")
        store.write_document(DEPLOYMENT_LOG_FILE, "DEPLOYMENT SUCCESSFUL\n")
        store.append_line(HISTORY_LOG_FILE, "2026-01-01T10:00:00 FAIL tester-background critical=1 high=0")
        store.append_line(TEST_QUEUE_FILE, "- [ ] login works")
        store.append_line(TEST_QUEUE_FILE, "- [x] signup works")

    def test_status(self, runner, tmp_path):
        self._populate(tmp_path)
        result = _invoke(runner, tmp_path, "status")

        assert result.exit_code == 0, result.output
        assert "Status: Testing" in result.output
        assert "src/app.py (bugfixer)" in result.output
        assert "Queued manual tests: 1" in result.output
        assert "Last test run: 2026-01-01T10:00:00 FAIL" in result.output
        assert "Last deployment successful" in result.output
        assert "Deployment readiness: NOT READY" in result.output
        assert "MEDIUM" not in result.output

    def test_status_all(self, runner, tmp_path):
        self._populate(tmp_path)
        result = _invoke(runner, tmp_path, "status", "--all")
        assert result.exit_code == 0, result.output
        assert "🟡 MEDIUM typo in footer" in result.output
        assert "🔴 CRITICAL crash" in result.output
