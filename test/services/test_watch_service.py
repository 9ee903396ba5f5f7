"""Unit tests for the background test & fix poll loop."""

import fcntl
import os
import threading
import time
from unittest.mock import MagicMock

import pytest

from cli_agent_fleet.constants import (
    BUGS_FILE,
    BUILD_LOG_FILE,
    HISTORY_LOG_FILE,
    LATEST_RESULT_FILE,
    STATUS_DASHBOARD_FILE,
)
from cli_agent_fleet.models.phase import PhaseName
from cli_agent_fleet.providers.base import ProviderError
from cli_agent_fleet.services.status_service import HISTORY_LINE_RE
from cli_agent_fleet.services.watch_service import PollLoop

CRITICAL_REPORT = "# Bugs\n\n- 🔴 CRITICAL: src/app.py:12 - crash on login\n"
HIGH_ONLY_REPORT = "# Bugs\n\n- 🟠 HIGH: slow page\n- 🟡 MEDIUM: typo\n- 🟢 LOW: spacing\n"

# The same open critical bug in the layouts testers commonly produce
CRITICAL_REPORT_LAYOUTS = [
    "**🔴 CRITICAL**: crash on login\n",
    "| Severity | Description |\n|---|---|\n| 🔴 CRITICAL | crash on login |\n",
    "1. **Bug #1** 🔴 CRITICAL: crash on login\n",
    "### Login\nSeverity: 🔴 CRITICAL - crash on login\n",
    "- 🔴 CRITICAL: crash on login\n  Status: not fixed\n",
    "- 🔴 CRITICAL: crash on login (NOT FIXED yet)\n",
]


def _touch_build_log(store, stamp):
    """Write the build log and pin its mtime so changes are always visible."""
    store.write_document(BUILD_LOG_FILE, f"build {stamp}\n")
    ns = stamp * 1_000_000_000
    os.utime(store.path(BUILD_LOG_FILE), ns=(ns, ns))


def _tester_writes(report, result="Result: PASS\n"):
    def handler(store):
        store.write_document(LATEST_RESULT_FILE, result)
        store.write_document(BUGS_FILE, report)

    return handler


def _history(store):
    return (store.read_document(HISTORY_LOG_FILE) or "").splitlines()


def _wait_for(condition, timeout=5.0):
    deadline = time.monotonic() + timeout
    while not condition():
        if time.monotonic() > deadline:
            return False
        time.sleep(0.01)
    return True


@pytest.fixture
def poll_loop(store, provider, skills_dir):
    store.init_background_files()
    return PollLoop(store, provider, skills_dir, poll_interval=0.01)


# ── Change detection ────────────────────────────────────────────────────────


class TestCheckOnce:
    def test_first_observation_is_baseline(self, store, provider, poll_loop):
        """A timestamp seen on the very first check never triggers the Tester."""
        _touch_build_log(store, 1000)
        assert poll_loop.check_once() == []
        assert provider.calls == []

    def test_subsequent_change_runs_tester(self, store, provider, poll_loop):
        _touch_build_log(store, 1000)
        poll_loop.check_once()
        _touch_build_log(store, 1001)

        results = poll_loop.check_once()
        assert [r.phase for r in results] == [PhaseName.TESTER_BACKGROUND]
        assert provider.phases == [PhaseName.TESTER_BACKGROUND]

    def test_unchanged_file_does_nothing(self, store, provider, poll_loop):
        _touch_build_log(store, 1000)
        poll_loop.check_once()
        assert poll_loop.check_once() == []
        assert poll_loop.check_once() == []
        assert provider.calls == []

    def test_missing_file_then_created_is_baseline(self, store, provider, poll_loop):
        assert poll_loop.check_once() == []
        _touch_build_log(store, 1000)
        assert poll_loop.check_once() == []
        assert provider.calls == []

    def test_each_change_runs_once(self, store, provider, poll_loop):
        _touch_build_log(store, 1000)
        poll_loop.check_once()
        for stamp in (1001, 1002):
            _touch_build_log(store, stamp)
            poll_loop.check_once()
            poll_loop.check_once()
        assert provider.phases == [PhaseName.TESTER_BACKGROUND] * 2


# ── Critical-bug gating ─────────────────────────────────────────────────────


class TestRunCycle:
    def test_critical_bug_runs_fixer_then_retester(self, store, provider, poll_loop):
        provider.handlers[PhaseName.TESTER_BACKGROUND] = _tester_writes(CRITICAL_REPORT)
        poll_loop.run_cycle()
        assert provider.phases == [
            PhaseName.TESTER_BACKGROUND,
            PhaseName.BUGFIXER,
            PhaseName.RETESTER,
        ]

    @pytest.mark.parametrize("report", CRITICAL_REPORT_LAYOUTS)
    def test_open_critical_in_any_layout_runs_fixer(self, store, provider, poll_loop, report):
        provider.handlers[PhaseName.TESTER_BACKGROUND] = _tester_writes(report)
        poll_loop.run_cycle()
        assert PhaseName.BUGFIXER in provider.phases

    def test_high_medium_low_do_not_run_fixer(self, store, provider, poll_loop):
        provider.handlers[PhaseName.TESTER_BACKGROUND] = _tester_writes(HIGH_ONLY_REPORT)
        poll_loop.run_cycle()
        assert provider.phases == [PhaseName.TESTER_BACKGROUND]

    def test_fixed_critical_does_not_run_fixer(self, store, provider, poll_loop):
        provider.handlers[PhaseName.TESTER_BACKGROUND] = _tester_writes(
            "- [x] 🔴 CRITICAL: crash on login\n"
        )
        poll_loop.run_cycle()
        assert provider.phases == [PhaseName.TESTER_BACKGROUND]

    def test_fixer_and_retester_run_in_background_mode(self, store, provider, poll_loop):
        provider.handlers[PhaseName.TESTER_BACKGROUND] = _tester_writes(CRITICAL_REPORT)
        poll_loop.run_cycle()
        assert not any(call.interactive for call in provider.calls)

    def test_dashboard_shows_fixing_then_idle(self, store, provider, poll_loop):
        seen = []
        provider.handlers[PhaseName.TESTER_BACKGROUND] = _tester_writes(CRITICAL_REPORT)
        provider.handlers[PhaseName.BUGFIXER] = lambda s: (
            seen.append(s.read_document(STATUS_DASHBOARD_FILE)),
            s.write_document("BUGFIX_LOG.md", "fixed\n"),
        )

        poll_loop.run_cycle()
        assert seen == ["Status: Fixing 1 critical bug(s)\n"]
        assert store.read_document(STATUS_DASHBOARD_FILE) == "Status: Idle\n"

    def test_dashboard_reset_after_error(self, store, provider, poll_loop):
        def fail(s):
            raise ProviderError("agent gone")

        provider.handlers[PhaseName.TESTER_BACKGROUND] = fail
        with pytest.raises(ProviderError):
            poll_loop.run_cycle()
        assert store.read_document(STATUS_DASHBOARD_FILE) == "Status: Idle\n"

    def test_sessions_hold_tester_lock(self, store, provider, poll_loop):
        held = []

        def check_lock(s):
            with open(s.root / "locks" / "tester.lock", "r") as handle:
                try:
                    fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                except BlockingIOError:
                    held.append(True)
                else:
                    fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
                    held.append(False)
            s.write_document(LATEST_RESULT_FILE, "Result: PASS\n")

        provider.handlers[PhaseName.TESTER_BACKGROUND] = check_lock
        poll_loop.run_cycle()
        assert held == [True]


# ── History log ─────────────────────────────────────────────────────────────


class TestHistory:
    def test_clean_run_records_pass(self, store, provider, poll_loop):
        provider.handlers[PhaseName.TESTER_BACKGROUND] = _tester_writes("# Bugs\n\nNone\n")
        poll_loop.run_cycle()

        lines = _history(store)
        assert len(lines) == 1
        assert HISTORY_LINE_RE.match(lines[0]).group("verdict") == "PASS"
        assert lines[0].endswith("PASS tester-background critical=0 high=0")

    def test_critical_run_records_fail_then_retest(self, store, provider, poll_loop):
        provider.handlers[PhaseName.TESTER_BACKGROUND] = _tester_writes(CRITICAL_REPORT)
        provider.handlers[PhaseName.RETESTER] = _tester_writes("- [x] 🔴 CRITICAL: crash on login\n")
        poll_loop.run_cycle()

        lines = _history(store)
        assert len(lines) == 2
        assert " FAIL tester-background critical=1 high=0" in lines[0]
        assert " PASS retester critical=0 high=0" in lines[1]

    def test_failed_result_records_fail(self, store, provider, poll_loop):
        provider.handlers[PhaseName.TESTER_BACKGROUND] = _tester_writes(
            HIGH_ONLY_REPORT, result="Result: FAIL (2 failing)\n"
        )
        poll_loop.run_cycle()
        assert " FAIL tester-background critical=0 high=1" in _history(store)[0]


# ── Loop control ────────────────────────────────────────────────────────────


class TestLoopControl:
    def test_run_checks_until_stopped(self, poll_loop):
        stop = threading.Event()
        poll_loop.check_once = MagicMock(side_effect=lambda: stop.set())
        poll_loop.run(stop)
        poll_loop.check_once.assert_called_once()

    def test_start_and_stop(self, poll_loop):
        thread = poll_loop.start()
        assert thread.daemon
        assert poll_loop.running
        poll_loop.stop()
        assert not poll_loop.running
        assert poll_loop.error is None

    def test_failed_cycle_keeps_polling(self, store, provider, poll_loop):
        """One failed session is recorded; the next build log change is still tested."""

        def fail(s):
            raise ProviderError("agent gone")

        provider.handlers[PhaseName.TESTER_BACKGROUND] = fail
        _touch_build_log(store, 1000)
        poll_loop._last_mtime = 1

        poll_loop.start()
        try:
            assert _wait_for(lambda: poll_loop.error is not None)
            assert isinstance(poll_loop.error, ProviderError)
            assert poll_loop.running

            provider.handlers[PhaseName.TESTER_BACKGROUND] = _tester_writes("# Bugs\n\nNone\n")
            _touch_build_log(store, 1001)
            assert _wait_for(lambda: poll_loop.error is None)
            assert provider.phases == [PhaseName.TESTER_BACKGROUND] * 2
        finally:
            poll_loop.stop()
        assert not poll_loop.running
