"""Background test & fix loop.

Watches the build log's modification time. Every change after the first
observation runs the background Tester; when the bug list then holds an
unresolved critical bug, the Bug-Fixer runs followed by a confirmation Tester
pass. All sessions hold the store's tester lock, which the round loop's Tester
phase shares.
"""

import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from cli_agent_fleet.clients.coordination import CoordinationStore
from cli_agent_fleet.constants import (
    BUILD_LOG_FILE,
    HISTORY_LOG_FILE,
    LATEST_RESULT_FILE,
    POLL_INTERVAL,
    STATUS_DASHBOARD_FILE,
    TESTER_LOCK,
)
from cli_agent_fleet.models.bug import Severity, count_by_severity, unresolved
from cli_agent_fleet.models.phase import PhaseResult, PhaseSpec
from cli_agent_fleet.prompts import background_tester_phase, bugfixer_phase, retester_phase
from cli_agent_fleet.providers.base import BaseProvider
from cli_agent_fleet.services.phase_service import run_phase
from cli_agent_fleet.services.status_service import load_bugs, result_passed

logger = logging.getLogger(__name__)


class PollLoop:
    """Timer-driven watcher over one coordination document."""

    def __init__(
        self,
        store: CoordinationStore,
        provider: BaseProvider,
        skills_dir: Path,
        poll_interval: float = POLL_INTERVAL,
        phase_timeout: Optional[float] = None,
        watched: str = BUILD_LOG_FILE,
    ):
        self.store = store
        self.provider = provider
        self.skills_dir = skills_dir
        self.poll_interval = poll_interval
        self.phase_timeout = phase_timeout
        self.watched = watched
        self.error: Optional[BaseException] = None
        self._last_mtime: Optional[int] = None
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # ── single check ────────────────────────────────────────────────────

    def check_once(self) -> List[PhaseResult]:
        """Compare the watched file's mtime with the last observed value.

        The first observation only records a baseline. Returns the results of
        the phases run, empty when nothing changed.
        """
        current = self.store.mtime(self.watched)
        if current is None:
            return []
        if self._last_mtime is None:
            logger.debug(f"Baseline for {self.watched}: {current}")
            self._last_mtime = current
            return []
        if current == self._last_mtime:
            return []

        logger.info(f"{self.watched} changed, running test cycle")
        self._last_mtime = current
        return self.run_cycle()

    def run_cycle(self) -> List[PhaseResult]:
        """Tester, then Bug-Fixer and re-test if a critical bug is unresolved."""
        results = []
        with self.store.lock(TESTER_LOCK):
            try:
                self._set_status("Testing")
                results.append(self._run_tester(background_tester_phase()))

                critical = unresolved(load_bugs(self.store), Severity.CRITICAL)
                if critical:
                    logger.warning(f"{len(critical)} critical bug(s) found, running bug fixer")
                    self._set_status(f"Fixing {len(critical)} critical bug(s)")
                    results.append(self._run(bugfixer_phase()))
                    results.append(self._run_tester(retester_phase()))
            finally:
                self._set_status("Idle")
        return results

    def _run(self, spec: PhaseSpec) -> PhaseResult:
        return run_phase(spec, self.store, self.provider, self.skills_dir, timeout=self.phase_timeout)

    def _run_tester(self, spec: PhaseSpec) -> PhaseResult:
        result = self._run(spec)
        self.record_history(result)
        return result

    def record_history(self, result: PhaseResult) -> None:
        """Append one ``<timestamp> PASS|FAIL <phase> ...`` line to the history log."""
        bugs = load_bugs(self.store)
        counts = count_by_severity(bugs)
        passed = (
            result.ok
            and result_passed(self.store.read_document(LATEST_RESULT_FILE))
            and counts[Severity.CRITICAL] == 0
        )
        timestamp = datetime.now().isoformat(timespec="seconds")
        verdict = "PASS" if passed else "FAIL"
        self.store.append_line(
            HISTORY_LOG_FILE,
            f"{timestamp} {verdict} {result.phase.value} "
            f"critical={counts[Severity.CRITICAL]} high={counts[Severity.HIGH]}",
        )

    def _set_status(self, status: str) -> None:
        self.store.write_document(STATUS_DASHBOARD_FILE, f"Status: {status}\n")

    # ── loop control ────────────────────────────────────────────────────

    def run(self, stop_event: Optional[threading.Event] = None) -> None:
        """Check, then sleep, until ``stop_event`` (or ``stop()``) is set."""
        stop = stop_event or self._stop
        logger.info(f"Watching {self.store.relative(self.watched)} every {self.poll_interval}s")
        while not stop.is_set():
            if self.check_once():
                self.error = None
            stop.wait(self.poll_interval)
        logger.info("Poll loop stopped")

    def _run_in_thread(self) -> None:
        # A failed cycle is recorded and polling resumes. The build log change
        # that triggered it is not retried.
        while not self._stop.is_set():
            try:
                self.run()
            except Exception as e:
                logger.error(f"Background test & fix cycle failed, still polling: {e}")
                self.error = e
                self._stop.wait(self.poll_interval)

    def start(self) -> threading.Thread:
        """Run the loop in a daemon thread."""
        self._stop.clear()
        self._thread = threading.Thread(target=self._run_in_thread, name="fleet-poll-loop", daemon=True)
        self._thread.start()
        return self._thread

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is None:
            return
        self._thread.join(timeout)
        if self._thread.is_alive():
            logger.warning("Poll loop is finishing an agent session; it stops when the session exits")

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
