"""Interactive feature loop with a background test & fix loop.

Architect (lean) and Bootstrap Builder run once. After that the background
poll loop tests every build while the operator picks features one round at a
time.
"""

import logging
import time
from pathlib import Path
from typing import Optional

import click

from cli_agent_fleet.clients.coordination import CoordinationStore
from cli_agent_fleet.constants import (
    ARCHITECTURE_FILE,
    BOOTSTRAP_MARKER_FILE,
    BUGS_FILE,
    BUILD_LOG_FILE,
    CRITICAL_PREVIEW_COUNT,
    CRITICAL_WAIT_SECONDS,
    LATEST_RESULT_FILE,
    LATEST_RESULT_PREVIEW_LINES,
    MAX_FEATURE_ROUNDS,
    STATUS_DASHBOARD_FILE,
    TEST_QUEUE_FILE,
)
from cli_agent_fleet.models.bug import Severity, unresolved
from cli_agent_fleet.models.phase import PhaseResult, PhaseSpec
from cli_agent_fleet.prompts import (
    architect_lean_phase,
    bootstrap_phase,
    feature_build_phase,
    feature_proposal_phase,
)
from cli_agent_fleet.providers.base import BaseProvider
from cli_agent_fleet.services.phase_service import run_phase
from cli_agent_fleet.services.status_service import load_bugs
from cli_agent_fleet.services.watch_service import PollLoop
from cli_agent_fleet.utils.console import (
    print_banner,
    print_error,
    print_header,
    print_success,
    print_warning,
)

logger = logging.getLogger(__name__)


class FleetAbort(Exception):
    """Raised when setup cannot continue (no architecture, app not running)."""

    pass


class FeatureLoop:
    """Architect -> Bootstrap -> background test & fix -> interactive feature rounds."""

    def __init__(
        self,
        store: CoordinationStore,
        provider: BaseProvider,
        skills_dir: Path,
        poll_loop: PollLoop,
        max_rounds: int = MAX_FEATURE_ROUNDS,
        critical_wait_seconds: float = CRITICAL_WAIT_SECONDS,
        phase_timeout: Optional[float] = None,
    ):
        self.store = store
        self.provider = provider
        self.skills_dir = skills_dir
        self.poll_loop = poll_loop
        self.max_rounds = max_rounds
        self.critical_wait_seconds = critical_wait_seconds
        self.phase_timeout = phase_timeout
        self.feature_num = 1
        self.features_built = 0

    def run(self) -> int:
        """Run the whole session. Returns the number of features built.

        Raises:
            FleetAbort: If the architecture is missing after the Architect
                phase or the operator reports the app is not running
        """
        self.store.ensure_layout()
        self.run_architect()
        self.run_bootstrap()
        self.start_background_loop()
        try:
            self.run_feature_rounds()
        finally:
            self.poll_loop.stop()
        self.print_session_summary()
        return self.features_built

    def _run(self, spec: PhaseSpec) -> PhaseResult:
        return run_phase(spec, self.store, self.provider, self.skills_dir, timeout=self.phase_timeout)

    # ── one-time setup ──────────────────────────────────────────────────

    def run_architect(self) -> None:
        if self.store.exists(ARCHITECTURE_FILE):
            return
        print_header("PHASE 1: Architect")
        result = self._run(architect_lean_phase())
        if not self.store.exists(ARCHITECTURE_FILE):
            print_error(f"Architect did not create {ARCHITECTURE_FILE}")
            raise FleetAbort(f"Architect phase failed: {result.describe_failure()}")
        print_success("Architecture created")
        click.echo()
        click.pause("Press Enter to continue...")

    def run_bootstrap(self) -> None:
        if self.store.exists(BOOTSTRAP_MARKER_FILE):
            return
        print_header("PHASE 2: Bootstrap Builder")
        result = self._run(bootstrap_phase())
        if result.ok:
            print_success("Bootstrap complete")
        else:
            print_error(f"Bootstrap phase failed ({result.describe_failure()})")

        click.echo()
        click.secho("Start the app in a separate terminal if needed.", fg="yellow")
        app_running = click.prompt("Is app running? (y/n)", default="", show_default=False)
        if app_running.strip().lower() != "y":
            print_error("Start app before continuing")
            raise FleetAbort("Start app before continuing")

        self.store.write_document(BOOTSTRAP_MARKER_FILE, "")
        logger.info(f"Bootstrap marker written: {self.store.relative(BOOTSTRAP_MARKER_FILE)}")
        click.echo()
        click.pause("Press Enter to start interactive development...")

    def start_background_loop(self) -> None:
        print_header("Starting Background Test & Fix Loop")
        self.store.init_background_files()
        self.store.write_document(STATUS_DASHBOARD_FILE, "Status: Idle\n")
        thread = self.poll_loop.start()
        print_success(f"Background Test & Fix Loop started ({thread.name})")

    # ── feature rounds ──────────────────────────────────────────────────

    def run_feature_rounds(self) -> None:
        print_header("Interactive Builder")
        while self.feature_num <= self.max_rounds:
            click.echo()
            click.secho("━" * 38, fg="cyan")
            click.secho(f"  Feature Round #{self.feature_num}", fg="cyan")
            click.secho("━" * 38, fg="cyan")
            click.echo()

            if self.poll_loop.error is not None:
                print_warning(f"Last background test & fix cycle failed: {self.poll_loop.error}")

            self._show_dashboard()
            if self._wait_for_bug_fixes():
                continue

            self._run(feature_proposal_phase(self.feature_num))
            if not self._handle_menu():
                break

    def _show_dashboard(self) -> None:
        dashboard = self.store.read_document(STATUS_DASHBOARD_FILE)
        if dashboard is not None:
            click.secho("Fleet Status:", fg="yellow")
            click.echo(dashboard.rstrip())
            click.echo()

    def _wait_for_bug_fixes(self) -> bool:
        """Offer to wait while critical bugs are open. True if the operator waited."""
        critical = unresolved(load_bugs(self.store), Severity.CRITICAL)
        if not critical:
            return False

        click.secho("⚠️  Critical bugs detected!", fg="red")
        for bug in critical[:CRITICAL_PREVIEW_COUNT]:
            click.echo(bug.summary())
        click.echo()
        click.echo("Bug Fixer is working on these automatically.")
        click.echo()
        choice = click.prompt("Continue building or wait? (c/w)", default="c", show_default=False)
        if choice.strip().lower() != "w":
            return False
        logger.info(f"Waiting for bug fixer: {len(critical)} critical bug(s) open")
        click.echo(f"Waiting {self.critical_wait_seconds:g} seconds for bug fixes...")
        time.sleep(self.critical_wait_seconds)
        return True

    def _build(self, spec: PhaseSpec, label: str) -> None:
        click.echo()
        result = self._run(spec)
        if result.ok:
            print_success(f"{label} #{self.feature_num} built!")
            self.features_built += 1
        else:
            print_error(f"{label} #{self.feature_num} failed ({result.describe_failure()})")
        self.feature_num += 1

    def _handle_menu(self) -> bool:
        """Show the feature menu and act on the choice. False means stop."""
        print_banner("What do you want to do?")
        click.echo("  1) Build this feature")
        click.echo("  2) Modify the feature")
        click.echo("  3) Skip to different feature")
        click.echo("  4) Add manual test")
        click.echo("  5) View logs")
        click.echo("  6) Stop")
        click.echo()
        choice = click.prompt("Choice [1-6]", default="", show_default=False).strip()

        if choice == "1":
            self._build(feature_build_phase(), "Feature")
        elif choice == "2":
            modification = click.prompt("How to modify?")
            self._build(feature_build_phase(modification=modification), "Modified feature")
        elif choice == "3":
            different_feature = click.prompt("Which feature?")
            self._build(feature_build_phase(custom_feature=different_feature), "Custom feature")
        elif choice == "4":
            test_desc = click.prompt("Test description")
            self.store.append_line(TEST_QUEUE_FILE, f"- [ ] {test_desc}")
            click.echo("Manual test queued. Background tester will handle it.")
        elif choice == "5":
            self.view_logs()
        elif choice == "6":
            return False
        else:
            click.echo("Invalid choice")
        return True

    def view_logs(self) -> None:
        for title, name in (
            ("BUILD LOG", BUILD_LOG_FILE),
            ("TEST RESULTS", LATEST_RESULT_FILE),
            ("BUGS", BUGS_FILE),
        ):
            click.echo()
            click.echo(f"=== {title} ===")
            click.echo(self.store.read_document(name) or "None")
        click.echo()
        click.pause("Press Enter to continue...")

    # ── summary ─────────────────────────────────────────────────────────

    def print_session_summary(self) -> None:
        print_header("Session Complete")
        click.echo("Summary:")
        click.echo(f"  • Features built: {self.features_built}")
        click.echo(f"  • Files: {self.store.root}")
        click.echo()

        latest = self.store.head(LATEST_RESULT_FILE, LATEST_RESULT_PREVIEW_LINES)
        if latest is not None:
            click.echo("Final test status:")
            click.echo(latest)

        click.echo()
        print_success("Done!")
