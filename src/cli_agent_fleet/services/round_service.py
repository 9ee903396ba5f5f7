"""Development round loop: Architect once, then Build -> Test -> Deploy rounds.

States: BOOTSTRAP -> BUILD -> TEST -> DEPLOY -> DECISION -> (BUILD | DONE).
A failed phase ends its round early and the failure is shown at DECISION.
"""

import logging
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional

import click

from cli_agent_fleet.clients.coordination import CoordinationStore
from cli_agent_fleet.constants import (
    ARCHITECTURE_FILE,
    ARCHITECTURE_PREVIEW_LINES,
    DEPLOYMENT_LOG_FILE,
    MAX_ROUNDS,
    NEXT_ACTIONS_BOOTSTRAP_PREVIEW_LINES,
    NEXT_ACTIONS_FILE,
    NEXT_ACTIONS_SUMMARY_LINES,
    ROUND_LOG_FILES,
    TEST_REPORT_FILE,
    TESTER_LOCK,
)
from cli_agent_fleet.models.bug import Severity, count_by_severity, deployment_ready
from cli_agent_fleet.models.phase import PhaseName, PhaseResult, PhaseSpec, RoundState
from cli_agent_fleet.prompts import architect_phase, builder_phase, deployer_phase, tester_phase
from cli_agent_fleet.providers.base import BaseProvider
from cli_agent_fleet.services.phase_service import require_skill, run_phase
from cli_agent_fleet.services.status_service import deployment_succeeded, load_bugs, result_passed
from cli_agent_fleet.utils.console import (
    print_banner,
    print_block,
    print_error,
    print_header,
    print_success,
    print_warning,
)

logger = logging.getLogger(__name__)

CHOICE_CONTINUE = "continue"
CHOICE_STOP = "stop"


class RoundLoop:
    """Interactive Build -> Test -> Deploy loop capped at ``max_rounds``."""

    def __init__(
        self,
        store: CoordinationStore,
        provider: BaseProvider,
        skills_dir: Path,
        max_rounds: int = MAX_ROUNDS,
        phase_timeout: Optional[float] = None,
    ):
        self.store = store
        self.provider = provider
        self.skills_dir = skills_dir
        self.max_rounds = max_rounds
        self.phase_timeout = phase_timeout
        self.state = RoundState.BOOTSTRAP
        self.round = 1
        self.rounds_completed = 0
        self.round_results: List[PhaseResult] = []
        self._handlers: Dict[RoundState, Callable[[], RoundState]] = {
            RoundState.BOOTSTRAP: self._bootstrap,
            RoundState.BUILD: self._build,
            RoundState.TEST: self._test,
            RoundState.DEPLOY: self._deploy,
            RoundState.DECISION: self._decide,
        }

    def run(self) -> int:
        """Run until the operator stops or the round cap is hit. Returns rounds completed."""
        self.store.ensure_layout()
        self.state = RoundState.BOOTSTRAP
        while self.state is not RoundState.DONE:
            logger.debug(f"Round {self.round}: {self.state.value}")
            self.state = self._handlers[self.state]()
        self.print_completion_summary()
        return self.rounds_completed

    def _run(self, spec: PhaseSpec) -> PhaseResult:
        result = run_phase(spec, self.store, self.provider, self.skills_dir, timeout=self.phase_timeout)
        self.round_results.append(result)
        return result

    # ── states ──────────────────────────────────────────────────────────

    def _bootstrap(self) -> RoundState:
        if self.store.exists(ARCHITECTURE_FILE):
            print_header("Fleet - Development Cycles")
            click.echo("Architecture already exists. Continuing from where we left off...")
            return RoundState.BUILD

        print_header("INITIAL SETUP - Architect Phase")
        click.echo("No architecture found. Running initial setup...")
        click.echo()

        spec = architect_phase()
        require_skill(spec, self.skills_dir)

        click.echo("Starting Architect instance...")
        click.echo("The Architect will create the initial system architecture.")
        click.echo()
        result = run_phase(spec, self.store, self.provider, self.skills_dir, timeout=self.phase_timeout)

        if not self.store.exists(ARCHITECTURE_FILE):
            print_error(f"Architect did not create {ARCHITECTURE_FILE} ({result.describe_failure()})")
            return RoundState.DONE

        print_success("Architect phase complete")
        click.echo()
        print_success(f"Created {ARCHITECTURE_FILE}")
        print_block(
            "Architecture summary:",
            self.store.head(ARCHITECTURE_FILE, ARCHITECTURE_PREVIEW_LINES),
        )
        if self.store.exists(NEXT_ACTIONS_FILE):
            print_success(f"Created {NEXT_ACTIONS_FILE}")
            print_block(
                "Next actions:",
                self.store.head(NEXT_ACTIONS_FILE, NEXT_ACTIONS_BOOTSTRAP_PREVIEW_LINES),
            )
        click.secho("Initial setup complete! Now starting development cycles...", fg="cyan")
        return RoundState.BUILD

    def _build(self) -> RoundState:
        self.round_results = []
        print_header(f"ROUND {self.round} - Build → Test → Deploy Cycle")
        return self._phase_step("Phase 1: Builder", builder_phase(), RoundState.TEST)

    def _test(self) -> RoundState:
        with self.store.lock(TESTER_LOCK):
            return self._phase_step("Phase 2: Tester", tester_phase(), RoundState.DEPLOY)

    def _deploy(self) -> RoundState:
        return self._phase_step("Phase 3: Deployer", deployer_phase(), RoundState.DECISION)

    def _phase_step(self, title: str, spec: PhaseSpec, next_state: RoundState) -> RoundState:
        print_header(title)
        click.echo(f"Starting {spec.name.value.capitalize()} instance...")
        click.echo()
        result = self._run(spec)
        if result.ok:
            print_success(f"{spec.name.value.capitalize()} phase complete")
            return next_state
        print_error(f"{spec.name.value.capitalize()} phase failed ({result.describe_failure()})")
        if next_state is not RoundState.DECISION:
            print_warning("Skipping the rest of this round")
        return RoundState.DECISION

    def _decide(self) -> RoundState:
        self.rounds_completed += 1
        self.print_round_summary()

        if self.round >= self.max_rounds:
            logger.info(f"Round cap reached after round {self.round}")
            print_warning(f"Maximum rounds ({self.max_rounds}) reached")
            return RoundState.DONE

        print_banner("What would you like to do next?")
        click.echo(f"  1) Continue to Round {self.round + 1} (Build → Test → Deploy)")
        click.echo("  2) View detailed logs")
        click.echo("  3) Stop fleet and exit")
        click.echo()
        choice = click.prompt("Enter choice [1-3] (default: 1)", default="1", show_default=False).strip()

        if choice == "1":
            action = CHOICE_CONTINUE
        elif choice == "2":
            action = self.view_logs()
        elif choice == "3":
            action = CHOICE_STOP
        else:
            click.echo("Invalid choice, continuing to next round...")
            action = CHOICE_CONTINUE

        if action == CHOICE_STOP:
            print_warning("Stopping fleet")
            return RoundState.DONE

        self.round += 1
        click.secho(f"➜ Continuing to Round {self.round}...", fg="green")
        time.sleep(1)
        return RoundState.BUILD

    # ── log viewer ──────────────────────────────────────────────────────

    def view_logs(self) -> str:
        """Show logs until the operator continues or stops. Never consumes a round."""
        while True:
            click.echo()
            click.echo("Select log to view:")
            for i, name in enumerate(ROUND_LOG_FILES, start=1):
                click.echo(f"  {i}) {name}")
            back = len(ROUND_LOG_FILES) + 1
            click.echo(f"  {back}) Go back")
            click.echo()
            log_choice = click.prompt(f"Enter choice [1-{back}]", default=str(back), show_default=False).strip()

            click.echo()
            if log_choice.isdigit() and 1 <= int(log_choice) <= len(ROUND_LOG_FILES):
                name = ROUND_LOG_FILES[int(log_choice) - 1]
                click.secho(f"=== {name} ===", fg="blue")
                click.echo(self.store.read_document(name) or "File not found")
            elif log_choice == str(back):
                click.echo("Returning to menu...")
            else:
                click.echo("Invalid choice")

            click.echo()
            click.echo("Options:")
            click.echo("  1) Continue to next round")
            click.echo("  2) View another log")
            click.echo("  3) Stop fleet")
            click.echo()
            next_choice = click.prompt("Enter choice [1-3]", default="1", show_default=False).strip()
            if next_choice == "2":
                continue
            if next_choice == "3":
                return CHOICE_STOP
            return CHOICE_CONTINUE

    # ── summaries ───────────────────────────────────────────────────────

    def _tests_passed_this_round(self) -> bool:
        tester = [r for r in self.round_results if r.phase is PhaseName.TESTER]
        return bool(tester) and tester[-1].ok and result_passed(self.store.read_document(TEST_REPORT_FILE))

    def print_round_summary(self) -> None:
        print_header(f"Round {self.round} Complete")

        for result in self.round_results:
            if not result.ok:
                print_error(f"{result.phase.value} phase failed: {result.describe_failure()}")

        click.echo("Summary of coordination files:")
        self._print_file_listing()
        click.echo()

        if self.store.exists(NEXT_ACTIONS_FILE):
            print_block(
                "Current Status:",
                self.store.head(NEXT_ACTIONS_FILE, NEXT_ACTIONS_SUMMARY_LINES),
            )
            click.echo()

        next_actions = load_bugs(self.store, NEXT_ACTIONS_FILE)
        records = next_actions + load_bugs(self.store, TEST_REPORT_FILE)
        counts = count_by_severity(next_actions)
        if counts[Severity.CRITICAL] > 0:
            print_warning(f"Critical bugs detected: {counts[Severity.CRITICAL]} {Severity.CRITICAL.emoji}")
            click.echo("Next round should prioritize these fixes.")
        else:
            print_success("No critical bugs detected")
        if counts[Severity.HIGH] > 0:
            print_warning(f"High severity bugs: {counts[Severity.HIGH]} {Severity.HIGH.emoji}")

        deployed = deployment_succeeded(self.store)
        if deployed is not None:
            click.echo()
            if deployed:
                print_success("Deployment successful!")
            else:
                print_error(f"Deployment failed - check {DEPLOYMENT_LOG_FILE} for details")

        if deployment_ready(records, self._tests_passed_this_round()):
            print_success("Deployment readiness: READY")
        else:
            print_warning("Deployment readiness: NOT READY")

    def _print_file_listing(self) -> None:
        entries = self.store.list_documents()
        if not entries:
            click.echo("No coordination files yet")
            return
        for entry in entries:
            if entry.is_dir():
                click.echo(f"  {entry.name}/")
            else:
                click.echo(f"  {entry.name:<28} {entry.stat().st_size:>8} B")

    def print_completion_summary(self) -> None:
        print_header("Fleet Orchestration Complete")
        click.echo("📊 Session Summary:")
        click.echo(f"  • Total rounds completed: {self.rounds_completed}")
        click.echo(f"  • Coordination files: {self.store.root}")
        click.echo()

        deployed = deployment_succeeded(self.store)
        if deployed:
            print_success("Final status: Deployment successful! ✨")
        elif deployed is not None:
            print_warning("Final status: Deployment incomplete")

        click.echo()
        click.echo("📁 Generated files:")
        self._print_file_listing()
        click.echo()
        print_success("Done! Your fleet has finished working.")
        click.echo()
        click.echo("To review the work:")
        for label, name in (
            ("Architecture", ARCHITECTURE_FILE),
            ("Current status", NEXT_ACTIONS_FILE),
            ("Test results", TEST_REPORT_FILE),
            ("Deployment", DEPLOYMENT_LOG_FILE),
        ):
            click.echo(f"  • {label}: cat {self.store.relative(name)}")
