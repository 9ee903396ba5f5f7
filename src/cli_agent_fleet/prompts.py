"""Phase catalogue and prompt builder.

Each phase is a ``PhaseSpec`` naming the skill the agent follows, the
coordination files it reads and the files it must write. ``build_prompt``
turns a ``PhaseSpec`` into the text handed to the agent CLI.
"""

from pathlib import Path
from typing import Optional

from cli_agent_fleet.clients.coordination import CoordinationStore
from cli_agent_fleet.constants import (
    ARCHITECTURE_FILE,
    BUGFIX_LOG_FILE,
    BUGS_FILE,
    BUILD_LOG_FILE,
    DEPLOYMENT_LOG_FILE,
    DEPLOYMENT_SUCCESS_MARKER,
    FILES_LOCK_FILE,
    LATEST_RESULT_FILE,
    NEXT_ACTIONS_FILE,
    SKILL_FILENAME,
    STATUS_DASHBOARD_FILE,
    TEST_QUEUE_FILE,
    TEST_REPORT_FILE,
)
from cli_agent_fleet.models.bug import Severity
from cli_agent_fleet.models.phase import PhaseName, PhaseSpec

SEVERITY_INSTRUCTION = (
    "Tag every bug with exactly one of: "
    + ", ".join(s.marker for s in Severity)
    + ". Mark fixed bugs with [x] or FIXED."
)


def skill_path(skills_dir: Path, skill: str) -> Path:
    return Path(skills_dir) / skill / SKILL_FILENAME


def _display_path(path: Path) -> str:
    """Show paths under the home directory as ~/..."""
    try:
        return "~/" + str(path.relative_to(Path.home()))
    except ValueError:
        return str(path)


def build_prompt(spec: PhaseSpec, store: CoordinationStore, skills_dir: Path) -> str:
    parts = []
    if spec.skill:
        parts.append(f"Read the {spec.skill} skill at {_display_path(skill_path(skills_dir, spec.skill))}")
    if spec.reads:
        parts.append("Read " + " and ".join(store.relative(name) for name in spec.reads))
    parts.append("")
    parts.append(spec.task.strip())
    if spec.writes:
        parts.append("")
        parts.append(
            "Update " + " and ".join(store.relative(name) for name in spec.writes) + " when complete."
        )
    return "\n".join(parts)


# ── Development round loop ──────────────────────────────────────────────────


def architect_phase() -> PhaseSpec:
    return PhaseSpec(
        name=PhaseName.ARCHITECT,
        skill="architect",
        writes=[ARCHITECTURE_FILE, NEXT_ACTIONS_FILE],
        task=(
            "Your task: Create the initial architecture for this project.\n"
            "\n"
            "Ask the user what they want to build, then create:\n"
            f"1. {ARCHITECTURE_FILE} - Complete system design\n"
            f"2. {NEXT_ACTIONS_FILE} - Initial priorities for Builder\n"
            "\n"
            "Follow all instructions in the architect skill."
        ),
    )


def builder_phase() -> PhaseSpec:
    return PhaseSpec(
        name=PhaseName.BUILDER,
        skill="builder",
        reads=[ARCHITECTURE_FILE, NEXT_ACTIONS_FILE],
        requires=[ARCHITECTURE_FILE],
        writes=[BUILD_LOG_FILE, NEXT_ACTIONS_FILE],
        task="Follow the builder skill instructions to implement the next priority tasks.",
    )


def tester_phase() -> PhaseSpec:
    return PhaseSpec(
        name=PhaseName.TESTER,
        skill="tester",
        reads=[BUILD_LOG_FILE, NEXT_ACTIONS_FILE],
        requires=[BUILD_LOG_FILE],
        writes=[TEST_REPORT_FILE, NEXT_ACTIONS_FILE],
        task="Follow the tester skill instructions to test the code.\n" + SEVERITY_INSTRUCTION,
    )


def deployer_phase() -> PhaseSpec:
    return PhaseSpec(
        name=PhaseName.DEPLOYER,
        skill="deployer",
        reads=[TEST_REPORT_FILE, NEXT_ACTIONS_FILE],
        requires=[TEST_REPORT_FILE],
        writes=[DEPLOYMENT_LOG_FILE, NEXT_ACTIONS_FILE],
        task=(
            "Follow the deployer skill instructions to deploy and verify.\n"
            f"Write '{DEPLOYMENT_SUCCESS_MARKER}' in {DEPLOYMENT_LOG_FILE} only when "
            "the deployment is verified."
        ),
    )


# ── Feature loop ────────────────────────────────────────────────────────────


def architect_lean_phase() -> PhaseSpec:
    return PhaseSpec(
        name=PhaseName.ARCHITECT_LEAN,
        skill="architect-lean",
        writes=[ARCHITECTURE_FILE, NEXT_ACTIONS_FILE],
        task=(
            "Create the architecture for this project.\n"
            "Ask the user what they want to build."
        ),
    )


def bootstrap_phase() -> PhaseSpec:
    return PhaseSpec(
        name=PhaseName.BOOTSTRAP,
        skill="builder-bootstrap",
        reads=[ARCHITECTURE_FILE],
        requires=[ARCHITECTURE_FILE],
        writes=[BUILD_LOG_FILE],
        task=(
            "Create minimal deployable skeleton.\n"
            "Get the app running with zero features."
        ),
    )


def feature_proposal_phase(feature_num: int) -> PhaseSpec:
    return PhaseSpec(
        name=PhaseName.FEATURE_PROPOSAL,
        skill="builder-interactive",
        reads=[STATUS_DASHBOARD_FILE, NEXT_ACTIONS_FILE],
        task=(
            "Check the status dashboard (what's locked?) and the next actions "
            "(what's planned?).\n"
            "\n"
            "Propose next feature that avoids locked files.\n"
            "\n"
            "Format:\n"
            "Fleet Status Check:\n"
            "- Bug Fixer working on: [files if any]\n"
            "- Safe to work on: [available areas]\n"
            "\n"
            f"Feature Proposal #{feature_num}: [Name]\n"
            "- What it does: [brief]\n"
            "- Why safe: [no conflicts]\n"
            "- Files: [list with ✓]\n"
            "\n"
            "Wait for user decision."
        ),
    )


def feature_build_phase(modification: Optional[str] = None, custom_feature: Optional[str] = None) -> PhaseSpec:
    """Build the proposed feature, a modified version of it, or a different one."""
    if custom_feature:
        task = f"Build: {custom_feature}"
    elif modification:
        task = f"User wants: {modification}\nBuild the modified feature."
    else:
        task = "Build the proposed feature.\nKeep app running."
    return PhaseSpec(
        name=PhaseName.FEATURE_BUILD,
        writes=[BUILD_LOG_FILE],
        task=task + "\nKeep the build log brief.",
    )


# ── Background test & fix loop ─────────────────────────────────────────────


def background_tester_phase() -> PhaseSpec:
    return PhaseSpec(
        name=PhaseName.TESTER_BACKGROUND,
        skill="tester-background",
        reads=[BUILD_LOG_FILE, TEST_QUEUE_FILE],
        writes=[LATEST_RESULT_FILE],
        interactive=False,
        task=(
            f"{BUILD_LOG_FILE} changed. Run tests:\n"
            "1. Execute: npm test (or pytest, etc)\n"
            f"2. Update {LATEST_RESULT_FILE} (5 lines max)\n"
            f"3. If bugs found, update {BUGS_FILE} (brief)\n"
            f"4. Run any unchecked manual tests listed in {TEST_QUEUE_FILE}\n"
            f"{SEVERITY_INSTRUCTION}\n"
            "\n"
            "Keep it minimal."
        ),
    )


def bugfixer_phase() -> PhaseSpec:
    critical = Severity.CRITICAL.marker
    return PhaseSpec(
        name=PhaseName.BUGFIXER,
        skill="bugfixer",
        reads=[BUGS_FILE],
        requires=[BUGS_FILE],
        writes=[BUGFIX_LOG_FILE],
        interactive=False,
        task=(
            f"Critical bugs found in {BUGS_FILE}.\n"
            "\n"
            f"For each {critical} bug:\n"
            f"1. Update {STATUS_DASHBOARD_FILE} (show working on bug)\n"
            f"2. Update {FILES_LOCK_FILE}\n"
            "3. Fix the bug\n"
            f"4. Update {BUGFIX_LOG_FILE} (brief)\n"
            f"5. Mark as FIXED in {BUGS_FILE}\n"
            "6. Release locks\n"
            "\n"
            "Keep it minimal."
        ),
    )


def retester_phase() -> PhaseSpec:
    return PhaseSpec(
        name=PhaseName.RETESTER,
        skill="tester-background",
        reads=[BUGS_FILE, BUGFIX_LOG_FILE],
        writes=[LATEST_RESULT_FILE],
        interactive=False,
        task=(
            "Bug fixes applied. Re-run tests:\n"
            "1. Execute: npm test\n"
            f"2. Update {LATEST_RESULT_FILE} (5 lines)\n"
            f"3. Update {BUGS_FILE} (mark verified)\n"
            "\n"
            "Keep it minimal."
        ),
    )
