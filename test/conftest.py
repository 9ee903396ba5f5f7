"""Shared fixtures: a coordination store, installed skills and a scripted agent."""

from pathlib import Path
from typing import Callable, Dict, List, NamedTuple, Optional

import pytest

from cli_agent_fleet.clients.coordination import CoordinationStore
from cli_agent_fleet.constants import (
    ARCHITECTURE_FILE,
    BUGFIX_LOG_FILE,
    BUILD_LOG_FILE,
    DEPLOYMENT_LOG_FILE,
    LATEST_RESULT_FILE,
    NEXT_ACTIONS_FILE,
    SKILL_FILENAME,
    TEST_REPORT_FILE,
)
from cli_agent_fleet.models.phase import PhaseName
from cli_agent_fleet.providers.base import BaseProvider

SKILLS = [
    "architect",
    "architect-lean",
    "builder",
    "builder-bootstrap",
    "builder-interactive",
    "tester",
    "tester-background",
    "deployer",
    "bugfixer",
]

# Checked in order; the first marker found in the prompt names the phase
_PHASE_MARKERS = [
    ("Re-run tests", PhaseName.RETESTER),
    ("Read the tester-background skill", PhaseName.TESTER_BACKGROUND),
    ("Read the bugfixer skill", PhaseName.BUGFIXER),
    ("Read the builder-bootstrap skill", PhaseName.BOOTSTRAP),
    ("Read the builder-interactive skill", PhaseName.FEATURE_PROPOSAL),
    ("Read the builder skill", PhaseName.BUILDER),
    ("Read the tester skill", PhaseName.TESTER),
    ("Read the deployer skill", PhaseName.DEPLOYER),
    ("Read the architect-lean skill", PhaseName.ARCHITECT_LEAN),
    ("Read the architect skill", PhaseName.ARCHITECT),
]


def phase_of(prompt: str) -> PhaseName:
    for marker, phase in _PHASE_MARKERS:
        if marker in prompt:
            return phase
    return PhaseName.FEATURE_BUILD


def _writer(*documents: tuple) -> Callable[[CoordinationStore], None]:
    def write(store: CoordinationStore) -> None:
        for name, content in documents:
            store.write_document(name, content)

    return write


DEFAULT_HANDLERS: Dict[PhaseName, Optional[Callable[[CoordinationStore], None]]] = {
    PhaseName.ARCHITECT: _writer(
        (ARCHITECTURE_FILE, "# Architecture\n\nA todo app.\n"),
        (NEXT_ACTIONS_FILE, "# Next actions\n\n- set up project\n"),
    ),
    PhaseName.ARCHITECT_LEAN: _writer(
        (ARCHITECTURE_FILE, "# Architecture\n"),
        (NEXT_ACTIONS_FILE, "# Next actions\n"),
    ),
    PhaseName.BUILDER: _writer(
        (BUILD_LOG_FILE, "Built the thing\n"),
        (NEXT_ACTIONS_FILE, "# Next actions\n\n- more things\n"),
    ),
    PhaseName.TESTER: _writer(
        (TEST_REPORT_FILE, "Result: PASS\n"),
        (NEXT_ACTIONS_FILE, "# Next actions\n"),
    ),
    PhaseName.DEPLOYER: _writer(
        (DEPLOYMENT_LOG_FILE, "DEPLOYMENT SUCCESSFUL\n"),
        (NEXT_ACTIONS_FILE, "# Next actions\n"),
    ),
    PhaseName.BOOTSTRAP: _writer((BUILD_LOG_FILE, "Skeleton up\n")),
    PhaseName.FEATURE_PROPOSAL: None,
    PhaseName.FEATURE_BUILD: _writer((BUILD_LOG_FILE, "Feature built\n")),
    PhaseName.TESTER_BACKGROUND: _writer((LATEST_RESULT_FILE, "Result: PASS\n")),
    PhaseName.BUGFIXER: _writer((BUGFIX_LOG_FILE, "Fixed\n")),
    PhaseName.RETESTER: _writer((LATEST_RESULT_FILE, "Result: PASS\n")),
}


class SessionCall(NamedTuple):
    phase: PhaseName
    prompt: str
    interactive: bool
    log_path: Optional[Path]


class FakeProvider(BaseProvider):
    """Agent stand-in: each session runs the handler registered for its phase.

    A handler of ``None`` writes nothing. ``exit_codes`` overrides the default
    exit status of 0 per phase.
    """

    default_command = "fake-agent"

    def __init__(self, store: CoordinationStore, handlers=None, exit_codes=None):
        super().__init__(store.project_dir)
        self.store = store
        self.handlers = dict(DEFAULT_HANDLERS)
        self.handlers.update(handlers or {})
        self.exit_codes = dict(exit_codes or {})
        self.calls: List[SessionCall] = []

    def build_command(self, prompt, interactive):
        return [self.command, prompt], None

    def run_session(self, prompt, interactive=True, log_path=None, timeout=None):
        phase = phase_of(prompt)
        self.calls.append(SessionCall(phase, prompt, interactive, log_path))
        handler = self.handlers.get(phase)
        if handler is not None:
            handler(self.store)
        return self.exit_codes.get(phase, 0)

    @property
    def phases(self) -> List[PhaseName]:
        return [call.phase for call in self.calls]


@pytest.fixture
def store(tmp_path):
    store = CoordinationStore(tmp_path)
    store.ensure_layout()
    return store


@pytest.fixture
def skills_dir(tmp_path):
    root = tmp_path / "skills"
    for skill in SKILLS:
        (root / skill).mkdir(parents=True)
        (root / skill / SKILL_FILENAME).write_text(f"# {skill}\n")
    return root


@pytest.fixture
def provider(store):
    return FakeProvider(store)
