"""Derived fleet state: bug counts, deployment outcome and readiness."""

import re
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from cli_agent_fleet.clients.coordination import CoordinationStore
from cli_agent_fleet.constants import (
    BUGS_FILE,
    DEPLOYMENT_LOG_FILE,
    DEPLOYMENT_SUCCESS_MARKER,
    HISTORY_LOG_FILE,
    NEXT_ACTIONS_FILE,
)
from cli_agent_fleet.models.bug import (
    BugRecord,
    Severity,
    count_by_severity,
    deployment_ready,
    parse_bug_report,
)

# Failure verdicts testers write to the latest result / test report
FAIL_RESULT_RE = re.compile(
    r"^\s*[-*]?\s*\**(?:RESULT|STATUS|TESTS?)\s*:\s*\**\s*(?:❌\s*)?FAIL(?:ED|ING|URES?)?\b",
    re.MULTILINE | re.IGNORECASE,
)
HISTORY_LINE_RE = re.compile(r"^\S+\s+(?P<verdict>PASS|FAIL)\b")


def load_bugs(store: CoordinationStore, name: str = BUGS_FILE) -> List[BugRecord]:
    return parse_bug_report(store.read_document(name))


def result_passed(text: Optional[str]) -> bool:
    """A missing or empty result never counts as passing."""
    if not text or not text.strip():
        return False
    return not FAIL_RESULT_RE.search(text)


def deployment_succeeded(store: CoordinationStore) -> Optional[bool]:
    """True/False from DEPLOYMENT_LOG.md, None when nothing was deployed yet."""
    text = store.read_document(DEPLOYMENT_LOG_FILE)
    if text is None:
        return None
    return DEPLOYMENT_SUCCESS_MARKER in text


def last_history_verdict(store: CoordinationStore) -> Optional[bool]:
    text = store.read_document(HISTORY_LOG_FILE)
    if not text:
        return None
    for line in reversed(text.splitlines()):
        m = HISTORY_LINE_RE.match(line)
        if m:
            return m.group("verdict") == "PASS"
    return None


class FleetStatus(BaseModel):
    """Snapshot of the coordination store for summaries and `fleet status`."""

    bugs: List[BugRecord] = Field(default_factory=list)
    next_actions: List[BugRecord] = Field(default_factory=list)
    deployment_succeeded: Optional[bool] = None
    tests_passed: Optional[bool] = None

    @property
    def bug_counts(self) -> Dict[Severity, int]:
        return count_by_severity(self.bugs)

    @property
    def next_action_counts(self) -> Dict[Severity, int]:
        return count_by_severity(self.next_actions)

    @property
    def ready(self) -> bool:
        return deployment_ready(self.bugs + self.next_actions, bool(self.tests_passed))


def collect_status(store: CoordinationStore) -> FleetStatus:
    return FleetStatus(
        bugs=load_bugs(store),
        next_actions=load_bugs(store, NEXT_ACTIONS_FILE),
        deployment_succeeded=deployment_succeeded(store),
        tests_passed=last_history_verdict(store),
    )
