"""Phase and round models."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class PhaseName(str, Enum):
    """Role phases the fleet can run."""

    ARCHITECT = "architect"
    ARCHITECT_LEAN = "architect-lean"
    BOOTSTRAP = "bootstrap"
    BUILDER = "builder"
    TESTER = "tester"
    DEPLOYER = "deployer"
    TESTER_BACKGROUND = "tester-background"
    BUGFIXER = "bugfixer"
    RETESTER = "retester"
    FEATURE_PROPOSAL = "feature-proposal"
    FEATURE_BUILD = "feature-build"


class PhaseSpec(BaseModel):
    """One external-tool session: which skill to follow, what to read and write.

    ``reads`` and ``writes`` are coordination file names relative to the
    coordination directory. ``requires`` lists the reads that must exist before
    the session may start.
    """

    name: PhaseName
    skill: Optional[str] = None
    reads: List[str] = Field(default_factory=list)
    writes: List[str] = Field(default_factory=list)
    requires: List[str] = Field(default_factory=list)
    task: str = ""
    interactive: bool = True


class PhaseResult(BaseModel):
    """Outcome of one phase, judged by exit status and the files it left behind."""

    phase: PhaseName
    exit_code: Optional[int] = None
    missing_inputs: List[str] = Field(default_factory=list)
    missing_outputs: List[str] = Field(default_factory=list)
    timed_out: bool = False
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return (
            self.exit_code == 0
            and not self.timed_out
            and not self.missing_inputs
            and not self.missing_outputs
        )

    def describe_failure(self) -> str:
        if self.missing_inputs:
            return f"missing input: {', '.join(self.missing_inputs)}"
        if self.timed_out:
            return f"timed out after {self.duration:.0f}s"
        if self.exit_code != 0:
            return f"exited with status {self.exit_code}"
        if self.missing_outputs:
            return f"did not write: {', '.join(self.missing_outputs)}"
        return ""


class RoundState(str, Enum):
    """States of the Build -> Test -> Deploy round loop."""

    BOOTSTRAP = "bootstrap"
    BUILD = "build"
    TEST = "test"
    DEPLOY = "deploy"
    DECISION = "decision"
    DONE = "done"
