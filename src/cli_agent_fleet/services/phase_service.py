"""Phase runner: one blocking agent session per phase."""

import logging
import time
from pathlib import Path
from typing import Optional

from cli_agent_fleet.clients.coordination import CoordinationStore
from cli_agent_fleet.constants import SESSION_LOG_DIR
from cli_agent_fleet.models.phase import PhaseResult, PhaseSpec
from cli_agent_fleet.prompts import build_prompt, skill_path
from cli_agent_fleet.providers.base import BaseProvider

logger = logging.getLogger(__name__)


class SkillNotFoundError(Exception):
    """Raised when a phase's SKILL.md document is missing."""

    def __init__(self, skill: str, path: Path):
        super().__init__(f"{skill} skill not found at {path}")
        self.skill = skill
        self.path = path


def require_skill(spec: PhaseSpec, skills_dir: Path) -> None:
    if spec.skill is None:
        return
    path = skill_path(skills_dir, spec.skill)
    if not path.is_file():
        raise SkillNotFoundError(spec.skill, path)


def run_phase(
    spec: PhaseSpec,
    store: CoordinationStore,
    provider: BaseProvider,
    skills_dir: Path,
    timeout: Optional[float] = None,
) -> PhaseResult:
    """Run one phase and judge it by exit status and the files it wrote.

    Every file in ``spec.writes`` must be created or rewritten by this
    session. A phase whose required inputs are missing is not started.
    Nothing written by a failed session is rolled back.

    Raises:
        SkillNotFoundError: If the phase's skill document does not exist
        ProviderError: If the agent CLI cannot be started
    """
    missing_inputs = [name for name in spec.requires if not store.exists(name)]
    if missing_inputs:
        logger.warning(f"[{spec.name.value}] not started, missing input: {', '.join(missing_inputs)}")
        return PhaseResult(phase=spec.name, missing_inputs=missing_inputs)

    require_skill(spec, skills_dir)

    prompt = build_prompt(spec, store, skills_dir)
    log_path = None if spec.interactive else store.path(f"{SESSION_LOG_DIR}/{spec.name.value}.log")

    # Outputs left over from an earlier round only count if this session rewrote them
    before = {name: store.signature(name) for name in spec.writes}

    logger.info(f"[{spec.name.value}] session started")
    start = time.monotonic()
    timed_out = False
    exit_code: Optional[int] = None
    try:
        exit_code = provider.run_session(
            prompt, interactive=spec.interactive, log_path=log_path, timeout=timeout
        )
    except TimeoutError as e:
        logger.error(f"[{spec.name.value}] {e}")
        timed_out = True
    duration = time.monotonic() - start

    missing_outputs = [
        name for name in spec.writes if store.signature(name) in (None, before[name])
    ]
    result = PhaseResult(
        phase=spec.name,
        exit_code=exit_code,
        missing_outputs=missing_outputs,
        timed_out=timed_out,
        duration=duration,
    )
    if result.ok:
        logger.info(f"[{spec.name.value}] session finished in {duration:.1f}s")
    else:
        logger.warning(f"[{spec.name.value}] phase failed: {result.describe_failure()}")
    return result
