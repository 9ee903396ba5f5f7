"""Base provider: runs one agent CLI session as a child process."""

import logging
import os
import shutil
import subprocess
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from cli_agent_fleet.constants import NESTED_SESSION_ENV_VARS

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    """Exception raised for provider-specific errors."""

    pass


class BaseProvider(ABC):
    """Turns a phase prompt into a blocking agent CLI invocation.

    Interactive sessions inherit the terminal so the operator can talk to the
    agent. Background sessions get the prompt on standard input and have their
    output appended to a log file (or discarded).
    """

    default_command = ""

    def __init__(
        self,
        working_directory: Path,
        command: Optional[str] = None,
        extra_args: Sequence[str] = (),
        yolo: bool = False,
    ):
        self.working_directory = Path(working_directory)
        self.command = command or self.default_command
        self.extra_args = list(extra_args)
        self.yolo = yolo

    @abstractmethod
    def build_command(self, prompt: str, interactive: bool) -> Tuple[List[str], Optional[str]]:
        """Return ``(argv, stdin_text)`` for one session."""

    def _child_env(self) -> dict:
        env = dict(os.environ)
        for name in NESTED_SESSION_ENV_VARS:
            env.pop(name, None)
        return env

    def run_session(
        self,
        prompt: str,
        interactive: bool = True,
        log_path: Optional[Path] = None,
        timeout: Optional[float] = None,
    ) -> int:
        """Run one session to completion and return its exit status.

        Raises:
            ProviderError: If the CLI binary cannot be found or started
            TimeoutError: If the session outlives ``timeout`` (it is killed)
        """
        argv, stdin_text = self.build_command(prompt, interactive)
        if shutil.which(argv[0]) is None:
            raise ProviderError(f"Agent CLI '{argv[0]}' not found on PATH")

        logger.debug(f"Starting session: {argv[0]} (interactive={interactive})")
        log_handle = None
        try:
            if interactive:
                stdin = subprocess.PIPE if stdin_text is not None else None
                stdout = None
            else:
                stdin = subprocess.PIPE
                if log_path is not None:
                    log_path.parent.mkdir(parents=True, exist_ok=True)
                    log_handle = open(log_path, "a", encoding="utf-8")
                    log_handle.write(f"\n===== {time.strftime('%Y-%m-%d %H:%M:%S')} =====\n")
                    log_handle.flush()
                    stdout = log_handle
                else:
                    stdout = subprocess.DEVNULL

            try:
                proc = subprocess.Popen(
                    argv,
                    cwd=self.working_directory,
                    env=self._child_env(),
                    stdin=stdin,
                    stdout=stdout,
                    stderr=subprocess.STDOUT if stdout is not None else None,
                    text=True,
                )
            except OSError as e:
                raise ProviderError(f"Failed to start '{argv[0]}': {e}")

            try:
                proc.communicate(input=stdin_text, timeout=timeout)
            except subprocess.TimeoutExpired:
                proc.kill()
                proc.wait()
                raise TimeoutError(f"Session '{argv[0]}' timed out after {timeout}s")
            return proc.returncode
        finally:
            if log_handle is not None:
                log_handle.close()
