"""Claude Code provider implementation."""

from typing import List, Optional, Tuple

from cli_agent_fleet.providers.base import BaseProvider


class ClaudeCodeProvider(BaseProvider):
    """Provider for Claude Code CLI tool integration."""

    default_command = "claude"

    def build_command(self, prompt: str, interactive: bool) -> Tuple[List[str], Optional[str]]:
        """Build the claude command line for one phase.

        Interactive phases pass the prompt as the initial message so the
        terminal stays attached to the operator. Background phases use print
        mode and feed the prompt on stdin.
        """
        command_parts = [self.command]

        # --dangerously-skip-permissions: background sessions have nobody to
        # answer tool permission prompts
        if self.yolo:
            command_parts.append("--dangerously-skip-permissions")

        command_parts.extend(self.extra_args)

        if interactive:
            return command_parts + [prompt], None
        return command_parts + ["-p"], prompt
