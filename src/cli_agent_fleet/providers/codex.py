"""Codex CLI provider implementation."""

from typing import List, Optional, Tuple

from cli_agent_fleet.providers.base import BaseProvider


class CodexProvider(BaseProvider):
    """Provider for Codex CLI tool integration."""

    default_command = "codex"

    def build_command(self, prompt: str, interactive: bool) -> Tuple[List[str], Optional[str]]:
        command_parts = [self.command]

        if not interactive:
            # `codex exec -` reads the instructions from stdin
            command_parts.append("exec")

        if self.yolo:
            command_parts.append("--dangerously-bypass-approvals-and-sandbox")

        command_parts.extend(self.extra_args)

        if interactive:
            return command_parts + [prompt], None
        return command_parts + ["-"], prompt
