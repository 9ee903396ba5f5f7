"""Provider type definitions."""

from enum import Enum


class ProviderType(str, Enum):
    """CLI agent providers the fleet can drive."""

    CLAUDE_CODE = "claude_code"
    CODEX = "codex"
