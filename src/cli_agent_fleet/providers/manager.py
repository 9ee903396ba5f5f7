"""Provider factory."""

import logging
from pathlib import Path
from typing import Dict, Optional, Sequence, Type

from cli_agent_fleet.models.provider import ProviderType
from cli_agent_fleet.providers.base import BaseProvider, ProviderError
from cli_agent_fleet.providers.claude_code import ClaudeCodeProvider
from cli_agent_fleet.providers.codex import CodexProvider

logger = logging.getLogger(__name__)

PROVIDER_CLASSES: Dict[ProviderType, Type[BaseProvider]] = {
    ProviderType.CLAUDE_CODE: ClaudeCodeProvider,
    ProviderType.CODEX: CodexProvider,
}


def create_provider(
    provider: str,
    working_directory: Path,
    command: Optional[str] = None,
    extra_args: Sequence[str] = (),
    yolo: bool = False,
) -> BaseProvider:
    """Create a provider instance by provider type name."""
    try:
        provider_type = ProviderType(provider)
    except ValueError:
        raise ProviderError(
            f"Invalid provider '{provider}'. "
            f"Available providers: {', '.join(p.value for p in ProviderType)}"
        )

    provider_class = PROVIDER_CLASSES[provider_type]
    logger.info(f"Using provider: {provider_type.value}")
    return provider_class(working_directory, command=command, extra_args=extra_args, yolo=yolo)
