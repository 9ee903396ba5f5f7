"""Shared setup for fleet commands."""

from typing import Any, Tuple

import click

from cli_agent_fleet.clients.coordination import CoordinationStore
from cli_agent_fleet.config import FleetConfig, load_config
from cli_agent_fleet.providers.base import BaseProvider
from cli_agent_fleet.providers.manager import create_provider


def load_command_config(ctx: click.Context, **overrides: Any) -> FleetConfig:
    """Load config with the group's options plus command-specific overrides."""
    opts = ctx.find_root().obj or {}
    merged = dict(opts.get("overrides", {}))
    merged.update({k: v for k, v in overrides.items() if v is not None})
    return load_config(
        project_dir=opts.get("project_dir"),
        config_file=opts.get("config_file"),
        overrides=merged,
    )


def build_runtime(config: FleetConfig) -> Tuple[CoordinationStore, BaseProvider]:
    store = CoordinationStore(config.project_dir)
    provider = create_provider(
        config.provider.value,
        config.project_dir,
        command=config.agent_command,
        extra_args=config.extra_args,
        yolo=config.yolo,
    )
    return store, provider
