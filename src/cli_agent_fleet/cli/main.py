"""Main CLI entry point for CLI Agent Fleet."""

import logging
from pathlib import Path

import click

from cli_agent_fleet import __version__
from cli_agent_fleet.cli.commands.features import features
from cli_agent_fleet.cli.commands.run import run
from cli_agent_fleet.cli.commands.status import status
from cli_agent_fleet.cli.commands.watch import watch
from cli_agent_fleet.constants import PROVIDERS

LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"


@click.group()
@click.version_option(__version__, prog_name="fleet")
@click.option(
    "--project-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=".",
    show_default=True,
    help="Project whose _coordination/ directory the fleet uses",
)
@click.option(
    "--config",
    "config_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="JSON config file (default: _coordination/fleet.json if present)",
)
@click.option("--provider", type=click.Choice(PROVIDERS), help="Agent CLI to drive")
@click.option("--skills-dir", type=click.Path(file_okay=False, path_type=Path), help="Directory holding <skill>/SKILL.md")
@click.option("--yolo", is_flag=True, help="Skip the agent's permission prompts")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging")
@click.pass_context
def cli(ctx, project_dir, config_file, provider, skills_dir, yolo, verbose):
    """CLI Agent Fleet - role-based agent rounds over shared coordination files."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format=LOG_FORMAT)
    ctx.obj = {
        "project_dir": project_dir.resolve(),
        "config_file": config_file,
        "overrides": {
            "provider": provider,
            "skills_dir": skills_dir,
            "yolo": True if yolo else None,
        },
    }


cli.add_command(run)
cli.add_command(features)
cli.add_command(watch)
cli.add_command(status)


if __name__ == "__main__":
    cli()
