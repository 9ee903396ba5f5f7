"""Run command: the Build -> Test -> Deploy development loop."""

import click

from cli_agent_fleet.cli.context import build_runtime, load_command_config
from cli_agent_fleet.config import ConfigError
from cli_agent_fleet.providers.base import ProviderError
from cli_agent_fleet.services.phase_service import SkillNotFoundError
from cli_agent_fleet.services.round_service import RoundLoop


@click.command()
@click.option("--max-rounds", type=click.IntRange(min=1), help="Rounds before the loop stops (default: 10)")
@click.pass_context
def run(ctx, max_rounds):
    """Architect once, then Build → Test → Deploy rounds with a menu between rounds."""
    try:
        config = load_command_config(ctx, max_rounds=max_rounds)
        store, provider = build_runtime(config)
        loop = RoundLoop(
            store,
            provider,
            config.skills_dir,
            max_rounds=config.max_rounds,
            phase_timeout=config.phase_timeout,
        )
        loop.run()
    except SkillNotFoundError as e:
        raise click.ClickException(
            f"{e}\nPlease install the skills first. See README.md for instructions."
        )
    except (ConfigError, ProviderError) as e:
        raise click.ClickException(str(e))
